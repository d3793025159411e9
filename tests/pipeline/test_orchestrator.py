from __future__ import annotations

import pytest

from conftest import NOW_MS, verdict
from inbox_digest.classification.gateway import ClassificationGateway
from inbox_digest.config.settings import RunConfig
from inbox_digest.errors import RunFailedError
from inbox_digest.models import MANAGED_LABELS, Category, RunMode
from inbox_digest.pipeline.orchestrator import RunOrchestrator, RunState

VERDICTS = {
    "Server down": verdict("urgent", "Prod is down"),
    "Weekly essay": verdict("creator_newsletters", "A long essay summary."),
    "New comment": verdict("social_community", "Bob replied", platform="Reddit"),
    "Flash sale": verdict("promotions", "Sale"),
    "Card statement": verdict("financial", "Statement ready"),
    "Lunch?": verdict("misc", "Lunch plans"),
}


def _orchestrator(store, classifier, mode=RunMode.FULL, **kwargs):
    config = kwargs.pop("config", None) or RunConfig(mode=mode, social_digest=False)
    return RunOrchestrator(
        store,
        ClassificationGateway(classifier),
        config,
        report_sender=store.email,
        clock=lambda: NOW_MS / 1000,
        **kwargs,
    )


@pytest.fixture
def inbox(make_message):
    return [
        make_message("Server down"),
        make_message("Weekly essay"),
        make_message("New comment"),
        make_message("Flash sale"),
        make_message("Card statement", days_old=6),
        make_message("Lunch?"),
    ]


def test_full_run_routes_every_message(inbox, make_store, make_classifier) -> None:
    store = make_store(inbox)
    orchestrator = _orchestrator(store, make_classifier(VERDICTS))

    result = orchestrator.run()

    assert orchestrator.state is RunState.DONE
    assert result.finalized
    assert result.processed == len(inbox)
    assert [i.subject for i in result.items[Category.URGENT]] == ["Server down"]
    assert result.items[Category.FINANCIAL][0].warning
    assert result.counters == {
        "creator_newsletters_auto_archived": 1,
        "social_community_auto_archived": 1,
        "promotions_auto_archived": 1,
    }
    for message in inbox:
        assert len(store.thread_labels[message.thread_id] & MANAGED_LABELS) == 1
    assert {c[1] for c in store.calls_named("archive_thread")} == {inbox[1].thread_id, inbox[2].thread_id, inbox[3].thread_id}


def test_preview_run_makes_no_mutations_but_reports_everything(inbox, make_store, make_classifier) -> None:
    store = make_store(inbox)

    result = _orchestrator(store, make_classifier(VERDICTS), mode=RunMode.PREVIEW).run()

    assert store.mutating_calls() == []
    assert result.total_listed() == len(inbox)
    assert [i.subject for i in result.items[Category.PROMOTIONS]] == ["Flash sale"]


def test_limited_mode_caps_batch(inbox, make_store, make_classifier) -> None:
    store = make_store(inbox)
    config = RunConfig(mode=RunMode.LIMITED, batch_limit=2, social_digest=False)

    result = _orchestrator(store, make_classifier(VERDICTS), config=config).run()

    assert result.processed == 2
    assert result.total_listed() == 2


def test_own_report_is_archived_and_excluded(make_message, make_store, make_classifier) -> None:
    report = make_message("Inbox Digest - Monday", from_email="Me <ME@example.com>")
    other = make_message("Lunch?")
    store = make_store([report, other])
    classifier = make_classifier(VERDICTS)

    result = _orchestrator(store, classifier).run()

    assert result.skipped_reports == 1
    assert result.processed == 1
    assert report.message_id not in {i.message_id for items in result.items.values() for i in items}
    assert result.errors == ()
    assert store.calls_named("archive_thread") == [("archive_thread", report.thread_id)]
    assert len(classifier.prompts) == 1


def test_subject_marker_alone_is_not_enough(make_message, make_store, make_classifier) -> None:
    lookalike = make_message("Inbox Digest - Monday", from_email="someone@else.com")
    store = make_store([lookalike])

    result = _orchestrator(store, make_classifier({}, default=verdict("misc"))).run()

    assert result.skipped_reports == 0
    assert len(result.items[Category.MISC]) == 1


def test_per_message_failure_is_recorded_and_run_continues(inbox, make_store, make_classifier, monkeypatch) -> None:
    store = make_store(inbox)
    orchestrator = _orchestrator(store, make_classifier(VERDICTS))

    original = store.archive_thread

    def flaky_archive(thread_id):
        if thread_id == inbox[3].thread_id:
            raise ConnectionResetError("socket closed")
        original(thread_id)

    monkeypatch.setattr(store, "archive_thread", flaky_archive)

    result = orchestrator.run()

    assert len(result.errors) == 1
    error = result.errors[0]
    assert error.subject == "Flash sale"
    assert "ConnectionResetError" in error.error
    assert result.processed == len(inbox) - 1
    assert result.items[Category.PROMOTIONS] == ()


def test_classifier_failure_lands_in_misc(make_message, make_store, make_classifier) -> None:
    message = make_message("Mystery")
    store = make_store([message])

    result = _orchestrator(store, make_classifier({})).run()

    assert result.errors == ()
    assert result.items[Category.MISC][0].summary == "classification failed"


def test_label_failure_still_aggregates(inbox, make_store, make_classifier) -> None:
    store = make_store(inbox)
    store.fail_labels = True

    result = _orchestrator(store, make_classifier(VERDICTS)).run()

    assert result.errors == ()
    assert result.total_listed() == len(inbox)


def test_promotions_rerun_is_idempotent(make_message, make_store, make_classifier) -> None:
    message = make_message("Flash sale")
    store = make_store([message])
    classifier = make_classifier(VERDICTS)

    _orchestrator(store, classifier).run()
    _orchestrator(store, classifier).run()

    assert store.thread_labels[message.thread_id] == {"Reference/Promotions"}
    assert len(store.calls_named("archive_thread")) == 1
    assert len(store.calls_named("add_thread_label")) == 1


def test_fetch_failure_is_fatal_and_notifies_operator(make_store, make_classifier) -> None:
    store = make_store([])
    store.fail_fetch = True
    orchestrator = _orchestrator(store, make_classifier({}))

    with pytest.raises(RunFailedError) as excinfo:
        orchestrator.run()

    assert excinfo.value.step == "fetching"
    assert orchestrator.state is RunState.FAILED
    assert len(store.sent) == 1
    assert store.sent[0]["to"] == store.email
    assert "run failed" in store.sent[0]["subject"]


class _Renderer:
    def __init__(self, fail=False):
        self.fail = fail
        self.seen = None

    def render(self, result):
        if self.fail:
            raise ValueError("template missing")
        self.seen = result
        return f"<p>{result.processed} processed</p>"


def test_report_is_rendered_from_finalized_result(inbox, make_store, make_classifier) -> None:
    store = make_store(inbox)
    renderer = _Renderer()

    _orchestrator(store, make_classifier(VERDICTS), renderer=renderer).run()

    assert renderer.seen.finalized
    assert store.sent == [{"to": store.email, "subject": "Inbox Digest", "body": "<p>6 processed</p>"}]


def test_render_failure_sends_alert_instead_of_report(inbox, make_store, make_classifier) -> None:
    store = make_store(inbox)

    with pytest.raises(RunFailedError) as excinfo:
        _orchestrator(store, make_classifier(VERDICTS), renderer=_Renderer(fail=True)).run()

    assert excinfo.value.step == "reporting"
    assert [m["subject"] for m in store.sent] == ["Inbox Digest: run failed"]


def test_progress_callback_sees_state_transitions(make_message, make_store, make_classifier) -> None:
    steps = []
    store = make_store([make_message("Lunch?")])

    _orchestrator(store, make_classifier(VERDICTS), progress_cb=lambda step, payload: steps.append(step)).run()

    transitions = [s for s in steps if s in {state.value for state in RunState}]
    assert transitions == ["fetching", "processing", "processing", "reporting", "done"]


def test_social_digest_runs_in_reporting(inbox, make_store, make_classifier) -> None:
    class Summarizer:
        def summarize(self, platform, items):
            return f"{platform}: {len(items)} new"

    store = make_store(inbox)
    config = RunConfig(mode=RunMode.PREVIEW, social_digest=True)

    result = _orchestrator(store, make_classifier(VERDICTS), config=config, summarizer=Summarizer()).run()

    assert result.social_digests == {"Reddit": "Reddit: 1 new"}


def test_report_sender_is_looked_up_from_profile(make_message, make_store, make_classifier) -> None:
    report = make_message("Inbox Digest - Tuesday", from_email="me@example.com")
    store = make_store([report])
    orchestrator = RunOrchestrator(
        store,
        ClassificationGateway(make_classifier({})),
        RunConfig(mode=RunMode.FULL, social_digest=False),
        clock=lambda: NOW_MS / 1000,
    )

    result = orchestrator.run()

    assert result.skipped_reports == 1
    assert store.calls_named("get_profile") == [("get_profile",)]


def test_profile_failure_is_fatal_and_alerts_operator(make_store, make_classifier) -> None:
    store = make_store([])
    store.fail_profile = True
    orchestrator = RunOrchestrator(
        store,
        ClassificationGateway(make_classifier({})),
        RunConfig(mode=RunMode.FULL, social_digest=False, operator_email="ops@example.com"),
    )

    with pytest.raises(RunFailedError) as excinfo:
        orchestrator.run()

    assert excinfo.value.step == "fetching"
    assert isinstance(excinfo.value.cause, ConnectionError)
    assert store.calls_named("list_messages") == []
    assert [m["to"] for m in store.sent] == ["ops@example.com"]
