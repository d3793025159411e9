from __future__ import annotations

from inbox_digest.labels.manager import LabelStateManager
from inbox_digest.models import MANAGED_LABELS, Category, RunMode


def _managed(store, thread_id: str) -> set[str]:
    return store.thread_labels[thread_id] & MANAGED_LABELS


def test_apply_category_twice_leaves_exactly_the_latest_label(make_message, make_store) -> None:
    message = make_message()
    store = make_store([message])
    manager = LabelStateManager(store, RunMode.FULL)

    assert manager.apply_category(message, Category.TODO)
    assert manager.apply_category(message, Category.URGENT)

    assert _managed(store, message.thread_id) == {"Action/Urgent"}


def test_apply_category_replaces_stale_duplicates_and_keeps_user_labels(make_message, make_store) -> None:
    message = make_message()
    store = make_store([message])
    store.labels.update({"Reference/Misc": "L1", "Reference/Promotions": "L2", "Travel": "L3"})
    store.thread_labels[message.thread_id] = {"Reference/Misc", "Reference/Promotions", "Travel"}

    LabelStateManager(store, RunMode.FULL).apply_category(message, Category.FINANCIAL)

    assert store.thread_labels[message.thread_id] == {"Reference/Financial", "Travel"}
    removed = store.calls_named("remove_thread_labels")
    assert removed == [("remove_thread_labels", message.thread_id, ["Reference/Misc", "Reference/Promotions"])]


def test_apply_category_is_a_noop_when_already_labeled(make_message, make_store) -> None:
    message = make_message()
    store = make_store([message])
    store.labels["Reference/Promotions"] = "L1"
    store.thread_labels[message.thread_id] = {"Reference/Promotions"}

    assert LabelStateManager(store, RunMode.FULL).apply_category(message, Category.PROMOTIONS)

    assert store.calls_named("remove_thread_labels") == []
    assert store.calls_named("add_thread_label") == []


def test_label_ids_are_cached_per_manager(make_message, make_store) -> None:
    first, second = make_message(), make_message()
    store = make_store([first, second])
    manager = LabelStateManager(store, RunMode.FULL)

    manager.apply_category(first, Category.MISC)
    manager.apply_category(second, Category.MISC)

    assert len(store.calls_named("get_or_create_label_id")) == 1


def test_preview_mode_touches_nothing(make_message, make_store) -> None:
    message = make_message()
    store = make_store([message])

    assert not LabelStateManager(store, RunMode.PREVIEW).apply_category(message, Category.URGENT)
    assert store.calls == []


def test_label_failure_is_swallowed(make_message, make_store) -> None:
    message = make_message()
    store = make_store([message])
    store.fail_labels = True

    assert not LabelStateManager(store, RunMode.FULL).apply_category(message, Category.TODO)
    assert _managed(store, message.thread_id) == set()
