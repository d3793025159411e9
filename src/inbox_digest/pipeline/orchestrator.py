from __future__ import annotations

import html
import logging
import time
from email.utils import parseaddr
from enum import Enum
from typing import Any, Callable, Dict, Optional

from inbox_digest.actions.core import MailStore
from inbox_digest.classification.gateway import ClassificationGateway
from inbox_digest.config.settings import RunConfig
from inbox_digest.errors import RunFailedError
from inbox_digest.labels.manager import LabelStateManager
from inbox_digest.models import MailMessage, RunResult
from inbox_digest.pipeline.aggregator import RunAggregator, Summarizer, summarize_social
from inbox_digest.pipeline.policy import RetentionPolicyEngine
from inbox_digest.report.payload import ReportRenderer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Dict[str, Any]], None]


class RunState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PROCESSING = "processing"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"


def normalized_address(value: str) -> str:
    # Parse "Name <mail@domain>" safely and normalize for exact comparisons.
    return parseaddr(value or "")[1].strip().lower()


class RunOrchestrator:
    """
    Drives one run: fetch, then classify -> decide -> label -> aggregate per
    message, then hand the finalized RunResult to the renderer.

    Per-message failures land in RunResult.errors. Anything failing outside
    the per-message loop is fatal: the operator is notified and
    RunFailedError is raised, without a report.
    """

    def __init__(
        self,
        store: MailStore,
        gateway: ClassificationGateway,
        config: RunConfig,
        *,
        report_sender: Optional[str] = None,
        summarizer: Optional[Summarizer] = None,
        renderer: Optional[ReportRenderer] = None,
        labels: Optional[LabelStateManager] = None,
        policy: Optional[RetentionPolicyEngine] = None,
        progress_cb: Optional[ProgressCallback] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.config = config
        self.mode = config.mode
        # None: looked up from the mailbox profile when the run starts.
        self.report_sender = normalized_address(report_sender) if report_sender is not None else None
        self.summarizer = summarizer
        self.renderer = renderer
        self.labels = labels or LabelStateManager(store, config.mode)
        self.policy = policy or RetentionPolicyEngine(store, config)
        self.progress_cb = progress_cb
        self.clock = clock or time.time
        self.state = RunState.IDLE

    # --- Progress ---

    def _report(self, step: str, *, detail: Optional[str] = None, **extra: Any) -> None:
        if not self.progress_cb:
            return
        payload: Dict[str, Any] = {"detail": detail, "state": self.state.value}
        payload.update(extra)
        self.progress_cb(step, payload)

    def _transition(self, state: RunState, detail: Optional[str] = None, **extra: Any) -> None:
        logger.info("[run] %s -> %s%s", self.state.value, state.value, f" ({detail})" if detail else "")
        self.state = state
        self._report(state.value, detail=detail, **extra)

    # --- Message handling ---

    def is_own_report(self, message: MailMessage) -> bool:
        if not self.report_sender:
            return False
        marker = self.config.report_subject.strip().lower()
        return (
            normalized_address(message.from_email) == self.report_sender
            and bool(marker)
            and marker in (message.subject or "").lower()
        )

    def process_message(self, message: MailMessage, aggregator: RunAggregator, now_ms: int) -> None:
        if self.is_own_report(message):
            logger.info("[skip] own report message_id=%s", message.message_id)
            try:
                self.policy.archive(message, reason="previous digest")
            except Exception as exc:
                logger.warning("[skip] could not archive own report message_id=%s err=%s", message.message_id, exc)
            aggregator.record_skipped_report()
            return

        try:
            classification = self.gateway.classify(message)
            outcome = self.policy.decide(message, classification.category, now_ms)
            self.labels.apply_category(message, classification.category)
            self.policy.apply(outcome)
            aggregator.record(message, classification, outcome)
        except Exception as exc:
            logger.error(
                "[error] message_id=%s subject=%r %s: %s",
                message.message_id,
                message.subject,
                type(exc).__name__,
                exc,
            )
            aggregator.record_error(message, exc)
            self._report(
                "error",
                detail=f"{type(exc).__name__}: {exc}",
                error={
                    "message_id": message.message_id,
                    "from": message.from_email,
                    "subject": message.subject,
                    "error": f"{type(exc).__name__}: {exc}",
                },
            )

    # --- Run ---

    def run(self) -> RunResult:
        result = RunResult(mode=self.mode)
        aggregator = RunAggregator(result)

        try:
            self._transition(RunState.FETCHING, detail=f"query={self.config.query!r}")
            if self.report_sender is None:
                profile = self.store.get_profile()
                self.report_sender = normalized_address(str(profile.get("emailAddress", "")))
            messages = self.store.list_messages(query=self.config.query, max_results=self.config.fetch_limit)
            batch = messages[: self.mode.batch_size(len(messages), self.config.batch_limit)]

            self._transition(
                RunState.PROCESSING,
                detail=f"Processing 0/{len(batch)} (fetched={len(messages)}, mode={self.mode.value})",
            )
            now_ms = int(self.clock() * 1000)
            for index, message in enumerate(batch, start=1):
                self.process_message(message, aggregator, now_ms)
                self._report(
                    "processing",
                    detail=f"Processing {index}/{len(batch)}",
                    metrics={
                        "processed": result.processed,
                        "errors": len(result.errors),
                        "skipped_reports": result.skipped_reports,
                    },
                )

            self._transition(RunState.REPORTING)
            if self.config.social_digest:
                summarize_social(result, self.summarizer)
            result.finalize()
            if self.renderer is not None:
                self._deliver(result)
        except Exception as exc:
            failed_step = self.state.value
            self.state = RunState.FAILED
            logger.exception("[run] fatal failure during %s", failed_step)
            self._report("failed", detail=f"{type(exc).__name__}: {exc}", step=failed_step)
            self._notify_failure(failed_step, exc)
            raise RunFailedError(failed_step, exc) from exc

        self._transition(
            RunState.DONE,
            detail="Run completed",
            metrics={"processed": result.processed, "errors": len(result.errors)},
        )
        return result

    def _recipient(self) -> str:
        return self.config.report_recipient or self.report_sender or ""

    def _deliver(self, result: RunResult) -> None:
        recipient = self._recipient()
        if not recipient:
            raise ValueError("No report recipient configured")
        body = self.renderer.render(result)
        self.store.send_message(recipient, self.config.report_subject, body)

    def _notify_failure(self, step: str, exc: BaseException) -> None:
        recipient = self.config.operator_email or self._recipient()
        if not recipient:
            logger.error("[run] no operator address configured; failure notification not sent")
            return
        subject = f"{self.config.report_subject}: run failed"
        body = (
            f"<p>The {self.mode.value} run failed during <b>{html.escape(step)}</b>.</p>"
            f"<pre>{html.escape(type(exc).__name__)}: {html.escape(str(exc))}</pre>"
        )
        try:
            self.store.send_message(recipient, subject, body)
        except Exception as notify_exc:
            logger.error("[run] failure notification could not be sent: %s", notify_exc)
