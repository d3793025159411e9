from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from inbox_digest.models import Category, Classification, MailMessage, ReportItem, RunError, RunResult
from inbox_digest.pipeline.policy import RetentionOutcome

logger = logging.getLogger(__name__)

DIGEST_MAX_CHARS = 400
AGED_ARCHIVE_SUFFIX = "_aged_archived"
AUTO_ARCHIVE_SUFFIX = "_auto_archived"


class Summarizer(Protocol):
    def summarize(self, platform: str, items: Sequence[Tuple[str, str, str]]) -> str: ...


def counter_name(category: Category, outcome: RetentionOutcome) -> Optional[str]:
    if outcome.aged_archive:
        return f"{category.value}{AGED_ARCHIVE_SUFFIX}"
    if outcome.archive and not category.is_action:
        return f"{category.value}{AUTO_ARCHIVE_SUFFIX}"
    return None


class RunAggregator:
    """Folds per-message outcomes into the shared RunResult."""

    def __init__(self, result: RunResult):
        self.result = result

    def record(self, message: MailMessage, classification: Classification, outcome: RetentionOutcome) -> None:
        self.result.ensure_mutable()
        category = classification.category

        counter = counter_name(category, outcome)
        if counter:
            self.result.increment(counter)

        self.result.processed += 1
        if not outcome.listed:
            return

        self.result.items[category].append(
            ReportItem(
                message_id=message.message_id,
                thread_id=message.thread_id,
                subject=message.subject,
                from_email=message.from_email,
                summary=classification.summary,
                confidence=classification.confidence,
                internal_date_ms=message.internal_date_ms,
                details=dict(classification.details),
                warning=outcome.warning,
            )
        )

    def record_error(self, message: MailMessage, exc: BaseException) -> None:
        self.result.ensure_mutable()
        self.result.errors.append(
            RunError(
                message_id=message.message_id,
                subject=message.subject,
                from_email=message.from_email,
                error=f"{type(exc).__name__}: {exc}",
            )
        )

    def record_skipped_report(self) -> None:
        self.result.ensure_mutable()
        self.result.skipped_reports += 1


def group_by_platform(items: Sequence[ReportItem]) -> "OrderedDict[str, List[ReportItem]]":
    groups: "OrderedDict[str, List[ReportItem]]" = OrderedDict()
    for item in items:
        platform = item.details.get("platform")
        if not isinstance(platform, str) or not platform.strip():
            platform = "Other"
        groups.setdefault(platform.strip(), []).append(item)
    return groups


def _fallback_digest(count: int) -> str:
    return f"{count} update" if count == 1 else f"{count} updates"


def _validated_digest(text: object) -> Optional[str]:
    if not isinstance(text, str):
        return None
    cleaned = " ".join(text.split())
    if not cleaned:
        return None
    if len(cleaned) > DIGEST_MAX_CHARS:
        cleaned = cleaned[: DIGEST_MAX_CHARS - 1].rstrip() + "…"
    return cleaned


def summarize_social(result: RunResult, summarizer: Optional[Summarizer]) -> Dict[str, str]:
    """
    Build one short digest per social platform. Best effort: any summarizer
    failure or unusable answer degrades to "N updates".
    """
    result.ensure_mutable()
    groups = group_by_platform(result.items[Category.SOCIAL_COMMUNITY])
    for platform, items in groups.items():
        digest: Optional[str] = None
        if summarizer is not None:
            triples = [(item.subject, item.from_email, item.summary) for item in items]
            try:
                digest = _validated_digest(summarizer.summarize(platform, triples))
            except Exception as exc:
                logger.warning("[DIGEST] platform=%s summarizer failed err=%s: %s", platform, type(exc).__name__, exc)
        result.social_digests[platform] = digest or _fallback_digest(len(items))
    return dict(result.social_digests)
