from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Protocol

from inbox_digest.models import ACTION_TIER, REFERENCE_TIER, RunResult


class ReportRenderer(Protocol):
    """Turns a finalized RunResult into an HTML body. Implemented outside the core."""

    def render(self, result: RunResult) -> str: ...


def report_payload(result: RunResult) -> Dict[str, Any]:
    """JSON-serializable view of a run, grouped by tier in taxonomy order."""

    def bucket(categories) -> Dict[str, Any]:
        return {
            category.value: {
                "label": category.label_name,
                "items": [asdict(item) for item in result.items[category]],
            }
            for category in categories
        }

    return {
        "mode": result.mode.value,
        "finalized": result.finalized,
        "processed": result.processed,
        "listed": result.total_listed(),
        "skipped_reports": result.skipped_reports,
        "action": bucket(ACTION_TIER),
        "reference": bucket(REFERENCE_TIER),
        "counters": dict(sorted(result.counters.items())),
        "social_digests": dict(result.social_digests),
        "errors": [asdict(error) for error in result.errors],
    }
