from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Tuple


class Category(str, Enum):
    URGENT = "urgent"
    TODO = "todo"
    WAITING = "waiting"
    SECURITY_ALERT = "security_alert"
    CREATOR_NEWSLETTERS = "creator_newsletters"
    SOCIAL_COMMUNITY = "social_community"
    PROMOTIONS = "promotions"
    FINANCIAL = "financial"
    PURCHASES = "purchases"
    MISC = "misc"

    @property
    def is_action(self) -> bool:
        return self in ACTION_TIER

    @property
    def label_name(self) -> str:
        return CATEGORY_LABELS[self]


ACTION_TIER: Tuple[Category, ...] = (
    Category.URGENT,
    Category.TODO,
    Category.WAITING,
    Category.SECURITY_ALERT,
)

REFERENCE_TIER: Tuple[Category, ...] = (
    Category.CREATOR_NEWSLETTERS,
    Category.SOCIAL_COMMUNITY,
    Category.PROMOTIONS,
    Category.FINANCIAL,
    Category.PURCHASES,
    Category.MISC,
)

# One canonical Gmail label per category. Parent labels group the two tiers.
CATEGORY_LABELS: Dict[Category, str] = {
    Category.URGENT: "Action/Urgent",
    Category.TODO: "Action/To Do",
    Category.WAITING: "Action/Waiting",
    Category.SECURITY_ALERT: "Action/Security Alert",
    Category.CREATOR_NEWSLETTERS: "Reference/Newsletters",
    Category.SOCIAL_COMMUNITY: "Reference/Social",
    Category.PROMOTIONS: "Reference/Promotions",
    Category.FINANCIAL: "Reference/Financial",
    Category.PURCHASES: "Reference/Purchases",
    Category.MISC: "Reference/Misc",
}

MANAGED_LABELS = frozenset(CATEGORY_LABELS.values())


def parse_category(value: Any) -> Optional[Category]:
    """Map a loosely formatted category string onto the enumeration, or None."""
    if isinstance(value, Category):
        return value
    if not isinstance(value, str):
        return None
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return Category(key)
    except ValueError:
        return None


class RunMode(str, Enum):
    PREVIEW = "preview"
    LIMITED = "limited"
    FULL = "full"

    @property
    def allows_mutation(self) -> bool:
        return self is not RunMode.PREVIEW

    def batch_size(self, fetched: int, limit: int) -> int:
        if self is RunMode.LIMITED:
            return min(fetched, max(0, limit))
        return fetched


@dataclass(frozen=True)
class MailMessage:
    message_id: str
    thread_id: str
    subject: str
    from_email: str
    body_excerpt: str
    internal_date_ms: int
    is_unread: bool = False
    is_starred: bool = False
    is_important: bool = False
    label_ids: List[str] = field(default_factory=list)

    @property
    def in_inbox(self) -> bool:
        return "INBOX" in self.label_ids


@dataclass(frozen=True)
class Classification:
    category: Category
    confidence: float
    summary: str
    reasoning: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def platform(self) -> str:
        value = self.details.get("platform")
        if isinstance(value, str) and value.strip():
            return value.strip()
        return "Other"


class AgingAction(str, Enum):
    KEEP = "keep"
    WARN = "warn"
    ARCHIVE = "archive"


@dataclass(frozen=True)
class AgingDecision:
    action: AgingAction
    days_old: int
    warning_text: Optional[str] = None


@dataclass(frozen=True)
class ReportItem:
    message_id: str
    thread_id: str
    subject: str
    from_email: str
    summary: str
    confidence: float
    internal_date_ms: int
    details: Dict[str, Any] = field(default_factory=dict)
    warning: Optional[str] = None


@dataclass(frozen=True)
class RunError:
    message_id: str
    subject: str
    from_email: str
    error: str


@dataclass
class RunResult:
    """Aggregate of one run. Mutated once per processed message, then finalized."""

    mode: RunMode
    items: Dict[Category, List[ReportItem]] = field(
        default_factory=lambda: {category: [] for category in Category}
    )
    errors: List[RunError] = field(default_factory=list)
    counters: Dict[str, int] = field(default_factory=dict)
    social_digests: Dict[str, str] = field(default_factory=dict)
    processed: int = 0
    skipped_reports: int = 0
    finalized: bool = False

    def ensure_mutable(self) -> None:
        if self.finalized:
            raise RuntimeError("RunResult is finalized and can no longer be modified")

    def increment(self, counter: str, amount: int = 1) -> None:
        self.ensure_mutable()
        self.counters[counter] = self.counters.get(counter, 0) + amount

    def finalize(self) -> "RunResult":
        # Freeze everything a renderer can reach.
        self.items = MappingProxyType(  # type: ignore[assignment]
            {category: tuple(items) for category, items in self.items.items()}
        )
        self.errors = tuple(self.errors)  # type: ignore[assignment]
        self.counters = MappingProxyType(dict(self.counters))  # type: ignore[assignment]
        self.social_digests = MappingProxyType(dict(self.social_digests))  # type: ignore[assignment]
        self.finalized = True
        return self

    def total_listed(self) -> int:
        return sum(len(items) for items in self.items.values())
