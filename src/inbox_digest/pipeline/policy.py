from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from inbox_digest.actions.core import Action, ActionType, MailStore
from inbox_digest.actions.executor import ActionExecutor, default_executor
from inbox_digest.config.settings import AgingThresholds, RunConfig
from inbox_digest.models import AgingAction, AgingDecision, Category, MailMessage

DAY_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class CategoryPolicy:
    # Mutations applied as soon as the message is classified.
    actions: Tuple[ActionType, ...] = ()
    archive_immediately: bool = False
    # When set, the message is kept, warned about, or archived by age.
    aging: Optional[AgingThresholds] = None


@dataclass(frozen=True)
class RetentionOutcome:
    category: Category
    actions: Tuple[Action, ...]
    archive: bool = False
    aged_archive: bool = False
    aging: Optional[AgingDecision] = None

    @property
    def listed(self) -> bool:
        # Aged archives only count toward the tally; they are not reported items.
        return not self.aged_archive

    @property
    def warning(self) -> Optional[str]:
        return self.aging.warning_text if self.aging else None


def build_policy_table(config: RunConfig) -> Dict[Category, CategoryPolicy]:
    attention = (ActionType.MARK_UNREAD,)
    archive = CategoryPolicy(archive_immediately=True)

    if config.purchases_policy == "aging":
        purchases = CategoryPolicy(aging=config.purchases_aging)
    else:
        purchases = archive

    return {
        Category.URGENT: CategoryPolicy(actions=(ActionType.MARK_IMPORTANT, ActionType.MARK_UNREAD)),
        Category.TODO: CategoryPolicy(actions=attention),
        Category.WAITING: CategoryPolicy(actions=attention),
        Category.SECURITY_ALERT: CategoryPolicy(
            actions=(ActionType.STAR, ActionType.MARK_IMPORTANT, ActionType.MARK_UNREAD)
        ),
        Category.CREATOR_NEWSLETTERS: archive,
        Category.SOCIAL_COMMUNITY: archive,
        Category.PROMOTIONS: archive,
        Category.FINANCIAL: CategoryPolicy(aging=config.financial_aging),
        Category.PURCHASES: purchases,
        Category.MISC: CategoryPolicy(),
    }


def age_in_days(internal_date_ms: int, now_ms: int) -> int:
    return max(0, (now_ms - internal_date_ms) // DAY_MS)


def decide_aging(days_old: int, thresholds: AgingThresholds) -> AgingDecision:
    if days_old > thresholds.archive_days:
        return AgingDecision(action=AgingAction.ARCHIVE, days_old=days_old)
    if days_old >= thresholds.warning_days:
        remaining = thresholds.archive_days - days_old + 1
        unit = "day" if remaining == 1 else "days"
        return AgingDecision(
            action=AgingAction.WARN,
            days_old=days_old,
            warning_text=f"{days_old} days old, auto-archives in {remaining} {unit}",
        )
    return AgingDecision(action=AgingAction.KEEP, days_old=days_old)


def _already_applied(action_type: ActionType, message: MailMessage) -> bool:
    if action_type is ActionType.STAR:
        return message.is_starred
    if action_type is ActionType.MARK_IMPORTANT:
        return message.is_important
    if action_type is ActionType.MARK_UNREAD:
        return message.is_unread
    if action_type is ActionType.ARCHIVE:
        return not message.in_inbox
    return False


def actions_for(
    policy: CategoryPolicy,
    message: MailMessage,
    category: Category,
    *,
    now_ms: int,
) -> RetentionOutcome:
    types: List[ActionType] = list(policy.actions)
    aging: Optional[AgingDecision] = None
    aged_archive = False

    if policy.aging is not None:
        aging = decide_aging(age_in_days(message.internal_date_ms, now_ms), policy.aging)
        aged_archive = aging.action is AgingAction.ARCHIVE

    archive = policy.archive_immediately or aged_archive
    if archive:
        types.append(ActionType.ARCHIVE)

    reason = f"{category.value} ({aging.days_old}d old)" if aged_archive and aging else category.value
    actions = tuple(
        Action(type=t, message_id=message.message_id, thread_id=message.thread_id, reason=reason)
        for t in types
        if not _already_applied(t, message)
    )
    return RetentionOutcome(
        category=category,
        actions=actions,
        archive=archive,
        aged_archive=aged_archive,
        aging=aging,
    )


class RetentionPolicyEngine:
    """Consults the per-category policy table; mutations go through the mode-gated executor."""

    def __init__(
        self,
        store: MailStore,
        config: RunConfig,
        executor: Optional[ActionExecutor] = None,
    ):
        self.store = store
        self.table = build_policy_table(config)
        self.executor = executor or default_executor(config.mode)

    def decide(self, message: MailMessage, category: Category, now_ms: Optional[int] = None) -> RetentionOutcome:
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return actions_for(self.table[category], message, category, now_ms=now_ms)

    def apply(self, outcome: RetentionOutcome) -> int:
        return self.executor.run(self.store, outcome.actions)

    def archive(self, message: MailMessage, reason: str) -> int:
        if not message.in_inbox:
            return 0
        action = Action(
            type=ActionType.ARCHIVE,
            message_id=message.message_id,
            thread_id=message.thread_id,
            reason=reason,
        )
        return self.executor.run(self.store, [action])
