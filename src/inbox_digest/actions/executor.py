from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable

from inbox_digest.actions.core import Action, ActionType, MailStore
from inbox_digest.actions.handlers import (
    ActionHandler,
    ArchiveHandler,
    MarkImportantHandler,
    MarkUnreadHandler,
    StarHandler,
)
from inbox_digest.models import RunMode

logger = logging.getLogger(__name__)


@dataclass
class ActionExecutor:
    handlers: Dict[ActionType, ActionHandler]
    dry_run: bool = False
    # Retention actions fail the message by default; the orchestrator records the error.
    continue_on_error: bool = False

    def run(self, store: MailStore, actions: Iterable[Action]) -> int:
        """Execute actions in order. Returns how many reached the store."""
        executed = 0
        for action in actions:
            handler = self.handlers.get(action.type)
            if not handler:
                logger.warning("[WARN] No handler registered for action type: %s", action.type)
                continue

            if self.dry_run:
                logger.info(
                    "[DRY-RUN] would run type=%s message_id=%s thread_id=%s reason=%s",
                    action.type.value,
                    action.message_id,
                    action.thread_id,
                    action.reason,
                )
                continue

            try:
                handler.handle(store, action)
                executed += 1
            except Exception as e:
                logger.error(
                    "[ERROR] Action failed type=%s message_id=%s reason=%s err=%s",
                    action.type.value,
                    action.message_id,
                    action.reason,
                    e,
                )
                if not self.continue_on_error:
                    raise
        return executed


def default_executor(mode: RunMode) -> ActionExecutor:
    return ActionExecutor(
        handlers={
            ActionType.ARCHIVE: ArchiveHandler(),
            ActionType.STAR: StarHandler(),
            ActionType.MARK_IMPORTANT: MarkImportantHandler(),
            ActionType.MARK_UNREAD: MarkUnreadHandler(),
        },
        dry_run=not mode.allows_mutation,
    )
