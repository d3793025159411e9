from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from inbox_digest.actions.core import Action, MailStore

logger = logging.getLogger(__name__)


class ActionHandler(ABC):
    @abstractmethod
    def handle(self, store: MailStore, action: Action) -> None:
        """Execute one action."""
        ...


class ArchiveHandler(ActionHandler):
    def handle(self, store: MailStore, action: Action) -> None:
        store.archive_thread(action.thread_id)
        logger.info("[ARCHIVE] thread_id=%s reason=%s", action.thread_id, action.reason)


class StarHandler(ActionHandler):
    def handle(self, store: MailStore, action: Action) -> None:
        store.star_message(action.message_id)
        logger.info("[STAR] message_id=%s reason=%s", action.message_id, action.reason)


class MarkImportantHandler(ActionHandler):
    def handle(self, store: MailStore, action: Action) -> None:
        # Gmail importance is a conversation-level marker.
        store.mark_thread_important(action.thread_id)
        logger.info("[IMPORTANT] thread_id=%s reason=%s", action.thread_id, action.reason)


class MarkUnreadHandler(ActionHandler):
    def handle(self, store: MailStore, action: Action) -> None:
        store.mark_message_unread(action.message_id)
        logger.info("[UNREAD] message_id=%s reason=%s", action.message_id, action.reason)
