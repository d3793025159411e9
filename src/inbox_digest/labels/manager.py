from __future__ import annotations

import logging
from typing import Dict, List, Optional

from inbox_digest.actions.core import MailStore
from inbox_digest.models import MANAGED_LABELS, Category, MailMessage, RunMode

logger = logging.getLogger(__name__)


class LabelStateManager:
    """
    Keeps at most one managed label on each conversation.

    Every call removes whatever managed labels are present and attaches the
    canonical label of the new category, so repeated runs converge on the
    latest classification. Labels outside the managed set are never touched.
    """

    def __init__(self, store: MailStore, mode: RunMode):
        self.store = store
        self.mode = mode
        # name -> label id, valid for the lifetime of one run.
        self._label_ids: Dict[str, str] = {}

    def managed_labels_on(self, thread_id: str) -> List[str]:
        return [name for name in self.store.thread_label_names(thread_id) if name in MANAGED_LABELS]

    def resolve_label(self, label_name: str) -> Optional[str]:
        label_id = self._label_ids.get(label_name)
        if label_id:
            return label_id
        label_id = self.store.get_or_create_label_id(label_name)
        if label_id:
            self._label_ids[label_name] = label_id
        return label_id

    def apply_category(self, message: MailMessage, category: Category) -> bool:
        """
        Replace the conversation's managed label with the one for category.
        Returns True when the conversation ends up carrying the target label.
        Failures are logged and swallowed; the caller carries on unlabeled.
        """
        target = category.label_name
        if not self.mode.allows_mutation:
            logger.info("[DRY-RUN] would label thread_id=%s label=%s", message.thread_id, target)
            return False

        try:
            current = self.managed_labels_on(message.thread_id)
            if current == [target]:
                logger.debug("[LABEL] thread_id=%s already labeled %s", message.thread_id, target)
                return True

            if current:
                self.store.remove_thread_labels(message.thread_id, current)

            label_id = self.resolve_label(target)
            if not label_id:
                raise ValueError(f"Failed to get or create label: {target}")
            self.store.add_thread_label(message.thread_id, label_id)
        except Exception as exc:
            logger.warning(
                "[ERROR] Label failed thread_id=%s label=%s err=%s: %s",
                message.thread_id,
                target,
                type(exc).__name__,
                exc,
            )
            return False

        logger.info(
            "[LABEL] thread_id=%s label=%s replaced=%s",
            message.thread_id,
            target,
            ",".join(current) or "-",
        )
        return True
