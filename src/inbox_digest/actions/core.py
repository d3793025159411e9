from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from inbox_digest.models import MailMessage


class ActionType(str, Enum):
    ARCHIVE = "archive"
    STAR = "star"
    MARK_IMPORTANT = "mark_important"
    MARK_UNREAD = "mark_unread"


@dataclass(frozen=True)
class Action:
    type: ActionType
    message_id: str
    thread_id: str
    reason: str = ""


class MailStore(Protocol):
    """Everything the pipeline needs from a mailbox. Gmail is the production implementation."""

    def get_profile(self) -> Dict[str, Any]: ...
    def list_messages(self, query: str = "", max_results: int = 10) -> List[MailMessage]: ...
    def thread_label_names(self, thread_id: str) -> List[str]: ...
    def get_or_create_label_id(self, label_name: str) -> Optional[str]: ...
    def add_thread_label(self, thread_id: str, label_id: str) -> None: ...
    def remove_thread_labels(self, thread_id: str, label_names: List[str]) -> None: ...
    def archive_thread(self, thread_id: str) -> None: ...
    def star_message(self, message_id: str) -> None: ...
    def mark_thread_important(self, thread_id: str) -> None: ...
    def mark_message_unread(self, message_id: str) -> None: ...
    def mark_message_read(self, message_id: str) -> None: ...
    def send_message(self, to: str, subject: str, html_body: str) -> None: ...
