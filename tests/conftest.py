"""Shared pytest fixtures: an in-memory mail store and a scripted classifier."""

from __future__ import annotations

import json
import re
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Set

import pytest

from inbox_digest.models import MailMessage

NOW_MS = 1_760_000_000_000
DAY_MS = 24 * 60 * 60 * 1000

MUTATING_CALLS = {
    "get_or_create_label_id",
    "add_thread_label",
    "remove_thread_labels",
    "archive_thread",
    "star_message",
    "mark_thread_important",
    "mark_message_unread",
    "mark_message_read",
}


class FakeMailStore:
    """Keeps mailbox state in sets so repeated runs see the effect of earlier ones."""

    def __init__(self, messages: List[MailMessage], email: str = "me@example.com"):
        self._messages = list(messages)
        self.email = email
        self.calls: List[tuple] = []
        self.sent: List[Dict[str, str]] = []
        self.labels: Dict[str, str] = {}
        self.thread_labels: Dict[str, Set[str]] = {m.thread_id: set() for m in messages}
        self.inbox: Set[str] = {m.thread_id for m in messages if m.in_inbox}
        self.unread: Set[str] = {m.message_id for m in messages if m.is_unread}
        self.starred: Set[str] = {m.message_id for m in messages if m.is_starred}
        self.important: Set[str] = {m.thread_id for m in messages if m.is_important}
        self.fail_fetch = False
        self.fail_labels = False
        self.fail_profile = False

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)

    def mutating_calls(self) -> List[tuple]:
        return [call for call in self.calls if call[0] in MUTATING_CALLS]

    def calls_named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    def get_profile(self) -> Dict[str, Any]:
        self._record("get_profile")
        if self.fail_profile:
            raise ConnectionError("profile lookup failed")
        return {"emailAddress": self.email}

    def list_messages(self, query: str = "", max_results: int = 10) -> List[MailMessage]:
        self._record("list_messages", query, max_results)
        if self.fail_fetch:
            raise ConnectionError("mail store unreachable")
        out = []
        for m in self._messages[:max_results]:
            label_ids = ["INBOX"] if m.thread_id in self.inbox else []
            out.append(
                replace(
                    m,
                    label_ids=label_ids,
                    is_unread=m.message_id in self.unread,
                    is_starred=m.message_id in self.starred,
                    is_important=m.thread_id in self.important,
                )
            )
        return out

    def thread_label_names(self, thread_id: str) -> List[str]:
        self._record("thread_label_names", thread_id)
        return sorted(self.thread_labels.setdefault(thread_id, set()))

    def get_or_create_label_id(self, label_name: str) -> Optional[str]:
        self._record("get_or_create_label_id", label_name)
        if self.fail_labels:
            raise RuntimeError("label service down")
        return self.labels.setdefault(label_name, f"Label_{len(self.labels) + 1}")

    def add_thread_label(self, thread_id: str, label_id: str) -> None:
        self._record("add_thread_label", thread_id, label_id)
        names = {v: k for k, v in self.labels.items()}
        self.thread_labels.setdefault(thread_id, set()).add(names[label_id])

    def remove_thread_labels(self, thread_id: str, label_names: List[str]) -> None:
        self._record("remove_thread_labels", thread_id, list(label_names))
        self.thread_labels.setdefault(thread_id, set()).difference_update(label_names)

    def archive_thread(self, thread_id: str) -> None:
        self._record("archive_thread", thread_id)
        self.inbox.discard(thread_id)

    def star_message(self, message_id: str) -> None:
        self._record("star_message", message_id)
        self.starred.add(message_id)

    def mark_thread_important(self, thread_id: str) -> None:
        self._record("mark_thread_important", thread_id)
        self.important.add(thread_id)

    def mark_message_unread(self, message_id: str) -> None:
        self._record("mark_message_unread", message_id)
        self.unread.add(message_id)

    def mark_message_read(self, message_id: str) -> None:
        self._record("mark_message_read", message_id)
        self.unread.discard(message_id)

    def send_message(self, to: str, subject: str, html_body: str) -> None:
        self._record("send_message", to, subject)
        self.sent.append({"to": to, "subject": subject, "body": html_body})


class ScriptedClassifier:
    """Answers with the verdict registered for the prompt's Subject line."""

    _SUBJECT_RE = re.compile(r"^Subject: (.*)$", re.MULTILINE)

    def __init__(self, verdicts: Dict[str, Any], default: Any = None):
        self.verdicts = verdicts
        self.default = default
        self.prompts: List[str] = []

    def complete(self, prompt: str):
        self.prompts.append(prompt)
        match = self._SUBJECT_RE.search(prompt)
        subject = match.group(1) if match else ""
        verdict = self.verdicts.get(subject, self.default)
        if isinstance(verdict, Exception):
            raise verdict
        if verdict is None:
            raise TimeoutError("classifier timed out")
        return verdict


def verdict(category: str, summary: str = "summary", confidence: float = 0.9, **details: Any) -> str:
    return json.dumps(
        {
            "category": category,
            "confidence": confidence,
            "summary": summary,
            "reasoning": f"looks like {category}",
            "details": details,
        }
    )


@pytest.fixture
def make_message() -> Callable[..., MailMessage]:
    counter = {"n": 0}

    def _make(
        subject: str = "Hello",
        from_email: str = "Alice <alice@example.com>",
        *,
        days_old: int = 0,
        in_inbox: bool = True,
        **overrides: Any,
    ) -> MailMessage:
        counter["n"] += 1
        n = counter["n"]
        fields = dict(
            message_id=f"m{n}",
            thread_id=f"t{n}",
            subject=subject,
            from_email=from_email,
            body_excerpt=f"Body of {subject}",
            internal_date_ms=NOW_MS - days_old * DAY_MS,
            label_ids=["INBOX"] if in_inbox else [],
        )
        fields.update(overrides)
        return MailMessage(**fields)

    return _make


@pytest.fixture
def make_store() -> Callable[..., FakeMailStore]:
    return FakeMailStore


@pytest.fixture
def make_classifier() -> Callable[..., ScriptedClassifier]:
    return ScriptedClassifier


@pytest.fixture(autouse=True)
def no_api_keys(monkeypatch):
    """Ensure no real API keys are used during tests."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
