from __future__ import annotations

from typing import Optional


class InboxDigestError(RuntimeError):
    """Base class for errors raised by inbox-digest."""


class ConfigError(InboxDigestError):
    """Invalid or missing run configuration."""


class ClassificationError(InboxDigestError):
    """Classifier verdict could not be decoded or validated."""


class MailStoreError(InboxDigestError):
    """Mail store returned something the pipeline cannot work with."""


class RunFailedError(InboxDigestError):
    """Unrecoverable failure; the run ends without a report."""

    def __init__(self, step: str, cause: Optional[BaseException] = None):
        self.step = step
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause else "unknown error"
        super().__init__(f"Run failed during {step}: {detail}")
