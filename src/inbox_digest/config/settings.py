from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from inbox_digest.errors import ConfigError
from inbox_digest.models import RunMode

PURCHASES_POLICIES = ("archive", "aging")


@dataclass(frozen=True)
class AgingThresholds:
    warning_days: int
    archive_days: int


@dataclass(frozen=True)
class RunConfig:
    mode: RunMode = RunMode.PREVIEW
    # Cap applied in limited mode only.
    batch_limit: int = 5
    fetch_limit: int = 50
    query: str = "in:inbox"
    financial_aging: AgingThresholds = AgingThresholds(warning_days=5, archive_days=7)
    purchases_aging: AgingThresholds = AgingThresholds(warning_days=3, archive_days=5)
    # "archive" archives purchases on arrival; "aging" uses purchases_aging instead.
    purchases_policy: str = "archive"
    # Empty means "the authenticated mailbox owner", resolved at run time.
    report_recipient: str = ""
    report_subject: str = "Inbox Digest"
    operator_email: str = ""
    model: str = "gpt-4.1-mini"
    body_chars: int = 2000
    social_digest: bool = True

    def with_mode(self, mode: RunMode, batch_limit: Optional[int] = None) -> "RunConfig":
        return replace(
            self,
            mode=mode,
            batch_limit=self.batch_limit if batch_limit is None else batch_limit,
        )


def _int(env: Mapping[str, str], key: str, default: int, *, minimum: int = 0) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _thresholds(env: Mapping[str, str], prefix: str, default: AgingThresholds) -> AgingThresholds:
    warning = _int(env, f"{prefix}_WARNING_DAYS", default.warning_days)
    archive = _int(env, f"{prefix}_ARCHIVE_DAYS", default.archive_days)
    if warning > archive:
        raise ConfigError(f"{prefix}_WARNING_DAYS ({warning}) exceeds {prefix}_ARCHIVE_DAYS ({archive})")
    return AgingThresholds(warning_days=warning, archive_days=archive)


def parse_mode(value: str) -> RunMode:
    try:
        return RunMode(value.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(m.value for m in RunMode)
        raise ConfigError(f"Unknown run mode {value!r} (expected one of: {allowed})") from exc


def load_run_config(env: Optional[Mapping[str, str]] = None) -> RunConfig:
    """
    Build the run configuration from environment variables.
    Values from .env are already in os.environ once config.paths is imported.
    """
    if env is None:
        env = os.environ

    defaults = RunConfig()
    purchases_policy = env.get("INBOX_DIGEST_PURCHASES_POLICY", defaults.purchases_policy).strip().lower()
    if purchases_policy not in PURCHASES_POLICIES:
        raise ConfigError(
            f"INBOX_DIGEST_PURCHASES_POLICY must be one of {PURCHASES_POLICIES}, got {purchases_policy!r}"
        )

    report_recipient = env.get("INBOX_DIGEST_REPORT_RECIPIENT", "").strip()
    return RunConfig(
        mode=parse_mode(env.get("INBOX_DIGEST_MODE", defaults.mode.value)),
        batch_limit=_int(env, "INBOX_DIGEST_BATCH_LIMIT", defaults.batch_limit),
        fetch_limit=_int(env, "INBOX_DIGEST_FETCH_LIMIT", defaults.fetch_limit, minimum=1),
        query=env.get("INBOX_DIGEST_QUERY", defaults.query),
        financial_aging=_thresholds(env, "INBOX_DIGEST_FINANCIAL", defaults.financial_aging),
        purchases_aging=_thresholds(env, "INBOX_DIGEST_PURCHASES", defaults.purchases_aging),
        purchases_policy=purchases_policy,
        report_recipient=report_recipient,
        report_subject=env.get("INBOX_DIGEST_REPORT_SUBJECT", defaults.report_subject).strip()
        or defaults.report_subject,
        operator_email=env.get("INBOX_DIGEST_OPERATOR_EMAIL", "").strip() or report_recipient,
        model=env.get("INBOX_DIGEST_MODEL", defaults.model),
        body_chars=_int(env, "INBOX_DIGEST_BODY_CHARS", defaults.body_chars, minimum=1),
        social_digest=_bool(env, "INBOX_DIGEST_SOCIAL_DIGEST", defaults.social_digest),
    )
