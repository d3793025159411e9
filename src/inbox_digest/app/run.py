# src/inbox_digest/app/run.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from inbox_digest.actions.core import MailStore
from inbox_digest.classification.gateway import ClassificationGateway, Classifier
from inbox_digest.classification.llm import OpenAIClassifier, OpenAISummarizer
from inbox_digest.config.paths import CREDENTIALS_PATH, TOKEN_PATH
from inbox_digest.config.settings import RunConfig, load_run_config
from inbox_digest.errors import ConfigError, RunFailedError
from inbox_digest.gmail.client import GmailClient, GmailClientConfig
from inbox_digest.models import RunMode
from inbox_digest.pipeline.aggregator import Summarizer
from inbox_digest.pipeline.orchestrator import RunOrchestrator
from inbox_digest.report.payload import ReportRenderer, report_payload
from inbox_digest.storage.state import load_state, save_state

logger = logging.getLogger(__name__)


def load_gmail_config(body_chars: int = 2000) -> GmailClientConfig:
    if not CREDENTIALS_PATH.exists():
        raise ConfigError(
            f"Missing Gmail credentials at {CREDENTIALS_PATH}. "
            "Did you configure INBOX_DIGEST_SECRETS_DIR?"
        )

    return GmailClientConfig(
        credentials_path=CREDENTIALS_PATH,
        token_path=TOKEN_PATH,
        user_id="me",
        body_chars=body_chars,
    )


def connect_gmail(config: RunConfig) -> GmailClient:
    client = GmailClient(load_gmail_config(body_chars=config.body_chars))
    client.connect()
    return client


def run_once(
    *,
    state_path: Path,
    mode: Optional[RunMode] = None,
    batch_limit: Optional[int] = None,
    config: Optional[RunConfig] = None,
    store: Optional[MailStore] = None,
    classifier: Optional[Classifier] = None,
    summarizer: Optional[Summarizer] = None,
    renderer: Optional[ReportRenderer] = None,
    progress_cb: Optional[Callable[[str, Dict[str, Any]], None]] = None,
) -> Dict[str, Any]:
    """
    Execute a single run and return the report payload (JSON-serializable).

    Args:
        state_path: Path to persisted state (e.g. .state/state.json).
        mode: Overrides INBOX_DIGEST_MODE for this run.
        batch_limit: Overrides the limited-mode cap for this run.
        store/classifier/summarizer: Collaborators; Gmail and OpenAI when omitted.
        renderer: When given, the rendered report is mailed to the recipient.

    Raises:
        ConfigError: invalid settings or missing Gmail credentials.
        RunFailedError: the run hit an unrecoverable error and produced no report.
    """
    config = config or load_run_config()
    if mode is not None or batch_limit is not None:
        config = config.with_mode(mode or config.mode, batch_limit)

    st = load_state(state_path)

    if store is None:
        try:
            store = connect_gmail(config)
        except ConfigError:
            raise
        except Exception as exc:
            # No store yet, so no operator alert.
            logger.exception("[run] could not connect to Gmail")
            raise RunFailedError("connecting", exc) from exc

    gateway = ClassificationGateway(
        classifier or OpenAIClassifier(model=config.model),
        body_chars=config.body_chars,
    )
    if summarizer is None and config.social_digest:
        summarizer = OpenAISummarizer(model=config.model)

    orchestrator = RunOrchestrator(
        store,
        gateway,
        config,
        summarizer=summarizer,
        renderer=renderer,
        progress_cb=progress_cb,
    )
    logger.info("[run] starting mode=%s fetch_limit=%d", config.mode.value, config.fetch_limit)
    result = orchestrator.run()

    st.runs += 1
    st.last_run_at = datetime.now(timezone.utc).isoformat()
    st.last_mode = config.mode.value
    save_state(state_path, st)

    payload = report_payload(result)
    logger.info(
        "[run] done processed=%d listed=%d errors=%d",
        payload["processed"],
        payload["listed"],
        len(payload["errors"]),
    )
    return payload
