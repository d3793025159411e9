from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_LEVEL_ENV_VAR = "INBOX_DIGEST_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(logs_dir: Optional[Path] = None, *, verbose: bool = False) -> Optional[Path]:
    """
    Configure root logging for a run: console plus one file per run in logs_dir.
    Returns the log file path, or None when only console logging is active.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_path: Optional[Path] = None

    if logs_dir is not None:
        logs_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = logs_dir / f"inbox_digest_{timestamp}.log"
        handlers.append(logging.FileHandler(log_path, mode="w", encoding="utf-8"))

    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, os.getenv(LOG_LEVEL_ENV_VAR, "INFO").upper(), logging.INFO)

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    # googleapiclient is chatty at INFO (discovery cache warnings).
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    return log_path
