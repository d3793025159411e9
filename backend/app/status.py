from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from time import time
from typing import Any, Dict, Optional, List


@dataclass
class RunStatus:
    state: str = "idle"
    step: str = "idle"
    mode: Optional[str] = None
    detail: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)
    report: Optional[Dict[str, Any]] = None
    # Keep a small rolling window of recent errors for UI visibility.
    recent_errors: List[Dict[str, Any]] = field(default_factory=list)
    updated_at: float = field(default_factory=time)


class RunStatusStore:
    def __init__(self) -> None:
        self._lock = Lock()
        self._status = RunStatus()

    def update(self, **fields: Any) -> None:
        # Lock ensures UI polling sees consistent snapshots across threads.
        with self._lock:
            for key, value in fields.items():
                if hasattr(self._status, key):
                    setattr(self._status, key, value)
            self._status.updated_at = time()

    def push_error(self, error: Dict[str, Any], limit: int = 50) -> None:
        with self._lock:
            # Most recent first.
            self._status.recent_errors = ([error] + self._status.recent_errors)[:limit]
            self._status.updated_at = time()

    def reset(self, mode: str) -> None:
        with self._lock:
            self._status = RunStatus(state="running", step="starting", mode=mode, detail="Starting run")

    def is_running(self) -> bool:
        with self._lock:
            return self._status.state == "running"

    def snapshot(self) -> Dict[str, Any]:
        # Return a copy to avoid mutation by callers.
        with self._lock:
            return {
                "state": self._status.state,
                "step": self._status.step,
                "mode": self._status.mode,
                "detail": self._status.detail,
                "metrics": dict(self._status.metrics),
                "report": self._status.report,
                "recent_errors": list(self._status.recent_errors),
                "updated_at": self._status.updated_at,
            }


run_status_store = RunStatusStore()
