from __future__ import annotations
import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Dict, List, Optional

@dataclass
class AppState:
    runs: int = 0
    last_run_at: Optional[str] = None
    last_mode: Optional[str] = None
    # "<namespace>:<sender>" -> free-form history record. The pipeline never reads it.
    sender_history: Dict[str, Dict[str, Any]] = field(default_factory=dict)

def load_state(path: Path) -> AppState:
    if not path.exists():
        return AppState()
    data = json.loads(path.read_text(encoding="utf-8"))
    # Keep load resilient to legacy/extra fields.
    history = data.get("sender_history") or {}
    return AppState(
        runs=int(data.get("runs") or 0),
        last_run_at=data.get("last_run_at"),
        last_mode=data.get("last_mode"),
        sender_history={str(k): dict(v) for k, v in history.items() if isinstance(v, dict)},
    )

def save_state(path: Path, state: AppState) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(state), indent=2), encoding="utf-8")

def _prefix(namespace: str) -> str:
    return f"{namespace}:" if namespace else ""

def list_sender_history(state: AppState, namespace: str = "") -> List[Dict[str, Any]]:
    prefix = _prefix(namespace)
    return [
        {"key": key, **record}
        for key, record in sorted(state.sender_history.items())
        if key.startswith(prefix)
    ]

def clear_sender_history(state: AppState, namespace: str = "") -> int:
    """Remove all keys in namespace (everything when namespace is empty). Returns the count removed."""
    prefix = _prefix(namespace)
    doomed = [key for key in state.sender_history if key.startswith(prefix)]
    for key in doomed:
        del state.sender_history[key]
    return len(doomed)
