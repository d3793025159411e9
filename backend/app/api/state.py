# backend/app/api/state.py
from fastapi import APIRouter, Query

from inbox_digest.config.paths import STATE_PATH
from inbox_digest.storage.state import clear_sender_history, list_sender_history, load_state, save_state

router = APIRouter()


@router.get("/state/sender-history")
def get_sender_history(namespace: str = Query("")) -> dict:
    st = load_state(STATE_PATH)
    entries = list_sender_history(st, namespace)
    return {"ok": True, "namespace": namespace, "count": len(entries), "entries": entries}


@router.delete("/state/sender-history")
def delete_sender_history(namespace: str = Query("")) -> dict:
    st = load_state(STATE_PATH)
    removed = clear_sender_history(st, namespace)
    save_state(STATE_PATH, st)
    return {"ok": True, "namespace": namespace, "removed": removed}
