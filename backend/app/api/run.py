# backend/app/api/run.py
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query
from starlette.concurrency import run_in_threadpool

from inbox_digest.app.run import run_once
from inbox_digest.config.paths import STATE_PATH
from inbox_digest.errors import ConfigError, RunFailedError
from inbox_digest.models import RunMode
from backend.app.status import run_status_store

router = APIRouter()


def _progress_cb(step: str, event: dict[str, Any]) -> None:
    status_update: dict[str, Any] = {"step": step, "detail": event.get("detail")}

    error = event.get("error")
    if error:
        run_status_store.push_error(error)

    if "metrics" in event:
        status_update["metrics"] = event.get("metrics") or {}
    run_status_store.update(**status_update)


@router.post("/run")
async def run_endpoint(
    mode: RunMode = Query(RunMode.PREVIEW),
    limit: Optional[int] = Query(None, ge=0),
) -> dict:
    if run_status_store.is_running():
        raise HTTPException(status_code=409, detail="A run is already in progress.")

    run_status_store.reset(mode.value)
    try:
        # Run blocking Gmail processing in a worker thread so FastAPI stays responsive.
        report = await run_in_threadpool(
            run_once,
            state_path=STATE_PATH,
            mode=mode,
            batch_limit=limit,
            progress_cb=_progress_cb,
        )
    except ConfigError as exc:
        run_status_store.update(state="error", step="config", detail=str(exc))
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RunFailedError as exc:
        run_status_store.update(state="failed", step=exc.step, detail=str(exc))
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except Exception as exc:
        run_status_store.update(state="error", step="error", detail=str(exc))
        raise

    run_status_store.update(
        state="done",
        step="done",
        detail="Run completed",
        report=report,
        metrics={
            "processed": report.get("processed"),
            "listed": report.get("listed"),
            "errors": len(report.get("errors") or []),
        },
    )
    return {"ok": True, "report": report}


@router.get("/run/status")
async def run_status() -> dict:
    return {"ok": True, "status": run_status_store.snapshot()}
