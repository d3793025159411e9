# backend/app/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI

from inbox_digest.config.logging_utils import configure_logging
from inbox_digest.config.paths import LOGS_DIR
from backend.app.api.run import router as run_router
from backend.app.api.state import router as state_router


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging(LOGS_DIR)
    yield


app = FastAPI(title="inbox-digest API", lifespan=lifespan)
app.include_router(run_router, prefix="/api")
app.include_router(state_router, prefix="/api")
