"""Speech rehearsal engine – FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from rehearsal.database import init_db

# --- Configure logging so rehearsal.* loggers are visible alongside uvicorn ---
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:    %(name)s - %(message)s",
    stream=sys.stdout,
    force=True,  # override uvicorn's config
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    await init_db()
    log.info("Database ready")
    yield


app = FastAPI(title="Speech Rehearsal Engine", version="0.1.0", lifespan=lifespan)

# --- Register routers ---
from rehearsal.routes.sessions import router as sessions_router  # noqa: E402
from rehearsal.routes.speeches import router as speeches_router  # noqa: E402

app.include_router(speeches_router, prefix="/api")
app.include_router(sessions_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
