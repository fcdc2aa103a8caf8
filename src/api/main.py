import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes.transcripts import router as transcripts_router
from src.config import get_settings
from src.pipeline.factory import build_notifier, build_pipeline_deps

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the pipeline clients once at startup and release them on shutdown."""
    settings = get_settings()
    app.state.deps = build_pipeline_deps(settings)
    app.state.notifier = build_notifier(settings)
    logger.info("Pipeline dependencies ready")
    try:
        yield
    finally:
        tracker = app.state.deps.tracker
        if tracker is not None:
            tracker.close()


app = FastAPI(
    title="Meeting Task Sync API",
    description="Turn standup transcripts into tracker tasks and status updates",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_origin_regex=r"https://.*\.vercel\.app|http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(transcripts_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
