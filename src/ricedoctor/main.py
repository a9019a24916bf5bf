"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ricedoctor.api.routes import router
from ricedoctor.config import Settings, get_settings
from ricedoctor.history import DiagnosisHistory
from ricedoctor.ml.inference import InferencePool, initialize_model
from ricedoctor.ml.model_manager import ModelState, OnnxModelRuntime
from ricedoctor.ml.pipeline import DiagnosisPipeline

logger = logging.getLogger(__name__)


def init_app_state(app: FastAPI, settings: Settings) -> None:
    """Attach settings, model lifecycle, pipeline, pool and history to ``app.state``."""
    state = ModelState()
    runtime = OnnxModelRuntime(settings)

    app.state.settings = settings
    app.state.model_state = state
    app.state.runtime = runtime
    app.state.pipeline = DiagnosisPipeline.from_settings(settings, state, runtime)
    app.state.inference_pool = InferencePool(settings)
    app.state.history = DiagnosisHistory(settings.history_max_entries)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: start the model load on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting RiceDoctor (device=%s, max_concurrent=%s, model=%s)",
        settings.device,
        settings.max_concurrent,
        settings.model_repo_id or settings.model_path,
    )

    init_app_state(app, settings)
    load_task = asyncio.create_task(initialize_model(app.state.model_state, app.state.runtime))

    logger.info("RiceDoctor accepting requests; model loading in background")
    yield

    logger.info("Shutting down RiceDoctor")
    if not load_task.done():
        load_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await load_task
    app.state.inference_pool.shutdown()
    logger.info("RiceDoctor shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="RiceDoctor",
        description="Offline rice leaf disease classification with treatment advice",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("ricedoctor.main:app", host=settings.host, port=settings.port)
