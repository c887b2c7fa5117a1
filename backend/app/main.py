"""
Tubepulse — Main FastAPI Application

YouTube channel analytics backend with asynchronous comment jobs.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from app.core.config import get_settings
from app.core.database import async_session_factory, init_db
from app.core.logging_config import configure_logging
from app.services.jobs.job_queue import InMemoryJobQueue, build_job_queue
from app.services.jobs.locks import LocalLocks
from app.services.jobs.processor import JobProcessor
from app.services.workflow.workflow_client import WorkflowClient
from app.services.youtube.youtube_client import YouTubeClient

settings = get_settings()

# ── Logging ──────────────────────────────────────────────────────────────

configure_logging()
logger = structlog.get_logger()


# ── Lifespan ─────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hooks."""
    logger.info("Starting Tubepulse", version=settings.app_version, job_backend=settings.job_backend)

    await init_db()

    app.state.youtube = YouTubeClient()
    app.state.job_queue = build_job_queue(settings)
    workflow = None

    # Single-process mode: the worker pool runs on this event loop
    if isinstance(app.state.job_queue, InMemoryJobQueue):
        workflow = WorkflowClient()
        processor = JobProcessor(
            session_factory=async_session_factory,
            workflow=workflow,
            youtube=app.state.youtube,
            locks=LocalLocks(),
        )
        app.state.job_queue.start(processor.process)

    logger.info("Tubepulse ready", workers=settings.job_worker_concurrency)

    yield

    # Shutdown
    await app.state.job_queue.close()
    if workflow is not None:
        await workflow.aclose()
    await app.state.youtube.aclose()
    logger.info("Shutting down Tubepulse")


# ── App ──────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.app_name,
    description="YouTube channel analytics with asynchronous comment analysis",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── Routes ───────────────────────────────────────────────────────────────

from app.api.routes import channel, comments, others, videos  # noqa: E402

app.include_router(comments.router, prefix=settings.api_prefix)
app.include_router(videos.router, prefix=settings.api_prefix)
app.include_router(channel.router, prefix=settings.api_prefix)
app.include_router(others.router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "job_backend": settings.job_backend,
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}
