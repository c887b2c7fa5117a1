"""
Tubepulse Core Settings.

Creator analytics backend: YouTube channel/video snapshots for an owner
channel plus up to two competitors, and an asynchronous comment pipeline
(analysis, classification, keyword filtering) driven by an external
workflow engine.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8",
        env_prefix="TUBEPULSE_", case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "Tubepulse"
    app_version: str = "1.2.0"
    debug: bool = False
    log_level: str = "INFO"
    api_prefix: str = "/api"
    cors_origins: List[str] = ["http://localhost:5173"]

    # ── PostgreSQL ───────────────────────────────────────────────────────
    db_host: str = "postgres"
    db_port: int = 5432
    db_user: str = "tubepulse"
    db_password: str = "tubepulse_secret"
    db_name: str = "tubepulse"
    # Full URL override (tests use sqlite+aiosqlite)
    db_url: Optional[str] = None
    db_echo: bool = False

    @property
    def database_url(self) -> str:
        if self.db_url:
            return self.db_url
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    # ── Redis / Celery ───────────────────────────────────────────────────
    redis_url: str = "redis://redis:6379/0"
    celery_broker_url: str = "redis://redis:6379/1"
    celery_result_backend: str = "redis://redis:6379/2"

    # "celery" in production, "memory" for single-process development
    job_backend: str = "celery"

    # ── Job Processing ───────────────────────────────────────────────────
    job_worker_concurrency: int = 3
    job_result_expires_seconds: int = 86400
    job_soft_time_limit: int = 900
    job_time_limit: int = 1200
    comment_lock_timeout_seconds: int = 1200

    # ── Workflow Engine (comment NLP) ────────────────────────────────────
    workflow_base_url: str = "http://n8n:5678/webhook"
    workflow_analysis_path: str = "comments-analysis"
    workflow_classify_path: str = "comments-classify"
    workflow_filter_path: str = "comments-filter"
    workflow_timeout_seconds: float = 300.0

    # ── YouTube Data API ─────────────────────────────────────────────────
    youtube_api_key: str = ""
    youtube_api_base_url: str = "https://www.googleapis.com/youtube/v3"
    youtube_dislike_api_url: str = "https://returnyoutubedislikeapi.com/votes"
    youtube_timeout_seconds: float = 20.0
    youtube_min_request_interval: float = 0.1

    # ── Snapshots ────────────────────────────────────────────────────────
    snapshot_interval_seconds: int = 21600
    snapshot_recent_videos: int = 10
    channel_sync_video_limit: int = 20

    # ── Competitors ──────────────────────────────────────────────────────
    max_competitors: int = 2


@lru_cache()
def get_settings() -> Settings:
    return Settings()
