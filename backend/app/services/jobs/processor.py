"""
Tubepulse Job Processor — executes claimed comment jobs.

Handlers, dispatched on ``job.job_type``:
  - analysis  workflow summary + positive ratio recomputed from stored
              comments → one new CommentSummary row
  - classify  comments newer than the video's watermark → upserted with the
              workflow's type and YouTube's author metadata; watermark moves
              only if something was stored
  - filter    reset every is_filtered flag for the video, then apply the
              workflow's keyword verdicts (inserting unknown comments as
              neutral)

Failure policy:
  - workflow errors, unknown video     → propagate, job FAILED
  - one comment's metadata / DB error  → logged, skipped, batch continues
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import InvalidJobError, MetadataLookupError
from app.models.models import CLASSIFIED_AT_EPOCH, CommentType
from app.services.comments.comment_store import (
    BatchOutcome, add_summary, advance_watermark, as_utc, compute_positive_ratio,
    find_comment, get_video, reset_filtered, set_filtered, upsert_comment,
)
from app.services.jobs.job_types import Job, JobType
from app.services.jobs.locks import comment_lock_key
from app.services.workflow.workflow_client import DEFAULT_SUMMARY_TITLE, WorkflowClient
from app.services.youtube.youtube_client import CommentMetadata, YouTubeClient

logger = logging.getLogger(__name__)


class LockProvider(Protocol):
    def hold(self, key: str): ...


class JobProcessor:
    """Stateless between jobs; safe to share across concurrent workers."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        workflow: WorkflowClient,
        youtube: YouTubeClient,
        locks: LockProvider,
    ):
        self.session_factory = session_factory
        self.workflow = workflow
        self.youtube = youtube
        self.locks = locks
        self._handlers: Dict[JobType, Callable[[Job], Awaitable[Dict[str, Any]]]] = {
            JobType.ANALYSIS: self.handle_analysis,
            JobType.CLASSIFY: self.handle_classify,
            JobType.FILTER: self.handle_filter,
        }

    async def process(self, job: Job) -> Dict[str, Any]:
        handler = self._handlers.get(job.job_type)
        if handler is None:
            raise InvalidJobError(f"No handler for job type {job.job_type!r}")

        logger.info(f"Processing {job.job_type.value} job {job.id} for video {job.video_id}")
        started = time.time()
        result = await handler(job)
        logger.info(
            f"Finished {job.job_type.value} job {job.id} in {time.time() - started:.2f}s: {result}"
        )
        return result

    # ── analysis ─────────────────────────────────────────────────────

    async def handle_analysis(self, job: Job) -> Dict[str, Any]:
        async with self.session_factory() as db:
            await get_video(db, job.video_id)
            # release the connection before the remote call
            await db.commit()

            payload = await self.workflow.analyze(job.video_id)
            body = payload.as_dict()
            title = body.get("summary_title") or DEFAULT_SUMMARY_TITLE

            # Ratio comes from our own store, not from the workflow response
            ratio = await compute_positive_ratio(db, job.video_id)

            summary = await add_summary(
                db,
                job.video_id,
                title=str(title),
                body=json.dumps(body, ensure_ascii=False),
                ratio=ratio,
            )
            return {"summary_id": summary.id, "positive_ratio": ratio}

    # ── classify ─────────────────────────────────────────────────────

    async def handle_classify(self, job: Job) -> Dict[str, Any]:
        async with self.locks.hold(comment_lock_key(job.video_id)):
            async with self.session_factory() as db:
                video = await get_video(db, job.video_id)
                watermark = as_utc(video.comment_classified_at) or CLASSIFIED_AT_EPOCH
                await db.commit()

                entries = await self.workflow.classify(job.video_id, watermark)
                outcome = BatchOutcome()
                for entry in entries:
                    await self._classify_one(db, job.video_id, entry, outcome)

                stats = outcome.as_stats()
                stats["received"] = len(entries)
                if outcome.persisted:
                    await db.refresh(video)
                    moved_to = await advance_watermark(db, video)
                    stats["comment_classified_at"] = moved_to.isoformat()
                    logger.info(f"Watermark for {job.video_id} advanced to {moved_to.isoformat()}")
                else:
                    logger.info(f"No comments stored for {job.video_id}; watermark left at {watermark.isoformat()}")
                return stats

    async def _classify_one(
        self, db: AsyncSession, video_id: str, entry: Dict[str, Any], outcome: BatchOutcome,
    ) -> None:
        comment_id = str(entry["id"])
        comment_type = _parse_comment_type(entry.get("comment_type"))
        if comment_type is None:
            logger.warning(f"Skipping comment {comment_id}: bad comment_type {entry.get('comment_type')!r}")
            outcome.skip(comment_id, "invalid comment_type")
            return

        meta = await self._lookup(comment_id, outcome)
        if meta is None:
            return

        values = {
            "youtube_comment_id": comment_id,
            "video_id": video_id,
            "comment": _entry_text(entry),
            "comment_type": comment_type,
            "author_name": meta.author_name,
            "author_id": meta.author_id,
            "comment_date": meta.published_at,
            "is_parent": meta.is_top_level,
        }
        await self._persist(db, comment_id, outcome, upsert_comment(db, values))

    # ── filter ───────────────────────────────────────────────────────

    async def handle_filter(self, job: Job) -> Dict[str, Any]:
        keyword = job.payload.get("filtering_keyword")
        if not keyword:
            raise InvalidJobError(f"filter job {job.id} has no filtering_keyword")

        async with self.locks.hold(comment_lock_key(job.video_id)):
            async with self.session_factory() as db:
                video = await get_video(db, job.video_id)
                video.filtering_keyword = keyword
                await db.commit()

                cleared = await reset_filtered(db, job.video_id)
                entries = await self.workflow.filter(job.video_id, keyword)

                outcome = BatchOutcome()
                for entry in entries:
                    await self._filter_one(db, job.video_id, entry, outcome)

                stats = outcome.as_stats()
                stats.update(received=len(entries), cleared=cleared)
                return stats

    async def _filter_one(
        self, db: AsyncSession, video_id: str, entry: Dict[str, Any], outcome: BatchOutcome,
    ) -> None:
        comment_id = str(entry["id"])
        is_filtered = _as_bool(entry.get("is_filtered"))

        existing = await find_comment(db, comment_id)
        if existing is not None:
            # Keep type / text / author from earlier classification
            await self._persist(db, comment_id, outcome, set_filtered(db, existing, is_filtered))
            return

        meta = await self._lookup(comment_id, outcome)
        if meta is None:
            return

        values = {
            "youtube_comment_id": comment_id,
            "video_id": video_id,
            "comment": _entry_text(entry),
            "comment_type": CommentType.NEUTRAL.value,
            "author_name": meta.author_name,
            "author_id": meta.author_id,
            "comment_date": meta.published_at,
            "is_parent": meta.is_top_level,
            "is_filtered": is_filtered,
        }
        await self._persist(
            db, comment_id, outcome,
            upsert_comment(db, values, update_columns=("is_filtered",)),
        )

    # ── shared per-item steps ────────────────────────────────────────

    async def _lookup(self, comment_id: str, outcome: BatchOutcome) -> Optional[CommentMetadata]:
        try:
            return await self.youtube.get_comment_metadata(comment_id)
        except MetadataLookupError as e:
            logger.warning(f"Skipping comment {comment_id}: metadata lookup failed: {e}")
            outcome.skip(comment_id, "metadata lookup failed")
            return None

    async def _persist(
        self, db: AsyncSession, comment_id: str, outcome: BatchOutcome, write: Awaitable[Any],
    ) -> None:
        try:
            await write
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Skipping comment {comment_id}: persist failed: {e}")
            outcome.skip(comment_id, "persist failed")
            return
        outcome.ok(comment_id)


# ── Entry parsing ────────────────────────────────────────────────────────

def _parse_comment_type(value: Any) -> Optional[int]:
    try:
        ct = int(value)
    except (TypeError, ValueError):
        return None
    return ct if ct in {t.value for t in CommentType} else None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y")
    return bool(value)


def _entry_text(entry: Dict[str, Any]) -> Optional[str]:
    return entry.get("text") if entry.get("text") is not None else entry.get("comment")
