"""
Tubepulse Comment Store

Persistence helpers shared by the comment job handlers:
  - Upsert comments by youtube_comment_id (INSERT … ON CONFLICT)
  - Reset / set the keyword-filter flag
  - Positive ratio over stored, non-filtered, typed comments
  - Forward-only classification watermark
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import VideoNotFoundError
from app.models.models import Comment, CommentSummary, CommentType, Video

logger = logging.getLogger(__name__)

# Columns overwritten when a classify run sees a comment again
_UPSERT_UPDATE_COLUMNS = (
    "author_name", "author_id", "comment", "comment_type",
    "comment_date", "is_parent", "video_id",
)


# ── Batch bookkeeping ────────────────────────────────────────────────────

@dataclass
class SkippedItem:
    comment_id: str
    reason: str


@dataclass
class BatchOutcome:
    """Accumulates per-comment results: N persisted, M skipped."""
    persisted: List[str] = field(default_factory=list)
    skipped: List[SkippedItem] = field(default_factory=list)

    def ok(self, comment_id: str) -> None:
        self.persisted.append(comment_id)

    def skip(self, comment_id: str, reason: str) -> None:
        self.skipped.append(SkippedItem(comment_id, reason))

    def as_stats(self) -> Dict[str, Any]:
        return {
            "persisted": len(self.persisted),
            "skipped": len(self.skipped),
            "skipped_ids": [s.comment_id for s in self.skipped],
        }


# ── Videos ───────────────────────────────────────────────────────────────

async def get_video(db: AsyncSession, video_id: str) -> Video:
    video = await db.get(Video, video_id)
    if video is None or video.is_deleted:
        raise VideoNotFoundError(video_id)
    return video


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


async def advance_watermark(db: AsyncSession, video: Video, when: Optional[datetime] = None) -> datetime:
    """Move ``comment_classified_at`` to ``when`` (default now), never backwards."""
    when = when or datetime.now(timezone.utc)
    previous = as_utc(video.comment_classified_at)
    if previous is not None and previous > when:
        when = previous
    video.comment_classified_at = when
    await db.commit()
    return when


# ── Comments ─────────────────────────────────────────────────────────────

async def find_comment(db: AsyncSession, youtube_comment_id: str) -> Optional[Comment]:
    result = await db.execute(
        select(Comment).where(Comment.youtube_comment_id == youtube_comment_id)
    )
    return result.scalar_one_or_none()


def _insert_for(db: AsyncSession):
    dialect = db.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"comment upsert not supported on {dialect}")


async def upsert_comment(
    db: AsyncSession,
    values: Dict[str, Any],
    update_columns: Sequence[str] = _UPSERT_UPDATE_COLUMNS,
) -> None:
    """Insert or update one comment keyed by youtube_comment_id, then commit.

    On conflict only ``update_columns`` are overwritten; the rest of the
    existing row is preserved.
    """
    insert = _insert_for(db)
    stmt = insert(Comment).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[Comment.youtube_comment_id],
        set_={
            **{col: stmt.excluded[col] for col in update_columns if col in values},
            "updated_at": func.now(),
        },
    )
    await db.execute(stmt)
    await db.commit()


async def reset_filtered(db: AsyncSession, video_id: str) -> int:
    result = await db.execute(
        update(Comment)
        .where(Comment.video_id == video_id, Comment.is_filtered.is_(True))
        .values(is_filtered=False)
    )
    await db.commit()
    return result.rowcount or 0


async def set_filtered(db: AsyncSession, comment: Comment, is_filtered: bool) -> None:
    comment.is_filtered = is_filtered
    await db.commit()


# ── Summaries ────────────────────────────────────────────────────────────

def positive_ratio(positive: int, negative: int) -> Optional[float]:
    """Percentage of positive among typed comments, one decimal; None if none."""
    total = positive + negative
    if total == 0:
        return None
    # halves round up
    return math.floor(positive * 1000 / total + 0.5) / 10


async def compute_positive_ratio(db: AsyncSession, video_id: str) -> Optional[float]:
    result = await db.execute(
        select(
            func.coalesce(func.sum(case((Comment.comment_type == CommentType.POSITIVE.value, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Comment.comment_type == CommentType.NEGATIVE.value, 1), else_=0)), 0),
        ).where(
            Comment.video_id == video_id,
            Comment.is_filtered.is_(False),
            Comment.comment_type.in_([CommentType.POSITIVE.value, CommentType.NEGATIVE.value]),
        )
    )
    positive, negative = result.one()
    return positive_ratio(int(positive), int(negative))


async def add_summary(
    db: AsyncSession, video_id: str, title: str, body: str, ratio: Optional[float],
) -> CommentSummary:
    summary = CommentSummary(
        video_id=video_id,
        summary=body,
        summary_title=title,
        positive_ratio=ratio,
    )
    db.add(summary)
    await db.commit()
    return summary
