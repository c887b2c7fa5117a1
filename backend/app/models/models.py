"""
Tubepulse ORM Models — channels, videos, snapshots and comments.

Snapshot tables are append-only fact rows; trend queries read the newest row
per entity. Comments are upserted by their YouTube comment id.
"""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    BigInteger, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

# Watermark for videos whose comments were never classified
CLASSIFIED_AT_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════

class CommentType(enum.IntEnum):
    NEUTRAL = 0
    POSITIVE = 1
    NEGATIVE = 2


# ═══════════════════════════════════════════════════════════════════════
# Channels
# ═══════════════════════════════════════════════════════════════════════

class Channel(Base):
    __tablename__ = "channels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    youtube_channel_id: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    # Null for competitor channels nobody owns
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    channel_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    profile_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    channel_intro: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    uploads_playlist_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    videos: Mapped[List["Video"]] = relationship("Video", back_populates="channel")


class CompetitorChannel(Base):
    """Channel tracked for comparison against an owner channel."""
    __tablename__ = "competitor_channels"
    __table_args__ = (
        UniqueConstraint("owner_channel_id", "channel_id", name="uq_competitor_owner_channel"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_channel_id: Mapped[int] = mapped_column(ForeignKey("channels.id"), index=True)
    channel_id: Mapped[int] = mapped_column(ForeignKey("channels.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    channel: Mapped["Channel"] = relationship("Channel", foreign_keys=[channel_id], lazy="joined")


class ChannelSnapshot(Base):
    __tablename__ = "channel_snapshots"
    __table_args__ = (
        Index("ix_channel_snapshots_channel_created", "channel_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel_id: Mapped[int] = mapped_column(ForeignKey("channels.id"))
    subscriber: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_videos: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_view: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    channel_created: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    daily_view: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    average_view: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    nation: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


# ═══════════════════════════════════════════════════════════════════════
# Videos
# ═══════════════════════════════════════════════════════════════════════

class Video(Base):
    __tablename__ = "videos"
    __table_args__ = (
        Index("ix_videos_channel_upload", "channel_id", "upload_date"),
    )

    # YouTube video id
    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    channel_id: Mapped[Optional[int]] = mapped_column(ForeignKey("channels.id"), nullable=True)
    video_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    upload_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    comment_classified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=CLASSIFIED_AT_EPOCH)
    filtering_keyword: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    channel: Mapped[Optional["Channel"]] = relationship("Channel", back_populates="videos")


class VideoSnapshot(Base):
    __tablename__ = "video_snapshots"
    __table_args__ = (
        Index("ix_video_snapshots_video_created", "video_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    video_id: Mapped[str] = mapped_column(ForeignKey("videos.id"))
    view_count: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    like_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    comment_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    dislike_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


# ═══════════════════════════════════════════════════════════════════════
# Comments
# ═══════════════════════════════════════════════════════════════════════

class Comment(Base):
    """Classified YouTube comment, upserted by ``youtube_comment_id``."""
    __tablename__ = "comments"
    __table_args__ = (
        Index("ix_comments_video_type", "video_id", "comment_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    youtube_comment_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    video_id: Mapped[str] = mapped_column(ForeignKey("videos.id"))
    author_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    comment_type: Mapped[int] = mapped_column(Integer, default=CommentType.NEUTRAL.value)
    comment_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_parent: Mapped[bool] = mapped_column(Boolean, default=True)
    is_filtered: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CommentSummary(Base):
    """One row per analysis run, never updated in place."""
    __tablename__ = "comment_summaries"
    __table_args__ = (
        Index("ix_comment_summaries_video_created", "video_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    video_id: Mapped[str] = mapped_column(ForeignKey("videos.id"))
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    summary_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    positive_ratio: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
