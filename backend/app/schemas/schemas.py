"""
Tubepulse API Schemas — Pydantic v2 models for request/response validation.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ═══════════════════════════════════════════════════════════════════════
# Comment Jobs
# ═══════════════════════════════════════════════════════════════════════

class FilterJobRequest(BaseModel):
    filtering_keyword: str = Field("", max_length=255)


class JobEnqueuedResponse(BaseModel):
    success: bool = True
    job_id: str


class JobStatusResponse(BaseModel):
    success: bool = True
    status: str
    job_id: str
    video_id: str


# ═══════════════════════════════════════════════════════════════════════
# Comments
# ═══════════════════════════════════════════════════════════════════════

class CommentSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    youtube_comment_id: str
    video_id: str
    author_name: Optional[str] = None
    author_id: Optional[str] = None
    comment: Optional[str] = None
    comment_type: int
    comment_date: Optional[datetime] = None
    is_parent: bool
    is_filtered: bool


class CommentSummarySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    video_id: str
    summary_title: Optional[str] = None
    summary: Optional[str] = None
    positive_ratio: Optional[float] = None
    created_at: datetime


class CommentListResponse(BaseModel):
    success: bool = True
    data: List[CommentSchema]


class CommentSummaryListResponse(BaseModel):
    success: bool = True
    data: List[CommentSummarySchema]


# ═══════════════════════════════════════════════════════════════════════
# Video statistics
# ═══════════════════════════════════════════════════════════════════════

class VideoWatch(BaseModel):
    videoId: str
    title: Optional[str] = None
    viewCount: int = 0
    uploadDate: Optional[datetime] = None


class VideoLikeRate(BaseModel):
    videoId: str
    title: Optional[str] = None
    likeCount: int = 0
    viewCount: int = 0
    commentCount: int = 0
    likeRate: str
    uploadDate: Optional[datetime] = None


class VideoCommentRate(BaseModel):
    videoId: str
    title: Optional[str] = None
    commentCount: int = 0
    viewCount: int = 0
    commentRate: str
    uploadDate: Optional[datetime] = None


class ChannelVideo(BaseModel):
    videoId: str
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    publishedAt: Optional[str] = None
    viewCount: int = 0
    commentRate: str
    likeRate: str


# ═══════════════════════════════════════════════════════════════════════
# Channels
# ═══════════════════════════════════════════════════════════════════════

class SubscriberPoint(BaseModel):
    date: str
    subscriber: Optional[int] = None


class CategoryCount(BaseModel):
    category: Optional[str] = None
    count: int


class CompetitorRequest(BaseModel):
    channel_url: str = Field(..., min_length=1, max_length=512)


class LatestVideo(BaseModel):
    videoId: str
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    uploadDate: Optional[datetime] = None
    views: Optional[int] = None
    likes: Optional[int] = None
    dislikes: Optional[int] = None


class WeeklyUploads(BaseModel):
    week: str
    count: int


class ChannelComparison(BaseModel):
    channelId: int
    channelName: Optional[str] = None
    latestVideos: List[LatestVideo]
    weeklyUploads: List[WeeklyUploads]
