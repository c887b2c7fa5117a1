"""
Tubepulse API — Competitor channel routes.

  - POST   /others/{owner_channel_id}                 — track a competitor
  - DELETE /others/{owner_channel_id}/{channel_id}    — stop tracking
  - GET    /others/{owner_channel_id}/videos/compare  — side-by-side uploads
"""
from __future__ import annotations

import logging
from typing import List

import httpx
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_snapshot_service, require_channel
from app.core.database import get_db
from app.core.errors import (
    ChannelNotFoundError, CompetitorLimitError, InvalidChannelUrlError, OwnChannelError,
)
from app.schemas.schemas import ChannelComparison, CompetitorRequest
from app.services.channels.competitor_service import (
    add_competitor,
    compare_channels,
    remove_competitor,
)
from app.services.snapshots.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/others", tags=["Competitors"])


@router.post("/{owner_channel_id}")
async def register_competitor(
    owner_channel_id: int,
    req: CompetitorRequest,
    db: AsyncSession = Depends(get_db),
    snapshots: SnapshotService = Depends(get_snapshot_service),
):
    owner = await require_channel(db, owner_channel_id)
    try:
        return await add_competitor(db, snapshots, owner, req.channel_url)
    except CompetitorLimitError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ChannelNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidChannelUrlError, OwnChannelError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except httpx.HTTPError as e:
        logger.error(f"YouTube lookup failed for {req.channel_url}: {e}")
        raise HTTPException(status_code=502, detail="YouTube API request failed")


@router.delete("/{owner_channel_id}/{channel_id}")
async def unregister_competitor(owner_channel_id: int, channel_id: int, db: AsyncSession = Depends(get_db)):
    if not await remove_competitor(db, owner_channel_id, channel_id):
        raise HTTPException(status_code=404, detail="Competitor not found")
    return {"success": True}


@router.get("/{owner_channel_id}/videos/compare", response_model=List[ChannelComparison])
async def compare_videos(owner_channel_id: int, db: AsyncSession = Depends(get_db)):
    """Three latest videos and five weeks of upload counts per channel."""
    owner = await require_channel(db, owner_channel_id)
    return await compare_channels(db, owner)
