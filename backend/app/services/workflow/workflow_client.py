"""
Tubepulse Workflow Client — comment NLP via external workflow webhooks.

Three webhooks:
  - analysis  POST {video_id}                          → narrative summary
  - classify  POST {video_id, comment_classified_at}   → [{id, text, comment_type}]
  - filter    POST {video_id, filtering_keyword}       → [{id, text, is_filtered}]

The workflow engine's response shape is not contracted: the payload can sit
at the top level, under ``output``, or arrive as a JSON-encoded string.
``normalize_response`` folds all of them into a ``WorkflowPayload``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import httpx

from app.core.config import get_settings
from app.core.errors import WorkflowError

logger = logging.getLogger(__name__)
settings = get_settings()

DEFAULT_SUMMARY_TITLE = "분석 결과"


# ═══════════════════════════════════════════════════════════════════════════
# Normalized payloads
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StructuredPayload:
    """Response that decoded to a JSON object or array."""
    data: Union[Dict[str, Any], List[Any]]

    def as_dict(self) -> Dict[str, Any]:
        if isinstance(self.data, dict):
            return self.data
        return {"items": self.data}


@dataclass(frozen=True)
class RawPayload:
    """Response text that could not be decoded; kept verbatim."""
    text: str

    def as_dict(self) -> Dict[str, Any]:
        return {"summary_title": DEFAULT_SUMMARY_TITLE, "summary": self.text}


WorkflowPayload = Union[StructuredPayload, RawPayload]


def _decode(value: Any) -> WorkflowPayload:
    if isinstance(value, (dict, list)):
        return StructuredPayload(value)
    text = value if isinstance(value, str) else str(value)
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        return RawPayload(text)
    if isinstance(parsed, (dict, list)):
        return StructuredPayload(parsed)
    return RawPayload(text)


def normalize_response(body: Any) -> WorkflowPayload:
    """Unwrap ``output`` and decode JSON strings, falling back to raw text."""
    payload = _decode(body)
    if isinstance(payload, StructuredPayload) and isinstance(payload.data, dict) \
            and "output" in payload.data:
        return _decode(payload.data["output"])
    return payload


def extract_entries(payload: WorkflowPayload) -> List[Dict[str, Any]]:
    """Comment entries from a classify/filter response.

    Accepts a bare array, an object holding the array under ``comments`` /
    ``items`` / ``data``, or a single entry object.
    """
    if isinstance(payload, RawPayload):
        logger.warning(f"Workflow returned undecodable entries: {payload.text[:200]!r}")
        return []

    data = payload.data
    if isinstance(data, dict):
        for key in ("comments", "items", "data"):
            if isinstance(data.get(key), list):
                data = data[key]
                break
        else:
            data = [data] if "id" in data else []

    entries = []
    for item in data:
        # n8n item envelopes: {"json": {...}}
        if isinstance(item, dict) and isinstance(item.get("json"), dict):
            item = item["json"]
        if isinstance(item, dict) and item.get("id"):
            entries.append(item)
    return entries


# ═══════════════════════════════════════════════════════════════════════════
# Client
# ═══════════════════════════════════════════════════════════════════════════

class WorkflowClient:
    """POSTs to the workflow webhooks. Any transport error or non-2xx raises
    ``WorkflowError``, fatal for the job that made the call."""

    def __init__(self, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(
            base_url=settings.workflow_base_url.rstrip("/") + "/",
            timeout=settings.workflow_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "WorkflowClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, body: Dict[str, Any]) -> WorkflowPayload:
        try:
            resp = await self._client.post(path, json=body)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise WorkflowError(f"workflow {path} failed: {e}") from e

        try:
            decoded = resp.json()
        except ValueError:
            decoded = resp.text
        return normalize_response(decoded)

    async def analyze(self, video_id: str) -> WorkflowPayload:
        return await self._post(settings.workflow_analysis_path, {"video_id": video_id})

    async def classify(self, video_id: str, comment_classified_at: datetime) -> List[Dict[str, Any]]:
        payload = await self._post(settings.workflow_classify_path, {
            "video_id": video_id,
            "comment_classified_at": comment_classified_at.isoformat(),
        })
        return extract_entries(payload)

    async def filter(self, video_id: str, filtering_keyword: str) -> List[Dict[str, Any]]:
        payload = await self._post(settings.workflow_filter_path, {
            "video_id": video_id,
            "filtering_keyword": filtering_keyword,
        })
        return extract_entries(payload)
