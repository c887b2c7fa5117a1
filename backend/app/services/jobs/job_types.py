"""
Tubepulse comment jobs — data contracts shared by the dispatcher, the queue
backends and the processor.

State machine per job:  WAITING → ACTIVE → COMPLETED | FAILED
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from app.core.errors import InvalidJobError


class JobType(str, Enum):
    ANALYSIS = "analysis"
    CLASSIFY = "classify"
    FILTER = "filter"


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Job:
    id: str
    job_type: JobType
    video_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    enqueued_at: float = field(default_factory=time.time)
    state: JobState = JobState.WAITING
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None

    def to_message(self) -> Dict[str, Any]:
        """Broker message body: everything but the queue-owned fields."""
        return {
            "job_type": self.job_type.value,
            "video_id": self.video_id,
            "payload": self.payload,
            "enqueued_at": self.enqueued_at,
        }

    @classmethod
    def from_message(cls, job_id: str, message: Dict[str, Any]) -> "Job":
        return cls(
            id=job_id,
            job_type=JobType(message["job_type"]),
            video_id=message["video_id"],
            payload=message.get("payload") or {},
            enqueued_at=message.get("enqueued_at") or time.time(),
            state=JobState.ACTIVE,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["job_type"] = self.job_type.value
        d["state"] = self.state.value
        return d


def validate_job(job_type: Any, video_id: Any, payload: Optional[Dict[str, Any]]) -> tuple[JobType, str, Dict[str, Any]]:
    """Coerce and check an enqueue request. Raises InvalidJobError."""
    try:
        jt = JobType(job_type)
    except ValueError:
        raise InvalidJobError(f"Unknown job type: {job_type!r}")

    if not isinstance(video_id, str) or not video_id.strip():
        raise InvalidJobError("video_id must be a non-empty string")

    payload = dict(payload or {})
    if jt == JobType.FILTER:
        keyword = payload.get("filtering_keyword")
        if not isinstance(keyword, str) or not keyword.strip():
            raise InvalidJobError("filter jobs require a non-empty filtering_keyword")
        payload = {"filtering_keyword": keyword.strip()}
    else:
        # analysis / classify carry nothing beyond the video id
        payload = {}

    return jt, video_id.strip(), payload
