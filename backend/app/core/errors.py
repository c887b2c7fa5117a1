"""
Tubepulse domain exceptions.

Routes translate these into HTTP errors; job handlers let the job-fatal ones
propagate to the queue runtime so the job is recorded as failed.
"""
from __future__ import annotations


class TubepulseError(Exception):
    """Base class for all domain errors."""


class InvalidJobError(TubepulseError):
    """Unknown job type, empty video id, or malformed payload."""


class QueueUnavailableError(TubepulseError):
    """The job broker could not be reached; the caller should retry."""


class VideoNotFoundError(TubepulseError):
    def __init__(self, video_id: str):
        super().__init__(f"Video not found: {video_id}")
        self.video_id = video_id


class ChannelNotFoundError(TubepulseError):
    pass


class WorkflowError(TubepulseError):
    """The workflow engine call failed (network error or non-2xx)."""


class MetadataLookupError(TubepulseError):
    """A single YouTube metadata lookup failed. Never fatal to a batch."""


class CompetitorLimitError(TubepulseError):
    pass


class OwnChannelError(TubepulseError):
    """An owner tried to register itself as its own competitor."""


class InvalidChannelUrlError(TubepulseError):
    pass
