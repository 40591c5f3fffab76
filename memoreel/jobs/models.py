"""Render job record and its lifecycle states."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from memoreel.media.descriptor import MediaDescriptor


class JobStatus(str, Enum):
    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.failed)


@dataclass(frozen=True)
class JobOptions:
    target_duration: float = 90.0


@dataclass(frozen=True)
class Job:
    """Immutable snapshot of a render job.

    The worker never edits a Job in place; each state or progress change
    produces a new snapshot via ``evolve`` that replaces the old reference,
    so concurrent readers always see a complete record.
    """
    id: str
    media: tuple[MediaDescriptor, ...]
    style: str
    options: JobOptions = field(default_factory=JobOptions)
    status: JobStatus = JobStatus.queued
    progress: int = 0
    output_path: str = ""
    output_filename: str = ""
    error: str = ""
    renderer: str = ""
    degraded: bool = False
    selected_count: int = 0
    created_at: float = 0.0
    started_at: float = 0.0
    completed_at: float = 0.0

    def evolve(self, **changes: Any) -> Job:
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Status payload: the external view of a job."""
        return {
            "jobId": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "style": self.style,
            "targetDuration": self.options.target_duration,
            "filesCount": len(self.media),
            "selectedCount": self.selected_count,
            "outputFilename": self.output_filename or None,
            "error": self.error or None,
            "renderer": self.renderer or None,
            "degraded": self.degraded,
            "createdAt": _iso(self.created_at),
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
        }


def _iso(ts: float) -> str | None:
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()
