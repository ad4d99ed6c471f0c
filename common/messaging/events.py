"""Event definitions published by the benchmark controller."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from common.models.metrics import PatternResult
from common.models.profile import TestJob


class EventType(str, Enum):
    """Types of events emitted during a run."""

    # Run lifecycle
    RUN_STARTED = "run.started"
    RUN_STOPPED = "run.stopped"
    RUN_FAILED = "run.failed"

    # Job progress
    JOB_PROGRESS = "job.progress"
    JOB_INTERVAL = "job.interval"
    JOB_FAILED = "job.failed"

    # Results
    RESULT_UPDATED = "result.updated"


TERMINAL_EVENTS = frozenset({EventType.RUN_STOPPED, EventType.RUN_FAILED})


class Event(BaseModel):
    """Base event structure for all notifications."""

    type: EventType = Field(..., description="Event type")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    source: str = Field(default="controller", description="Source identifier")
    run_id: Optional[str] = Field(default=None)
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "run_id": self.run_id,
            "payload": self.payload,
        }

    @classmethod
    def from_json(cls, data: dict) -> "Event":
        """Create event from JSON dict."""
        return cls(
            type=EventType(data["type"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            source=data.get("source", "controller"),
            run_id=data.get("run_id"),
            payload=data.get("payload", {}),
        )


# Convenience functions for creating common events

def create_run_started_event(run_id: str, profile_name: str, total_jobs: int, fio_version: str = "") -> Event:
    """Create a run started event."""
    return Event(
        type=EventType.RUN_STARTED,
        run_id=run_id,
        payload={
            "profile": profile_name,
            "total_jobs": total_jobs,
            "fio_version": fio_version,
        },
    )


def create_progress_event(
    run_id: str,
    job: TestJob,
    elapsed: float = 0,
    remaining: float = 0,
) -> Event:
    """Create a job progress event."""
    return Event(
        type=EventType.JOB_PROGRESS,
        run_id=run_id,
        payload={
            "job_index": job.index,
            "total_jobs": job.total,
            "label": job.label,
            "pattern": job.pattern.value,
            "block_size": job.block_size,
            "elapsed": elapsed,
            "remaining": remaining,
        },
    )


def create_interval_event(run_id: str, waited: float, interval: float, next_job: Optional[TestJob] = None) -> Event:
    """Create an event reporting the pause between two jobs."""
    return Event(
        type=EventType.JOB_INTERVAL,
        run_id=run_id,
        payload={
            "waited": waited,
            "interval": interval,
            "next_job_index": next_job.index if next_job else None,
        },
    )


def create_job_failed_event(run_id: str, job: TestJob, error: str) -> Event:
    """Create a per-job failure notice."""
    return Event(
        type=EventType.JOB_FAILED,
        run_id=run_id,
        payload={
            "job_index": job.index,
            "total_jobs": job.total,
            "label": job.label,
            "error": error,
        },
    )


def create_result_event(run_id: str, result: PatternResult) -> Event:
    """Create a result updated event carrying a snapshot."""
    return Event(
        type=EventType.RESULT_UPDATED,
        run_id=run_id,
        payload={"result": result.to_json()},
    )


def create_stopped_event(run_id: str, completed_jobs: int, total_jobs: int, cancelled: bool = False) -> Event:
    """Create the terminal event of a run that ended normally or by cancel."""
    return Event(
        type=EventType.RUN_STOPPED,
        run_id=run_id,
        payload={
            "status": "stopped",
            "completed_jobs": completed_jobs,
            "total_jobs": total_jobs,
            "cancelled": cancelled,
        },
    )


def create_failed_event(run_id: Optional[str], reason: str, error_type: str = "") -> Event:
    """Create the terminal event of a failed run."""
    return Event(
        type=EventType.RUN_FAILED,
        run_id=run_id,
        payload={
            "status": "failed",
            "reason": reason,
            "error_type": error_type,
        },
    )
