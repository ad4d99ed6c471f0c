"""Run state models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Benchmark run lifecycle states."""
    IDLE = "idle"
    PREPARING = "preparing"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


class RunState(BaseModel):
    """State of the current (or last) benchmark run."""
    run_id: Optional[str] = None
    status: RunStatus = Field(default=RunStatus.IDLE)

    # Set while running: index of the active job
    job_index: Optional[int] = None
    total_jobs: int = Field(default=0, ge=0)
    completed_jobs: int = Field(default=0, ge=0)
    failed_jobs: list[int] = Field(default_factory=list)

    # Timing
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    # Set on failure
    error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        """Check if a run is in progress."""
        return self.status in [RunStatus.PREPARING, RunStatus.RUNNING, RunStatus.STOPPING]

    @property
    def is_finished(self) -> bool:
        """Check if the run reached a terminal state."""
        return self.status in [RunStatus.STOPPED, RunStatus.FAILED]

    @property
    def cancelled(self) -> bool:
        """True when the run stopped before all jobs completed."""
        return (
            self.status == RunStatus.STOPPED
            and self.completed_jobs + len(self.failed_jobs) < self.total_jobs
        )

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None:
            return 0
        end_time = self.finished_at or datetime.utcnow()
        return (end_time - self.started_at).total_seconds()
