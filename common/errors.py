"""Exceptions raised by the benchmark engine.

Run-level failures (``ToolNotFound``, ``ProfileError``) end a run in the
``failed`` state. Job-level failures (``LaunchFailed``, ``JobFailed``) are
contained by the controller and reported as events.
"""

from __future__ import annotations


class DiskBenchError(Exception):
    """Base exception for all benchmark errors."""

    pass


class ToolNotFound(DiskBenchError):
    """Raised when the fio binary is missing, not executable or unusable."""

    pass


class LaunchFailed(DiskBenchError):
    """Raised when a fio process could not be started for a job."""

    pass


class JobFailed(DiskBenchError):
    """Raised when fio exited abnormally or produced no parseable result."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ParseAnomaly(DiskBenchError):
    """Raised for a malformed fio record when strict parsing is requested."""

    pass


class ProfileError(DiskBenchError):
    """Raised when a benchmark profile is invalid or unknown."""

    pass
