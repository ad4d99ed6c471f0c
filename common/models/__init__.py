"""Common data models for the disk benchmark."""

from common.models.profile import (
    BenchmarkProfile,
    FillPolicy,
    Pattern,
    PATTERN_SPECS,
    TestJob,
    TEST_FILE_NAME,
)
from common.models.metrics import IoStats, RawSample, LatencySummary, PatternResult
from common.models.run import RunState, RunStatus

__all__ = [
    "BenchmarkProfile",
    "FillPolicy",
    "Pattern",
    "PATTERN_SPECS",
    "TestJob",
    "TEST_FILE_NAME",
    "IoStats",
    "RawSample",
    "LatencySummary",
    "PatternResult",
    "RunState",
    "RunStatus",
]
