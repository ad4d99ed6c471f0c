"""Common models, events and utilities shared by the engine and the CLI."""

from common.models.profile import BenchmarkProfile, Pattern, FillPolicy, TestJob
from common.models.metrics import RawSample, PatternResult
from common.models.run import RunState, RunStatus

__all__ = [
    "BenchmarkProfile",
    "Pattern",
    "FillPolicy",
    "TestJob",
    "RawSample",
    "PatternResult",
    "RunState",
    "RunStatus",
]
