"""Benchmark orchestration engine."""

from diskbench.core.aggregator import Aggregator
from diskbench.core.controller import BenchmarkController
from diskbench.core.expander import expand
from diskbench.core.parser import ResultParser
from diskbench.core.runner import JobHandle, ProcessRunner

__all__ = [
    "Aggregator",
    "BenchmarkController",
    "expand",
    "ResultParser",
    "JobHandle",
    "ProcessRunner",
]
