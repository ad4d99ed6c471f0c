"""Folding of per-job samples into per-pattern results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from statistics import fmean
from typing import Optional

from common.models.metrics import LatencySummary, PatternResult, RawSample
from common.models.profile import Pattern, TestJob

logger = logging.getLogger(__name__)

ResultKey = tuple[Pattern, int, int, int]


@dataclass
class _Group:
    """Per-job data points collected for one result key."""
    bw_bytes: list[float] = field(default_factory=list)
    iops: list[float] = field(default_factory=list)
    lat_mean: list[float] = field(default_factory=list)
    percentiles: dict[float, float] = field(default_factory=dict)


class Aggregator:
    """Result matrix keyed by (pattern, block size, queue depth, threads).

    Each job contributes one data point: its last sample, which for fio is
    the final whole-job report. Throughput, IOPS and mean latency are
    arithmetic means over data points. Percentiles come from the most
    recently recorded job only.
    """

    def __init__(self):
        self._groups: dict[ResultKey, _Group] = {}
        self._results: dict[ResultKey, PatternResult] = {}

    def record(self, job: TestJob, samples: list[RawSample]) -> Optional[PatternResult]:
        """Fold one job's samples into its pattern result.

        A job without samples adds no data point and leaves the result as it
        was; None is returned in that case.
        """
        if not samples:
            logger.debug(f"Job {job.index + 1}/{job.total} ({job.label}) produced no data")
            return None

        final = samples[-1]
        group = self._groups.setdefault(job.key, _Group())
        group.bw_bytes.append(final.bw_bytes)
        group.iops.append(final.iops)
        group.lat_mean.append(final.lat_mean)
        percentiles = final.lat_percentiles
        if percentiles:
            group.percentiles = percentiles

        result = PatternResult(
            pattern=job.pattern,
            block_size=job.block_size,
            queue_depth=job.queue_depth,
            threads=job.threads,
            bw_bytes=fmean(group.bw_bytes),
            iops=fmean(group.iops),
            latency=LatencySummary(
                mean=fmean(group.lat_mean),
                percentiles=dict(group.percentiles),
            ),
            runs=len(group.bw_bytes),
        )
        self._results[job.key] = result

        logger.debug(
            f"Recorded {job.label}: {final.bw_bytes:.0f} B/s, {final.iops:.1f} IOPS "
            f"(mean over {result.runs} runs: {result.bw_bytes:.0f} B/s)"
        )
        return result.model_copy(deep=True)

    def get(self, pattern: Pattern, block_size: int, queue_depth: int = 1, threads: int = 1) -> Optional[PatternResult]:
        """Get a copy of one result, or None if nothing was recorded for it."""
        result = self._results.get((pattern, block_size, queue_depth, threads))
        return result.model_copy(deep=True) if result else None

    def snapshot(self) -> list[PatternResult]:
        """Copies of all results in the order they were first recorded."""
        return [result.model_copy(deep=True) for result in self._results.values()]

    def reset(self) -> None:
        self._groups.clear()
        self._results.clear()

    def __len__(self) -> int:
        return len(self._results)
