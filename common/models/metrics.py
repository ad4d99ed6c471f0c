"""Sample and result models.

All values are SI base units: bytes, bytes per second, operations per
second and seconds. Scaling to MB/s or microseconds is left to whoever
displays them (see ``common.utils``).
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from common.models.profile import Pattern


class IoStats(BaseModel):
    """One direction (read or write) of a fio report."""
    io_bytes: int = Field(default=0, ge=0, description="Cumulative bytes transferred")
    bw_bytes: float = Field(default=0, ge=0, description="Bandwidth in bytes per second")
    iops: float = Field(default=0, ge=0, description="Operations per second")
    lat_mean: float = Field(default=0, ge=0, description="Mean completion latency in seconds")
    lat_percentiles: dict[float, float] = Field(
        default_factory=dict,
        description="Latency percentiles in seconds, keyed by percent",
    )

    @property
    def is_empty(self) -> bool:
        return self.io_bytes == 0 and self.iops == 0 and self.bw_bytes == 0


class RawSample(BaseModel):
    """A single progress or result record emitted by fio for one job."""
    elapsed: float = Field(default=0, ge=0, description="Seconds since the job started")
    read: IoStats = Field(default_factory=IoStats)
    write: IoStats = Field(default_factory=IoStats)

    @property
    def io_bytes(self) -> int:
        return self.read.io_bytes + self.write.io_bytes

    @property
    def bw_bytes(self) -> float:
        return self.read.bw_bytes + self.write.bw_bytes

    @property
    def iops(self) -> float:
        return self.read.iops + self.write.iops

    @property
    def lat_mean(self) -> float:
        """Mean latency across both directions, weighted by IOPS."""
        if self.iops > 0:
            return (
                self.read.lat_mean * self.read.iops + self.write.lat_mean * self.write.iops
            ) / self.iops
        # No IOPS reported: fall back to whichever direction has a latency
        return max(self.read.lat_mean, self.write.lat_mean)

    @property
    def lat_percentiles(self) -> dict[float, float]:
        """Percentiles of the direction that carried more operations."""
        if self.write.iops > self.read.iops and self.write.lat_percentiles:
            return dict(self.write.lat_percentiles)
        return dict(self.read.lat_percentiles or self.write.lat_percentiles)


class LatencySummary(BaseModel):
    """Latency summary; ``percentiles`` is empty when fio did not report them."""
    mean: float = Field(default=0, ge=0, description="Mean latency in seconds")
    percentiles: dict[float, float] = Field(default_factory=dict)

    @property
    def has_percentiles(self) -> bool:
        return bool(self.percentiles)


class PatternResult(BaseModel):
    """Aggregated outcome for one (pattern, block size, queue depth, threads)."""
    pattern: Pattern
    block_size: int
    queue_depth: int = 1
    threads: int = 1

    bw_bytes: float = Field(default=0, ge=0, description="Mean throughput in bytes per second")
    iops: float = Field(default=0, ge=0, description="Mean IOPS")
    latency: LatencySummary = Field(default_factory=LatencySummary)
    runs: int = Field(default=0, ge=0, description="Jobs folded into this result")

    @property
    def key(self) -> tuple[Pattern, int, int, int]:
        return (self.pattern, self.block_size, self.queue_depth, self.threads)

    def to_json(self) -> dict:
        """Convert to a compact JSON-serializable dict."""
        return {
            "pattern": self.pattern.value,
            "block_size": self.block_size,
            "queue_depth": self.queue_depth,
            "threads": self.threads,
            "bw_bytes": self.bw_bytes,
            "iops": self.iops,
            "lat_mean": self.latency.mean,
            "lat_percentiles": {str(k): v for k, v in self.latency.percentiles.items()},
            "runs": self.runs,
        }
