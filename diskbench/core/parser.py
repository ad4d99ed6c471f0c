"""Incremental decoding of fio JSON output.

fio started with ``--output-format=json --status-interval=N`` writes one
complete JSON document per interval followed by the final report, all on
stdout. Warnings (``fio: ...``) may be interleaved between documents.
Documents can arrive split across any number of reads.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from common.errors import ParseAnomaly
from common.models.metrics import IoStats, RawSample

logger = logging.getLogger(__name__)

_OPEN = ord("{")
_CLOSE = ord("}")
_QUOTE = ord('"')
_BACKSLASH = ord("\\")
_NEWLINE = ord("\n")
_WHITESPACE = frozenset(b" \t\r\n")


def decode(buffer: bytes, data: bytes) -> tuple[list[bytes], bytes]:
    """Split buffered bytes plus new data into complete JSON records.

    Returns the complete top-level objects found and the bytes to carry into
    the next call. A record may only start at the beginning of a line or
    right after the previous record; anything else outside a record is noise
    and is dropped once its line ends.
    """
    combined = buffer + data
    records: list[bytes] = []

    start: Optional[int] = None
    depth = 0
    in_string = False
    escaped = False
    at_boundary = True
    line_start = 0

    for idx, byte in enumerate(combined):
        if start is None:
            if byte == _NEWLINE:
                at_boundary = True
                line_start = idx + 1
            elif byte == _OPEN and at_boundary:
                start = idx
                depth = 1
                in_string = False
                escaped = False
            elif byte not in _WHITESPACE:
                at_boundary = False
            continue

        if in_string:
            if escaped:
                escaped = False
            elif byte == _BACKSLASH:
                escaped = True
            elif byte == _QUOTE:
                in_string = False
        elif byte == _QUOTE:
            in_string = True
        elif byte == _OPEN:
            depth += 1
        elif byte == _CLOSE:
            depth -= 1
            if depth == 0:
                records.append(combined[start:idx + 1])
                start = None
                at_boundary = True
                line_start = idx + 1

    if start is not None:
        return records, combined[start:]

    tail = combined[line_start:]
    if not tail.strip():
        return records, b""
    # Unfinished noise line: keep it so a later '{' on it is not mistaken for a record
    return records, tail


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value) if value > 0 else 0.0


def _percentiles(stats: dict) -> dict[float, float]:
    """Extract latency percentiles in seconds from one direction."""
    for key, scale in (("lat_ns", 1e-9), ("clat_ns", 1e-9), ("clat", 1e-6)):
        section = stats.get(key)
        if not isinstance(section, dict):
            continue
        raw = section.get("percentile")
        if not isinstance(raw, dict) or not raw:
            continue
        result: dict[float, float] = {}
        for pct, value in raw.items():
            try:
                result[float(pct)] = _number(value) * scale
            except ValueError:
                continue
        if result:
            return result
    return {}


def _lat_mean(stats: dict) -> float:
    """Mean total latency in seconds, falling back to completion latency."""
    for key, scale in (("lat_ns", 1e-9), ("clat_ns", 1e-9), ("lat", 1e-6), ("clat", 1e-6)):
        section = stats.get(key)
        if isinstance(section, dict) and "mean" in section:
            return _number(section["mean"]) * scale
    return 0.0


def parse_direction(stats: Any) -> Optional[IoStats]:
    """Convert a fio ``read``/``write`` section into IoStats."""
    if not isinstance(stats, dict):
        return None

    if "io_bytes" in stats:
        io_bytes = int(_number(stats["io_bytes"]))
    else:
        io_bytes = int(_number(stats.get("io_kbytes")) * 1024)

    if "bw_bytes" in stats:
        bw_bytes = _number(stats["bw_bytes"])
    else:
        bw_bytes = _number(stats.get("bw")) * 1024

    return IoStats(
        io_bytes=io_bytes,
        bw_bytes=bw_bytes,
        iops=_number(stats.get("iops")),
        lat_mean=_lat_mean(stats),
        lat_percentiles=_percentiles(stats),
    )


def _combine(parts: list[IoStats]) -> IoStats:
    """Sum several jobs' stats for one direction."""
    if len(parts) == 1:
        return parts[0]
    iops = sum(p.iops for p in parts)
    lat_mean = sum(p.lat_mean * p.iops for p in parts) / iops if iops > 0 else 0.0
    busiest = max(parts, key=lambda p: p.iops)
    return IoStats(
        io_bytes=sum(p.io_bytes for p in parts),
        bw_bytes=sum(p.bw_bytes for p in parts),
        iops=iops,
        lat_mean=lat_mean,
        lat_percentiles=busiest.lat_percentiles,
    )


def parse_record(document: Any) -> Optional[RawSample]:
    """Convert one decoded fio JSON document into a sample.

    Returns None if the document does not look like a fio report.
    """
    if not isinstance(document, dict):
        return None
    jobs = document.get("jobs")
    if not isinstance(jobs, list) or not jobs:
        return None

    reads: list[IoStats] = []
    writes: list[IoStats] = []
    elapsed = 0.0

    for job in jobs:
        if not isinstance(job, dict):
            continue
        read = parse_direction(job.get("read"))
        write = parse_direction(job.get("write"))
        if read is None and write is None:
            continue
        if read is not None:
            reads.append(read)
        if write is not None:
            writes.append(write)

        if "elapsed" in job:
            elapsed = max(elapsed, _number(job["elapsed"]))
        else:
            elapsed = max(elapsed, _number(job.get("job_runtime")) / 1000)

    if not reads and not writes:
        return None

    return RawSample(
        elapsed=elapsed,
        read=_combine(reads) if reads else IoStats(),
        write=_combine(writes) if writes else IoStats(),
    )


class ResultParser:
    """Stateful wrapper around ``decode`` for one job's output stream."""

    def __init__(self, strict: bool = False):
        self.strict = strict
        self.anomalies = 0
        self._buffer = b""
        self._last: Optional[RawSample] = None

    @property
    def last_sample(self) -> Optional[RawSample]:
        return self._last

    def feed(self, chunk: bytes) -> list[RawSample]:
        """Consume a chunk of stdout and return the samples it completed."""
        records, self._buffer = decode(self._buffer, chunk)
        samples = []
        for record in records:
            sample = self._parse(record)
            if sample is not None:
                samples.append(sample)
                self._last = sample
        return samples

    def finish(self) -> Optional[RawSample]:
        """End of stream: return fio's final report, if any, and reset."""
        if self._buffer.strip():
            self._anomaly(f"Dropping {len(self._buffer)} trailing bytes of incomplete output", logging.WARNING)
        final = self._last
        self.reset()
        return final

    def reset(self) -> None:
        self._buffer = b""
        self._last = None

    def _parse(self, record: bytes) -> Optional[RawSample]:
        try:
            document = json.loads(record)
        except ValueError as e:
            self._anomaly(f"Skipping malformed fio record: {e}")
            return None

        sample = parse_record(document)
        if sample is None:
            self._anomaly("Skipping unrecognized fio record")
        return sample

    def _anomaly(self, message: str, level: int = logging.DEBUG) -> None:
        self.anomalies += 1
        if self.strict:
            raise ParseAnomaly(message)
        logger.log(level, message)
