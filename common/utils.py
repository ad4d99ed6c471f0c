"""Common utility functions."""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

import yaml


def generate_id(prefix: str = "") -> str:
    """Generate a unique identifier."""
    timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    short_uuid = uuid.uuid4().hex[:8]
    if prefix:
        return f"{prefix}_{timestamp}_{short_uuid}"
    return f"{timestamp}_{short_uuid}"


def generate_run_id() -> str:
    """Generate a benchmark run ID."""
    return generate_id("run")


def parse_size(size_str: str) -> int:
    """Parse a size string (e.g., '1G', '512M', '4k', '4KiB') to bytes."""
    size_str = size_str.strip().upper()

    units = {
        'B': 1,
        'K': 1024,
        'KB': 1024,
        'KIB': 1024,
        'M': 1024 ** 2,
        'MB': 1024 ** 2,
        'MIB': 1024 ** 2,
        'G': 1024 ** 3,
        'GB': 1024 ** 3,
        'GIB': 1024 ** 3,
        'T': 1024 ** 4,
        'TB': 1024 ** 4,
        'TIB': 1024 ** 4,
    }

    match = re.match(r'^(\d+(?:\.\d+)?)\s*([A-Z]*)$', size_str)
    if not match:
        raise ValueError(f"Invalid size format: {size_str}")

    value = float(match.group(1))
    unit = match.group(2) or 'B'

    if unit not in units:
        raise ValueError(f"Unknown unit: {unit}")

    return int(value * units[unit])


def format_size(bytes_val: int, precision: int = 2) -> str:
    """Format bytes to human-readable string (binary units)."""
    if bytes_val < 0:
        return "0 B"

    units = ['B', 'KiB', 'MiB', 'GiB', 'TiB', 'PiB']
    unit_index = 0
    size = float(bytes_val)

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    return f"{size:.{precision}f} {units[unit_index]}"


def format_block_size(bytes_val: int) -> str:
    """Format a block size the way result tables label it ('4K', '1M')."""
    for suffix, factor in (("M", 1024 ** 2), ("K", 1024)):
        if bytes_val >= factor and bytes_val % factor == 0:
            return f"{bytes_val // factor}{suffix}"
    return str(bytes_val)


def format_throughput(bps: float, unit: str = "MB/s", precision: int = 2) -> str:
    """Format bytes per second as decimal MB/s or GB/s."""
    divisors = {
        "MB/s": 1000 ** 2,
        "GB/s": 1000 ** 3,
    }
    if unit not in divisors:
        raise ValueError(f"Unknown unit: {unit}")
    return f"{bps / divisors[unit]:.{precision}f} {unit}"


def format_iops(iops: float, precision: int = 2) -> str:
    """Format IOPS with thousands separators."""
    return f"{iops:,.{precision}f} IOPS"


def format_latency(seconds: float, precision: int = 2) -> str:
    """Format a latency in seconds, scaled to μs, ms or s."""
    if seconds < 1e-3:
        return f"{seconds * 1e6:.{precision}f} μs"
    if seconds < 1:
        return f"{seconds * 1e3:.{precision}f} ms"
    return f"{seconds:.{precision}f} s"


def format_duration(seconds: int) -> str:
    """Format seconds to human-readable duration."""
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes}m {secs}s"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        secs = seconds % 60
        return f"{hours}h {minutes}m {secs}s"


def load_yaml(path: str | Path) -> dict:
    """Load a YAML file."""
    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


class Timer:
    """Simple context manager for timing code blocks."""

    def __init__(self):
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None

    def __enter__(self):
        self.start_time = datetime.utcnow()
        return self

    def __exit__(self, *args):
        self.end_time = datetime.utcnow()

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None:
            return 0
        end = self.end_time or datetime.utcnow()
        return (end - self.start_time).total_seconds()

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_seconds * 1000
