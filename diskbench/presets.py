"""Built-in benchmark presets.

Available presets:
    - default: sequential 1M and random 4K at queue depth 8
    - peak: deep queues and several threads, for maximum throughput
    - real_world: queue depth 1, single thread, like desktop workloads
    - demo: one short sequential pass

Each preset can add the mixed read/write patterns with ``mix=True``.

Example usage:
    from diskbench.presets import get_preset, list_presets

    profile = get_preset("default", target_path="/mnt/data", mix=True)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import ValidationError

from common.errors import ProfileError
from common.models.profile import BenchmarkProfile, Pattern
from common.utils import deep_merge

KIB = 1024
MIB = 1024 ** 2

READ_WRITE = [Pattern.SEQ_READ, Pattern.SEQ_WRITE, Pattern.RAND_READ, Pattern.RAND_WRITE]
MIX_PATTERNS = [Pattern.SEQ_MIX, Pattern.RAND_MIX]

_PRESET_REGISTRY: dict[str, dict[str, Any]] = {
    "default": {
        "description": "Sequential 1M and random 4K, Q8T1, 5 runs",
        "patterns": READ_WRITE,
        "block_sizes": [1 * MIB, 4 * KIB],
        "queue_depth": 8,
        "threads": 1,
        "duration": 5,
        "interval": 5,
        "repeat_count": 5,
    },
    "peak": {
        "description": "Peak performance: Q32T16, 5 runs",
        "patterns": READ_WRITE,
        "block_sizes": [1 * MIB, 4 * KIB],
        "queue_depth": 32,
        "threads": 16,
        "duration": 5,
        "interval": 5,
        "repeat_count": 5,
    },
    "real_world": {
        "description": "Real world performance: Q1T1, 5 runs",
        "patterns": READ_WRITE,
        "block_sizes": [1 * MIB, 4 * KIB],
        "queue_depth": 1,
        "threads": 1,
        "duration": 5,
        "interval": 5,
        "repeat_count": 5,
    },
    "demo": {
        "description": "Single short sequential pass",
        "patterns": [Pattern.SEQ_READ, Pattern.SEQ_WRITE],
        "block_sizes": [1 * MIB],
        "queue_depth": 1,
        "threads": 1,
        "duration": 5,
        "interval": 0,
        "repeat_count": 1,
        "file_size": 256 * MIB,
    },
}


def list_presets() -> list[str]:
    """Get list of all preset names."""
    return list(_PRESET_REGISTRY.keys())


def describe_presets() -> dict[str, str]:
    """Map preset names to their descriptions."""
    return {name: preset["description"] for name, preset in _PRESET_REGISTRY.items()}


def get_preset(
    name: str,
    target_path: str | Path,
    mix: bool = False,
    **overrides: Any,
) -> BenchmarkProfile:
    """Build a profile from a preset.

    Raises:
        ProfileError: If the preset is unknown or the overrides are invalid
    """
    if name not in _PRESET_REGISTRY:
        available = ", ".join(_PRESET_REGISTRY.keys())
        raise ProfileError(f"Unknown preset '{name}'. Available presets: {available}")

    data = {k: v for k, v in _PRESET_REGISTRY[name].items() if k != "description"}
    data["patterns"] = list(data["patterns"])
    if mix:
        data["patterns"] += [p for p in MIX_PATTERNS if p not in data["patterns"]]

    data = deep_merge(data, {k: v for k, v in overrides.items() if v is not None})
    data["name"] = f"{name}+mix" if mix else name
    data["target_path"] = Path(target_path)

    try:
        return BenchmarkProfile(**data)
    except ValidationError as e:
        raise ProfileError(f"Invalid overrides for preset '{name}': {e}") from e
