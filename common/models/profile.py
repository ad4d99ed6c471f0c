"""Benchmark profile and test job models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

TEST_FILE_NAME = ".diskbench.tmp"


class Pattern(str, Enum):
    """I/O access pattern under test."""
    SEQ_READ = "seq_read"
    SEQ_WRITE = "seq_write"
    SEQ_MIX = "seq_mix"
    RAND_READ = "rand_read"
    RAND_WRITE = "rand_write"
    RAND_MIX = "rand_mix"

    @property
    def rw(self) -> str:
        """fio ``--rw`` mode for this pattern."""
        return PATTERN_SPECS[self].rw

    @property
    def label(self) -> str:
        """Human readable pattern name."""
        return PATTERN_SPECS[self].label

    @property
    def short(self) -> str:
        """Short prefix used in result tables (SEQ/RND)."""
        return PATTERN_SPECS[self].short

    @property
    def is_mix(self) -> bool:
        return PATTERN_SPECS[self].mix


class PatternSpec(NamedTuple):
    rw: str
    label: str
    short: str
    mix: bool


PATTERN_SPECS: dict[Pattern, PatternSpec] = {
    Pattern.SEQ_READ: PatternSpec("read", "Sequential Read", "SEQ", False),
    Pattern.SEQ_WRITE: PatternSpec("write", "Sequential Write", "SEQ", False),
    Pattern.SEQ_MIX: PatternSpec("rw", "Sequential Mix", "SEQ", True),
    Pattern.RAND_READ: PatternSpec("randread", "Random Read", "RND", False),
    Pattern.RAND_WRITE: PatternSpec("randwrite", "Random Write", "RND", False),
    Pattern.RAND_MIX: PatternSpec("randrw", "Random Mix", "RND", True),
}


class FillPolicy(str, Enum):
    """Content written into the test file."""
    RANDOM = "random"
    ZEROS = "zeros"


class BenchmarkProfile(BaseModel):
    """User-selected benchmark configuration."""
    name: str = Field(default="custom", description="Profile name")

    # What to measure
    patterns: list[Pattern] = Field(..., description="Patterns in execution order")
    block_sizes: list[int] = Field(..., description="Block sizes in bytes, in execution order")

    # Concurrency
    queue_depth: int = Field(default=1, ge=1, le=512, description="I/O queue depth")
    threads: int = Field(default=1, ge=1, le=64, description="Number of fio jobs")

    # Timing
    duration: int = Field(default=5, gt=0, description="Measuring time per job in seconds")
    interval: float = Field(default=0, ge=0, description="Pause between jobs in seconds")
    repeat_count: int = Field(default=1, ge=1, le=100, description="Runs per pattern and block size")

    # Test file
    target_path: Path = Field(..., description="Directory holding the test file")
    file_size: int = Field(default=1024 ** 3, ge=1024 ** 2, description="Test file size in bytes")
    fill_policy: FillPolicy = Field(default=FillPolicy.RANDOM)

    # Supplementary options
    mix_read_percent: int = Field(default=70, ge=0, le=100, description="Read share of mix patterns")
    flush_cache: bool = Field(default=False, description="Drop the page cache before each job")

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v):
        """Require at least one pattern, each at most once."""
        if not v:
            raise ValueError("At least one pattern is required")
        if len(set(v)) != len(v):
            raise ValueError("Patterns must not repeat")
        return v

    @field_validator("block_sizes")
    @classmethod
    def validate_block_sizes(cls, v):
        """Require positive, distinct block sizes."""
        if not v:
            raise ValueError("At least one block size is required")
        if any(bs <= 0 for bs in v):
            raise ValueError("Block sizes must be positive")
        if len(set(v)) != len(v):
            raise ValueError("Block sizes must be distinct")
        return v

    @property
    def test_file(self) -> Path:
        """Path of the file fio reads and writes."""
        return self.target_path / TEST_FILE_NAME

    @property
    def zero_buffers(self) -> bool:
        return self.fill_policy == FillPolicy.ZEROS

    @property
    def job_count(self) -> int:
        return len(self.patterns) * len(self.block_sizes) * self.repeat_count


class TestJob(BaseModel):
    """One fio invocation for a single (pattern, block size, repeat)."""
    model_config = ConfigDict(frozen=True)
    __test__ = False

    pattern: Pattern
    block_size: int
    queue_depth: int
    threads: int
    duration: int
    index: int = Field(..., ge=0, description="Position in the run")
    total: int = Field(..., ge=1, description="Number of jobs in the run")
    repeat: int = Field(default=0, ge=0)
    repeat_count: int = Field(default=1, ge=1)

    @property
    def key(self) -> tuple[Pattern, int, int, int]:
        """Result matrix key shared by all repeats of this job."""
        return (self.pattern, self.block_size, self.queue_depth, self.threads)

    @property
    def label(self) -> str:
        """Progress label, e.g. ``Random Read 2/5``."""
        return f"{self.pattern.label} {self.repeat + 1}/{self.repeat_count}"
