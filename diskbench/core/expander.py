"""Expansion of a benchmark profile into an ordered job list."""

from __future__ import annotations

from common.models.profile import BenchmarkProfile, TestJob


def expand(profile: BenchmarkProfile) -> list[TestJob]:
    """Turn a profile into its jobs.

    Patterns run in declared order; within a pattern, block sizes in declared
    order; within a block size, repeats back to back. The result always has
    ``len(patterns) * len(block_sizes) * repeat_count`` entries.
    """
    total = profile.job_count
    jobs: list[TestJob] = []

    for pattern in profile.patterns:
        for block_size in profile.block_sizes:
            for repeat in range(profile.repeat_count):
                jobs.append(TestJob(
                    pattern=pattern,
                    block_size=block_size,
                    queue_depth=profile.queue_depth,
                    threads=profile.threads,
                    duration=profile.duration,
                    index=len(jobs),
                    total=total,
                    repeat=repeat,
                    repeat_count=profile.repeat_count,
                ))

    return jobs


def estimate_seconds(jobs: list[TestJob], interval: float = 0) -> float:
    """Estimate wall time for the given jobs, including pauses between them."""
    if not jobs:
        return 0
    return sum(job.duration for job in jobs) + interval * (len(jobs) - 1)
