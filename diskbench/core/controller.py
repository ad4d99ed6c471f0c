"""Benchmark controller orchestrating one run at a time."""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from common.errors import JobFailed, LaunchFailed, ProfileError, ToolNotFound
from common.messaging.events import (
    Event,
    create_failed_event,
    create_interval_event,
    create_job_failed_event,
    create_progress_event,
    create_result_event,
    create_run_started_event,
    create_stopped_event,
)
from common.models.metrics import PatternResult, RawSample
from common.models.profile import BenchmarkProfile, TestJob
from common.models.run import RunState, RunStatus
from common.utils import Timer, generate_run_id
from diskbench.config import Settings, get_settings
from diskbench.core.aggregator import Aggregator
from diskbench.core.expander import estimate_seconds, expand
from diskbench.core.parser import ResultParser
from diskbench.core.runner import JobHandle, ProcessRunner

logger = logging.getLogger(__name__)

EventCallback = Callable[[Event], Union[None, Awaitable[None]]]


class BenchmarkController:
    """Run a benchmark profile job by job.

    State machine::

        idle -> preparing -> running(0..N-1) -> stopped
                preparing | running(i) -> stopping -> stopped    (cancel)
        any  -> failed                                           (fio missing)

    Only one fio process is alive at a time. ``cancel()`` may be called from
    any callback running on the event loop; the controller notices it while
    waiting for fio output or during the pause between jobs.
    """

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        aggregator: Optional[Aggregator] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.runner = runner or ProcessRunner(self.settings)
        self.aggregator = aggregator or Aggregator()

        self._state = RunState()
        self._subscribers: list[EventCallback] = []
        self._cancel_event: Optional[asyncio.Event] = None
        self._handle: Optional[JobHandle] = None

    @property
    def state(self) -> RunState:
        """Snapshot of the current run state."""
        return self._state.model_copy(deep=True)

    @property
    def is_running(self) -> bool:
        return self._state.is_active

    def results(self) -> list[PatternResult]:
        """Snapshot of the result matrix."""
        return self.aggregator.snapshot()

    def subscribe(self, callback: EventCallback) -> None:
        """Register a callback for run events (sync or async)."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def cancel(self) -> None:
        """Request the current run to stop. No-op when nothing is running."""
        if not self._state.is_active or self._cancel_event is None:
            logger.debug("Cancel requested while idle, ignoring")
            return
        if not self._cancel_event.is_set():
            logger.info(f"Stop requested for run: {self._state.run_id}")
            self._cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def start(self, profile: Union[BenchmarkProfile, dict]) -> RunState:
        """Run the whole battery for a profile and return the final state."""
        if self._state.is_active:
            raise RuntimeError(f"Run already in progress: {self._state.run_id}")

        run_id = generate_run_id()
        self._state = RunState(
            run_id=run_id,
            status=RunStatus.PREPARING,
            started_at=datetime.utcnow(),
        )
        self._cancel_event = asyncio.Event()
        self.aggregator.reset()

        logger.info(f"Starting run: {run_id}")

        try:
            profile = self._validate(profile)
            fio_version = await self.runner.check_tool()
        except (ProfileError, ToolNotFound) as e:
            await self._fail(str(e), type(e).__name__)
            return self.state

        jobs = expand(profile)
        self._state.total_jobs = len(jobs)
        await self._emit(create_run_started_event(run_id, profile.name, len(jobs), fio_version))

        if self.cancel_requested:
            self._state.status = RunStatus.STOPPING
            await self._finish_stopped()
            return self.state

        prepared = False
        try:
            await self.runner.prepare_file(profile)
            prepared = True
            await self._run_jobs(profile, jobs)
        except LaunchFailed as e:
            await self._fail(str(e), type(e).__name__)
        except asyncio.CancelledError:
            logger.info(f"Run task cancelled: {run_id}")
            self._state.status = RunStatus.STOPPED
            self._state.job_index = None
            self._state.finished_at = datetime.utcnow()
            raise
        except Exception as e:
            logger.error(f"Run failed: {run_id}: {e}", exc_info=True)
            await self._fail(str(e), type(e).__name__)
        finally:
            if prepared:
                self.runner.remove_file(profile)

        return self.state

    def _validate(self, profile: Union[BenchmarkProfile, dict]) -> BenchmarkProfile:
        if isinstance(profile, BenchmarkProfile):
            return profile
        try:
            return BenchmarkProfile.model_validate(profile)
        except ValidationError as e:
            raise ProfileError(f"Invalid profile: {e}") from e

    async def _run_jobs(self, profile: BenchmarkProfile, jobs: list[TestJob]) -> None:
        """Execute jobs in order until done, cancelled or aborted."""
        for i, job in enumerate(jobs):
            if i > 0 and profile.interval > 0:
                if await self._wait_interval(profile.interval, job):
                    break
            if self.cancel_requested:
                self._state.status = RunStatus.STOPPING
                break

            self._state.status = RunStatus.RUNNING
            self._state.job_index = i

            if profile.flush_cache:
                self.runner.flush_page_cache()

            remaining = estimate_seconds(jobs[i:], profile.interval)
            await self._emit(create_progress_event(self._state.run_id, job, 0, remaining))

            try:
                samples = await self._run_job(job, profile, jobs)
            except LaunchFailed as e:
                if i == 0 or self.settings.abort_on_launch_failure:
                    raise
                await self._job_failed(job, str(e))
                continue
            except JobFailed as e:
                await self._job_failed(job, str(e))
                continue

            if samples is None:
                # Cancelled mid-job: partial samples are discarded
                break

            result = self.aggregator.record(job, samples)
            self._state.completed_jobs += 1

            remaining = estimate_seconds(jobs[i + 1:], profile.interval)
            if i + 1 < len(jobs):
                remaining += profile.interval
            await self._emit(create_progress_event(self._state.run_id, job, job.duration, remaining))
            if result is not None:
                await self._emit(create_result_event(self._state.run_id, result))

        await self._finish_stopped()

    async def _run_job(
        self,
        job: TestJob,
        profile: BenchmarkProfile,
        jobs: list[TestJob],
    ) -> Optional[list[RawSample]]:
        """Run one job; returns its samples, or None if it was cancelled.

        The last sample is fio's final report. A cancel seen at any point
        before the samples are returned, including while fio is exiting,
        discards the job.
        """
        handle = await self.runner.start(job, profile)
        self._handle = handle

        parser = ResultParser()
        samples: list[RawSample] = []
        after = estimate_seconds(jobs[job.index + 1:], profile.interval)
        if job.index + 1 < len(jobs):
            after += profile.interval

        cancel_task = asyncio.ensure_future(self._cancel_event.wait())
        read_task: Optional[asyncio.Future] = None
        wait_task: Optional[asyncio.Future] = None

        try:
            with Timer() as timer:
                while True:
                    read_task = asyncio.ensure_future(handle.read(self.settings.read_chunk_size))
                    done, _ = await asyncio.wait(
                        {read_task, cancel_task},
                        return_when=asyncio.FIRST_COMPLETED,
                    )

                    if cancel_task in done:
                        await self._stop_job(job, handle, parser)
                        return None

                    chunk = read_task.result()
                    read_task = None
                    if not chunk:
                        break

                    for sample in parser.feed(chunk):
                        samples.append(sample)
                        remaining = max(job.duration - sample.elapsed, 0) + after
                        await self._emit(create_progress_event(
                            self._state.run_id, job, sample.elapsed, remaining,
                        ))

                # stdout is closed but fio may still be running
                wait_task = asyncio.ensure_future(handle.wait())
                done, _ = await asyncio.wait(
                    {wait_task, cancel_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if cancel_task in done:
                    await self._stop_job(job, handle, parser)
                    return None
                returncode = wait_task.result()

            final = parser.finish()
            logger.info(
                f"Job {job.index + 1}/{job.total} ({job.label}) exited with {returncode} "
                f"after {timer.elapsed_seconds:.1f}s, {len(samples)} samples"
            )
            stderr = await handle.stderr_text() if returncode != 0 else ""

            # No await between this check and the return
            if self.cancel_requested:
                await self._stop_job(job, handle, parser)
                return None

            if returncode != 0:
                if final is None:
                    raise JobFailed(
                        f"fio exited with code {returncode}: {stderr or 'no output'}",
                        returncode=returncode,
                        stderr=stderr,
                    )
                logger.warning(f"fio exited with code {returncode} but reported results: {stderr}")
            elif final is None:
                raise JobFailed("fio produced no parseable result", returncode=returncode)

            return samples
        finally:
            cancel_task.cancel()
            for task in (read_task, wait_task):
                if task is not None and not task.done():
                    task.cancel()
            if handle.is_running:
                await handle.terminate()
            self._handle = None

    async def _stop_job(self, job: TestJob, handle: JobHandle, parser: ResultParser) -> None:
        logger.info(f"Cancelling job {job.index + 1}/{job.total} ({job.label})")
        self._state.status = RunStatus.STOPPING
        await handle.terminate()
        parser.reset()

    async def _wait_interval(self, interval: float, next_job: TestJob) -> bool:
        """Pause between jobs; returns True if cancelled meanwhile."""
        waited = 0.0
        while waited < interval:
            await self._emit(create_interval_event(self._state.run_id, waited, interval, next_job))
            step = min(1.0, interval - waited)
            try:
                await asyncio.wait_for(self._cancel_event.wait(), timeout=step)
            except asyncio.TimeoutError:
                waited += step
                continue
            self._state.status = RunStatus.STOPPING
            return True
        return False

    async def _job_failed(self, job: TestJob, error: str) -> None:
        logger.warning(f"Job {job.index + 1}/{job.total} ({job.label}) failed: {error}")
        self._state.failed_jobs.append(job.index)
        await self._emit(create_job_failed_event(self._state.run_id, job, error))

    async def _finish_stopped(self) -> None:
        cancelled = self.cancel_requested
        self._state.status = RunStatus.STOPPED
        self._state.job_index = None
        self._state.finished_at = datetime.utcnow()
        logger.info(
            f"Run {'stopped' if cancelled else 'completed'}: {self._state.run_id} "
            f"({self._state.completed_jobs}/{self._state.total_jobs} jobs)"
        )
        await self._emit(create_stopped_event(
            self._state.run_id,
            self._state.completed_jobs,
            self._state.total_jobs,
            cancelled=cancelled,
        ))

    async def _fail(self, reason: str, error_type: str = "") -> None:
        logger.error(f"Run failed: {self._state.run_id}: {reason}")
        self._state.status = RunStatus.FAILED
        self._state.job_index = None
        self._state.error = reason
        self._state.finished_at = datetime.utcnow()
        await self._emit(create_failed_event(self._state.run_id, reason, error_type))

    async def _emit(self, event: Event) -> None:
        for callback in list(self._subscribers):
            try:
                result: Any = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Event subscriber failed on {event.type.value}: {e}", exc_info=True)
