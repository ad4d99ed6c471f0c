"""fio process management for benchmark jobs."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from common.errors import LaunchFailed, ToolNotFound
from common.models.profile import BenchmarkProfile, TestJob, TEST_FILE_NAME
from diskbench.config import Settings, get_settings

logger = logging.getLogger(__name__)


class JobHandle:
    """A running fio process for one job."""

    def __init__(self, job: TestJob, process: asyncio.subprocess.Process, grace_period: float):
        self.job = job
        self.process = process
        self.grace_period = grace_period
        self._terminated = False
        # stderr is drained in the background
        self._stderr: Optional[asyncio.Task] = None
        if process.stderr is not None:
            self._stderr = asyncio.ensure_future(process.stderr.read())

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    @property
    def is_running(self) -> bool:
        return self.process.returncode is None

    async def read(self, size: int = 65536) -> bytes:
        """Read the next chunk of stdout; ``b""`` means end of stream."""
        return await self.process.stdout.read(size)

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        return await self.process.wait()

    async def stderr_text(self) -> str:
        """Collect stderr once the process has exited."""
        if self._stderr is None:
            return ""
        data = await self._stderr
        return data.decode(errors="replace").strip()

    async def terminate(self) -> None:
        """Stop the process: SIGTERM, then SIGKILL after the grace period.

        Safe to call repeatedly and after the process has exited.
        """
        if self._terminated or self.process.returncode is not None:
            self._terminated = True
            return
        self._terminated = True

        logger.info(f"Terminating fio (pid {self.process.pid}) for job {self.job.index + 1}/{self.job.total}")
        try:
            self.process.terminate()
            await asyncio.wait_for(self.process.wait(), timeout=self.grace_period)
        except ProcessLookupError:
            pass
        except asyncio.TimeoutError:
            logger.warning(f"fio (pid {self.process.pid}) ignored SIGTERM, killing")
            try:
                self.process.kill()
            except ProcessLookupError:
                pass
            await self.process.wait()


class ProcessRunner:
    """Launch fio for benchmark jobs."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._fio: Optional[str] = None
        self.version: Optional[str] = None

    @property
    def fio(self) -> str:
        return self._fio or self.settings.fio_path

    async def check_tool(self) -> str:
        """Verify that fio can be run and return its version string."""
        fio_path = shutil.which(self.settings.fio_path)
        if fio_path is None:
            raise ToolNotFound(f"fio not found: {self.settings.fio_path}")

        try:
            process = await asyncio.create_subprocess_exec(
                fio_path,
                "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.settings.version_check_timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ToolNotFound(f"{fio_path} --version did not answer")
        except OSError as e:
            raise ToolNotFound(f"Cannot execute {fio_path}: {e}") from e

        if process.returncode != 0:
            raise ToolNotFound(f"{fio_path} --version failed: {stderr.decode(errors='replace').strip()}")

        self._fio = fio_path
        self.version = stdout.decode(errors="replace").strip()
        logger.info(f"Using {self.version} at {fio_path}")
        return self.version

    def build_args(self, job: TestJob, profile: BenchmarkProfile) -> list[str]:
        """Build the fio argument vector for a job."""
        return [
            "--output-format=json",
            f"--status-interval={self.settings.status_interval}",
            f"--ioengine={self.settings.ioengine}",
            f"--direct={1 if self.settings.direct_io else 0}",
            "--randrepeat=0",
            "--refill_buffers",
            "--end_fsync=1",
            "--group_reporting",
            f"--rwmixread={profile.mix_read_percent}",
            f"--filename={profile.test_file}",
            f"--name={job.pattern.rw}",
            f"--size={profile.file_size}",
            f"--zero_buffers={1 if profile.zero_buffers else 0}",
            f"--bs={job.block_size}",
            f"--runtime={job.duration}",
            f"--rw={job.pattern.rw}",
            f"--iodepth={job.queue_depth}",
            f"--numjobs={job.threads}",
        ]

    async def start(self, job: TestJob, profile: BenchmarkProfile) -> JobHandle:
        """Launch fio for a job with stdout captured."""
        self._check_test_file(profile.test_file)
        cmd = [self.fio, *self.build_args(job, profile)]

        logger.info(f"Running job {job.index + 1}/{job.total} ({job.label}): {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise LaunchFailed(f"Failed to start fio for {job.label}: {e}") from e

        return JobHandle(job, process, self.settings.terminate_grace_period)

    async def prepare_file(self, profile: BenchmarkProfile) -> None:
        """Create (or overwrite) the test file before the first job."""
        test_file = profile.test_file
        self._check_test_file(test_file)

        cmd = [
            self.fio,
            "--output-format=json",
            "--create_only=1",
            f"--filename={test_file}",
            f"--size={profile.file_size}",
            f"--zero_buffers={1 if profile.zero_buffers else 0}",
            "--name=prepare",
        ]
        logger.info(f"Preparing test file: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await process.communicate()
        except OSError as e:
            raise LaunchFailed(f"Failed to prepare {test_file}: {e}") from e

        if process.returncode != 0:
            raise LaunchFailed(
                f"Failed to prepare {test_file}: {stderr.decode(errors='replace').strip()}"
            )

    def remove_file(self, profile: BenchmarkProfile) -> bool:
        """Delete the test file; returns True if a file was removed."""
        test_file = profile.test_file
        self._check_test_file(test_file)
        try:
            test_file.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to remove test file {test_file}: {e}")
            return False
        logger.debug(f"Removed test file: {test_file}")
        return True

    def flush_page_cache(self) -> bool:
        """Ask the kernel to drop clean page cache entries."""
        path = self.settings.drop_caches_path
        try:
            os.sync()
            with open(path, "w") as f:
                f.write("1")
        except OSError as e:
            logger.warning(f"Failed to flush page cache via {path}: {e}")
            return False
        return True

    def _check_test_file(self, test_file: Path) -> None:
        if test_file.name != TEST_FILE_NAME:
            raise LaunchFailed(f"Refusing to use {test_file}: name must be {TEST_FILE_NAME}")
