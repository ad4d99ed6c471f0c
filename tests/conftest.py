"""Pytest configuration and shared fixtures."""

import json
import shutil
import stat
import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

import diskbench.config as config_module
from common.models.profile import BenchmarkProfile, Pattern
from diskbench.config import Settings

MIB = 1024 ** 2

# Stand-in for fio: answers --version and --create_only, otherwise prints
# pretty-printed JSON status documents followed by a final report.
FAKE_FIO = r'''
import json
import os
import signal
import sys
import time


def arg(name, default=None):
    prefix = f"--{name}="
    for a in sys.argv[1:]:
        if a.startswith(prefix):
            return a[len(prefix):]
    return default


def modes(var):
    return [m for m in os.environ.get(var, "").split(",") if m]


log = os.environ.get("FAKE_FIO_LOG")
if log:
    with open(log, "a") as f:
        f.write(json.dumps({"pid": os.getpid(), "argv": sys.argv[1:]}) + "\n")

if "--version" in sys.argv:
    print("fio-3.36")
    sys.exit(0)

if arg("create_only") == "1":
    if os.environ.get("FAKE_FIO_PREPARE_FAIL"):
        print("fio: failed to create file", file=sys.stderr)
        sys.exit(1)
    with open(arg("filename"), "wb") as f:
        f.write(b"\0" * 4096)
    sys.exit(0)

rw = arg("rw", "read")
bs = int(arg("bs", "4096"))
iops = float(os.environ.get("FAKE_FIO_IOPS", "1000"))
records = int(os.environ.get("FAKE_FIO_RECORDS", "2"))

if os.environ.get("FAKE_FIO_IGNORE_TERM"):
    signal.signal(signal.SIGTERM, signal.SIG_IGN)

if rw in modes("FAKE_FIO_FAIL"):
    print("fio: io_u error on file: Input/output error", file=sys.stderr)
    sys.exit(1)

if rw in modes("FAKE_FIO_GARBAGE"):
    print("this is not json {")
    sys.exit(0)


def direction(active, elapsed):
    if not active:
        return {"io_bytes": 0, "bw_bytes": 0, "bw": 0, "iops": 0.0,
                "lat_ns": {"mean": 0.0}, "clat_ns": {"mean": 0.0}}
    return {
        "io_bytes": int(iops * bs * elapsed),
        "bw_bytes": int(iops * bs),
        "bw": int(iops * bs / 1024),
        "iops": iops,
        "lat_ns": {"mean": 250000.0},
        "clat_ns": {"mean": 240000.0,
                    "percentile": {"50.000000": 200000, "99.000000": 900000}},
    }


def emit(elapsed):
    reads = "read" in rw or rw in ("rw", "randrw")
    writes = "write" in rw or rw in ("rw", "randrw")
    doc = {
        "fio version": "fio-3.36",
        "jobs": [{
            "jobname": rw,
            "elapsed": elapsed,
            "job_runtime": int(elapsed * 1000),
            "read": direction(reads, elapsed),
            "write": direction(writes, elapsed),
        }],
    }
    sys.stdout.write(json.dumps(doc, indent=2) + "\n")
    sys.stdout.flush()


print("fio: this platform does not support process shared mutexes, forcing use of threads")
sys.stdout.flush()

for i in range(1, records + 1):
    emit(i)
    if rw in modes("FAKE_FIO_CLOSE_STDOUT"):
        # stdout reaches EOF while the process lingers
        os.close(1)
        time.sleep(float(os.environ.get("FAKE_FIO_EXIT_DELAY", "60")))
        os._exit(0)
    if rw in modes("FAKE_FIO_HANG"):
        time.sleep(60)
    time.sleep(0.05)

emit(records + 1)
'''


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def fake_fio(temp_dir: Path) -> Path:
    """Write an executable fake fio into the temp directory."""
    path = temp_dir / "bin" / "fio"
    path.parent.mkdir()
    path.write_text(f"#!{sys.executable}\n{FAKE_FIO}")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fio_log(temp_dir: Path, monkeypatch) -> Path:
    """Path where the fake fio records its invocations."""
    path = temp_dir / "fio_calls.jsonl"
    monkeypatch.setenv("FAKE_FIO_LOG", str(path))
    return path


def read_fio_log(path: Path) -> list[dict]:
    """Invocations recorded by the fake fio."""
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line]


@pytest.fixture
def fio_calls(fio_log: Path):
    """Callable returning the fake fio invocations so far."""
    return lambda: read_fio_log(fio_log)


@pytest.fixture
def settings(fake_fio: Path, temp_dir: Path) -> Settings:
    """Settings pointing at the fake fio."""
    return Settings(
        fio_path=str(fake_fio),
        terminate_grace_period=1.0,
        drop_caches_path=temp_dir / "drop_caches",
    )


@pytest.fixture
def target_dir(temp_dir: Path) -> Path:
    """Directory receiving the test file."""
    path = temp_dir / "target"
    path.mkdir()
    return path


@pytest.fixture
def sample_profile(target_dir: Path) -> BenchmarkProfile:
    """Two sequential patterns at 1 MiB, one run each."""
    return BenchmarkProfile(
        name="test",
        patterns=[Pattern.SEQ_READ, Pattern.SEQ_WRITE],
        block_sizes=[1 * MIB],
        queue_depth=1,
        threads=1,
        duration=5,
        interval=0,
        repeat_count=1,
        target_path=target_dir,
        file_size=1 * MIB,
    )


@pytest.fixture
def sample_fio_document() -> dict:
    """A fio 3.x JSON report for a random read job."""
    return {
        "fio version": "fio-3.36",
        "timestamp": 1700000000,
        "global options": {"rw": "randread", "bs": "4096"},
        "jobs": [
            {
                "jobname": "randread",
                "groupid": 0,
                "error": 0,
                "elapsed": 6,
                "job_runtime": 5000,
                "read": {
                    "io_bytes": 204800000,
                    "bw_bytes": 40960000,
                    "bw": 40000,
                    "iops": 10000.0,
                    "runtime": 5000,
                    "lat_ns": {"min": 10000, "max": 900000, "mean": 95000.0},
                    "clat_ns": {
                        "min": 9000,
                        "max": 880000,
                        "mean": 90000.0,
                        "percentile": {
                            "50.000000": 85000,
                            "99.000000": 300000,
                            "99.900000": 600000,
                        },
                    },
                },
                "write": {
                    "io_bytes": 0,
                    "bw_bytes": 0,
                    "bw": 0,
                    "iops": 0.0,
                    "runtime": 0,
                    "lat_ns": {"min": 0, "max": 0, "mean": 0.0},
                    "clat_ns": {"min": 0, "max": 0, "mean": 0.0},
                },
            }
        ],
    }


@pytest.fixture(autouse=True)
def reset_global_settings() -> Generator[None, None, None]:
    """Keep init_settings() calls from leaking between tests."""
    yield
    config_module._settings = None
