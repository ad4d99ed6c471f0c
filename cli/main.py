"""diskbench CLI - run fio disk benchmarks from the command line."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from common.errors import ProfileError, ToolNotFound
from common.messaging.events import Event, EventType
from common.models.metrics import PatternResult
from common.models.profile import BenchmarkProfile, FillPolicy
from common.models.run import RunState, RunStatus
from common.utils import (
    format_block_size,
    format_duration,
    format_iops,
    format_latency,
    format_size,
    format_throughput,
    load_yaml,
    parse_size,
)
from diskbench.config import get_settings, init_settings
from diskbench.core.controller import BenchmarkController
from diskbench.core.runner import ProcessRunner
from diskbench.presets import describe_presets, get_preset

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging from settings."""
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format=settings.log_format,
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def build_profile(args) -> BenchmarkProfile:
    """Build the profile from a YAML file or a preset plus command line overrides."""
    overrides = {
        "duration": args.duration,
        "interval": args.interval,
        "repeat_count": args.repeat,
        "queue_depth": args.queue_depth,
        "threads": args.threads,
        "block_sizes": [parse_size(bs) for bs in args.block_size] if args.block_size else None,
        "file_size": parse_size(args.file_size) if args.file_size else None,
        "fill_policy": FillPolicy(args.fill) if args.fill else None,
        "mix_read_percent": args.mix_read,
        "flush_cache": True if args.flush_cache else None,
    }

    if args.profile:
        data = load_yaml(args.profile)
        if args.target:
            data["target_path"] = args.target
        data.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return BenchmarkProfile(**data)
        except ValueError as e:
            raise ProfileError(f"Invalid profile {args.profile}: {e}") from e

    if not args.target:
        raise ProfileError("Target directory is not specified (use --target)")
    return get_preset(args.preset, args.target, mix=args.mix, **overrides)


def result_label(result: PatternResult) -> str:
    """Row label such as 'SEQ1M Q8T1 Sequential Read'."""
    return (
        f"{result.pattern.short}{format_block_size(result.block_size)} "
        f"Q{result.queue_depth}T{result.threads} {result.pattern.label}"
    )


def print_event(event: Event) -> None:
    """Print run progress."""
    payload = event.payload
    if event.type == EventType.RUN_STARTED:
        print(f"{payload.get('fio_version', 'fio')}: running {payload.get('total_jobs')} jobs "
              f"(profile {payload.get('profile')})")
    elif event.type == EventType.JOB_PROGRESS:
        remaining = format_duration(int(payload.get("remaining", 0)))
        print(f"  [{payload['job_index'] + 1}/{payload['total_jobs']}] {payload['label']:<24} "
              f"{payload.get('elapsed', 0):5.1f}s  (remaining ~{remaining})")
    elif event.type == EventType.JOB_INTERVAL:
        print(f"  Interval Time {int(payload['waited'])}/{payload['interval']:g} sec")
    elif event.type == EventType.JOB_FAILED:
        print(f"  ✗ {payload['label']}: {payload['error']}")
    elif event.type == EventType.RUN_STOPPED:
        if payload.get("cancelled"):
            print(f"Stopped after {payload['completed_jobs']}/{payload['total_jobs']} jobs")
    elif event.type == EventType.RUN_FAILED:
        print(f"Benchmark Failed: {payload.get('reason')}", file=sys.stderr)


def print_results(results: list[PatternResult]) -> None:
    """Print the final result table."""
    if not results:
        print("No results")
        return

    print(f"\n{'Test':<36} {'MB/s':>14} {'GB/s':>12} {'IOPS':>18} {'Latency':>14}")
    print("-" * 98)
    for r in results:
        print(
            f"{result_label(r):<36} "
            f"{format_throughput(r.bw_bytes, 'MB/s'):>14} "
            f"{format_throughput(r.bw_bytes, 'GB/s', precision=3):>12} "
            f"{format_iops(r.iops):>18} "
            f"{format_latency(r.latency.mean):>14}"
        )
        if r.latency.has_percentiles:
            p99 = r.latency.percentiles.get(99.0)
            if p99 is not None:
                print(f"{'':<36} p99 {format_latency(p99)}")


async def _run(profile: BenchmarkProfile, quiet: bool) -> tuple[RunState, list[PatternResult]]:
    controller = BenchmarkController()
    if not quiet:
        controller.subscribe(print_event)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, controller.cancel)
        except NotImplementedError:
            pass

    state = await controller.start(profile)
    return state, controller.results()


def cmd_run(args) -> int:
    """Run a benchmark."""
    try:
        profile = build_profile(args)
    except (ProfileError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not args.json:
        print(f"Profile: {profile.name}  target: {profile.test_file}  "
              f"file size: {format_size(profile.file_size)}")

    state, results = asyncio.run(_run(profile, quiet=args.json))

    if args.json:
        print(json.dumps({
            "state": state.model_dump(mode="json"),
            "results": [r.to_json() for r in results],
        }, indent=2))
    else:
        print_results(results)

    return 0 if state.status == RunStatus.STOPPED else 1


def cmd_presets(args) -> int:
    """List built-in presets."""
    for name, description in describe_presets().items():
        print(f"  - {name}: {description}")
    return 0


def cmd_check(args) -> int:
    """Check that fio is usable."""
    try:
        version = asyncio.run(ProcessRunner().check_tool())
    except ToolNotFound as e:
        print(f"No FIO was found. Please install FIO. ({e})", file=sys.stderr)
        return 1
    print(f"Flexible I/O Tester: {version}")
    return 0


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Storage benchmark driven by fio",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--fio", help="Path to the fio binary (default: fio from PATH)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run
    run_parser = subparsers.add_parser("run", help="Run a benchmark")
    source = run_parser.add_mutually_exclusive_group()
    source.add_argument("-p", "--preset", default="default", help="Built-in preset (default: default)")
    source.add_argument("-f", "--profile", type=Path, help="Profile YAML file")
    run_parser.add_argument("-t", "--target", type=Path, help="Directory for the test file")
    run_parser.add_argument("--mix", action="store_true", help="Add mixed read/write patterns")
    run_parser.add_argument("-d", "--duration", type=int, help="Measuring time per job (seconds)")
    run_parser.add_argument("-i", "--interval", type=float, help="Interval time between jobs (seconds)")
    run_parser.add_argument("-n", "--repeat", type=int, help="Runs per pattern and block size")
    run_parser.add_argument("-q", "--queue-depth", type=int, help="Queue depth")
    run_parser.add_argument("-T", "--threads", type=int, help="Threads")
    run_parser.add_argument("-b", "--block-size", action="append", help="Block size, repeatable (e.g. 4k, 1M)")
    run_parser.add_argument("-s", "--file-size", help="Test file size (e.g. 1G)")
    run_parser.add_argument("--fill", choices=[p.value for p in FillPolicy], help="Test data")
    run_parser.add_argument("--mix-read", type=int, help="Read percentage of mix patterns")
    run_parser.add_argument("--flush-cache", action="store_true", help="Flush page cache before each job")
    run_parser.add_argument("--json", action="store_true", help="Print results as JSON")
    run_parser.set_defaults(func=cmd_run)

    # presets
    presets_parser = subparsers.add_parser("presets", help="List built-in presets")
    presets_parser.set_defaults(func=cmd_presets)

    # check
    check_parser = subparsers.add_parser("check", help="Check fio availability")
    check_parser.set_defaults(func=cmd_check)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.fio:
        init_settings(fio_path=args.fio)
    setup_logging(args.verbose)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
