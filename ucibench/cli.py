"""Command line entry point: run a benchmark, diff snapshots, show a snapshot."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from ucibench.config import BenchConfig, ConfigManager
from ucibench.diff import DiffEngine, DiffThresholds
from ucibench.metrics import SearchLimit
from ucibench.positions import DEFAULT_SUITE, load_suite
from ucibench.report import Fields, print_diff, print_snapshot
from ucibench.runner import BenchmarkRunner
from ucibench.snapshot import Snapshot
from ucibench.utils.error_utils import ConfigurationError, SnapshotFormatError, UciBenchError
from ucibench.utils.logging_utils import setup_logging
from ucibench.utils.system_info import log_system_info

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_DIFFERENCES = 1
EXIT_FATAL = 2
EXIT_INTERRUPTED = 130


def _add_field_flags(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("displayed metrics")
    group.add_argument("-a", "--all", action="store_true", help="Show every metric")
    group.add_argument("--nodes", action="store_true", help="Show node counts")
    group.add_argument("--time", action="store_true", help="Show search time")
    group.add_argument("--nps", action="store_true", help="Show nodes per second")
    group.add_argument("--show-depth", action="store_true", help="Show depth reached")
    group.add_argument("--branching", action="store_true", help="Show effective branching factor")
    group.add_argument("--score", action="store_true", help="Show engine score")
    group.add_argument("--best-move", action="store_true", help="Show best move")


def _add_diff_flags(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("regression thresholds (percent)")
    group.add_argument("--threshold", type=float, default=None,
                       help="Threshold for nodes and nps, e.g. 10 for 10%%")
    group.add_argument("--nodes-threshold", type=float, default=None)
    group.add_argument("--nps-threshold", type=float, default=None)
    group.add_argument("--time-threshold", type=float, default=None)
    group.add_argument("--depth-threshold", type=float, default=None)
    group.add_argument("--branching-threshold", type=float, default=None)
    group.add_argument("--score-tolerance", type=int, default=None,
                       help="Centipawn change tolerated before a score counts as different")
    group.add_argument("--strict", action="store_true",
                       help="Treat differing position sets as an error")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ucibench", description="Benchmark and snapshot-test a UCI chess engine")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging, including UCI traffic")
    parser.add_argument("--log-dir", type=str, default=None, help="Also write text and JSONL logs here")
    parser.add_argument("--config", type=str, default=None, help="YAML configuration file")
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Benchmark an engine and diff against a snapshot")
    run.add_argument("-e", "--engine", type=str, default=None, help="Engine binary (path or name on PATH)")
    limit = run.add_mutually_exclusive_group()
    limit.add_argument("-d", "--depth", type=int, default=None, help="Search depth per position")
    limit.add_argument("--movetime", type=int, default=None, help="Search time per position in ms")
    run.add_argument("-f", "--fens", type=str, default=None, help="Suite file: one FEN per line, optional '; id'")
    run.add_argument("-o", "--output", type=str, default=None, help="Where --save writes the snapshot")
    run.add_argument("-S", "--save", action="store_true", help="Write the run's snapshot to --output")
    baseline = run.add_mutually_exclusive_group()
    baseline.add_argument("-s", "--snapshot", type=str, default=None,
                          help="Snapshot to diff against (default: --output if it exists)")
    baseline.add_argument("--no-diff", action="store_true", help="Do not diff against any snapshot")
    run.add_argument("--timeout", type=float, default=None, help="Per-position timeout in seconds")
    run.add_argument("--option", action="append", default=None, metavar="NAME=VALUE",
                     help="UCI option, e.g. --option Threads=1 --option Hash=16")
    _add_field_flags(run)
    _add_diff_flags(run)

    diff = sub.add_parser("diff", help="Compare two stored snapshots")
    diff.add_argument("baseline", type=str)
    diff.add_argument("candidate", type=str)
    diff.add_argument("--json", action="store_true", help="Print the report as JSON")
    _add_field_flags(diff)
    _add_diff_flags(diff)

    show = sub.add_parser("show", help="Display a stored snapshot")
    show.add_argument("snapshot", type=str)
    _add_field_flags(show)
    return parser


def _fields(args) -> Fields:
    return Fields.select(show_all=args.all, nodes=args.nodes, time=args.time, nps=args.nps,
                         depth=args.show_depth, branching=args.branching, score=args.score,
                         best_move=args.best_move)


def _pct(value: Optional[float]) -> Optional[float]:
    return None if value is None else value / 100.0


def _diff_engine(args, config: BenchConfig) -> DiffEngine:
    values = dataclasses.asdict(config.thresholds)
    if args.threshold is not None:
        values["nodes"] = values["nps"] = _pct(args.threshold)
    overrides = {
        "nodes": args.nodes_threshold,
        "nps": args.nps_threshold,
        "elapsed_ms": args.time_threshold,
        "depth": args.depth_threshold,
        "branching_factor": args.branching_threshold,
    }
    for metric, value in overrides.items():
        if value is not None:
            values[metric] = _pct(value)
    tolerance = args.score_tolerance if args.score_tolerance is not None else config.score_tolerance
    try:
        return DiffEngine(thresholds=DiffThresholds(**values), score_tolerance=tolerance, strict=args.strict)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def _parse_options(raw: Optional[List[str]]) -> dict:
    options = {}
    for item in raw or []:
        if "=" not in item:
            raise ConfigurationError(f"--option expects NAME=VALUE, got {item!r}")
        name, value = item.split("=", 1)
        options[name.strip()] = value.strip()
    return options


def _load_config(args) -> BenchConfig:
    config = ConfigManager.load_config(args.config) if args.config else BenchConfig()
    if args.log_dir:
        config.log_dir = args.log_dir
    return config


def cmd_run(args, config: BenchConfig, console: Console) -> int:
    if args.engine:
        config.engine.path = args.engine
    if not config.engine.path:
        raise ConfigurationError("No engine given: use --engine or set engine.path in the config")
    config.engine.options.update(_parse_options(args.option))
    if args.timeout is not None:
        config.position_timeout = args.timeout
    if args.fens:
        config.suite = args.fens
    output = args.output or config.snapshot_path

    explicit_limit = None
    try:
        if args.depth is not None:
            explicit_limit = SearchLimit.fixed_depth(args.depth)
        elif args.movetime is not None:
            explicit_limit = SearchLimit.movetime(args.movetime)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    baseline = None
    if args.snapshot:
        baseline = Snapshot.load(args.snapshot)
    elif not args.no_diff and Path(output).is_file():
        logger.info(f"Diffing against existing snapshot {output}")
        baseline = Snapshot.load(output)

    if config.suite:
        positions = load_suite(config.suite)
    elif baseline is not None:
        positions = baseline.positions()
    else:
        positions = list(DEFAULT_SUITE)

    log_system_info()
    progress = Progress(TextColumn("[bold]Benchmarking"), BarColumn(), MofNCompleteColumn(),
                        TimeElapsedColumn(), console=console, transient=True)
    with progress:
        task = progress.add_task("bench", total=len(positions))
        runner = BenchmarkRunner(config, on_result=lambda _: progress.advance(task))
        with StopOnInterrupt(runner):
            snapshot = runner.run(config.engine.path, positions, explicit_limit)

    if runner.stop_requested:
        logger.warning(f"Run interrupted after {len(snapshot)}/{len(positions)} positions; snapshot not saved")
        print_snapshot(snapshot, _fields(args), console=console)
        return EXIT_INTERRUPTED

    if baseline is not None:
        report = _diff_engine(args, config).diff(baseline, snapshot)
        print_diff(report, _fields(args), console=console,
                   title=f"{baseline.engine_identifier} ({baseline.timestamp}) -> {snapshot.engine_identifier}")
    else:
        report = None
        print_snapshot(snapshot, _fields(args), console=console)

    if args.save:
        snapshot.save(output)

    if snapshot.failures():
        logger.error(f"{len(snapshot.failures())} positions failed or timed out")
        return EXIT_DIFFERENCES
    if report is not None and not report.passed:
        return EXIT_DIFFERENCES
    return EXIT_OK


def cmd_diff(args, config: BenchConfig, console: Console) -> int:
    baseline = Snapshot.load(args.baseline)
    candidate = Snapshot.load(args.candidate)
    report = _diff_engine(args, config).diff(baseline, candidate)
    if args.json:
        console.print_json(json.dumps(report.to_dict()))
    else:
        print_diff(report, _fields(args), console=console,
                   title=f"{Path(args.baseline).name} -> {Path(args.candidate).name}")
    return EXIT_OK if report.passed else EXIT_DIFFERENCES


def cmd_show(args, config: BenchConfig, console: Console) -> int:
    snapshot = Snapshot.load(args.snapshot)
    print_snapshot(snapshot, _fields(args), console=console)
    return EXIT_OK


class StopOnInterrupt:
    """First Ctrl-C asks the runner to stop after the current position; a second one aborts."""

    def __init__(self, runner: BenchmarkRunner):
        self.runner = runner
        self.previous = None

    def _handle(self, signum, frame):
        if self.runner.stop_requested:
            raise KeyboardInterrupt
        logger.warning("Interrupt received: finishing the current position (Ctrl-C again to abort)")
        self.runner.request_stop()

    def __enter__(self):
        try:
            self.previous = signal.signal(signal.SIGINT, self._handle)
        except ValueError:
            # Not the main thread; no handler.
            self.previous = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.previous is not None:
            signal.signal(signal.SIGINT, self.previous)
        return False


COMMANDS = {"run": cmd_run, "diff": cmd_diff, "show": cmd_show}


def main(argv: Optional[List[str]] = None, console: Optional[Console] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return EXIT_FATAL

    console = console or Console()
    setup_logging(log_dir=args.log_dir, level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = _load_config(args)
        if config.log_dir and not args.log_dir:
            setup_logging(log_dir=config.log_dir, level=logging.DEBUG if args.verbose else logging.INFO)
        return COMMANDS[args.command](args, config, console)
    except SnapshotFormatError as e:
        logger.error(f"Snapshot could not be loaded: {e.message}")
        return EXIT_FATAL
    except UciBenchError as e:
        logger.error(str(e))
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.error("Aborted")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
