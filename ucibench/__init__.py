"""
ucibench: benchmark a UCI chess engine over a fixed position suite, store the
results as a JSON snapshot and diff later runs against it.
"""

__version__ = "0.1.0"

from .diff import DiffEngine, DiffReport, DiffThresholds, diff_snapshots
from .metrics import BenchResult, ResultStatus, Score, SearchLimit
from .positions import DEFAULT_SUITE, Position, load_suite
from .runner import BenchmarkRunner
from .snapshot import SCHEMA_VERSION, Snapshot

__all__ = [
    "BenchResult",
    "BenchmarkRunner",
    "DEFAULT_SUITE",
    "DiffEngine",
    "DiffReport",
    "DiffThresholds",
    "Position",
    "ResultStatus",
    "SCHEMA_VERSION",
    "Score",
    "SearchLimit",
    "Snapshot",
    "diff_snapshots",
    "load_suite",
]
