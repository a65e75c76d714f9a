# Snapshot comparison
"""
Compare two snapshots position by position.

Performance metrics are classified against per-metric thresholds; a changed
best move or score is reported separately as a functional difference. Neither
side needs a live engine.
"""

import logging
import math
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ucibench.metrics import BenchResult, Score
from ucibench.snapshot import Snapshot, Totals
from ucibench.utils.error_utils import PositionSetMismatch

logger = logging.getLogger(__name__)


class Direction(Enum):
    LOWER_IS_BETTER = "lower"
    HIGHER_IS_BETTER = "higher"


METRICS: Dict[str, Direction] = {
    "nodes": Direction.LOWER_IS_BETTER,
    "nps": Direction.HIGHER_IS_BETTER,
    "elapsed_ms": Direction.LOWER_IS_BETTER,
    "depth": Direction.HIGHER_IS_BETTER,
    "branching_factor": Direction.LOWER_IS_BETTER,
}


class Classification(Enum):
    IMPROVED = "improved"
    REGRESSED = "regressed"
    UNCHANGED = "unchanged"


class DiffCategory(Enum):
    COMPARED = "compared"
    ERRORED = "errored"
    REMOVED = "removed"
    ADDED = "added"


@dataclass
class DiffThresholds:
    """Relative change (0.10 = 10%) beyond which a metric counts as changed.

    ``None`` makes a metric informational: deltas are reported but it is never
    classified as improved or regressed.
    """
    nodes: Optional[float] = 0.10
    nps: Optional[float] = 0.10
    elapsed_ms: Optional[float] = None
    depth: Optional[float] = None
    branching_factor: Optional[float] = None

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None and value < 0:
                raise ValueError(f"Threshold for {f.name} must be non-negative, got {value}")

    @classmethod
    def uniform(cls, value: float) -> "DiffThresholds":
        return cls(nodes=value, nps=value)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DiffThresholds":
        data = dict(data or {})
        unknown = set(data) - set(METRICS)
        if unknown:
            raise ValueError(f"Unknown metrics in thresholds: {', '.join(sorted(unknown))}")
        return cls(**{k: (None if v is None else float(v)) for k, v in data.items()})

    def for_metric(self, metric: str) -> Optional[float]:
        return getattr(self, metric)

    def to_dict(self) -> Dict[str, Optional[float]]:
        return asdict(self)


@dataclass(frozen=True)
class MetricDelta:
    metric: str
    baseline: float
    candidate: float
    delta: float
    pct: float
    pct_defined: bool
    classification: Classification

    def pct_display(self) -> str:
        if not self.pct_defined:
            return "n/a"
        return f"{100.0 * self.pct:+.2f}%"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseline": self.baseline,
            "candidate": self.candidate,
            "delta": self.delta,
            "pct": self.pct if self.pct_defined else None,
            "classification": self.classification.value,
        }


@dataclass(frozen=True)
class FunctionalDifference:
    kind: str
    baseline: str
    candidate: str

    def __str__(self):
        return f"{self.kind}: {self.baseline} -> {self.candidate}"


@dataclass(frozen=True)
class PositionDiff:
    position_id: str
    category: DiffCategory
    fen: str
    baseline: Optional[BenchResult] = None
    candidate: Optional[BenchResult] = None
    metrics: Dict[str, MetricDelta] = field(default_factory=dict)
    functional: Tuple[FunctionalDifference, ...] = ()

    @property
    def regressions(self) -> List[str]:
        return [m for m, d in self.metrics.items() if d.classification is Classification.REGRESSED]

    @property
    def improvements(self) -> List[str]:
        return [m for m, d in self.metrics.items() if d.classification is Classification.IMPROVED]

    @property
    def has_functional_difference(self) -> bool:
        return bool(self.functional)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.position_id, "category": self.category.value}
        if self.metrics:
            data["metrics"] = {m: d.to_dict() for m, d in self.metrics.items()}
        if self.functional:
            data["functional"] = [{"kind": f.kind, "baseline": f.baseline, "candidate": f.candidate}
                                  for f in self.functional]
        if self.category is DiffCategory.ERRORED:
            data["baseline_status"] = self.baseline.status.value
            data["candidate_status"] = self.candidate.status.value
        return data


@dataclass
class DiffReport:
    positions: List[PositionDiff]
    aggregate: Dict[str, MetricDelta]
    thresholds: DiffThresholds
    score_tolerance: int = 0

    def _ids(self, category: DiffCategory) -> List[str]:
        return [p.position_id for p in self.positions if p.category is category]

    @property
    def added(self) -> List[str]:
        return self._ids(DiffCategory.ADDED)

    @property
    def removed(self) -> List[str]:
        return self._ids(DiffCategory.REMOVED)

    @property
    def errored(self) -> List[str]:
        return self._ids(DiffCategory.ERRORED)

    @property
    def compared(self) -> List[str]:
        return self._ids(DiffCategory.COMPARED)

    @property
    def regressions(self) -> List[Tuple[str, str]]:
        """(position id, metric) pairs classified as regressed."""
        return [(p.position_id, m) for p in self.positions for m in p.regressions]

    @property
    def functional_differences(self) -> List[Tuple[str, FunctionalDifference]]:
        return [(p.position_id, f) for p in self.positions for f in p.functional]

    @property
    def passed(self) -> bool:
        return not self.regressions and not self.functional_differences

    @property
    def verdict(self) -> str:
        return "pass" if self.passed else "fail"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.verdict,
            "thresholds": self.thresholds.to_dict(),
            "score_tolerance": self.score_tolerance,
            "positions": [p.to_dict() for p in self.positions],
            "added": self.added,
            "removed": self.removed,
            "errored": self.errored,
            "aggregate": {m: d.to_dict() for m, d in self.aggregate.items()},
        }


def compare_metric(metric: str, baseline: float, candidate: float, threshold: Optional[float]) -> MetricDelta:
    """Delta, relative change and classification of one metric."""
    delta = candidate - baseline
    if baseline == 0:
        pct = 0.0 if candidate == 0 else math.copysign(math.inf, delta)
        pct_defined = candidate == 0
    else:
        pct = delta / baseline
        pct_defined = True

    classification = Classification.UNCHANGED
    if threshold is not None and delta != 0 and abs(pct) > threshold:
        worse = delta > 0 if METRICS[metric] is Direction.LOWER_IS_BETTER else delta < 0
        classification = Classification.REGRESSED if worse else Classification.IMPROVED

    return MetricDelta(metric=metric, baseline=baseline, candidate=candidate, delta=delta,
                       pct=pct, pct_defined=pct_defined, classification=classification)


def _score_text(score: Optional[Score]) -> str:
    return str(score) if score is not None else "none"


def _scores_differ(baseline: Optional[Score], candidate: Optional[Score], tolerance: int) -> bool:
    if baseline is None or candidate is None:
        return baseline != candidate
    if baseline.is_mate or candidate.is_mate:
        return baseline != candidate
    return abs(candidate.cp - baseline.cp) > tolerance


class DiffEngine:
    """Classifies differences between a baseline and a candidate snapshot."""

    def __init__(self, thresholds: Optional[DiffThresholds] = None, score_tolerance: int = 0,
                 strict: bool = False):
        if score_tolerance < 0:
            raise ValueError("score_tolerance must be non-negative")
        self.thresholds = thresholds or DiffThresholds()
        self.score_tolerance = int(score_tolerance)
        self.strict = strict

    def diff(self, baseline: Snapshot, candidate: Snapshot) -> DiffReport:
        base_by_id = {r.position_id: r for r in baseline.results}
        cand_by_id = {r.position_id: r for r in candidate.results}

        positions: List[PositionDiff] = []
        for base in baseline.results:
            cand = cand_by_id.get(base.position_id)
            if cand is None:
                positions.append(PositionDiff(base.position_id, DiffCategory.REMOVED, base.fen, baseline=base))
            else:
                positions.append(self._compare(base, cand))
        for cand in candidate.results:
            if cand.position_id not in base_by_id:
                positions.append(PositionDiff(cand.position_id, DiffCategory.ADDED, cand.fen, candidate=cand))

        report = DiffReport(positions=positions, aggregate={}, thresholds=self.thresholds,
                            score_tolerance=self.score_tolerance)
        if report.added or report.removed:
            mismatch = PositionSetMismatch(
                f"Position sets differ: {len(report.removed)} removed, {len(report.added)} added",
                added=report.added, removed=report.removed)
            if self.strict:
                raise mismatch
            logger.warning(str(mismatch))

        report.aggregate = self._aggregate(positions)
        logger.info(f"Diff verdict: {report.verdict} ({len(report.compared)} compared, "
                    f"{len(report.regressions)} regressions, {len(report.functional_differences)} functional, "
                    f"{len(report.errored)} errored)")
        return report

    def _compare(self, base: BenchResult, cand: BenchResult) -> PositionDiff:
        if not base.ok or not cand.ok:
            return PositionDiff(base.position_id, DiffCategory.ERRORED, base.fen, baseline=base, candidate=cand)

        metrics = {
            metric: compare_metric(metric, getattr(base, metric), getattr(cand, metric),
                                   self.thresholds.for_metric(metric))
            for metric in METRICS
        }

        functional = []
        if base.best_move != cand.best_move:
            functional.append(FunctionalDifference("best_move", base.best_move or "none", cand.best_move or "none"))
        if _scores_differ(base.score, cand.score, self.score_tolerance):
            functional.append(FunctionalDifference("score", _score_text(base.score), _score_text(cand.score)))

        return PositionDiff(base.position_id, DiffCategory.COMPARED, base.fen, baseline=base, candidate=cand,
                            metrics=metrics, functional=tuple(functional))

    def _aggregate(self, positions: List[PositionDiff]) -> Dict[str, MetricDelta]:
        compared = [p for p in positions if p.category is DiffCategory.COMPARED]
        base_totals = Totals.from_results([p.baseline for p in compared])
        cand_totals = Totals.from_results([p.candidate for p in compared])
        return {
            metric: compare_metric(metric, getattr(base_totals, metric), getattr(cand_totals, metric),
                                   self.thresholds.for_metric(metric))
            for metric in ("nodes", "elapsed_ms", "nps")
        }


def diff_snapshots(baseline: Snapshot, candidate: Snapshot, **kwargs) -> DiffReport:
    return DiffEngine(**kwargs).diff(baseline, candidate)
