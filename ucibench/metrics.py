# Benchmark result model
"""
Value types produced by a benchmark run: search limits, engine scores and the
per-position result record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ResultStatus(Enum):
    """Outcome of searching a single position."""
    OK = "ok"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class SearchLimit:
    """Bound for one search: a fixed depth or a time budget in milliseconds."""
    depth: Optional[int] = None
    movetime_ms: Optional[int] = None

    def __post_init__(self):
        if (self.depth is None) == (self.movetime_ms is None):
            raise ValueError("SearchLimit needs exactly one of depth or movetime_ms")
        value = self.depth if self.depth is not None else self.movetime_ms
        if value <= 0:
            raise ValueError(f"SearchLimit must be positive, got {value}")

    @classmethod
    def fixed_depth(cls, depth: int) -> "SearchLimit":
        return cls(depth=int(depth))

    @classmethod
    def movetime(cls, ms: int) -> "SearchLimit":
        return cls(movetime_ms=int(ms))

    def go_arguments(self) -> str:
        if self.depth is not None:
            return f"depth {self.depth}"
        return f"movetime {self.movetime_ms}"

    def to_dict(self) -> Dict[str, int]:
        if self.depth is not None:
            return {"depth": self.depth}
        return {"movetime_ms": self.movetime_ms}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchLimit":
        return cls(depth=data.get("depth"), movetime_ms=data.get("movetime_ms"))

    def __str__(self):
        return f"depth {self.depth}" if self.depth is not None else f"{self.movetime_ms}ms"


@dataclass(frozen=True)
class Score:
    """Engine evaluation: centipawns, or moves to mate (negative when mated)."""
    cp: Optional[int] = None
    mate: Optional[int] = None

    def __post_init__(self):
        if (self.cp is None) == (self.mate is None):
            raise ValueError("Score needs exactly one of cp or mate")

    @property
    def is_mate(self) -> bool:
        return self.mate is not None

    def to_dict(self) -> Dict[str, int]:
        return {"mate": self.mate} if self.is_mate else {"cp": self.cp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Score":
        return cls(cp=data.get("cp"), mate=data.get("mate"))

    def __str__(self):
        if self.is_mate:
            return f"#{self.mate}"
        return f"{self.cp:+d}"


@dataclass(frozen=True)
class BenchResult:
    """Metrics captured for one position of the suite."""
    position_id: str
    fen: str
    status: ResultStatus = ResultStatus.OK
    nodes: int = 0
    nps: int = 0
    depth: int = 0
    elapsed_ms: int = 0
    score: Optional[Score] = None
    best_move: Optional[str] = None
    limit: Optional[SearchLimit] = None
    error: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        for name in ("nodes", "nps", "depth", "elapsed_ms"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    @property
    def ok(self) -> bool:
        return self.status is ResultStatus.OK

    @property
    def branching_factor(self) -> float:
        """Effective branching factor, nodes ** (1 / depth)."""
        if self.depth <= 0 or self.nodes <= 0:
            return 0.0
        return self.nodes ** (1.0 / self.depth)

    @classmethod
    def failure(cls, position_id: str, fen: str, status: ResultStatus,
                limit: Optional[SearchLimit] = None, error: Optional[str] = None) -> "BenchResult":
        return cls(position_id=position_id, fen=fen, status=status, limit=limit, error=error)
