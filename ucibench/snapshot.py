# Snapshot persistence
"""
Canonical persisted form of a benchmark run.

A snapshot is a JSON document with a ``schema_version`` of the form
``MAJOR.MINOR``. Readers refuse documents from a newer major version and
accept newer minor versions, carrying fields they do not know about in
``extra`` so that saving the snapshot again does not lose them.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ucibench.metrics import BenchResult, ResultStatus, Score, SearchLimit
from ucibench.positions import Position
from ucibench.utils.error_utils import SnapshotFormatError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
SUPPORTED_MAJOR = 1

SNAPSHOT_FIELDS = ("schema_version", "engine_identifier", "timestamp", "host", "positions", "totals")
ENTRY_FIELDS = ("id", "fen", "nodes", "nps", "depth", "elapsed_ms", "score", "best_move",
                "status", "limit", "error", "branching_factor")
REQUIRED_ENTRY_FIELDS = ("id", "fen", "nodes", "nps", "depth", "elapsed_ms", "score", "best_move", "status")


@dataclass(frozen=True)
class Totals:
    """Aggregates over successful results only."""
    nodes: int = 0
    elapsed_ms: int = 0
    nps: int = 0

    @classmethod
    def from_results(cls, results) -> "Totals":
        ok = [r for r in results if r.ok]
        nodes = sum(r.nodes for r in ok)
        elapsed_ms = sum(r.elapsed_ms for r in ok)
        nps = nodes * 1000 // elapsed_ms if elapsed_ms > 0 else 0
        return cls(nodes=nodes, elapsed_ms=elapsed_ms, nps=nps)

    def to_dict(self) -> Dict[str, int]:
        return {"nodes": self.nodes, "elapsed_ms": self.elapsed_ms, "nps": self.nps}


@dataclass(frozen=True)
class Snapshot:
    """Ordered, immutable record of a completed benchmark run."""
    engine_identifier: str
    timestamp: str
    results: Tuple[BenchResult, ...] = ()
    schema_version: str = SCHEMA_VERSION
    host: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "results", tuple(self.results))
        seen = set()
        for result in self.results:
            if result.position_id in seen:
                raise ValueError(f"Duplicate position id in snapshot: {result.position_id}")
            seen.add(result.position_id)

    @classmethod
    def create(cls, engine_identifier: str, results, host: Optional[Dict[str, Any]] = None) -> "Snapshot":
        timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        return cls(engine_identifier=engine_identifier, timestamp=timestamp, results=tuple(results), host=host)

    @property
    def totals(self) -> Totals:
        return Totals.from_results(self.results)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[BenchResult]:
        return iter(self.results)

    def ids(self) -> List[str]:
        return [r.position_id for r in self.results]

    def get(self, position_id: str) -> Optional[BenchResult]:
        for result in self.results:
            if result.position_id == position_id:
                return result
        return None

    def failures(self) -> List[BenchResult]:
        return [r for r in self.results if not r.ok]

    def positions(self) -> List[Position]:
        """The suite this snapshot was produced from, for re-running it."""
        return [Position(r.position_id, r.fen, r.limit) for r in self.results]

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        data.update({
            "schema_version": self.schema_version,
            "engine_identifier": self.engine_identifier,
            "timestamp": self.timestamp,
        })
        if self.host is not None:
            data["host"] = dict(self.host)
        data["positions"] = [_entry_to_dict(r) for r in self.results]
        data["totals"] = self.totals.to_dict()
        return data

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def save(self, path) -> Path:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        with open(out, "w") as f:
            f.write(self.to_json())
            f.write("\n")
        logger.info(f"Snapshot with {len(self)} positions saved to {out}")
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        if not isinstance(data, dict):
            raise SnapshotFormatError(f"<root>: expected an object, found {type(data).__name__}")

        version = _check_version(data.get("schema_version"))
        engine_identifier = _expect(data, "engine_identifier", str, "<root>")
        timestamp = _expect(data, "timestamp", str, "<root>")
        host = data.get("host")
        if host is not None and not isinstance(host, dict):
            raise SnapshotFormatError(f"host: expected an object, found {type(host).__name__}")

        entries = _expect(data, "positions", list, "<root>")
        results = []
        seen = set()
        for index, entry in enumerate(entries):
            result = _entry_from_dict(entry, f"positions[{index}]")
            if result.position_id in seen:
                raise SnapshotFormatError(f"positions[{index}].id: duplicate position id {result.position_id!r}")
            seen.add(result.position_id)
            results.append(result)

        extra = {k: v for k, v in data.items() if k not in SNAPSHOT_FIELDS}
        if extra:
            logger.debug(f"Snapshot carries unknown fields {sorted(extra)} (schema {version})")

        snapshot = cls(engine_identifier=engine_identifier, timestamp=timestamp, results=tuple(results),
                       schema_version=version, host=host, extra=extra)
        _check_totals(data.get("totals"), snapshot.totals)
        return snapshot

    @classmethod
    def from_json(cls, text: str) -> "Snapshot":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise SnapshotFormatError(f"line {e.lineno}, column {e.colno}: invalid JSON ({e.msg})") from e
        return cls.from_dict(data)

    @classmethod
    def load(cls, path) -> "Snapshot":
        source = Path(path)
        try:
            text = source.read_text(encoding="utf-8")
        except OSError as e:
            raise SnapshotFormatError(f"Cannot read snapshot {source}: {e.strerror or e}",
                                      context_data={"path": str(source)}) from e
        except UnicodeDecodeError as e:
            raise SnapshotFormatError(f"{source}: not UTF-8 JSON ({e.reason} at byte {e.start})",
                                      context_data={"path": str(source)}) from e
        try:
            snapshot = cls.from_json(text)
        except SnapshotFormatError as e:
            raise SnapshotFormatError(f"{source}: {e.message}", context_data={"path": str(source)}) from e
        logger.info(f"Loaded snapshot {source} ({len(snapshot)} positions, {snapshot.engine_identifier})")
        return snapshot


def _check_version(raw: Any) -> str:
    if isinstance(raw, bool) or raw is None:
        raise SnapshotFormatError(f"schema_version: expected \"MAJOR.MINOR\", found {raw!r}")
    text = str(raw)
    major, _, minor = text.partition(".")
    try:
        major_n = int(major)
        int(minor or "0")
    except ValueError:
        raise SnapshotFormatError(f"schema_version: expected \"MAJOR.MINOR\", found {raw!r}") from None
    if major_n != SUPPORTED_MAJOR:
        raise SnapshotFormatError(
            f"schema_version: unsupported major version, expected {SUPPORTED_MAJOR}.x, found {text}"
            + (" (written by a newer ucibench)" if major_n > SUPPORTED_MAJOR else ""),
            context_data={"expected": SCHEMA_VERSION, "found": text})
    return text


def _expect(data: Dict[str, Any], key: str, kind: type, where: str) -> Any:
    if key not in data:
        raise SnapshotFormatError(f"{where}: missing field '{key}'")
    value = data[key]
    if not isinstance(value, kind):
        raise SnapshotFormatError(f"{where}.{key}: expected {kind.__name__}, found {type(value).__name__}")
    return value


def _count(data: Dict[str, Any], key: str, where: str) -> int:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SnapshotFormatError(f"{where}.{key}: expected a non-negative integer, found {value!r}")
    return value


def _score_from(raw: Any, where: str) -> Optional[Score]:
    if raw is None:
        return None
    if isinstance(raw, dict) and len(raw) == 1:
        (kind, value), = raw.items()
        if kind in ("cp", "mate") and isinstance(value, int) and not isinstance(value, bool):
            return Score(cp=value) if kind == "cp" else Score(mate=value)
    raise SnapshotFormatError(f"{where}.score: expected {{\"cp\": int}}, {{\"mate\": int}} or null, found {raw!r}")


def _limit_from(raw: Any, where: str) -> Optional[SearchLimit]:
    if raw is None:
        return None
    if isinstance(raw, dict):
        try:
            return SearchLimit.from_dict(raw)
        except (TypeError, ValueError) as e:
            raise SnapshotFormatError(f"{where}.limit: {e}") from e
    raise SnapshotFormatError(f"{where}.limit: expected an object or null, found {raw!r}")


def _entry_from_dict(entry: Any, where: str) -> BenchResult:
    if not isinstance(entry, dict):
        raise SnapshotFormatError(f"{where}: expected an object, found {type(entry).__name__}")
    for key in REQUIRED_ENTRY_FIELDS:
        if key not in entry:
            raise SnapshotFormatError(f"{where}: missing field '{key}'")

    position_id = _expect(entry, "id", str, where)
    if not position_id:
        raise SnapshotFormatError(f"{where}.id: must not be empty")
    try:
        status = ResultStatus(entry["status"])
    except ValueError:
        allowed = ", ".join(s.value for s in ResultStatus)
        raise SnapshotFormatError(f"{where}.status: expected one of {allowed}, found {entry['status']!r}") from None

    best_move = entry["best_move"]
    if best_move is not None and not isinstance(best_move, str):
        raise SnapshotFormatError(f"{where}.best_move: expected a string or null, found {best_move!r}")
    error = entry.get("error")
    if error is not None and not isinstance(error, str):
        raise SnapshotFormatError(f"{where}.error: expected a string or null, found {error!r}")

    return BenchResult(
        position_id=position_id,
        fen=_expect(entry, "fen", str, where),
        status=status,
        nodes=_count(entry, "nodes", where),
        nps=_count(entry, "nps", where),
        depth=_count(entry, "depth", where),
        elapsed_ms=_count(entry, "elapsed_ms", where),
        score=_score_from(entry["score"], where),
        best_move=best_move,
        limit=_limit_from(entry.get("limit"), where),
        error=error,
        extra={k: v for k, v in entry.items() if k not in ENTRY_FIELDS},
    )


def _entry_to_dict(result: BenchResult) -> Dict[str, Any]:
    entry: Dict[str, Any] = dict(result.extra)
    entry.update({
        "id": result.position_id,
        "fen": result.fen,
        "status": result.status.value,
        "nodes": result.nodes,
        "nps": result.nps,
        "depth": result.depth,
        "elapsed_ms": result.elapsed_ms,
        "score": result.score.to_dict() if result.score else None,
        "best_move": result.best_move,
        "limit": result.limit.to_dict() if result.limit else None,
        "error": result.error,
        "branching_factor": round(result.branching_factor, 4),
    })
    return entry


def _check_totals(raw: Any, computed: Totals) -> None:
    if raw is None:
        return
    if not isinstance(raw, dict):
        raise SnapshotFormatError(f"totals: expected an object, found {type(raw).__name__}")
    stored = {k: raw.get(k) for k in ("nodes", "elapsed_ms", "nps")}
    if stored != computed.to_dict():
        logger.warning(f"Stored totals {stored} differ from recomputed totals {computed.to_dict()}; using recomputed")
