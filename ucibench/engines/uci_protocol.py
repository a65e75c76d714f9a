"""UCI line protocol: engine output events and client commands.

Every line an engine writes is parsed exactly once into one of a closed set of
event types. Parsing never fails for callers: anything that does not fit a
known shape comes back as ``Unrecognized`` with the raw text, so protocol
drift stays visible instead of being dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from ucibench.metrics import Score, SearchLimit
from ucibench.utils.error_utils import ProtocolViolation

logger = logging.getLogger(__name__)

# Client -> engine
UCI = "uci"
ISREADY = "isready"
UCINEWGAME = "ucinewgame"
STOP = "stop"
QUIT = "quit"

INT_FIELDS = ("depth", "seldepth", "time", "nodes", "nps", "multipv", "hashfull",
              "tbhits", "sbhits", "cpuload", "currmovenumber")
MOVE_LIST_FIELDS = ("pv", "refutation", "currline")
BOUNDS = ("lowerbound", "upperbound")
NULL_MOVES = ("(none)", "0000", "none")


def position_command(fen: str, moves: Tuple[str, ...] = ()) -> str:
    command = f"position fen {fen}"
    if moves:
        command += " moves " + " ".join(moves)
    return command


def go_command(limit: SearchLimit) -> str:
    return f"go {limit.go_arguments()}"


def setoption_command(name: str, value) -> str:
    if isinstance(value, bool):
        value = "true" if value else "false"
    return f"setoption name {name} value {value}"


# Engine -> client

@dataclass(frozen=True)
class UciOk:
    """Handshake acknowledgment."""


@dataclass(frozen=True)
class ReadyOk:
    """Readiness acknowledgment."""


@dataclass(frozen=True)
class EngineId:
    field: str
    value: str


@dataclass(frozen=True)
class EngineOption:
    """Option advertised during the handshake."""
    name: str
    type: Optional[str] = None
    default: Optional[str] = None


@dataclass(frozen=True)
class Info:
    """Incremental search status. Every field is optional."""
    depth: Optional[int] = None
    seldepth: Optional[int] = None
    time: Optional[int] = None
    nodes: Optional[int] = None
    nps: Optional[int] = None
    multipv: Optional[int] = None
    hashfull: Optional[int] = None
    tbhits: Optional[int] = None
    sbhits: Optional[int] = None
    cpuload: Optional[int] = None
    currmovenumber: Optional[int] = None
    currmove: Optional[str] = None
    score: Optional[Score] = None
    bound: Optional[str] = None
    pv: Tuple[str, ...] = ()
    string: Optional[str] = None
    unparsed: Tuple[str, ...] = ()

    @property
    def is_progress(self) -> bool:
        """True for lines that report search progress rather than chatter."""
        return self.nodes is not None or self.depth is not None or self.score is not None


@dataclass(frozen=True)
class BestMove:
    move: Optional[str]
    ponder: Optional[str] = None


@dataclass(frozen=True)
class Unrecognized:
    raw: str
    reason: str = ""


UCIEvent = Union[UciOk, ReadyOk, EngineId, EngineOption, Info, BestMove, Unrecognized]


def _to_int(token: str) -> Optional[int]:
    try:
        return int(token)
    except ValueError:
        return None


def _parse_info(tokens: List[str]) -> Info:
    fields: Dict[str, object] = {}
    unparsed: List[str] = []
    n = len(tokens)
    i = 0
    while i < n:
        key = tokens[i]
        if key in INT_FIELDS:
            value = _to_int(tokens[i + 1]) if i + 1 < n else None
            if value is None:
                unparsed.append(key)
                i += 1
                continue
            fields[key] = value
            i += 2
        elif key == "score":
            kind = tokens[i + 1] if i + 1 < n else None
            value = _to_int(tokens[i + 2]) if i + 2 < n else None
            if kind not in ("cp", "mate") or value is None:
                unparsed.append(key)
                i += 1
                continue
            fields["score"] = Score(cp=value) if kind == "cp" else Score(mate=value)
            i += 3
            if i < n and tokens[i] in BOUNDS:
                fields["bound"] = tokens[i]
                i += 1
        elif key == "currmove":
            if i + 1 >= n:
                unparsed.append(key)
                break
            fields["currmove"] = tokens[i + 1]
            i += 2
        elif key in MOVE_LIST_FIELDS:
            j = i + 1
            while j < n and not _is_info_keyword(tokens[j]):
                j += 1
            if key == "pv":
                fields["pv"] = tuple(tokens[i + 1:j])
            i = j
        elif key == "string":
            fields["string"] = " ".join(tokens[i + 1:])
            break
        else:
            unparsed.append(key)
            i += 1
    return Info(unparsed=tuple(unparsed), **fields)


def _is_info_keyword(token: str) -> bool:
    return token in INT_FIELDS or token in MOVE_LIST_FIELDS or token in ("score", "currmove", "string")


def _parse_option(line: str, tokens: List[str]) -> EngineOption:
    if len(tokens) < 3 or tokens[1] != "name":
        raise ProtocolViolation(f"malformed option line: {line!r}")
    rest = tokens[2:]
    name_end = rest.index("type") if "type" in rest else len(rest)
    if name_end == 0:
        raise ProtocolViolation(f"option without a name: {line!r}")
    option_type = rest[name_end + 1] if name_end + 1 < len(rest) else None
    default = None
    if "default" in rest[name_end:]:
        start = rest.index("default", name_end) + 1
        stop = start
        while stop < len(rest) and rest[stop] not in ("min", "max", "var"):
            stop += 1
        default = " ".join(rest[start:stop])
    return EngineOption(name=" ".join(rest[:name_end]), type=option_type, default=default)


def _parse(line: str) -> UCIEvent:
    tokens = line.split()
    if not tokens:
        raise ProtocolViolation("empty line")
    keyword = tokens[0]

    if keyword == "uciok":
        return UciOk()
    if keyword == "readyok":
        return ReadyOk()
    if keyword == "info":
        return _parse_info(tokens[1:])
    if keyword == "bestmove":
        if len(tokens) < 2:
            raise ProtocolViolation("bestmove without a move")
        move = None if tokens[1] in NULL_MOVES else tokens[1]
        ponder = None
        if len(tokens) >= 4 and tokens[2] == "ponder":
            ponder = tokens[3]
        return BestMove(move=move, ponder=ponder)
    if keyword == "option":
        return _parse_option(line, tokens)
    if keyword == "id":
        if len(tokens) < 3 or tokens[1] not in ("name", "author"):
            raise ProtocolViolation(f"malformed id line: {line!r}")
        return EngineId(field=tokens[1], value=line.split(None, 2)[2].strip())
    raise ProtocolViolation(f"unknown keyword {keyword!r}")


def parse_line(line: str) -> UCIEvent:
    """Parse one line of engine output into an event."""
    line = line.strip()
    try:
        return _parse(line)
    except ProtocolViolation as e:
        logger.debug(f"Unrecognized UCI line {line!r}: {e.message}")
        return Unrecognized(raw=line, reason=e.message)
