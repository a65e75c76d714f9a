"""Benchmark position suites."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import chess

from ucibench.metrics import SearchLimit
from ucibench.utils.error_utils import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    """One suite entry. ``limit`` overrides the run's default search limit."""
    id: str
    fen: str
    limit: Optional[SearchLimit] = None

    def board(self) -> chess.Board:
        return chess.Board(self.fen)


# Fixed suite spanning opening, middlegame and endgame. Ids are stable so
# snapshots taken with it stay comparable.
DEFAULT_SUITE: Tuple[Position, ...] = (
    Position("startpos", chess.STARTING_FEN),
    Position("kiwipete", "r3k2r/p1ppqpb1/bn2pnp1/3PN3/1p2P3/2N2Q1p/PPPBBPPP/R3K2R w KQkq - 0 1"),
    Position("italian", "r1bqkb1r/pppp1ppp/2n2n2/4p3/2B1P3/5N2/PPPP1PPP/RNBQK2R w KQkq - 4 4"),
    Position("sicilian-najdorf", "rnbqkb1r/1p2pppp/p2p1n2/8/3NP3/2N5/PPP2PPP/R1BQKB1R w KQkq - 0 6"),
    Position("queens-gambit", "rnbqkb1r/ppp2ppp/4pn2/3p4/2PP4/2N5/PP2PPPP/R1BQKBNR w KQkq - 2 4"),
    Position("complex-middlegame", "r2q1rk1/ppp2ppp/2np1n2/2b1p1B1/2B1P1b1/2NP1N2/PPP2PPP/R2Q1RK1 w - - 0 8"),
    Position("tactical", "r1b1k2r/ppppnppp/2n2q2/2b5/3NP3/2P1B3/PP3PPP/RN1QKB1R w KQkq - 0 1"),
    Position("rook-endgame", "8/5pk1/6p1/7p/7P/6P1/5PK1/8 w - - 0 1"),
    Position("pawn-race", "8/1p4k1/p7/P1K5/8/8/8/8 w - - 0 1"),
    Position("lucena", "1K1k4/1P6/8/8/8/8/r7/2R5 w - - 0 1"),
    Position("fine-70", "8/k7/3p4/p2P1p2/P2P1P2/8/8/K7 w - - 0 1"),
    Position("mate-in-two", "r2qkb1r/pp2nppp/3p4/2pNN1B1/2BnP3/3P4/PPP2PPP/R2bK2R w KQkq - 1 1"),
)


def validate_fen(fen: str, where: str = "") -> str:
    """Return the FEN unchanged if python-chess accepts it."""
    try:
        board = chess.Board(fen)
    except ValueError as e:
        raise ConfigurationError(f"{where}invalid FEN {fen!r}: {e}") from e
    if not board.is_valid():
        logger.warning(f"{where}FEN {fen!r} describes an illegal position ({board.status()!r})")
    return fen


def check_unique_ids(positions: Iterable[Position]) -> None:
    seen = set()
    for position in positions:
        if position.id in seen:
            raise ConfigurationError(f"Duplicate position id in suite: {position.id}")
        seen.add(position.id)


def parse_suite(text: str, source: str = "<suite>") -> List[Position]:
    """Parse a suite file.

    One FEN per line, optionally followed by ``; <id>``. Blank lines and
    ``#`` comments are skipped. Entries without an id are named ``pos-<n>``.
    """
    positions: List[Position] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        fen, _, position_id = line.partition(";")
        fen = fen.strip()
        position_id = position_id.strip() or f"pos-{len(positions) + 1}"
        validate_fen(fen, where=f"{source}:{lineno}: ")
        positions.append(Position(position_id, fen))
    check_unique_ids(positions)
    return positions


def load_suite(path: str) -> List[Position]:
    suite_path = Path(path)
    try:
        text = suite_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read suite file {suite_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigurationError(f"Suite file {suite_path} is not UTF-8 ({e.reason} at byte {e.start})") from e
    positions = parse_suite(text, source=str(suite_path))
    if not positions:
        logger.warning(f"Suite file {suite_path} contains no positions")
    logger.info(f"Loaded {len(positions)} positions from {suite_path}")
    return positions
