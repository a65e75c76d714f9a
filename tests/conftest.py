"""Pytest configuration and shared fixtures for the ucibench test suite."""

import logging
import os
import shlex
import stat
import sys
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from ucibench.config import BenchConfig, EngineConfig
from ucibench.metrics import BenchResult, ResultStatus, Score, SearchLimit
from ucibench.positions import Position
from ucibench.snapshot import Snapshot

FAKE_ENGINE = Path(__file__).parent / "fake_engine.py"

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
ROOK_ENDGAME_FEN = "8/5pk1/6p1/7p/7P/6P1/5PK1/8 w - - 0 1"
LUCENA_FEN = "1K1k4/1P6/8/8/8/8/r7/2R5 w - - 0 1"


# Configure test logging
logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: Tests that drive a real engine subprocess"
    )
    config.addinivalue_line(
        "markers", "error_handling: Error handling and robustness tests"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )


@pytest.fixture(scope="function")
def make_engine(tmp_path) -> Callable[..., str]:
    """Write an executable wrapper that starts the fake engine with the given flags."""
    counter = {"n": 0}

    def _make(*args: str) -> str:
        counter["n"] += 1
        script = tmp_path / f"fake_engine_{counter['n']}"
        command = " ".join(shlex.quote(part) for part in (sys.executable, str(FAKE_ENGINE), *args))
        script.write_text(f"#!/bin/sh\nexec {command}\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return _make


@pytest.fixture(scope="function")
def engine_path(make_engine) -> str:
    """A well-behaved fake engine."""
    return make_engine()


@pytest.fixture(scope="function")
def fast_config() -> BenchConfig:
    """Short timeouts so failure paths finish quickly."""
    return BenchConfig(
        engine=EngineConfig(handshake_timeout=10.0, quit_grace=0.5),
        depth=3,
        position_timeout=2.0,
    )


@pytest.fixture(scope="function")
def small_suite() -> List[Position]:
    return [
        Position("start", START_FEN),
        Position("rook-endgame", ROOK_ENDGAME_FEN),
        Position("lucena", LUCENA_FEN),
    ]


def make_result(position_id: str, nodes: int = 100000, nps: int = 1000000, depth: int = 10,
                elapsed_ms: int = 100, cp: Optional[int] = 35, best_move: Optional[str] = "e2e4",
                status: ResultStatus = ResultStatus.OK, fen: str = START_FEN) -> BenchResult:
    if status is not ResultStatus.OK:
        return BenchResult.failure(position_id, fen, status, SearchLimit.fixed_depth(depth), error="boom")
    return BenchResult(
        position_id=position_id,
        fen=fen,
        nodes=nodes,
        nps=nps,
        depth=depth,
        elapsed_ms=elapsed_ms,
        score=Score(cp=cp) if cp is not None else None,
        best_move=best_move,
        limit=SearchLimit.fixed_depth(depth),
    )


def make_snapshot(*results: BenchResult, engine: str = "TestEngine 1.0") -> Snapshot:
    return Snapshot(engine_identifier=engine, timestamp="2026-01-01T00:00:00+00:00", results=results,
                    host={"platform": "test"})


@pytest.fixture(scope="function")
def result_factory() -> Callable[..., BenchResult]:
    return make_result


@pytest.fixture(scope="function")
def snapshot_factory() -> Callable[..., Snapshot]:
    return make_snapshot


@pytest.fixture(scope="function")
def sample_snapshot() -> Snapshot:
    """Three successful positions and one timeout."""
    return make_snapshot(
        make_result("a", nodes=100000, elapsed_ms=100),
        make_result("b", nodes=50000, elapsed_ms=50, cp=-12, best_move="g1f3"),
        make_result("c", status=ResultStatus.TIMED_OUT),
        make_result("d", nodes=2000, elapsed_ms=4, cp=None, best_move=None),
    )


@pytest.fixture(autouse=True)
def _restore_cwd():
    cwd = os.getcwd()
    yield
    os.chdir(cwd)
