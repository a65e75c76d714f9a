# Benchmark runner
"""
Drive a position suite through one UCI engine and collect a Snapshot.

Positions are searched strictly one after another so that timing and node
counts are not distorted by concurrent searches. A position that times out or
crashes the engine is recorded as such; the engine is replaced and the run
moves on.
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import chess

from ucibench.config import BenchConfig
from ucibench.engines.uci_client import SearchOutcome, UCIClient
from ucibench.engines.uci_protocol import Info
from ucibench.metrics import BenchResult, ResultStatus, SearchLimit
from ucibench.positions import DEFAULT_SUITE, Position, check_unique_ids
from ucibench.snapshot import Snapshot
from ucibench.utils.error_utils import (ConfigurationError, EngineCrashed,
                                        EngineTimeout, ProcessSpawnError)
from ucibench.utils.system_info import host_info

logger = logging.getLogger(__name__)

SPAWN_ERRORS = (ProcessSpawnError, EngineTimeout, EngineCrashed)


class BenchmarkRunner:
    """Main benchmark execution engine."""

    def __init__(self, config: Optional[BenchConfig] = None,
                 on_result: Optional[Callable[[BenchResult], None]] = None):
        self.config = config or BenchConfig()
        self.on_result = on_result
        self.respawns = 0
        self._stop = threading.Event()
        self._client: Optional[UCIClient] = None

    def request_stop(self) -> None:
        """Finish the position in progress, then end the run.

        Safe to call from another thread or a signal handler.
        """
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def run(self, engine_path: Optional[str] = None, positions: Optional[Iterable[Position]] = None,
            search_limit: Optional[SearchLimit] = None) -> Snapshot:
        """Synchronous entry point; runs on a private event loop."""
        loop = asyncio.new_event_loop()
        task = loop.create_task(self.run_async(engine_path, positions, search_limit))
        try:
            return loop.run_until_complete(task)
        except BaseException:
            # Interrupted from outside the loop: let run_async tear the engine down.
            if not task.done():
                task.cancel()
                loop.run_until_complete(asyncio.gather(task, return_exceptions=True))
            raise
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    async def run_async(self, engine_path: Optional[str] = None, positions: Optional[Iterable[Position]] = None,
                        search_limit: Optional[SearchLimit] = None) -> Snapshot:
        engine_path = engine_path or self.config.engine.path
        if not engine_path:
            raise ConfigurationError("No engine path given")
        suite: List[Position] = list(DEFAULT_SUITE if positions is None else positions)
        check_unique_ids(suite)

        self._stop.clear()
        host = host_info()
        results: List[BenchResult] = []
        self.respawns = 0
        logger.info(f"Benchmarking {engine_path} on {len(suite)} positions")

        try:
            # A failure to start the engine at all is fatal to the run.
            self._client = await self._spawn(engine_path)
            identifier = self._client.name

            for index, position in enumerate(suite, start=1):
                if self._stop.is_set():
                    logger.warning(f"Stop requested, ending run after {len(results)}/{len(suite)} positions")
                    break
                result = await self._run_position(engine_path, position, search_limit)
                results.append(result)
                self._log_result(index, len(suite), result)
                if self.on_result is not None:
                    self.on_result(result)
        finally:
            await self._discard_client()

        failures = sum(1 for r in results if not r.ok)
        if failures:
            logger.warning(f"{failures} of {len(results)} positions did not complete ({self.respawns} engine restarts)")
        return Snapshot.create(identifier or Path(engine_path).name, results, host=host)

    def resolve_limit(self, position: Position, search_limit: Optional[SearchLimit]) -> SearchLimit:
        return search_limit or position.limit or self.config.search_limit()

    def position_timeout(self, limit: SearchLimit) -> float:
        return self.config.position_timeout + (limit.movetime_ms or 0) / 1000.0

    async def _spawn(self, engine_path: str) -> UCIClient:
        engine = self.config.engine
        client = UCIClient(engine_path, options=engine.options,
                           handshake_timeout=engine.handshake_timeout, quit_grace=engine.quit_grace)
        await client.spawn()
        return client

    async def _discard_client(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.terminate()

    async def _run_position(self, engine_path: str, position: Position,
                            search_limit: Optional[SearchLimit]) -> BenchResult:
        limit = self.resolve_limit(position, search_limit)

        if self._client is None:
            try:
                self._client = await self._spawn(engine_path)
                self.respawns += 1
            except SPAWN_ERRORS as e:
                logger.error(f"{position.id}: could not restart engine: {e}")
                return BenchResult.failure(position.id, position.fen, ResultStatus.FAILED, limit, error=str(e))

        try:
            outcome = await self._client.search(position.fen, limit, self.position_timeout(limit))
        except EngineTimeout as e:
            logger.warning(f"{position.id}: {e}; restarting engine")
            await self._discard_client()
            return BenchResult.failure(position.id, position.fen, ResultStatus.TIMED_OUT, limit, error=str(e))
        except (EngineCrashed, ConnectionError) as e:
            logger.error(f"{position.id}: engine failed: {e}; restarting engine")
            await self._discard_client()
            return BenchResult.failure(position.id, position.fen, ResultStatus.FAILED, limit, error=str(e))

        return self._build_result(position, limit, outcome)

    def _build_result(self, position: Position, limit: SearchLimit, outcome: SearchOutcome) -> BenchResult:
        info = outcome.info
        if info is None:
            logger.warning(f"{position.id}: engine reported no search info before bestmove")
            info = Info()

        nodes = max(info.nodes or 0, 0)
        # Prefer the engine's own clock; fall back to wall time around go/bestmove.
        elapsed_ms = max(info.time, 0) if info.time is not None else outcome.elapsed_ms
        if info.nps is not None:
            nps = max(info.nps, 0)
        else:
            nps = nodes * 1000 // elapsed_ms if elapsed_ms > 0 else 0

        if outcome.best_move is not None:
            try:
                chess.Move.from_uci(outcome.best_move)
            except ValueError:
                logger.warning(f"{position.id}: bestmove {outcome.best_move!r} is not a UCI move")

        return BenchResult(
            position_id=position.id,
            fen=position.fen,
            status=ResultStatus.OK,
            nodes=nodes,
            nps=nps,
            depth=max(info.depth or 0, 0),
            elapsed_ms=elapsed_ms,
            score=info.score,
            best_move=outcome.best_move,
            limit=limit,
        )

    @staticmethod
    def _log_result(index: int, total: int, result: BenchResult) -> None:
        if result.ok:
            logger.info(f"[{index}/{total}] {result.position_id}: {result.nodes} nodes, {result.nps} nps, "
                        f"depth {result.depth}, {result.elapsed_ms}ms, bestmove {result.best_move}")
        else:
            logger.info(f"[{index}/{total}] {result.position_id}: {result.status.value} ({result.error})")
