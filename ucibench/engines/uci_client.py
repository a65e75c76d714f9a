"""UCI client driving one external engine subprocess."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
from collections import deque
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Optional, Tuple, Type, Union

from ucibench.metrics import SearchLimit
from ucibench.utils.error_utils import (EngineCrashed, EngineTimeout,
                                        ProcessSpawnError, ProtocolViolation)

from .uci_protocol import (ISREADY, QUIT, STOP, UCI, UCINEWGAME, BestMove,
                           EngineId, EngineOption, Info, ReadyOk, UCIEvent,
                           UciOk, Unrecognized, go_command, parse_line,
                           position_command, setoption_command)

logger = logging.getLogger(__name__)

# Long pv / info string lines can exceed asyncio's 64 KiB default.
STREAM_LIMIT = 1024 * 1024

EventMatcher = Union[Type[Any], Tuple[Type[Any], ...], Callable[[UCIEvent], bool]]

_EOF = object()


class ClientState(Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    SEARCHING = "searching"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class SearchOutcome:
    """What one ``go`` produced: the best move and the last progress report."""
    best_move: Optional[str]
    ponder: Optional[str]
    info: Optional[Info]
    elapsed_ms: int


def _as_predicate(matcher: EventMatcher) -> Callable[[UCIEvent], bool]:
    if isinstance(matcher, type) or isinstance(matcher, tuple):
        return lambda event: isinstance(event, matcher)
    return matcher


class UCIClient:
    """Owns the lifecycle of one UCI engine process.

    Output is read by a background task that parses every line once and puts
    the resulting event on a queue; ``await_event`` suspends the caller until
    an event it cares about shows up or the timeout elapses.
    """

    def __init__(self, engine_path: str, options: Optional[Dict[str, Any]] = None,
                 handshake_timeout: float = 10.0, quit_grace: float = 2.0):
        self.engine_path = str(engine_path)
        self.options = dict(options or {})
        self.handshake_timeout = float(handshake_timeout)
        self.quit_grace = float(quit_grace)

        self.state = ClientState.IDLE
        self.engine_info: Dict[str, str] = {}
        self.engine_options: Dict[str, EngineOption] = {}
        self.unrecognized: Deque[Unrecognized] = deque(maxlen=100)
        self.unrecognized_count = 0

        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._events: Optional[asyncio.Queue] = None

    @property
    def name(self) -> str:
        return self.engine_info.get("name") or Path(self.engine_path).name

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def _resolve_executable(self) -> str:
        path = Path(self.engine_path).expanduser()
        if path.exists() or os.sep in self.engine_path:
            if not path.exists():
                raise ProcessSpawnError(f"Engine not found: {path}", context_data={"path": str(path)})
            if not path.is_file() or not os.access(path, os.X_OK):
                raise ProcessSpawnError(f"Engine is not an executable file: {path}",
                                        context_data={"path": str(path)})
            return str(path)
        found = shutil.which(self.engine_path)
        if found is None:
            raise ProcessSpawnError(f"Engine not found on PATH: {self.engine_path}",
                                    context_data={"path": self.engine_path})
        return found

    async def spawn(self) -> "UCIClient":
        """Start the engine and complete the uci/isready handshake."""
        if self.state is not ClientState.IDLE:
            raise RuntimeError(f"UCIClient for {self.engine_path} was already started")

        executable = self._resolve_executable()
        logger.info(f"Starting UCI engine: {executable}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                executable,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            self.state = ClientState.TERMINATED
            raise ProcessSpawnError(f"Failed to start engine {executable}: {e}",
                                    context_data={"path": executable}) from e

        self._events = asyncio.Queue()
        self._reader_task = asyncio.create_task(self._read_output())
        self.state = ClientState.INITIALIZING

        try:
            self.send_command(UCI)
            await self.await_event(UciOk, self.handshake_timeout)
            for option_name, option_value in self.options.items():
                if self.engine_options and option_name not in self.engine_options:
                    logger.warning(f"Engine {self.name} does not advertise option '{option_name}'")
                self.send_command(setoption_command(option_name, option_value))
            await self.is_ready(self.handshake_timeout)
        except BaseException:
            await self.terminate()
            raise

        self.state = ClientState.READY
        logger.info(f"UCI engine {self.name} ready (pid {self.pid})")
        return self

    def send_command(self, line: str) -> None:
        """Write one command line to the engine's stdin."""
        stdin = self._process.stdin if self._process else None
        if stdin is None or stdin.is_closing():
            raise EngineCrashed(f"Cannot send '{line}': stdin of {self.name} is closed")
        logger.debug(f"UCI -> {self.name}: {line}")
        stdin.write((line + "\n").encode())

    async def await_event(self, matcher: EventMatcher, timeout: float) -> UCIEvent:
        """Suspend until an event satisfying ``matcher`` arrives.

        Events that do not match are consumed. Raises EngineTimeout when the
        timeout elapses and EngineCrashed once the engine's output is closed.
        """
        if self._events is None:
            raise EngineCrashed(f"Engine {self.name} is not running")
        predicate = _as_predicate(matcher)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise EngineTimeout(f"No response from {self.name} within {timeout:.1f}s",
                                    context_data={"timeout": timeout})
            try:
                event = await asyncio.wait_for(self._events.get(), remaining)
            except asyncio.TimeoutError:
                raise EngineTimeout(f"No response from {self.name} within {timeout:.1f}s",
                                    context_data={"timeout": timeout}) from None
            if event is _EOF:
                # Keep the marker so every later wait fails the same way.
                self._events.put_nowait(_EOF)
                code = self._process.returncode if self._process else None
                raise EngineCrashed(f"Engine {self.name} closed its output (exit code {code})",
                                    context_data={"returncode": code})
            if predicate(event):
                return event

    async def is_ready(self, timeout: float) -> None:
        self.send_command(ISREADY)
        await self.await_event(ReadyOk, timeout)

    async def search(self, fen: str, limit: SearchLimit, timeout: float) -> SearchOutcome:
        """Search one position from a fresh game state.

        Only the last progress line before ``bestmove`` is kept: intermediate
        reports are superseded by it.
        """
        if self.state is not ClientState.READY:
            raise EngineCrashed(f"Engine {self.name} is not ready (state {self.state.value})")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        self._drain()
        self.send_command(UCINEWGAME)
        self.send_command(position_command(fen))
        await self.is_ready(timeout)

        self.state = ClientState.SEARCHING
        started = loop.time()
        self.send_command(go_command(limit))

        last_info: Optional[Info] = None
        while True:
            event = await self.await_event((Info, BestMove), deadline - loop.time())
            if isinstance(event, BestMove):
                break
            if event.is_progress and (event.multipv or 1) == 1:
                last_info = event

        elapsed_ms = int(round((loop.time() - started) * 1000))
        self.state = ClientState.READY
        return SearchOutcome(best_move=event.move, ponder=event.ponder, info=last_info, elapsed_ms=elapsed_ms)

    async def terminate(self, grace: Optional[float] = None) -> None:
        """Quit the engine, killing it if it does not exit within ``grace`` seconds."""
        if self.state is ClientState.TERMINATED and self._process is None:
            return
        grace = self.quit_grace if grace is None else float(grace)
        process = self._process
        try:
            if process is not None and process.returncode is None:
                logger.info(f"Stopping UCI engine: {self.name}")
                try:
                    if self.state is ClientState.SEARCHING:
                        self.send_command(STOP)
                    self.send_command(QUIT)
                except (EngineCrashed, ConnectionError) as e:
                    logger.debug(f"Could not send quit to {self.name}: {e}")
                try:
                    await asyncio.wait_for(process.wait(), grace)
                except asyncio.TimeoutError:
                    logger.warning(f"Engine {self.name} ignored quit for {grace:.1f}s, killing it")
                    with contextlib.suppress(ProcessLookupError):
                        process.kill()
                    await process.wait()
        finally:
            if self._reader_task is not None:
                self._reader_task.cancel()
                await asyncio.gather(self._reader_task, return_exceptions=True)
            if process is not None and process.stdin is not None:
                process.stdin.close()
            self._reader_task = None
            self._process = None
            self.state = ClientState.TERMINATED

    def _drain(self) -> None:
        """Discard events left over from a previous command."""
        while not self._events.empty():
            event = self._events.get_nowait()
            if event is _EOF:
                self._events.put_nowait(_EOF)
                return

    async def _read_output(self) -> None:
        stdout = self._process.stdout
        try:
            while True:
                try:
                    raw = await stdout.readline()
                except ValueError as e:
                    logger.warning(f"Dropping oversized line from {self.name}: {e}")
                    continue
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                logger.debug(f"UCI <- {self.name}: {line}")
                event = parse_line(line)
                if isinstance(event, EngineId):
                    self.engine_info[event.field] = event.value
                elif isinstance(event, EngineOption):
                    self.engine_options[event.name] = event
                elif isinstance(event, Unrecognized):
                    self.unrecognized.append(event)
                    self.unrecognized_count += 1
                    logger.info(str(ProtocolViolation(f"{self.name}: {event.reason}: {event.raw!r}")))
                self._events.put_nowait(event)
        finally:
            self._events.put_nowait(_EOF)

    async def __aenter__(self):
        await self.spawn()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.terminate()
