"""Tests for the UCI client against the scripted fake engine."""

import asyncio
import time

import pytest

from ucibench.engines import ClientState, ReadyOk, UCIClient
from ucibench.metrics import Score, SearchLimit
from ucibench.utils.error_utils import EngineCrashed, EngineTimeout, ProcessSpawnError

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


@pytest.mark.error_handling
class TestSpawnErrors:
    def test_missing_binary(self, tmp_path):
        client = UCIClient(str(tmp_path / "no-such-engine"))
        with pytest.raises(ProcessSpawnError, match="not found"):
            asyncio.run(client.spawn())

    def test_not_executable(self, tmp_path):
        path = tmp_path / "engine.txt"
        path.write_text("not an engine\n")
        client = UCIClient(str(path))
        with pytest.raises(ProcessSpawnError, match="not an executable"):
            asyncio.run(client.spawn())

    def test_not_on_path(self):
        client = UCIClient("ucibench-definitely-missing-engine")
        with pytest.raises(ProcessSpawnError, match="PATH"):
            asyncio.run(client.spawn())


@pytest.mark.integration
class TestLifecycle:
    def test_handshake_records_identity_and_options(self, engine_path):
        async def scenario():
            client = UCIClient(engine_path, options={"Hash": 32})
            await client.spawn()
            try:
                assert client.state is ClientState.READY
                assert client.is_alive()
                assert client.name == "FakeEngine 1.0"
                assert client.engine_info["author"] == "ucibench tests"
                assert set(client.engine_options) == {"Hash", "Threads"}
                assert client.engine_options["Hash"].default == "16"
            finally:
                await client.terminate()
            return client

        client = asyncio.run(scenario())
        assert client.state is ClientState.TERMINATED
        assert not client.is_alive()
        assert client.pid is None

    def test_terminate_is_idempotent(self, engine_path):
        async def scenario():
            client = UCIClient(engine_path)
            await client.spawn()
            await client.terminate()
            await client.terminate()
            return client.state

        assert asyncio.run(scenario()) is ClientState.TERMINATED

    def test_spawn_twice_is_rejected(self, engine_path):
        async def scenario():
            async with UCIClient(engine_path) as client:
                with pytest.raises(RuntimeError):
                    await client.spawn()

        asyncio.run(scenario())

    def test_await_event_with_predicate(self, engine_path):
        async def scenario():
            async with UCIClient(engine_path) as client:
                client.send_command("isready")
                return await client.await_event(lambda event: isinstance(event, ReadyOk), 5.0)

        assert asyncio.run(scenario()) == ReadyOk()

    def test_engine_ignoring_quit_is_killed(self, make_engine):
        path = make_engine("--ignore-quit")

        async def scenario():
            client = UCIClient(path, quit_grace=0.3)
            await client.spawn()
            process = client._process
            started = time.monotonic()
            await client.terminate()
            return process.returncode, time.monotonic() - started

        returncode, elapsed = asyncio.run(scenario())
        assert returncode is not None
        assert elapsed < 5.0


@pytest.mark.integration
class TestSearch:
    def test_search_reports_last_primary_info(self, engine_path):
        async def scenario():
            async with UCIClient(engine_path) as client:
                return await client.search(START_FEN, SearchLimit.fixed_depth(4), timeout=10.0)

        outcome = asyncio.run(scenario())
        # First legal move in sorted UCI order.
        assert outcome.best_move == "a2a3"
        assert outcome.info.depth == 4
        assert outcome.info.nodes == 16000
        assert outcome.info.nps == 500000
        assert outcome.info.time == 40
        assert outcome.info.score == Score(cp=35)
        assert outcome.elapsed_ms >= 0

    def test_consecutive_searches_reuse_the_engine(self, engine_path):
        async def scenario():
            async with UCIClient(engine_path) as client:
                pid = client.pid
                first = await client.search(START_FEN, SearchLimit.fixed_depth(2), timeout=10.0)
                second = await client.search(START_FEN, SearchLimit.movetime(30), timeout=10.0)
                return pid == client.pid, first, second

        same_process, first, second = asyncio.run(scenario())
        assert same_process
        assert first.info.nodes == 4000
        assert second.info.time == 30

    def test_unrecognized_lines_are_counted_not_fatal(self, make_engine):
        path = make_engine("--noisy")

        async def scenario():
            async with UCIClient(path) as client:
                outcome = await client.search(START_FEN, SearchLimit.fixed_depth(2), timeout=10.0)
                return client.unrecognized_count, [u.raw for u in client.unrecognized], outcome

        count, raws, outcome = asyncio.run(scenario())
        assert count == 2
        assert "welcome to the fake engine" in raws
        assert "totally bogus output" in raws
        assert outcome.best_move == "a2a3"

    def test_search_requires_ready_engine(self, engine_path):
        client = UCIClient(engine_path)
        with pytest.raises(EngineCrashed):
            asyncio.run(client.search(START_FEN, SearchLimit.fixed_depth(1), timeout=1.0))


@pytest.mark.integration
@pytest.mark.error_handling
class TestFailures:
    def test_handshake_timeout(self, make_engine):
        path = make_engine("--no-uciok")
        client = UCIClient(path, handshake_timeout=0.5, quit_grace=0.5)
        with pytest.raises(EngineTimeout):
            asyncio.run(client.spawn())
        assert client.state is ClientState.TERMINATED
        assert not client.is_alive()

    def test_crash_during_handshake(self, make_engine):
        path = make_engine("--crash-at-start")
        client = UCIClient(path, handshake_timeout=5.0)
        with pytest.raises(EngineCrashed):
            asyncio.run(client.spawn())
        assert client.state is ClientState.TERMINATED

    def test_search_timeout(self, make_engine):
        path = make_engine("--hang-on", "rnbqkbnr/pppppppp")

        async def scenario():
            client = UCIClient(path, quit_grace=0.5)
            await client.spawn()
            try:
                with pytest.raises(EngineTimeout):
                    await client.search(START_FEN, SearchLimit.fixed_depth(3), timeout=0.5)
                assert client.state is ClientState.SEARCHING
            finally:
                await client.terminate()
            return client

        assert asyncio.run(scenario()).state is ClientState.TERMINATED

    def test_crash_during_search(self, make_engine):
        path = make_engine("--crash-on", "rnbqkbnr/pppppppp")

        async def scenario():
            async with UCIClient(path) as client:
                with pytest.raises(EngineCrashed):
                    await client.search(START_FEN, SearchLimit.fixed_depth(3), timeout=5.0)
                # Later waits fail the same way.
                with pytest.raises(EngineCrashed):
                    await client.await_event(ReadyOk, 1.0)

        asyncio.run(scenario())
