"""Tests for UCI line parsing and command construction."""

from ucibench.engines.uci_protocol import (BestMove, EngineId, EngineOption, Info,
                                           ReadyOk, UciOk, Unrecognized, go_command,
                                           parse_line, position_command,
                                           setoption_command)
from ucibench.metrics import Score, SearchLimit


class TestParseLine:
    """Every engine line maps to exactly one event."""

    def test_handshake_acknowledgments(self):
        assert parse_line("uciok") == UciOk()
        assert parse_line("readyok\n") == ReadyOk()

    def test_id_lines_keep_spaces(self):
        assert parse_line("id name Stockfish 16.1") == EngineId("name", "Stockfish 16.1")
        assert parse_line("id author the Stockfish developers") == EngineId("author", "the Stockfish developers")

    def test_option_lines(self):
        assert parse_line("option name Hash type spin default 16 min 1 max 1024") == \
            EngineOption(name="Hash", type="spin", default="16")
        assert parse_line("option name Clear Hash type button") == \
            EngineOption(name="Clear Hash", type="button", default=None)

    def test_full_info_line(self):
        event = parse_line("info depth 12 seldepth 18 multipv 1 score cp 35 lowerbound "
                           "nodes 123456 nps 987654 hashfull 12 time 125 pv e2e4 e7e5 g1f3")
        assert isinstance(event, Info)
        assert event.depth == 12
        assert event.seldepth == 18
        assert event.multipv == 1
        assert event.score == Score(cp=35)
        assert event.bound == "lowerbound"
        assert event.nodes == 123456
        assert event.nps == 987654
        assert event.hashfull == 12
        assert event.time == 125
        assert event.pv == ("e2e4", "e7e5", "g1f3")
        assert event.unparsed == ()
        assert event.is_progress

    def test_pv_stops_at_next_keyword(self):
        event = parse_line("info pv e2e4 e7e5 nodes 400 time 3")
        assert event.pv == ("e2e4", "e7e5")
        assert event.nodes == 400
        assert event.time == 3

    def test_mate_score(self):
        event = parse_line("info depth 9 score mate -3 pv a1a2")
        assert event.score == Score(mate=-3)
        assert event.score.is_mate

    def test_info_string_consumes_rest_of_line(self):
        event = parse_line("info string NNUE evaluation using nn.bin nodes 5")
        assert event.string == "NNUE evaluation using nn.bin nodes 5"
        assert event.nodes is None
        assert not event.is_progress

    def test_malformed_info_tokens_are_kept(self):
        event = parse_line("info depth x nodes 10 foo")
        assert isinstance(event, Info)
        assert event.depth is None
        assert event.nodes == 10
        assert event.unparsed == ("depth", "x", "foo")

    def test_bestmove(self):
        assert parse_line("bestmove e2e4 ponder e7e5") == BestMove("e2e4", "e7e5")
        assert parse_line("bestmove g1f3") == BestMove("g1f3", None)
        assert parse_line("bestmove (none)") == BestMove(None)
        assert parse_line("bestmove 0000").move is None

    def test_bestmove_without_move_is_unrecognized(self):
        event = parse_line("bestmove")
        assert isinstance(event, Unrecognized)
        assert event.raw == "bestmove"

    def test_unknown_line(self):
        event = parse_line("Stockfish 16 by the Stockfish developers")
        assert isinstance(event, Unrecognized)
        assert event.raw == "Stockfish 16 by the Stockfish developers"
        assert "unknown keyword" in event.reason

    def test_empty_line(self):
        event = parse_line("   ")
        assert isinstance(event, Unrecognized)
        assert event.reason == "empty line"


class TestCommands:
    def test_position_command(self):
        fen = "8/5pk1/6p1/7p/7P/6P1/5PK1/8 w - - 0 1"
        assert position_command(fen) == f"position fen {fen}"
        assert position_command(fen, ("g2f3", "g7f6")) == f"position fen {fen} moves g2f3 g7f6"

    def test_go_command(self):
        assert go_command(SearchLimit.fixed_depth(8)) == "go depth 8"
        assert go_command(SearchLimit.movetime(500)) == "go movetime 500"

    def test_setoption_command(self):
        assert setoption_command("Hash", 16) == "setoption name Hash value 16"
        assert setoption_command("Ponder", False) == "setoption name Ponder value false"
        assert setoption_command("UCI_Chess960", True) == "setoption name UCI_Chess960 value true"
