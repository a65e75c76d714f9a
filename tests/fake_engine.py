"""Scripted UCI engine used by the test suite.

Plays the first legal move (sorted by UCI string) and reports node counts that
depend only on the requested depth, so runs are reproducible.
"""

import argparse
import sys
import time

import chess


def emit(line):
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


def parse_args(argv):
    parser = argparse.ArgumentParser()
    parser.add_argument("--name", default="FakeEngine 1.0")
    parser.add_argument("--nodes-scale", type=float, default=1.0)
    parser.add_argument("--cp", type=int, default=35)
    parser.add_argument("--pick", choices=("first", "last"), default="first")
    parser.add_argument("--hang-on", default=None, help="Never answer go for FENs containing this text")
    parser.add_argument("--crash-on", default=None, help="Exit on go for FENs containing this text")
    parser.add_argument("--crash-at-start", action="store_true")
    parser.add_argument("--no-uciok", action="store_true")
    parser.add_argument("--ignore-quit", action="store_true")
    parser.add_argument("--noisy", action="store_true")
    parser.add_argument("--no-info", action="store_true")
    return parser.parse_args(argv)


def search(args, board, tokens):
    if "depth" in tokens:
        depth = int(tokens[tokens.index("depth") + 1])
        elapsed = 10 * depth
    else:
        depth = 5
        elapsed = int(tokens[tokens.index("movetime") + 1])

    moves = sorted(m.uci() for m in board.legal_moves)
    best = (moves[0] if args.pick == "first" else moves[-1]) if moves else "(none)"

    if args.noisy:
        emit("info string searching with the fake engine")
        emit("totally bogus output")
    if not args.no_info:
        for d in range(1, depth + 1):
            nodes = int(1000 * d * d * args.nodes_scale)
            emit(f"info depth {d} seldepth {d + 2} multipv 1 score cp {args.cp} nodes {nodes} "
                 f"nps 500000 time {10 * d if d < depth else elapsed} pv {best}")
            if d == depth:
                emit(f"info depth {d} multipv 2 score cp -999 nodes 1 nps 1 time 1 pv {best}")
    emit(f"bestmove {best}")


def main(argv=None):
    args = parse_args(argv if argv is not None else sys.argv[1:])
    if args.crash_at_start:
        sys.exit(3)

    board = chess.Board()
    fen = chess.STARTING_FEN
    while True:
        raw = sys.stdin.readline()
        if not raw:
            break
        line = raw.strip()
        if not line:
            continue
        tokens = line.split()
        command = tokens[0]
        if command == "uci":
            emit(f"id name {args.name}")
            emit("id author ucibench tests")
            emit("option name Hash type spin default 16 min 1 max 1024")
            emit("option name Threads type spin default 1 min 1 max 64")
            if args.noisy:
                emit("welcome to the fake engine")
            if not args.no_uciok:
                emit("uciok")
        elif command == "isready":
            emit("readyok")
        elif command == "position":
            if len(tokens) > 1 and tokens[1] == "startpos":
                fen = chess.STARTING_FEN
            else:
                end = tokens.index("moves") if "moves" in tokens else len(tokens)
                fen = " ".join(tokens[2:end])
            board = chess.Board(fen)
        elif command == "go":
            if args.crash_on and args.crash_on in fen:
                sys.exit(4)
            if args.hang_on and args.hang_on in fen:
                continue
            search(args, board, tokens)
        elif command == "quit":
            if args.ignore_quit:
                while True:
                    time.sleep(1)
            return 0
    return 0


if __name__ == "__main__":
    sys.exit(main())
