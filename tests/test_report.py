"""Rendering of snapshots and diff reports."""

import io

from rich.console import Console

from ucibench.diff import DiffEngine
from ucibench.report import Fields, diff_table, print_diff, print_snapshot, results_table

from conftest import make_result, make_snapshot


def _console():
    return Console(file=io.StringIO(), width=200, color_system=None)


class TestFields:
    def test_default_columns(self):
        assert Fields.select().columns() == ["nodes", "time", "nps", "best_move"]

    def test_explicit_flags_replace_defaults(self):
        assert Fields.select(nodes=True, score=True).columns() == ["nodes", "score"]

    def test_all_wins(self):
        assert Fields.select(show_all=True, nodes=True) == Fields.all()
        assert len(Fields.all().columns()) == 7


def test_results_table_has_total_row(sample_snapshot):
    table = results_table(sample_snapshot, Fields.all())
    assert table.row_count == len(sample_snapshot) + 1
    # Position, Status and seven metric columns.
    assert len(table.columns) == 9


def test_print_snapshot_lists_failures(sample_snapshot):
    console = _console()
    print_snapshot(sample_snapshot, console=console)
    output = console.file.getvalue()
    assert "TestEngine 1.0" in output
    assert "152,000" in output
    assert "timed_out - boom" in output


def test_print_diff_verdict_and_findings():
    baseline = make_snapshot(make_result("a", nodes=100000), make_result("gone"))
    candidate = make_snapshot(make_result("a", nodes=150000, best_move="d2d4"), make_result("new"))
    report = DiffEngine().diff(baseline, candidate)

    table = diff_table(report, Fields())
    assert table.row_count == 3

    console = _console()
    print_diff(report, Fields.all(), console=console)
    output = console.file.getvalue()
    assert "+50.00%" in output
    assert "Removed: gone" in output
    assert "Added: new" in output
    assert "Regression a: nodes" in output
    assert "best_move: e2e4 -> d2d4" in output
    assert "Verdict: FAIL" in output


def test_print_diff_pass(sample_snapshot):
    console = _console()
    print_diff(DiffEngine().diff(sample_snapshot, sample_snapshot), console=console)
    assert "Verdict: PASS" in console.file.getvalue()
