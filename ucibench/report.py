"""Terminal rendering of snapshots and diff reports with rich."""

from __future__ import annotations

from dataclasses import dataclass, fields as dc_fields
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from ucibench.diff import Classification, DiffCategory, DiffReport, MetricDelta, PositionDiff
from ucibench.metrics import BenchResult
from ucibench.snapshot import Snapshot

STATUS_STYLE = {"ok": "green", "failed": "bold red", "timed_out": "bold yellow"}
CLASS_STYLE = {
    Classification.IMPROVED: "green",
    Classification.REGRESSED: "bold red",
    Classification.UNCHANGED: "",
}


@dataclass
class Fields:
    """Which metric columns to show."""
    nodes: bool = True
    time: bool = True
    nps: bool = True
    depth: bool = False
    branching: bool = False
    score: bool = False
    best_move: bool = True

    @classmethod
    def all(cls) -> "Fields":
        return cls(**{f.name: True for f in dc_fields(cls)})

    @classmethod
    def select(cls, show_all: bool = False, **flags: bool) -> "Fields":
        """Explicit flags replace the default column set; ``show_all`` wins."""
        if show_all:
            return cls.all()
        if not any(flags.values()):
            return cls()
        return cls(**{f.name: bool(flags.get(f.name)) for f in dc_fields(cls)})

    def columns(self) -> List[str]:
        return [f.name for f in dc_fields(self) if getattr(self, f.name)]


# (header, metric attribute, formatter)
COLUMNS = {
    "nodes": ("Nodes", "nodes", lambda v: f"{int(v):,}"),
    "time": ("Time (ms)", "elapsed_ms", lambda v: f"{int(v):,}"),
    "nps": ("NPS", "nps", lambda v: f"{int(v):,}"),
    "depth": ("Depth", "depth", lambda v: str(int(v))),
    "branching": ("BF", "branching_factor", lambda v: f"{v:.2f}"),
}


def _score(result: Optional[BenchResult]) -> str:
    return str(result.score) if result is not None and result.score is not None else "-"


def _move(result: Optional[BenchResult]) -> str:
    return result.best_move if result is not None and result.best_move else "-"


def results_table(snapshot: Snapshot, fields: Optional[Fields] = None) -> Table:
    fields = fields or Fields()
    table = Table(title=f"{snapshot.engine_identifier} @ {snapshot.timestamp}", box=box.SIMPLE_HEAVY)
    table.add_column("Position", style="cyan", no_wrap=True)
    table.add_column("Status")
    for name in fields.columns():
        if name in COLUMNS:
            table.add_column(COLUMNS[name][0], justify="right")
    if fields.score:
        table.add_column("Score", justify="right")
    if fields.best_move:
        table.add_column("Best move", justify="right")

    for result in snapshot.results:
        row = [result.position_id, Text(result.status.value, style=STATUS_STYLE[result.status.value])]
        for name in fields.columns():
            if name in COLUMNS:
                _, attr, fmt = COLUMNS[name]
                row.append(fmt(getattr(result, attr)) if result.ok else "-")
        if fields.score:
            row.append(_score(result))
        if fields.best_move:
            row.append(_move(result))
        table.add_row(*row)

    totals = snapshot.totals
    table.add_section()
    total_row = ["TOTAL (ok only)", f"{sum(1 for r in snapshot if r.ok)}/{len(snapshot)}"]
    for name in fields.columns():
        if name == "nodes":
            total_row.append(f"{totals.nodes:,}")
        elif name == "time":
            total_row.append(f"{totals.elapsed_ms:,}")
        elif name == "nps":
            total_row.append(f"{totals.nps:,}")
        elif name in COLUMNS:
            total_row.append("")
    if fields.score:
        total_row.append("")
    if fields.best_move:
        total_row.append("")
    table.add_row(*total_row, style="bold")
    return table


def _delta_cell(delta: MetricDelta, fmt) -> Text:
    text = Text(f"{fmt(delta.baseline)} -> {fmt(delta.candidate)} ({delta.pct_display()})")
    text.stylize(CLASS_STYLE[delta.classification])
    return text


def _diff_row(pos: PositionDiff, fields: Fields) -> list:
    row: list = [pos.position_id]
    if pos.category is DiffCategory.COMPARED:
        verdict = "regressed" if pos.regressions else ("changed" if pos.functional else "ok")
        style = "bold red" if pos.regressions or pos.functional else "green"
        row.append(Text(verdict, style=style))
        for name in fields.columns():
            if name in COLUMNS:
                _, attr, fmt = COLUMNS[name]
                row.append(_delta_cell(pos.metrics[attr], fmt))
        kinds = {f.kind for f in pos.functional}
        if fields.score:
            row.append(Text(f"{_score(pos.baseline)} -> {_score(pos.candidate)}",
                            style="bold red" if "score" in kinds else ""))
        if fields.best_move:
            row.append(Text(f"{_move(pos.baseline)} -> {_move(pos.candidate)}",
                            style="bold red" if "best_move" in kinds else ""))
        return row

    if pos.category is DiffCategory.ERRORED:
        label = f"errored ({pos.baseline.status.value} -> {pos.candidate.status.value})"
        row.append(Text(label, style="bold yellow"))
    else:
        row.append(Text(pos.category.value, style="magenta"))
    filler = len([n for n in fields.columns() if n in COLUMNS]) + int(fields.score) + int(fields.best_move)
    row.extend("-" for _ in range(filler))
    return row


def diff_table(report: DiffReport, fields: Optional[Fields] = None, title: str = "Baseline -> Candidate") -> Table:
    fields = fields or Fields()
    table = Table(title=title, box=box.SIMPLE_HEAVY)
    table.add_column("Position", style="cyan", no_wrap=True)
    table.add_column("Result")
    for name in fields.columns():
        if name in COLUMNS:
            table.add_column(COLUMNS[name][0], justify="right")
    if fields.score:
        table.add_column("Score", justify="right")
    if fields.best_move:
        table.add_column("Best move", justify="right")

    for pos in report.positions:
        table.add_row(*_diff_row(pos, fields))
    return table


def print_snapshot(snapshot: Snapshot, fields: Optional[Fields] = None, console: Optional[Console] = None) -> None:
    console = console or Console()
    console.print(results_table(snapshot, fields))
    for result in snapshot.failures():
        console.print(f"[yellow]{result.position_id}[/yellow]: {result.status.value} - {result.error or 'no details'}",
                      highlight=False)


def print_diff(report: DiffReport, fields: Optional[Fields] = None, console: Optional[Console] = None,
               title: str = "Baseline -> Candidate") -> None:
    console = console or Console()
    console.print(diff_table(report, fields, title=title))

    agg = report.aggregate
    if report.compared:
        console.print("Aggregate over compared positions: "
                      + ", ".join(f"{m} {d.pct_display()}" for m, d in agg.items()), highlight=False)
    if report.removed:
        console.print(f"[magenta]Removed:[/magenta] {', '.join(report.removed)}", highlight=False)
    if report.added:
        console.print(f"[magenta]Added:[/magenta] {', '.join(report.added)}", highlight=False)
    if report.errored:
        console.print(f"[yellow]Errored:[/yellow] {', '.join(report.errored)}", highlight=False)
    for position_id, metric in report.regressions:
        console.print(f"[red]Regression[/red] {position_id}: {metric}", highlight=False)
    for position_id, difference in report.functional_differences:
        console.print(f"[red]Functional difference[/red] {position_id}: {difference}", highlight=False)

    style = "bold green" if report.passed else "bold red"
    console.print(Text(f"Verdict: {report.verdict.upper()}", style=style))
