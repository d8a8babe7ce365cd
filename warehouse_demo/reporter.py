from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from warehouse_demo.domain.models import AlertHistoryEntry, PipelineModeName, PipelineRun


def speedup(runs: Sequence[PipelineRun]) -> Optional[float]:
    """
    Sequential elapsed divided by concurrent elapsed, when both modes ran.
    """
    by_mode = {r.mode: r for r in runs}
    sequential = by_mode.get(PipelineModeName.SEQUENTIAL)
    concurrent = by_mode.get(PipelineModeName.CONCURRENT)
    if sequential is None or concurrent is None or not concurrent.elapsed_seconds:
        return None
    return sequential.elapsed_seconds / concurrent.elapsed_seconds


def print_runs(
    runs: Sequence[PipelineRun],
    profiles: Optional[Dict[str, Dict[str, Any]]] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Render pipeline runs as a rich table, with the speedup in the caption when
    both modes ran.
    """
    console = console or Console()

    if not runs:
        console.print("[yellow]No pipeline runs to display.[/yellow]")
        return

    ratio = speedup(runs)
    table = Table(
        title="Pipeline Runs",
        box=box.ROUNDED,
        caption=f"Concurrent speedup: {ratio:.2f}x" if ratio else None,
    )
    table.add_column("Mode", style="cyan", no_wrap=True)
    table.add_column("Workers", style="magenta")
    table.add_column("Elapsed (s)", justify="right", style="bold green")
    table.add_column("Peak Memory (MB)", justify="right", style="yellow")
    table.add_column("CPU %", justify="right", style="red")
    table.add_column("Summary")

    profiles = profiles or {}
    for run in runs:
        profile = profiles.get(run.mode.value, {})
        mem_bytes = profile.get("peak_rss_bytes")
        cpu = profile.get("cpu_percent")
        table.add_row(
            run.mode.value,
            ", ".join(run.workers),
            f"{run.elapsed_seconds:.1f}",
            f"{mem_bytes / (1024 * 1024):.2f}" if mem_bytes else "N/A",
            f"{cpu:.1f}" if cpu is not None else "N/A",
            run.summary,
        )

    console.print(table)


def print_alert_history(
    entries: Sequence[AlertHistoryEntry], console: Optional[Console] = None
) -> None:
    console = console or Console()

    if not entries:
        console.print("[yellow]No alert evaluations recorded.[/yellow]")
        return

    table = Table(title="Alert History", box=box.ROUNDED, caption="Newest first")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Scheduled", style="dim")
    table.add_column("Trigger", style="blue")
    table.add_column("State", style="bold")
    table.add_column("Error", style="red")

    styles = {"TRIGGERED": "bold red", "CONDITION_FALSE": "green", "FAILED": "magenta"}
    for entry in entries:
        state = entry.state.value
        table.add_row(
            entry.name,
            entry.scheduled_time.isoformat(timespec="seconds"),
            entry.trigger.value,
            f"[{styles[state]}]{state}[/{styles[state]}]",
            entry.error or "",
        )

    console.print(table)


def print_alerts(rows: List[Dict[str, Any]], console: Optional[Console] = None) -> None:
    """Render `AlertEngine.show_alerts()` output."""
    console = console or Console()

    table = Table(title="Alerts", box=box.ROUNDED)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("State")
    table.add_column("Schedule", style="blue")
    table.add_column("Condition", style="magenta")
    for row in rows:
        table.add_row(row["name"], row["state"], row["schedule"], row["condition"])

    console.print(table)


def print_productivity(productivity: Any, console: Optional[Console] = None) -> None:
    """
    Render merge and routing results (an orchestrator ProductivityReport).
    """
    console = console or Console()

    merge = productivity.merge
    console.print(
        f"[bold]MERGE BY NAME[/bold] columns=({', '.join(merge.columns)}) "
        f"rows affected={merge.rows_affected}"
    )

    table = Table(title="Value Tiers", box=box.ROUNDED)
    table.add_column("Category", style="cyan")
    table.add_column("Count", justify="right", style="magenta")
    table.add_column("Total", justify="right", style="bold green")
    for tier in productivity.tiers:
        table.add_row(tier.category, str(tier.count), f"{tier.total:,.2f}")

    console.print(table)


def print_report(report: Any, console: Optional[Console] = None) -> None:
    """Render a full orchestrator DemoReport."""
    console = console or Console()
    print_runs(report.runs, report.profiles, console=console)
    if report.alerts:
        print_alerts(report.alerts, console=console)
    if report.alert_history:
        print_alert_history(report.alert_history, console=console)
    if report.productivity is not None:
        print_productivity(report.productivity, console=console)


__all__ = [
    "print_alert_history",
    "print_alerts",
    "print_productivity",
    "print_report",
    "print_runs",
    "speedup",
]
