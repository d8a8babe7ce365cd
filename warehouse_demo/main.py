from __future__ import annotations

import sys
from typing import Optional

import typer

from warehouse_demo.config import get_settings
from warehouse_demo.errors import DemoError
from warehouse_demo.infrastructure.db_factory import ensure_database
from warehouse_demo.infrastructure.store import WarehouseStore
from warehouse_demo.orchestrator import DemoReport, RunConfig, available_modes, run_demo, setup
from warehouse_demo.reporter import (
    print_alert_history,
    print_alerts,
    print_productivity,
    print_report,
    print_runs,
)
from warehouse_demo.utils.logging import configure_logging

app = typer.Typer(help="Warehouse features demo CLI.")


def _configure() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _run(config: RunConfig) -> DemoReport:
    try:
        return run_demo(config)
    except DemoError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} "
        f"schema={settings.db_schema} | latency={settings.worker_latency_seconds:g}s "
        f"timeout={settings.await_timeout_seconds:g}s policy={settings.failure_policy} | "
        f"alerts every {settings.alert_interval_seconds}s via {settings.notification_channel} "
        f"({settings.notification_sink})"
    )


@app.command("setup")
def setup_command(
    latency: Optional[float] = typer.Option(
        None, "--latency", "-l", help="Worker sleep in seconds (default from settings)."
    ),
) -> None:
    """
    Create the database, schema, tables, seed rows and worker procedures.
    """
    _configure()
    settings = get_settings()
    try:
        ensure_database(settings)
        with WarehouseStore.from_settings(settings) as store:
            setup(store, settings, latency)
    except DemoError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Setup complete in schema '{settings.db_schema}'.")


@app.command()
def pipeline(
    mode: str = typer.Option(
        "both", "--mode", "-m", help="Pipeline mode: sequential, concurrent or both."
    ),
    latency: Optional[float] = typer.Option(
        None, "--latency", "-l", help="Worker sleep in seconds (default from settings)."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Await-all barrier timeout in seconds."
    ),
    policy: Optional[str] = typer.Option(
        None, "--policy", help="Barrier failure policy: fail_fast or collect."
    ),
) -> None:
    """
    Run setup, then the selected pipeline mode(s), and print their timings.
    """
    _configure()
    modes = available_modes() if mode == "both" else [mode]
    if any(m not in available_modes() for m in modes):
        typer.echo(f"Unknown mode '{mode}'. Available: both, {', '.join(available_modes())}", err=True)
        raise typer.Exit(code=2)
    if policy is not None and policy not in ("fail_fast", "collect"):
        typer.echo(f"Unknown policy '{policy}'. Available: fail_fast, collect", err=True)
        raise typer.Exit(code=2)

    report = _run(
        RunConfig(
            modes=modes,
            persist=False,
            latency_seconds=latency,
            timeout_seconds=timeout,
            failure_policy=policy,
            run_alerts=False,
            run_productivity=False,
        )
    )
    print_runs(report.runs, report.profiles)


@app.command()
def alerts() -> None:
    """
    Run setup, then define, resume, test and suspend the two alert rules.
    """
    _configure()
    report = _run(RunConfig(modes=(), persist=False, run_productivity=False))
    print_alerts(report.alerts)
    print_alert_history(report.alert_history)


@app.command()
def productivity() -> None:
    """
    Run setup, then the merge-by-name and multi-table insert statements.
    """
    _configure()
    report = _run(RunConfig(modes=(), persist=False, run_alerts=False))
    if report.productivity is not None:
        print_productivity(report.productivity)


@app.command()
def demo(
    persist: bool = typer.Option(
        True, "--persist/--no-persist", help="Write the report to the results directory."
    ),
    latency: Optional[float] = typer.Option(
        None, "--latency", "-l", help="Worker sleep in seconds (default from settings)."
    ),
) -> None:
    """
    Run the complete demo: setup, both pipelines, alerts and productivity.
    """
    _configure()
    report = _run(RunConfig(persist=persist, latency_seconds=latency))
    print_report(report)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
