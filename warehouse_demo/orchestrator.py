"""
Orchestrator for the warehouse features demo.

Runs the fixed demo sequence against an explicit store handle:

    setup -> sequential pipeline -> concurrent pipeline
          -> alerts (define, resume, test, suspend) -> productivity statements

Usage (example from CLI):
    from warehouse_demo.orchestrator import RunConfig, run_demo

    report = run_demo(RunConfig(latency_seconds=2, persist=False))
    for run in report.runs:
        print(run.summary)

Outputs are saved to `results/` by default:
- `results/latest.json` (last run)
- `results/run-<timestamp>.json` (timestamped archive)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from warehouse_demo.alerts.engine import AlertEngine
from warehouse_demo.alerts.notify import NotificationSink, build_notifier
from warehouse_demo.alerts.rules import HIGH_SALES_ALERT, LOW_INVENTORY_ALERT, default_rules
from warehouse_demo.config import FailurePolicy, Settings, get_settings
from warehouse_demo.domain.models import (
    AlertHistoryEntry,
    AlertRule,
    AlertState,
    PipelineModeName,
    PipelineRun,
)
from warehouse_demo.domain.tables import (
    ALERT_HISTORY,
    DOMAINS,
    SEED_ROWS,
    processed_table,
    source_table,
)
from warehouse_demo.errors import ConfigError, PipelinePhaseError, SetupPhaseError
from warehouse_demo.infrastructure.db_factory import ensure_database
from warehouse_demo.infrastructure.store import WarehouseStore
from warehouse_demo.pipelines.abstract import PipelineMode
from warehouse_demo.pipelines.concurrent import ConcurrentPipeline
from warehouse_demo.pipelines.sequential import SequentialPipeline
from warehouse_demo.pipelines.worker import get_worker, install_procedures, simulate_worker
from warehouse_demo.productivity import (
    VALUE_TIER_ROUTES,
    MergeResult,
    RoutingSummary,
    merge_by_name,
    multi_table_insert,
    prepare_merge_demo,
    prepare_routing_demo,
    value_tier_summary,
)
from warehouse_demo.utils.logging import get_logger
from warehouse_demo.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)


# ---------------------------------------------------------------------- #
# Demo operations
# ---------------------------------------------------------------------- #


def setup(
    store: WarehouseStore,
    settings: Optional[Settings] = None,
    latency_seconds: Optional[float] = None,
) -> None:
    """
    (Re)create the demo schema: source and processed tables per domain, one
    seed row per source table, and one worker procedure per domain.

    Safe to re-run; tables are replaced, so each source ends with exactly one row.
    """
    settings = settings or get_settings()
    latency = settings.worker_latency_seconds if latency_seconds is None else latency_seconds

    log.info("[SETUP] Creating schema and tables", extra={"schema": store.schema})
    store.ensure_schema()
    for domain in DOMAINS:
        source = source_table(domain)
        store.replace_table(source)
        store.replace_table(processed_table(domain))
        store.insert_rows(source.name, source.column_names, [SEED_ROWS[domain]])
    store.ensure_table(ALERT_HISTORY)
    install_procedures(store, latency, DOMAINS)
    log.info(
        "[SETUP] Complete",
        extra={"domains": list(DOMAINS), "latency_seconds": latency},
    )


def run_sequential(store: WarehouseStore, domains: Sequence[str] = DOMAINS) -> PipelineRun:
    run = SequentialPipeline(domains).execute(store)
    log.info(run.summary, extra={"mode": run.mode.value, "elapsed": round(run.elapsed_seconds, 2)})
    return run


def run_concurrent(
    store: WarehouseStore,
    domains: Sequence[str] = DOMAINS,
    timeout_seconds: Optional[float] = None,
    failure_policy: Optional[FailurePolicy] = None,
) -> PipelineRun:
    run = ConcurrentPipeline(domains, timeout_seconds, failure_policy).execute(store)
    log.info(run.summary, extra={"mode": run.mode.value, "elapsed": round(run.elapsed_seconds, 2)})
    return run


def define_alert(engine: AlertEngine, rule: AlertRule) -> AlertRule:
    return engine.register_alert(rule)


def _write_processed(store: WarehouseStore, domain: str, row_id: int, value: Any) -> None:
    worker = get_worker(domain)
    columns = ("id",) + worker.value_columns
    store.insert_rows(worker.processed_table, columns, [(row_id, value)])


def _write_and_observe(
    store: WarehouseStore, engine: AlertEngine, alert: str, domain: str, row_id: int, value: Any
) -> Optional[AlertHistoryEntry]:
    before = engine.last_evaluation(alert)
    _write_processed(store, domain, row_id, value)
    after = engine.last_evaluation(alert)
    if after is None or after is before:
        log.warning(
            "Write hook did not evaluate; is the alert active?",
            extra={"alert": alert, "domain": domain},
        )
        return None
    return after


def test_alerts(store: WarehouseStore, engine: AlertEngine) -> List[AlertHistoryEntry]:
    """
    Exercise both default rules in order and return the evaluations observed:

    1. sales 2000, manual evaluation -> no alert
    2. sales 7500, manual evaluation -> "High Sales Alert"
    3. inventory 50 -> write hook, no alert
    4. inventory 5 -> write hook fires "URGENT: Low Inventory Alert"

    Both rules are expected to be registered and active.
    """
    sales_alert = HIGH_SALES_ALERT
    inventory_alert = LOW_INVENTORY_ALERT
    observed: List[Optional[AlertHistoryEntry]] = []

    log.info("[ALERT TEST] Normal sales", extra={"alert": sales_alert, "amount": 2000})
    _write_processed(store, "sales", 10, 2000)
    observed.append(engine.evaluate_alert_now(sales_alert))

    log.info("[ALERT TEST] High sales", extra={"alert": sales_alert, "amount": 7500})
    _write_processed(store, "sales", 11, 7500)
    observed.append(engine.evaluate_alert_now(sales_alert))

    log.info("[ALERT TEST] Normal inventory", extra={"alert": inventory_alert, "qty": 50})
    observed.append(_write_and_observe(store, engine, inventory_alert, "inventory", 10, 50))

    log.info("[ALERT TEST] Low inventory", extra={"alert": inventory_alert, "qty": 5})
    observed.append(_write_and_observe(store, engine, inventory_alert, "inventory", 11, 5))

    return [entry for entry in observed if entry is not None]


# Keep pytest from collecting it when imported into a test module.
test_alerts.__test__ = False  # type: ignore[attr-defined]


@dataclass
class ProductivityReport:
    merge: MergeResult
    routed: Dict[str, int]
    tiers: List[RoutingSummary]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "merge": {
                "columns": list(self.merge.columns),
                "rows_affected": self.merge.rows_affected,
            },
            "routed": dict(self.routed),
            "tiers": [
                {"category": t.category, "count": t.count, "total": str(t.total)}
                for t in self.tiers
            ],
        }


def run_productivity(store: WarehouseStore) -> ProductivityReport:
    """
    Merge `sales_updates` into `source_sales` by column name, then route
    `sales_staging` into the three value tiers. Every matching tier receives
    the row (INSERT ALL), so HIGH rows also land in the MEDIUM tier.
    """
    log.info("[PRODUCTIVITY] Merge by name")
    prepare_merge_demo(store)
    merge = merge_by_name(store, source_table("sales").name, "sales_updates", key="id")

    log.info("[PRODUCTIVITY] Multi-table insert")
    prepare_routing_demo(store)
    routed = multi_table_insert(store, "sales_staging", VALUE_TIER_ROUTES, mode="all")
    return ProductivityReport(merge=merge, routed=routed, tiers=value_tier_summary(store))


# ---------------------------------------------------------------------- #
# Full demo run
# ---------------------------------------------------------------------- #


@dataclass
class RunConfig:
    """
    Options for `run_demo`. Unset values fall back to settings.
    """

    modes: Sequence[str] = (PipelineModeName.SEQUENTIAL.value, PipelineModeName.CONCURRENT.value)
    persist: bool = True
    results_dir: Optional[str] = None
    latency_seconds: Optional[float] = None
    timeout_seconds: Optional[float] = None
    failure_policy: Optional[FailurePolicy] = None
    run_alerts: bool = True
    run_productivity: bool = True
    notification_sink: Optional[NotificationSink] = None


@dataclass
class DemoReport:
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    runs: List[PipelineRun] = field(default_factory=list)
    profiles: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    alerts: List[Dict[str, Any]] = field(default_factory=list)
    alert_history: List[AlertHistoryEntry] = field(default_factory=list)
    productivity: Optional[ProductivityReport] = None

    def run(self, mode: str) -> Optional[PipelineRun]:
        return next((r for r in self.runs if r.mode.value == mode), None)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "runs": [
                {
                    **run.model_dump(mode="json"),
                    "summary": run.summary,
                    "profile": self.profiles.get(run.mode.value),
                }
                for run in self.runs
            ],
            "alerts": [dict(row) for row in self.alerts],
            "alert_history": [e.model_dump(mode="json") for e in self.alert_history],
            "productivity": self.productivity.as_dict() if self.productivity else None,
        }


def _pipeline_factories(config: RunConfig) -> Dict[str, Callable[[], PipelineMode]]:
    """Registry of available pipeline modes."""
    return {
        PipelineModeName.SEQUENTIAL.value: lambda: SequentialPipeline(),
        PipelineModeName.CONCURRENT.value: lambda: ConcurrentPipeline(
            timeout_seconds=config.timeout_seconds, failure_policy=config.failure_policy
        ),
    }


def available_modes() -> List[str]:
    """List available pipeline mode names."""
    return [m.value for m in PipelineModeName]


def _resolve_mode(name: str, config: RunConfig) -> PipelineMode:
    factories = _pipeline_factories(config)
    if name not in factories:
        raise ConfigError(f"Unknown pipeline mode '{name}'. Available: {', '.join(factories)}")
    return factories[name]()


def _persist_results(payload: dict, results_dir: Path) -> None:
    results_dir.mkdir(parents=True, exist_ok=True)
    latest_path = results_dir / "latest.json"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive_path = results_dir / f"run-{timestamp}.json"

    for path in (latest_path, archive_path):
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True, default=str)

    log.info("Results persisted", extra={"latest": str(latest_path), "archive": str(archive_path)})


def _profiled_run(mode: PipelineMode, store: WarehouseStore) -> Tuple[PipelineRun, ProfileStats]:
    log.info(f"[PIPELINE START] {mode.name}", extra={"mode": mode.name})
    try:
        with profile_block(mode.name) as stats:
            run = mode.execute(store)
    except Exception as exc:
        log.exception(
            f"[PIPELINE FAILED] {mode.name}",
            extra={"mode": mode.name, "elapsed": round(stats.duration_seconds, 2)},
        )
        raise PipelinePhaseError(mode.name, stats.duration_seconds, exc) from exc

    log.info(
        f"[PIPELINE SUCCESS] {run.summary}",
        extra={
            "mode": mode.name,
            "elapsed": round(run.elapsed_seconds, 2),
            "cpu_percent": stats.cpu_percent,
        },
    )
    return run, stats


def _run_alerts_phase(
    store: WarehouseStore, settings: Settings, config: RunConfig, report: DemoReport
) -> None:
    engine = AlertEngine(store, build_notifier(settings, sink=config.notification_sink))
    try:
        engine.ensure_history_table()
        rules = default_rules(settings)
        for rule in rules:
            define_alert(engine, rule)
        for rule in rules:
            engine.set_alert_state(rule.name, AlertState.ACTIVE)
        report.alerts = engine.show_alerts()
        test_alerts(store, engine)
        report.alert_history = engine.history()
    finally:
        engine.close()


def run_demo(config: Optional[RunConfig] = None, store: Optional[WarehouseStore] = None) -> DemoReport:
    """
    Run the whole demo and optionally persist the report.

    Parameters
    ----------
    config : RunConfig | None
        Modes and overrides. Defaults to both modes, alerts and productivity.
    store : WarehouseStore | None
        Store handle to use. When omitted the database is created if
        missing, and a store is built from settings and closed at the end
        of the run.

    Returns
    -------
    DemoReport
        Pipeline runs with their profiles, alert history and productivity results.

    Raises
    ------
    SetupPhaseError
        Setup failed before any timing was taken.
    PipelinePhaseError
        A pipeline run failed; carries the elapsed time up to the failure.
    """
    settings = get_settings()
    config = config or RunConfig()
    owns_store = store is None
    if store is None:
        ensure_database(settings)
        store = WarehouseStore.from_settings(settings)

    report = DemoReport()
    log.info(f"{'=' * 60}")
    log.info("[DEMO START]", extra={"modes": list(config.modes), "schema": store.schema})
    log.info(f"{'=' * 60}")
    try:
        try:
            setup(store, settings, config.latency_seconds)
        except Exception as exc:
            log.exception("[SETUP FAILED]")
            raise SetupPhaseError(f"Setup failed: {exc}") from exc

        for name in config.modes:
            mode = _resolve_mode(name, config)
            run, stats = _profiled_run(mode, store)
            report.runs.append(run)
            report.profiles[name] = stats.as_dict()

        if config.run_alerts:
            log.info("[ALERTS] Define, resume, test, suspend")
            _run_alerts_phase(store, settings, config, report)

        if config.run_productivity:
            report.productivity = run_productivity(store)
    finally:
        if owns_store:
            store.close()

    if config.persist:
        _persist_results(report.as_dict(), Path(config.results_dir or settings.results_dir))

    log.info(
        "[DEMO COMPLETE]",
        extra={"runs": [r.summary for r in report.runs], "alerts": len(report.alert_history)},
    )
    return report


__all__ = [
    "DemoReport",
    "ProductivityReport",
    "RunConfig",
    "available_modes",
    "define_alert",
    "run_concurrent",
    "run_demo",
    "run_productivity",
    "run_sequential",
    "setup",
    "simulate_worker",
    "test_alerts",
]
