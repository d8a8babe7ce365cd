"""
Alert engine: registers rules, keeps their watermarks, and evaluates them.

Evaluation paths:

- Periodic rules get an APScheduler interval job while active.
- Event-triggered rules get a write listener on their watched table while
  active; the store fires it right after the insert commits.
- `evaluate_alert_now` bypasses both, regardless of state (EXECUTE ALERT).

An evaluation checks `condition AND timestamp >= watermark`. The evaluation
time is read from the engine clock before probing, both under the store's
write lock, so no insert sits between its stamp and its commit; when the
evaluation succeeds the watermark advances to it, so rows already seen do
not fire again.
Every evaluation is appended to the history (in memory and `alert_history`).
"""

from __future__ import annotations

import fnmatch
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from warehouse_demo.alerts.notify import Notifier
from warehouse_demo.domain.models import (
    AlertHistoryEntry,
    AlertOutcome,
    AlertRule,
    AlertState,
    AlertTrigger,
    Periodic,
)
from warehouse_demo.domain.tables import ALERT_HISTORY
from warehouse_demo.errors import DemoError, EngineError
from warehouse_demo.infrastructure.store import WarehouseStore, WriteListener
from warehouse_demo.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class _Registration:
    rule: AlertRule
    state: AlertState = AlertState.SUSPENDED
    watermark: Optional[datetime] = None
    job_id: Optional[str] = None
    listener: Optional[WriteListener] = None
    last_entry: Optional[AlertHistoryEntry] = None


class AlertEngine:
    """
    Minimal timer/write-hook evaluator for declarative alert rules.

    Parameters
    ----------
    store : WarehouseStore
        Handle used for the engine clock, condition checks and history rows.
    notifier : Notifier
        Channel registry plus delivery sink for rule actions.
    scheduler : BaseScheduler, optional
        Scheduler for periodic rules. A UTC BackgroundScheduler is created
        (and later shut down) by the engine when omitted.
    persist_history : bool
        Whether evaluations are also written to the `alert_history` table.
    """

    def __init__(
        self,
        store: WarehouseStore,
        notifier: Notifier,
        scheduler: Optional[BaseScheduler] = None,
        persist_history: bool = True,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.persist_history = persist_history
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._rules: Dict[str, _Registration] = {}
        self._history: List[AlertHistoryEntry] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Registration and state
    # ------------------------------------------------------------------ #

    def ensure_history_table(self) -> None:
        self.store.ensure_table(ALERT_HISTORY)

    def _get(self, name: str) -> _Registration:
        registration = self._rules.get(name.strip().lower())
        if registration is None:
            raise EngineError(f"Alert '{name}' does not exist or not authorized.")
        return registration

    def get_alert(self, name: str) -> AlertRule:
        with self._lock:
            registration = self._get(name)
            return registration.rule.model_copy(update={"state": registration.state})

    def register_alert(self, rule: AlertRule) -> AlertRule:
        """
        Register (or replace) a rule. New rules start suspended unless the
        definition itself says active.
        """
        with self._lock:
            existing = self._rules.get(rule.name)
            if existing is not None:
                self._deactivate(existing)
            self._rules[rule.name] = _Registration(
                rule=rule.model_copy(update={"state": AlertState.SUSPENDED})
            )
        log.info(
            f"[ALERT REGISTERED] {rule.name}",
            extra={"alert": rule.name, "schedule": rule.schedule.kind, "replaced": existing is not None},
        )
        if rule.state is AlertState.ACTIVE:
            return self.set_alert_state(rule.name, AlertState.ACTIVE)
        return self.get_alert(rule.name)

    def set_alert_state(self, name: str, state: Union[AlertState, str]) -> AlertRule:
        """
        RESUME / SUSPEND a rule.

        Resuming checks the action's notification integration (ConfigError when
        missing) and starts the watermark at the engine's current time.
        """
        state = AlertState(state)
        with self._lock:
            registration = self._get(name)
            if registration.state is not state:
                if state is AlertState.ACTIVE:
                    self.notifier.integrations.require(registration.rule.action.channel)
                    registration.watermark = self.store.now()
                    self._activate(registration)
                else:
                    self._deactivate(registration)
                registration.state = state
                log.info(
                    f"[ALERT {state.value.upper()}] {registration.rule.name}",
                    extra={"alert": registration.rule.name, "watermark": registration.watermark},
                )
        return self.get_alert(name)

    def _ensure_scheduler(self) -> BaseScheduler:
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler(timezone="UTC")
        if not self._scheduler.running:
            self._scheduler.start()
        return self._scheduler

    def _activate(self, registration: _Registration) -> None:
        rule = registration.rule
        if isinstance(rule.schedule, Periodic):
            job = self._ensure_scheduler().add_job(
                self._evaluate,
                "interval",
                seconds=rule.schedule.interval_seconds,
                args=[rule.name, AlertTrigger.SCHEDULE],
                id=f"alert:{rule.name}",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            registration.job_id = job.id
            return

        def on_write(table: str, row_count: int) -> None:
            log.debug(
                "Write hook fired",
                extra={"alert": rule.name, "table": table, "rows": row_count},
            )
            self._evaluate(rule.name, AlertTrigger.WRITE)

        registration.listener = on_write
        self.store.add_write_listener(rule.condition.table, on_write)

    def _deactivate(self, registration: _Registration) -> None:
        if registration.job_id is not None and self._scheduler is not None:
            if self._scheduler.get_job(registration.job_id) is not None:
                self._scheduler.remove_job(registration.job_id)
            registration.job_id = None
        if registration.listener is not None:
            self.store.remove_write_listener(registration.rule.condition.table, registration.listener)
            registration.listener = None
        registration.state = AlertState.SUSPENDED

    # ------------------------------------------------------------------ #
    # Evaluation
    # ------------------------------------------------------------------ #

    def evaluate_alert_now(self, name: str) -> AlertHistoryEntry:
        """Evaluate immediately, bypassing the schedule and the rule's state."""
        return self._evaluate(name, AlertTrigger.MANUAL)

    def _evaluate(self, name: str, trigger: AlertTrigger) -> AlertHistoryEntry:
        with self._lock:
            registration = self._get(name)
            rule = registration.rule
            with self.store.write_lock:
                scheduled_time = self.store.now()
                try:
                    fired = self.store.condition_holds(rule.condition, registration.watermark)
                except Exception as exc:
                    self._fail(registration, scheduled_time, trigger, exc)
                    raise
            if fired:
                action = rule.action
                try:
                    self.notifier.notify(action.channel, action.recipients, action.subject, action.body)
                except Exception as exc:
                    self._fail(registration, scheduled_time, trigger, exc)
                    raise

            registration.watermark = scheduled_time
            outcome = AlertOutcome.TRIGGERED if fired else AlertOutcome.CONDITION_FALSE
            entry = self._record(rule.name, scheduled_time, outcome, trigger)
            registration.last_entry = entry

        if fired:
            log.info(
                f"[ALERT TRIGGERED] {rule.name}",
                extra={"alert": rule.name, "trigger": trigger.value, "subject": rule.action.subject},
            )
        else:
            log.debug(f"[ALERT CONDITION_FALSE] {rule.name}", extra={"alert": rule.name})
        return entry

    def _fail(
        self,
        registration: _Registration,
        scheduled_time: datetime,
        trigger: AlertTrigger,
        exc: Exception,
    ) -> None:
        name = registration.rule.name
        log.exception(f"[ALERT FAILED] {name}", extra={"alert": name, "trigger": trigger.value})
        registration.last_entry = self._record(
            name, scheduled_time, AlertOutcome.FAILED, trigger, error=str(exc)
        )

    def _record(
        self,
        name: str,
        scheduled_time: datetime,
        outcome: AlertOutcome,
        trigger: AlertTrigger,
        error: Optional[str] = None,
    ) -> AlertHistoryEntry:
        entry = AlertHistoryEntry(
            name=name,
            scheduled_time=scheduled_time,
            completed_time=datetime.now(timezone.utc),
            state=outcome,
            trigger=trigger,
            error=error,
        )
        self._history.append(entry)
        if self.persist_history:
            row = (
                entry.name,
                entry.scheduled_time,
                entry.completed_time,
                entry.state.value,
                entry.trigger.value,
                entry.error,
            )
            try:
                self.store.insert_rows(ALERT_HISTORY.name, ALERT_HISTORY.column_names, [row])
            except DemoError:
                if outcome is not AlertOutcome.FAILED:
                    raise
                # The evaluation error is what the caller needs to see.
                log.warning("Could not persist failed evaluation", exc_info=True)
        return entry

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def last_evaluation(self, name: str) -> Optional[AlertHistoryEntry]:
        with self._lock:
            return self._get(name).last_entry

    def watermark(self, name: str) -> Optional[datetime]:
        with self._lock:
            return self._get(name).watermark

    def history(
        self, names: Optional[Iterable[str]] = None, since: Optional[datetime] = None
    ) -> List[AlertHistoryEntry]:
        """Evaluations of this engine, newest first."""
        wanted = {n.lower() for n in names} if names is not None else None
        with self._lock:
            entries = [
                e
                for e in self._history
                if (wanted is None or e.name in wanted)
                and (since is None or e.scheduled_time >= since)
            ]
        return sorted(entries, key=lambda e: e.scheduled_time, reverse=True)

    def show_alerts(self, pattern: Optional[str] = None) -> List[Dict[str, Any]]:
        """Registered rules, optionally filtered by a SQL LIKE pattern (case-insensitive)."""
        glob = pattern.lower().replace("%", "*").replace("_", "?") if pattern else "*"
        with self._lock:
            rows = []
            for name in sorted(self._rules):
                if not fnmatch.fnmatchcase(name, glob):
                    continue
                registration = self._rules[name]
                rule = registration.rule
                condition = rule.condition
                rows.append(
                    {
                        "name": name,
                        "state": registration.state.value,
                        "schedule": (
                            f"{rule.schedule.interval_seconds} SECOND"
                            if isinstance(rule.schedule, Periodic)
                            else "ON WRITE"
                        ),
                        "condition": (
                            f"{condition.table}.{condition.column} "
                            f"{condition.operator} {condition.threshold}"
                        ),
                        "watermark": registration.watermark,
                    }
                )
        return rows

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def suspend_all(self) -> None:
        with self._lock:
            names = [n for n, r in self._rules.items() if r.state is AlertState.ACTIVE]
        for name in names:
            self.set_alert_state(name, AlertState.SUSPENDED)

    def close(self) -> None:
        self.suspend_all()
        if self._owns_scheduler and self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def __enter__(self) -> "AlertEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["AlertEngine"]
