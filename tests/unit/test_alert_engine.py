from __future__ import annotations

import threading
from typing import Iterator

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from warehouse_demo import orchestrator
from warehouse_demo.alerts import (
    AlertEngine,
    RecordingNotificationSink,
    build_notifier,
    high_sales_monitor,
    low_inventory_alert,
)
from warehouse_demo.domain.models import AlertOutcome, AlertState, AlertTrigger
from warehouse_demo.errors import ConfigError, EngineError

HIGH_SALES = "high_sales_monitor"
LOW_INVENTORY = "low_inventory_alert"


@pytest.fixture
def sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def scheduler() -> Iterator[BackgroundScheduler]:
    scheduler = BackgroundScheduler(timezone="UTC")
    yield scheduler
    if scheduler.running:
        scheduler.shutdown(wait=False)


@pytest.fixture
def engine(seeded_fake_store, test_settings, sink, scheduler) -> Iterator[AlertEngine]:
    alert_engine = AlertEngine(
        seeded_fake_store, build_notifier(test_settings, sink=sink), scheduler=scheduler
    )
    alert_engine.register_alert(high_sales_monitor(test_settings))
    alert_engine.register_alert(low_inventory_alert(test_settings))
    yield alert_engine
    alert_engine.close()


def _sale(store, row_id: int, amount: int) -> None:
    store.insert_rows("processed_sales", ("id", "amount"), [(row_id, amount)])


def _stock(store, row_id: int, qty: int) -> None:
    store.insert_rows("processed_inventory", ("id", "qty"), [(row_id, qty)])


def test_registered_rules_start_suspended(engine) -> None:
    rows = engine.show_alerts()

    assert [r["name"] for r in rows] == [HIGH_SALES, LOW_INVENTORY]
    assert all(r["state"] == "suspended" for r in rows)
    assert rows[0]["schedule"] == "60 SECOND"
    assert rows[1]["schedule"] == "ON WRITE"
    assert engine.watermark(HIGH_SALES) is None


def test_show_alerts_filters_with_like_pattern(engine) -> None:
    rows = engine.show_alerts("%SALES%")

    assert [r["name"] for r in rows] == [HIGH_SALES]


def test_register_alert_replaces_existing_definition(engine, seeded_fake_store, test_settings) -> None:
    engine.set_alert_state(LOW_INVENTORY, AlertState.ACTIVE)
    assert seeded_fake_store.listener_count("processed_inventory") == 1

    replaced = engine.register_alert(low_inventory_alert(test_settings))

    assert replaced.state is AlertState.SUSPENDED
    assert seeded_fake_store.listener_count("processed_inventory") == 0


def test_resume_requires_provisioned_channel(engine, test_settings) -> None:
    rule = high_sales_monitor(test_settings)
    unprovisioned = rule.model_copy(
        update={"action": rule.action.model_copy(update={"channel": "missing_integration"})}
    )
    engine.register_alert(unprovisioned)

    with pytest.raises(ConfigError, match="not provisioned"):
        engine.set_alert_state(HIGH_SALES, AlertState.ACTIVE)

    assert engine.get_alert(HIGH_SALES).state is AlertState.SUSPENDED


def test_resume_rejects_disabled_channel(engine, test_settings) -> None:
    engine.notifier.integrations.provision(test_settings.notification_channel, enabled=False)

    with pytest.raises(ConfigError, match="disabled"):
        engine.set_alert_state(LOW_INVENTORY, "active")


def test_resume_periodic_rule_schedules_job_and_suspend_removes_it(engine, scheduler) -> None:
    engine.set_alert_state(HIGH_SALES, AlertState.ACTIVE)

    job = scheduler.get_job(f"alert:{HIGH_SALES}")
    assert scheduler.running
    assert job is not None
    assert job.trigger.interval.total_seconds() == 60
    assert engine.watermark(HIGH_SALES) is not None

    engine.set_alert_state(HIGH_SALES, AlertState.SUSPENDED)

    assert scheduler.get_job(f"alert:{HIGH_SALES}") is None


def test_manual_evaluation_fires_once_per_new_row(engine, seeded_fake_store, sink) -> None:
    engine.set_alert_state(HIGH_SALES, AlertState.ACTIVE)
    _sale(seeded_fake_store, 11, 7500)

    first = engine.evaluate_alert_now(HIGH_SALES)
    second = engine.evaluate_alert_now(HIGH_SALES)

    assert first.state is AlertOutcome.TRIGGERED
    assert first.trigger is AlertTrigger.MANUAL
    assert second.state is AlertOutcome.CONDITION_FALSE
    assert sink.subjects() == ["High Sales Alert"]
    assert sink.sent[0].body == "Sales amount exceeded $5000."
    assert engine.watermark(HIGH_SALES) == second.scheduled_time


def test_rows_before_watermark_never_fire(engine, seeded_fake_store, sink) -> None:
    _sale(seeded_fake_store, 11, 7500)
    engine.set_alert_state(HIGH_SALES, AlertState.ACTIVE)

    entry = engine.evaluate_alert_now(HIGH_SALES)

    assert entry.state is AlertOutcome.CONDITION_FALSE
    assert sink.sent == []


def test_processed_rows_are_stamped_by_the_store(seeded_fake_store) -> None:
    before = seeded_fake_store.now()
    _sale(seeded_fake_store, 11, 7500)

    (row,) = seeded_fake_store.tables["processed_sales"]
    assert row["processed_at"] > before


def test_evaluation_waits_for_an_in_flight_write(engine, seeded_fake_store, sink) -> None:
    engine.set_alert_state(HIGH_SALES, AlertState.ACTIVE)
    entries = []
    evaluator = threading.Thread(target=lambda: entries.append(engine.evaluate_alert_now(HIGH_SALES)))

    with seeded_fake_store.write_lock:
        evaluator.start()
        evaluator.join(0.2)
        assert evaluator.is_alive()
        _sale(seeded_fake_store, 11, 7500)
    evaluator.join(5)

    assert entries[0].state is AlertOutcome.TRIGGERED
    assert sink.subjects() == ["High Sales Alert"]
    assert engine.evaluate_alert_now(HIGH_SALES).state is AlertOutcome.CONDITION_FALSE


def test_manual_evaluation_of_never_resumed_rule_sees_every_row(engine, seeded_fake_store, sink) -> None:
    _sale(seeded_fake_store, 11, 7500)

    entry = engine.evaluate_alert_now(HIGH_SALES)

    assert engine.get_alert(HIGH_SALES).state is AlertState.SUSPENDED
    assert entry.state is AlertOutcome.TRIGGERED
    assert sink.subjects() == ["High Sales Alert"]


def test_event_triggered_rule_fires_right_after_write(engine, seeded_fake_store, sink) -> None:
    engine.set_alert_state(LOW_INVENTORY, AlertState.ACTIVE)

    _stock(seeded_fake_store, 10, 50)
    normal = engine.last_evaluation(LOW_INVENTORY)
    _stock(seeded_fake_store, 11, 5)
    low = engine.last_evaluation(LOW_INVENTORY)

    assert normal.state is AlertOutcome.CONDITION_FALSE
    assert normal.trigger is AlertTrigger.WRITE
    assert low.state is AlertOutcome.TRIGGERED
    assert sink.subjects() == ["URGENT: Low Inventory Alert"]


def test_suspended_event_rule_ignores_writes(engine, seeded_fake_store, sink) -> None:
    engine.set_alert_state(LOW_INVENTORY, AlertState.ACTIVE)
    engine.set_alert_state(LOW_INVENTORY, AlertState.SUSPENDED)

    _stock(seeded_fake_store, 11, 5)

    assert engine.last_evaluation(LOW_INVENTORY) is None
    assert sink.sent == []


def test_failed_evaluation_is_recorded_and_reraised(engine, seeded_fake_store, sink) -> None:
    engine.set_alert_state(HIGH_SALES, AlertState.ACTIVE)
    watermark = engine.watermark(HIGH_SALES)
    seeded_fake_store.fail_condition = EngineError("relation does not exist")

    with pytest.raises(EngineError):
        engine.evaluate_alert_now(HIGH_SALES)

    entry = engine.history([HIGH_SALES])[0]
    assert entry.state is AlertOutcome.FAILED
    assert "relation does not exist" in entry.error
    assert engine.watermark(HIGH_SALES) == watermark
    assert sink.sent == []


def test_history_is_newest_first_and_persisted(engine, seeded_fake_store) -> None:
    engine.evaluate_alert_now(HIGH_SALES)
    engine.evaluate_alert_now(LOW_INVENTORY)
    engine.evaluate_alert_now(HIGH_SALES)

    entries = engine.history()
    assert [e.name for e in entries] == [HIGH_SALES, LOW_INVENTORY, HIGH_SALES]
    assert entries[0].scheduled_time > entries[-1].scheduled_time
    assert [e.name for e in engine.history([LOW_INVENTORY])] == [LOW_INVENTORY]
    assert engine.history(since=entries[0].scheduled_time) == [entries[0]]

    persisted = seeded_fake_store.tables["alert_history"]
    assert len(persisted) == 3
    assert persisted[0]["trigger"] == "MANUAL"


def test_unknown_alert_is_an_engine_error(engine) -> None:
    with pytest.raises(EngineError, match="does not exist"):
        engine.evaluate_alert_now("no_such_alert")


def test_close_suspends_every_rule(engine, seeded_fake_store) -> None:
    engine.set_alert_state(HIGH_SALES, AlertState.ACTIVE)
    engine.set_alert_state(LOW_INVENTORY, AlertState.ACTIVE)

    engine.close()

    assert all(r["state"] == "suspended" for r in engine.show_alerts())
    assert seeded_fake_store.listener_count("processed_inventory") == 0


def test_alert_test_sequence(engine, seeded_fake_store, sink) -> None:
    engine.set_alert_state(HIGH_SALES, AlertState.ACTIVE)
    engine.set_alert_state(LOW_INVENTORY, AlertState.ACTIVE)

    entries = orchestrator.test_alerts(seeded_fake_store, engine)

    assert [(e.name, e.state) for e in entries] == [
        (HIGH_SALES, AlertOutcome.CONDITION_FALSE),
        (HIGH_SALES, AlertOutcome.TRIGGERED),
        (LOW_INVENTORY, AlertOutcome.CONDITION_FALSE),
        (LOW_INVENTORY, AlertOutcome.TRIGGERED),
    ]
    assert sink.subjects() == ["High Sales Alert", "URGENT: Low Inventory Alert"]
