"""Tests for market_calendar.alerts: threshold rules and notification."""

from datetime import date, datetime

import pytest

from conftest import make_record
from market_calendar.alerts import (
    AlertEvaluator,
    condition_met,
    create_alert,
    describe,
    evaluate_alerts,
    metric_value,
)
from market_calendar.models import AlertCondition, AlertMetric

DAY = date(2024, 3, 1)
FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0)


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, alert, record, value):
        self.calls.append((alert.id, record.date, value))


def _evaluator(recorder=None):
    evaluator = AlertEvaluator(clock=lambda: FIXED_NOW)
    if recorder is not None:
        evaluator.add_channel("test", recorder)
    return evaluator


# ── Metric values ────────────────────────────────────────────────────────


def test_metric_values():
    record = make_record(DAY, open_=100.0, close=95.0, volume=2_500_000.0, volatility=3.5)

    assert metric_value(record, AlertMetric.VOLATILITY) == pytest.approx(3.5)
    assert metric_value(record, AlertMetric.PERFORMANCE) == pytest.approx(5.0)
    assert metric_value(record, AlertMetric.VOLUME) == pytest.approx(2.5)


def test_conditions_are_strict():
    assert condition_met(AlertCondition.ABOVE, 2.1, 2.0)
    assert not condition_met(AlertCondition.ABOVE, 2.0, 2.0)
    assert condition_met(AlertCondition.BELOW, 1.9, 2.0)
    assert not condition_met(AlertCondition.BELOW, 2.0, 2.0)


def test_create_alert_defaults():
    alert = create_alert(alert_id="a1")
    assert alert.metric is AlertMetric.VOLATILITY
    assert alert.condition is AlertCondition.ABOVE
    assert alert.threshold == 2.0
    assert alert.enabled and not alert.triggered
    assert describe(alert) == "volatility is above 2.0%"


def test_create_alert_accepts_strings():
    alert = create_alert("volume", "below", 1.5, alert_id="v")
    assert alert.metric is AlertMetric.VOLUME
    assert describe(alert) == "volume is below 1.5M"


# ── Evaluation ───────────────────────────────────────────────────────────


def test_alert_fires_once():
    recorder = Recorder()
    evaluator = _evaluator(recorder)
    alerts = [create_alert(AlertMetric.VOLATILITY, AlertCondition.ABOVE, 2.0, alert_id="a1")]

    alerts = evaluator.evaluate(make_record(DAY, volatility=2.5), alerts)

    assert alerts[0].triggered
    assert alerts[0].last_triggered_at == FIXED_NOW
    assert recorder.calls == [("a1", DAY, pytest.approx(2.5))]

    alerts = evaluator.evaluate(make_record(DAY, volatility=3.0), alerts)

    assert alerts[0].triggered
    assert len(recorder.calls) == 1


def test_reset_allows_firing_again():
    recorder = Recorder()
    evaluator = _evaluator(recorder)
    alerts = evaluator.evaluate(
        make_record(DAY, volatility=2.5), [create_alert(alert_id="a1")]
    )

    alerts = evaluator.evaluate(make_record(DAY, volatility=3.0), [alerts[0].reset()])

    assert alerts[0].triggered
    assert len(recorder.calls) == 2


def test_disabled_alerts_are_skipped():
    recorder = Recorder()
    alert = create_alert(alert_id="a1").set_enabled(False)

    alerts = _evaluator(recorder).evaluate(make_record(DAY, volatility=10.0), [alert])

    assert not alerts[0].triggered
    assert recorder.calls == []


def test_enable_state_change_clears_trigger():
    alert = create_alert(alert_id="a1")
    fired = _evaluator().evaluate(make_record(DAY, volatility=5.0), [alert])[0]

    assert fired.triggered
    assert not fired.set_enabled(True).triggered
    toggled = fired.toggle()
    assert not toggled.enabled
    assert not toggled.triggered


def test_below_condition():
    recorder = Recorder()
    alert = create_alert(AlertMetric.VOLUME, AlertCondition.BELOW, 1.0, alert_id="low-volume")

    alerts = _evaluator(recorder).evaluate(make_record(DAY, volume=400_000.0), [alert])

    assert alerts[0].triggered
    assert recorder.calls[0][2] == pytest.approx(0.4)


def test_performance_uses_absolute_return():
    alert = create_alert(AlertMetric.PERFORMANCE, AlertCondition.ABOVE, 4.0, alert_id="p")
    record = make_record(DAY, open_=100.0, close=95.0)

    assert _evaluator().evaluate(record, [alert])[0].triggered


def test_no_latest_record_leaves_alerts_unchanged():
    alerts = [create_alert(alert_id="a1")]
    assert _evaluator().evaluate(None, alerts) == alerts


def test_input_alerts_are_not_mutated():
    original = create_alert(alert_id="a1")
    alerts = [original]

    updated = _evaluator().evaluate(make_record(DAY, volatility=5.0), alerts)

    assert alerts[0] is original
    assert not original.triggered
    assert updated[0] is not original


def test_order_is_preserved():
    alerts = [
        create_alert(threshold=10.0, alert_id="quiet"),
        create_alert(threshold=1.0, alert_id="loud"),
    ]

    updated = _evaluator().evaluate(make_record(DAY, volatility=5.0), alerts)

    assert [a.id for a in updated] == ["quiet", "loud"]
    assert [a.triggered for a in updated] == [False, True]


# ── Notification channels ────────────────────────────────────────────────


def test_failing_channel_is_swallowed(caplog):
    def broken(alert, record, value):
        raise RuntimeError("smtp down")

    recorder = Recorder()
    evaluator = _evaluator()
    evaluator.add_channel("broken", broken)
    evaluator.add_channel("test", recorder)

    alerts = evaluator.evaluate(make_record(DAY, volatility=5.0), [create_alert(alert_id="a1")])

    assert alerts[0].triggered
    assert len(recorder.calls) == 1
    assert "smtp down" in caplog.text


def test_log_channel_writes_warning(caplog):
    evaluator = AlertEvaluator(symbol="BTCUSDT", clock=lambda: FIXED_NOW)

    with caplog.at_level("WARNING", logger="market_calendar.alerts"):
        evaluator.evaluate(make_record(DAY, volatility=5.0), [create_alert(alert_id="a1")])

    assert "Market Alert - BTCUSDT" in caplog.text
    assert "volatility is above 2.0%" in caplog.text


def test_inactive_channel_is_not_called():
    recorder = Recorder()
    evaluator = _evaluator()
    evaluator.add_channel("test", recorder, activate=False)

    evaluator.evaluate(make_record(DAY, volatility=5.0), [create_alert(alert_id="a1")])

    assert recorder.calls == []


def test_evaluate_alerts_with_notifier():
    recorder = Recorder()

    alerts = evaluate_alerts(
        make_record(DAY, volatility=5.0), [create_alert(alert_id="a1")], notify=recorder
    )

    assert alerts[0].triggered
    assert recorder.calls[0][0] == "a1"


def test_generated_ids_are_unique():
    ids = {create_alert().id for _ in range(1000)}
    assert len(ids) == 1000
