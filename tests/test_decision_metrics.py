import json
import logging

import pytest

from decision_metrics import (
    DecisionMetrics,
    format_daily_report,
    log_decision_breakdown,
    new_decision_breakdown,
    portfolio_balance_score,
    success_rate,
    update_breakdown_reason,
)
from market_types import Direction, RejectionReason


def test_new_breakdown_has_default_keys():
    breakdown = new_decision_breakdown("ETHUSDT")
    assert breakdown["symbol"] == "ETHUSDT"
    assert breakdown["accepted"] is False
    assert breakdown["rejection_reason"] is None
    # defaults are copied, not shared
    breakdown["daily_count"] = 4
    assert new_decision_breakdown("ETHUSDT")["daily_count"] == 0


def test_update_breakdown_reason_ignores_empty_values():
    breakdown = new_decision_breakdown("BTCUSDT")
    update_breakdown_reason(breakdown, RejectionReason.LOW_CONFIDENCE.value, "")
    assert breakdown["rejection_reason"] == "LowConfidence"
    assert breakdown["rejection_text"] is None
    update_breakdown_reason(None, "LowConfidence", "ignored")


def test_rejected_breakdown_logged_at_debug_as_json(caplog):
    breakdown = new_decision_breakdown("BTCUSDT")
    breakdown.update(direction=Direction.SHORT, confidence=0.31)
    update_breakdown_reason(breakdown, "LowConfidence", "confidence 0.31 < 0.35")

    with caplog.at_level(logging.DEBUG, logger="decision_metrics"):
        log_decision_breakdown("BTCUSDT", breakdown)

    (record,) = [r for r in caplog.records if "DECISION_BREAKDOWN" in r.getMessage()]
    assert record.levelno == logging.DEBUG
    payload = json.loads(record.getMessage().split("DECISION_BREAKDOWN: ", 1)[1])
    assert payload["direction"] == "short"
    assert payload["rejection_reason"] == "LowConfidence"


def test_accepted_breakdown_logged_at_info(caplog):
    breakdown = new_decision_breakdown("SOLUSDT")
    breakdown["accepted"] = True
    with caplog.at_level(logging.INFO, logger="decision_metrics"):
        log_decision_breakdown("SOLUSDT", breakdown)
    assert any(
        r.levelno == logging.INFO and "DECISION_BREAKDOWN" in r.getMessage()
        for r in caplog.records
    )


def test_success_rate_uses_trailing_window():
    now = 1_000_000.0
    entries = [
        {"timestamp": now - 90_000, "executed": True},
        {"timestamp": now - 100, "executed": True},
        {"timestamp": now - 50, "executed": True},
        {"timestamp": now - 10, "executed": True},
        {"timestamp": now - 5, "executed": False},
    ]
    assert success_rate(entries, now) == (0.75, 4, 3)
    assert success_rate([], now) == (0.0, 0, 0)


def test_portfolio_balance_score():
    targets = {"A": 0.5, "B": 0.5}
    assert portfolio_balance_score(targets, {"A": 0.5, "B": 0.5}) == pytest.approx(1.0)
    assert portfolio_balance_score(targets, {}) == 0.0
    assert portfolio_balance_score({}, {"A": 1.0}) == pytest.approx(1.0)


def test_format_daily_report():
    metrics = DecisionMetrics(
        total_trades_today=3,
        success_rate=0.5,
        avg_return=0.0,
        risk_utilization=0.75,
        portfolio_balance=0.9,
        opportunities_identified=4,
        trades_executed=2,
    )
    report = format_daily_report(metrics, {"ETHUSDT": 3}, {"ETHUSDT": 0.25}, {"ETHUSDT": 0.2})
    assert "Success Rate: 50.0%" in report
    assert "Portfolio Balance: 90.0%" in report
    assert "ETHUSDT: 3 trades" in report
    assert "ETHUSDT: 20.0% (target: 25.0%, deviation: -5.0%)" in report
    assert metrics.to_dict()["trades_executed"] == 2


def test_breakdown_encodes_sets_and_enums(caplog):
    breakdown = new_decision_breakdown("BTCUSDT")
    breakdown.update(direction=Direction.LONG, tags={"squeeze"}, accepted=True)
    with caplog.at_level(logging.INFO, logger="decision_metrics"):
        log_decision_breakdown("BTCUSDT", breakdown)
    message = next(r.getMessage() for r in caplog.records if "DECISION_BREAKDOWN" in r.getMessage())
    payload = json.loads(message.split("DECISION_BREAKDOWN: ", 1)[1])
    assert payload["direction"] == "long"
    assert payload["tags"] == ["squeeze"]
