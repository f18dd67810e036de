"""Utilities for logging per-opportunity decision diagnostics and aggregates."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

_DEFAULT_BREAKDOWN: Dict[str, Any] = {
    "symbol": None,
    "strategy": None,
    "direction": None,
    "signal_confidence": None,
    "confidence": None,
    "expected_return": None,
    "risk_score": None,
    "priority": None,
    "daily_count": 0,
    "allocation_deviation": None,
    "accepted": False,
    "rejection_reason": None,
    "rejection_text": None,
}


@dataclass(frozen=True)
class DecisionMetrics:
    total_trades_today: int
    success_rate: float
    avg_return: float
    risk_utilization: float
    portfolio_balance: float
    opportunities_identified: int
    trades_executed: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_decision_breakdown(symbol: str | None) -> Dict[str, Any]:
    """Return a fresh breakdown dict populated with default keys."""

    breakdown = dict(_DEFAULT_BREAKDOWN)
    breakdown["symbol"] = symbol
    return breakdown


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, tuple)):
        return list(value)
    if hasattr(value, "value"):
        return value.value
    return str(value)


def update_breakdown_reason(
    breakdown: Mapping[str, Any] | None,
    reason_key: Optional[str],
    reason_text: Optional[str],
) -> None:
    if not isinstance(breakdown, dict):
        return
    if reason_key:
        breakdown["rejection_reason"] = reason_key
    if reason_text:
        breakdown["rejection_text"] = reason_text


def log_decision_breakdown(symbol: str, breakdown: Mapping[str, Any] | None) -> None:
    """Emit a structured log line summarizing why an opportunity passed or failed."""

    payload: Dict[str, Any] = {"symbol": symbol}
    if breakdown:
        for key, value in breakdown.items():
            if key is None:
                continue
            payload[key] = value
    try:
        encoded = json.dumps(payload, default=_json_default, sort_keys=True)
    except (TypeError, ValueError) as exc:
        logger.warning("Failed to encode decision breakdown for %s: %s", symbol, exc)
        encoded = str(payload)
    if payload.get("accepted"):
        logger.info("[METRIC] DECISION_BREAKDOWN: %s", encoded)
    else:
        logger.debug("[METRIC] DECISION_BREAKDOWN: %s", encoded)


def success_rate(entries: Iterable[Mapping[str, Any]], now: float, window: float = 86_400.0) -> tuple[float, int, int]:
    """Return ``(rate, considered, executed)`` for entries inside the trailing window."""

    recent = [e for e in entries if now - float(e.get("timestamp", 0.0)) < window]
    executed = sum(1 for e in recent if e.get("executed"))
    return executed / max(len(recent), 1), len(recent), executed


def portfolio_balance_score(
    targets: Mapping[str, float],
    weights: Mapping[str, float],
) -> float:
    """Score in [0, 1]; every 10% of average absolute deviation costs the full point."""

    total = 0.0
    count = 0
    for symbol, target in targets.items():
        total += abs(weights.get(symbol, 0.0) - target)
        count += 1
    avg_deviation = total / max(count, 1)
    return max(0.0, 1.0 - avg_deviation * 10)


def format_daily_report(
    metrics: DecisionMetrics,
    daily_trades: Mapping[str, int],
    targets: Mapping[str, float],
    weights: Mapping[str, float],
) -> str:
    lines = [
        "AGGRESSIVE DECISION ENGINE - DAILY REPORT",
        "=" * 43,
        f"Total Trades Today: {metrics.total_trades_today}",
        f"Success Rate: {metrics.success_rate * 100:.1f}%",
        f"Portfolio Balance: {metrics.portfolio_balance * 100:.1f}%",
        f"Opportunities Found: {metrics.opportunities_identified}",
        f"Trades Executed: {metrics.trades_executed}",
        "",
        "TRADES BY SYMBOL:",
    ]
    for symbol, count in daily_trades.items():
        lines.append(f"  {symbol}: {count} trades")
    lines.append("")
    lines.append("PORTFOLIO ALLOCATION:")
    for symbol, target in targets.items():
        current = weights.get(symbol, 0.0)
        lines.append(
            f"  {symbol}: {current * 100:.1f}% (target: {target * 100:.1f}%, "
            f"deviation: {(current - target) * 100:.1f}%)"
        )
    return "\n".join(lines) + "\n"


__all__ = [
    "DecisionMetrics",
    "format_daily_report",
    "log_decision_breakdown",
    "new_decision_breakdown",
    "portfolio_balance_score",
    "success_rate",
    "update_breakdown_reason",
]
