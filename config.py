"""Central configuration loader for environment variables."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple

from dotenv import load_dotenv

# Load environment variables once when this module is imported.
load_dotenv()

import json
import os


def _clean_path(value: str | None) -> str:
    """Return ``value`` without inline comments or surrounding whitespace."""

    if not value:
        return ""
    return value.split("#", 1)[0].strip()


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------
def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    try:
        return float(raw)
    except (TypeError, ValueError):
        return float(default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return int(default)


# ---------------------------------------------------------------------------
# Logging location
# ---------------------------------------------------------------------------

DEFAULT_LOG_FILE = os.path.join("logs", "strategy_core.log")


def get_log_file() -> str:
    """Return the rotating log file path, honouring ``STRATEGY_LOG_FILE``."""

    return _clean_path(os.getenv("STRATEGY_LOG_FILE")) or DEFAULT_LOG_FILE


# ---------------------------------------------------------------------------
# Strategy core settings
# ---------------------------------------------------------------------------

# Flagship pairs get a risk discount in the decision engine.
DEFAULT_MAJOR_PAIRS: Tuple[str, ...] = ("BTCUSDT", "ETHUSDT")

# Target weights used when no explicit allocation is supplied.
DEFAULT_TARGET_ALLOCATIONS: Dict[str, float] = {
    "BTCUSDT": 0.30,
    "ETHUSDT": 0.25,
    "BNBUSDT": 0.42,
    "MATICUSDT": 0.03,
}


@dataclass(frozen=True)
class TechnicalSettings:
    """Knobs for the technical analysis engine."""

    history_length: int = 100
    min_bars: int = 50


@dataclass(frozen=True)
class DecisionSettings:
    """Thresholds and defaults for the aggressive decision engine."""

    min_confidence: float = 0.35
    min_expected_return: float = 0.5
    max_daily_trades: int = 15
    trade_history_size: int = 100
    rebalance_notify_interval: float = 4 * 60 * 60.0
    risk_utilization: float = 0.75
    major_pairs: Tuple[str, ...] = DEFAULT_MAJOR_PAIRS
    target_allocations: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_TARGET_ALLOCATIONS)
    )


@dataclass(frozen=True)
class RiskLimits:
    """Global risk caps supplied to the orchestrator.

    The engines never read these; callers use them to size or veto trades
    before and after consulting the strategy core.
    """

    max_equity_risk: float = 10.0
    max_daily_loss: float = 5.0
    max_consecutive_losses: int = 3


def _parse_target_allocations() -> Dict[str, float]:
    raw = os.getenv("TARGET_ALLOCATIONS")
    if not raw:
        return dict(DEFAULT_TARGET_ALLOCATIONS)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return dict(DEFAULT_TARGET_ALLOCATIONS)
    if not isinstance(data, Mapping):
        return dict(DEFAULT_TARGET_ALLOCATIONS)
    allocations: Dict[str, float] = {}
    for key, value in data.items():
        try:
            weight = float(value)
        except (TypeError, ValueError):
            continue
        if weight < 0:
            continue
        allocations[str(key).upper()] = weight
    return allocations or dict(DEFAULT_TARGET_ALLOCATIONS)


def _parse_major_pairs() -> Tuple[str, ...]:
    raw = os.getenv("MAJOR_PAIRS")
    if not raw:
        return DEFAULT_MAJOR_PAIRS
    pairs = tuple(p.strip().upper() for p in raw.split(",") if p.strip())
    return pairs or DEFAULT_MAJOR_PAIRS


def load_technical_settings() -> TechnicalSettings:
    """Load technical engine settings from environment variables."""

    return TechnicalSettings(
        history_length=max(1, _env_int("TA_HISTORY_LENGTH", 100)),
        min_bars=max(2, _env_int("TA_MIN_BARS", 50)),
    )


def load_decision_settings() -> DecisionSettings:
    """Load decision engine settings from environment variables."""

    return DecisionSettings(
        min_confidence=_env_float("DECISION_MIN_CONFIDENCE", 0.35),
        min_expected_return=_env_float("DECISION_MIN_EXPECTED_RETURN", 0.5),
        max_daily_trades=max(1, _env_int("DECISION_MAX_DAILY_TRADES", 15)),
        trade_history_size=max(1, _env_int("DECISION_TRADE_HISTORY_SIZE", 100)),
        rebalance_notify_interval=max(
            0.0, _env_float("REBALANCE_NOTIFY_INTERVAL_SECONDS", 4 * 60 * 60.0)
        ),
        risk_utilization=_env_float("RISK_UTILIZATION_PLACEHOLDER", 0.75),
        major_pairs=_parse_major_pairs(),
        target_allocations=_parse_target_allocations(),
    )


def load_risk_limits() -> RiskLimits:
    """Load the global risk caps consumed by the orchestrator."""

    return RiskLimits(
        max_equity_risk=_env_float("MAX_EQUITY_RISK", 10.0),
        max_daily_loss=_env_float("MAX_DAILY_LOSS", 5.0),
        max_consecutive_losses=max(1, _env_int("MAX_CONSECUTIVE_LOSSES", 3)),
    )


__all__ = [
    "get_log_file",
    "load_decision_settings",
    "load_risk_limits",
    "load_technical_settings",
    "DecisionSettings",
    "RiskLimits",
    "TechnicalSettings",
    "DEFAULT_MAJOR_PAIRS",
    "DEFAULT_TARGET_ALLOCATIONS",
]
