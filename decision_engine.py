"""
Aggressive decision engine for the strategy core.

The engine scores technical signals into :class:`TradingOpportunity`
records and keeps the book close to its target allocation.  It favours
trade frequency: thresholds are deliberately low (35% confidence, 0.5%
expected return) and each symbol may be accepted up to fifteen times per
calendar day.

All mutable bookkeeping lives in one :class:`DecisionState` owned by the
engine instance, so several bots can run isolated engines side by side.
Time only matters in three places (active-hour boost, midnight reset of the
daily counters and the four-hour rebalance notice) and is always read from
the injected clock; nothing runs in the background.

Callers are expected to evaluate every symbol with fresh data, rank the
accepted opportunities with :func:`rank_opportunities` and execute at most
as many as their own batch limit allows.  The engine does not cap batch
size and does not consult the risk manager.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional

from clock import Clock, SystemClock, epoch_seconds
from config import DecisionSettings, load_decision_settings
from decision_metrics import (
    DecisionMetrics,
    format_daily_report,
    log_decision_breakdown,
    new_decision_breakdown,
    portfolio_balance_score,
    success_rate,
    update_breakdown_reason,
)
from log_utils import setup_logger
from market_types import (
    Bar,
    Direction,
    PortfolioBalanceAssessment,
    RebalanceAction,
    RejectionReason,
    Signal,
    TradingOpportunity,
    Urgency,
    coerce_positions,
)

logger = setup_logger(__name__)

MAX_CONFIDENCE = 0.95
MAX_EXPECTED_RETURN = 8.0
STRONG_MOVE = 0.01
HIGH_VOLUME = 1_000_000
LOW_VOLUME = 500_000
HIGH_VOLATILITY = 0.05
PRIORITY_DEVIATION = 0.05
BUSY_SYMBOL_TRADES = 5
SENTIMENT_WEIGHT = 0.2
METRICS_WINDOW_SECONDS = 24 * 60 * 60.0

# Deviation thresholds, most severe first.
URGENCY_THRESHOLDS = (
    (0.10, Urgency.HIGH),
    (0.05, Urgency.MEDIUM),
    (0.02, Urgency.LOW),
)


def is_active_hour(moment: datetime) -> bool:
    """European/US session (08-16) or the late Asian open (20-23), local time."""
    hour = moment.hour
    return 8 <= hour <= 16 or 20 <= hour <= 23


@dataclass
class DecisionState:
    """Mutable bookkeeping for one engine instance."""

    target_allocations: Dict[str, float]
    trade_history: Deque[Dict[str, Any]]
    daily_trades: Dict[str, int] = field(default_factory=dict)
    current_weights: Dict[str, float] = field(default_factory=dict)
    last_rebalance_notice: float = 0.0
    last_reset_date: Optional[date] = None

    @classmethod
    def create(cls, targets: Mapping[str, float], history_size: int) -> "DecisionState":
        return cls(
            target_allocations=dict(targets),
            trade_history=deque(maxlen=history_size),
        )

    def average_daily_trades(self) -> float:
        if not self.daily_trades:
            return 0.0
        return sum(self.daily_trades.values()) / len(self.daily_trades)


def _validate_weight(symbol: str, weight: float) -> float:
    value = float(weight)
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"target weight for {symbol} must be a non-negative number, got {value}")
    return value


class AggressiveDecisionEngine:
    """Score signals into opportunities and track allocation drift."""

    def __init__(
        self,
        target_allocations: Optional[Mapping[str, float]] = None,
        *,
        settings: Optional[DecisionSettings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.settings = settings or load_decision_settings()
        self._clock: Clock = clock or SystemClock()
        targets = (
            target_allocations
            if target_allocations is not None
            else self.settings.target_allocations
        )
        validated = {str(sym): _validate_weight(sym, w) for sym, w in targets.items()}
        self.state = DecisionState.create(validated, self.settings.trade_history_size)
        self.last_rejection: Optional[RejectionReason] = None
        self._reset_daily_counters()
        logger.info("[DECISION] Portfolio targets initialized: %s", validated)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def target_allocations(self) -> Dict[str, float]:
        return dict(self.state.target_allocations)

    @property
    def current_weights(self) -> Dict[str, float]:
        return dict(self.state.current_weights)

    @property
    def daily_trades(self) -> Dict[str, int]:
        return dict(self.state.daily_trades)

    def update_target_allocation(self, symbol: str, weight: float) -> None:
        value = _validate_weight(symbol, weight)
        self.state.target_allocations[symbol] = value
        logger.info("[DECISION] Target allocation for %s set to %.2f%%", symbol, value * 100)

    # ------------------------------------------------------------------
    # Daily bookkeeping
    # ------------------------------------------------------------------
    def _reset_daily_counters(self) -> None:
        """Clear per-symbol counters once the clock has crossed local midnight."""
        today = self._clock.now().date()
        if self.state.last_reset_date == today:
            return
        self.state.daily_trades.clear()
        self.state.last_reset_date = today
        logger.info("[DECISION] Daily trade counters reset for %s", today.isoformat())

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------
    def _aggressive_confidence(self, signal: Signal, bar: Bar) -> float:
        confidence = signal.confidence

        move = abs(bar.price_change)
        if move > STRONG_MOVE:
            confidence += move * 2
        if bar.volume > HIGH_VOLUME:
            confidence += 0.1
        if is_active_hour(self._clock.now()):
            confidence += 0.05

        hint = signal.sentiment
        if hint is not None and hint.supports(signal.direction):
            confidence += min(max(hint.confidence, 0.0), 1.0) * SENTIMENT_WEIGHT

        return min(max(confidence, 0.0), MAX_CONFIDENCE)

    @staticmethod
    def _expected_return(signal: Signal, bar: Bar) -> float:
        """Expected move in percent, capped at 8."""
        base_return = signal.confidence * 2
        volatility_boost = bar.volatility * 5

        change = bar.price_change
        direction_boost = 0.0
        if signal.direction is Direction.LONG and change > 0:
            direction_boost = abs(change) * 100
        elif signal.direction is Direction.SHORT and change < 0:
            direction_boost = abs(change) * 100

        return min(base_return + volatility_boost + direction_boost, MAX_EXPECTED_RETURN)

    def _risk_score(self, bar: Bar, symbol: str, daily_count: int) -> float:
        """Lower is better; 1.0 is a neutral trade."""
        risk = 1.0
        if bar.volume < LOW_VOLUME:
            risk += 0.3
        volatility = bar.volatility
        if volatility > HIGH_VOLATILITY:
            risk += volatility * 2
        if symbol in self.settings.major_pairs:
            risk *= 0.8
        if daily_count > BUSY_SYMBOL_TRADES:
            risk += (daily_count - BUSY_SYMBOL_TRADES) * 0.1
        return risk

    def allocation_deviation(self, symbol: str) -> float:
        current = self.state.current_weights.get(symbol, 0.0)
        target = self.state.target_allocations.get(symbol, 0.0)
        return abs(current - target)

    def _priority(
        self,
        symbol: str,
        confidence: float,
        expected_return: float,
        daily_count: int,
    ) -> float:
        priority = confidence * expected_return

        deviation = self.allocation_deviation(symbol)
        if deviation > PRIORITY_DEVIATION:
            priority += deviation * 10

        # undertraded symbols get a nudge
        if daily_count < self.state.average_daily_trades():
            priority += 0.5
        return priority

    @staticmethod
    def _trade_reason(confidence: float, expected_return: float, risk_score: float) -> str:
        if confidence > 0.7:
            parts = ["High confidence signal"]
        elif confidence > 0.5:
            parts = ["Moderate confidence signal"]
        else:
            parts = ["Speculative opportunity"]

        if expected_return > 3:
            parts.append("high return potential")
        elif expected_return > 1.5:
            parts.append("moderate return potential")
        else:
            parts.append("small profit opportunity")

        if risk_score < 1.2:
            parts.append("low risk")
        elif risk_score < 2.0:
            parts.append("moderate risk")
        else:
            parts.append("higher risk")
        return " + ".join(parts)

    def _rejection(
        self, confidence: float, expected_return: float, daily_count: int
    ) -> tuple[Optional[RejectionReason], str]:
        s = self.settings
        if confidence < s.min_confidence:
            return RejectionReason.LOW_CONFIDENCE, (
                f"confidence {confidence:.2f} < {s.min_confidence:.2f}"
            )
        if expected_return < s.min_expected_return:
            return RejectionReason.LOW_EXPECTED_RETURN, (
                f"expected return {expected_return:.2f}% < {s.min_expected_return:.2f}%"
            )
        if daily_count >= s.max_daily_trades:
            return RejectionReason.DAILY_QUOTA_REACHED, (
                f"daily trade limit reached {daily_count}/{s.max_daily_trades}"
            )
        return None, ""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def evaluate_opportunity(
        self,
        symbol: str,
        signal: Signal,
        bar: Bar,
        equity: float,
    ) -> Optional[TradingOpportunity]:
        """Score ``signal`` against the latest ``bar``.

        Returns ``None`` when the opportunity is rejected (the cause is
        logged and kept in :attr:`last_rejection`) or when scoring fails.
        ``equity`` is accepted for interface parity with the orchestrator;
        sizing happens downstream.
        """
        self.last_rejection = None
        try:
            self._reset_daily_counters()
            daily_count = self.state.daily_trades.get(symbol, 0)

            confidence = self._aggressive_confidence(signal, bar)
            expected_return = self._expected_return(signal, bar)
            risk_score = self._risk_score(bar, symbol, daily_count)
            priority = self._priority(symbol, confidence, expected_return, daily_count)
            if not all(math.isfinite(v) for v in (confidence, expected_return, risk_score, priority)):
                raise ValueError(
                    f"non-finite score: confidence={confidence} expected_return={expected_return} "
                    f"risk={risk_score} priority={priority}"
                )

            breakdown = new_decision_breakdown(symbol)
            breakdown.update(
                strategy=signal.name,
                direction=signal.direction,
                signal_confidence=signal.confidence,
                confidence=confidence,
                expected_return=expected_return,
                risk_score=risk_score,
                priority=priority,
                daily_count=daily_count,
                allocation_deviation=self.allocation_deviation(symbol),
            )

            reason, text = self._rejection(confidence, expected_return, daily_count)
            if reason is not None:
                self.last_rejection = reason
                update_breakdown_reason(breakdown, reason.value, text)
                log_decision_breakdown(symbol, breakdown)
                logger.info("[DECISION] %s rejected (%s): %s", symbol, reason.value, text)
                return None

            opportunity = TradingOpportunity(
                symbol=symbol,
                signal=signal,
                confidence=confidence,
                expected_return=expected_return,
                risk_score=risk_score,
                priority=priority,
                reason=self._trade_reason(confidence, expected_return, risk_score),
                timeframe=signal.timeframe or "15m",
            )
            breakdown["accepted"] = True
            log_decision_breakdown(symbol, breakdown)
            logger.info(
                "[DECISION] Opportunity identified for %s: confidence=%.1f%% "
                "expected_return=%.2f%% risk=%.2f priority=%.2f (%s)",
                symbol,
                confidence * 100,
                expected_return,
                risk_score,
                priority,
                opportunity.reason,
            )
            return opportunity
        except Exception as exc:
            logger.error(
                "[DECISION] Error evaluating opportunity for %s: %s", symbol, exc, exc_info=True
            )
            return None

    def _update_current_weights(self, positions: Iterable[Any], equity: float) -> None:
        weights = self.state.current_weights
        weights.clear()
        if equity <= 0:
            return
        for position in coerce_positions(positions):
            weights[position.symbol] = weights.get(position.symbol, 0.0) + position.notional / equity

    @staticmethod
    def _classify(deviation: float) -> tuple[RebalanceAction, Urgency, bool]:
        magnitude = abs(deviation)
        for threshold, urgency in URGENCY_THRESHOLDS:
            if magnitude > threshold:
                action = RebalanceAction.SELL if deviation > 0 else RebalanceAction.BUY
                return action, urgency, True
        return RebalanceAction.HOLD, Urgency.LOW, False

    def evaluate_portfolio_balance(
        self,
        positions: Iterable[Any],
        equity: float,
    ) -> List[PortfolioBalanceAssessment]:
        """Compare live weights with the targets.

        The assessment is always recomputed; only the "rebalancing needed"
        log line is throttled to one per notification interval.
        """
        try:
            self._update_current_weights(positions, equity)

            assessments: List[PortfolioBalanceAssessment] = []
            for symbol, target in self.state.target_allocations.items():
                current = self.state.current_weights.get(symbol, 0.0)
                deviation = current - target
                action, urgency, needs = self._classify(deviation)
                assessments.append(
                    PortfolioBalanceAssessment(
                        symbol=symbol,
                        current_weight=current,
                        target_weight=target,
                        deviation=deviation,
                        needs_rebalancing=needs,
                        action=action,
                        urgency=urgency,
                    )
                )

            now = epoch_seconds(self._clock)
            if now - self.state.last_rebalance_notice > self.settings.rebalance_notify_interval:
                self.state.last_rebalance_notice = now
                imbalanced = [a for a in assessments if a.needs_rebalancing]
                if imbalanced:
                    logger.info(
                        "[DECISION] Portfolio rebalancing needed: %d/%d symbols imbalanced (%s)",
                        len(imbalanced),
                        len(assessments),
                        ", ".join(f"{a.symbol}:{a.urgency.value}" for a in imbalanced),
                    )
            return assessments
        except Exception as exc:
            logger.error("[DECISION] Error evaluating portfolio balance: %s", exc, exc_info=True)
            return []

    def record_trade(self, symbol: str, signal: Signal, executed: bool) -> None:
        self._reset_daily_counters()
        count = self.state.daily_trades.get(symbol, 0) + 1
        self.state.daily_trades[symbol] = count
        self.state.trade_history.append(
            {
                "timestamp": epoch_seconds(self._clock),
                "symbol": symbol,
                "direction": signal.direction.value,
                "confidence": signal.confidence,
                "executed": bool(executed),
            }
        )
        logger.debug(
            "[DECISION] Trade recorded for %s: daily=%d total_today=%d",
            symbol,
            count,
            sum(self.state.daily_trades.values()),
        )

    def get_decision_metrics(self) -> DecisionMetrics:
        self._reset_daily_counters()
        rate, considered, executed = success_rate(
            self.state.trade_history,
            epoch_seconds(self._clock),
            METRICS_WINDOW_SECONDS,
        )
        return DecisionMetrics(
            total_trades_today=sum(self.state.daily_trades.values()),
            success_rate=rate,
            avg_return=0.0,
            risk_utilization=self.settings.risk_utilization,
            portfolio_balance=portfolio_balance_score(
                self.state.target_allocations, self.state.current_weights
            ),
            opportunities_identified=considered,
            trades_executed=executed,
        )

    def generate_daily_report(self) -> str:
        return format_daily_report(
            self.get_decision_metrics(),
            self.state.daily_trades,
            self.state.target_allocations,
            self.state.current_weights,
        )


def rank_opportunities(
    opportunities: Iterable[Optional[TradingOpportunity]],
    max_trades: Optional[int] = None,
) -> List[TradingOpportunity]:
    """Sort by priority (highest first) and keep at most ``max_trades``.

    ``None`` entries from rejected evaluations are dropped; equal priorities
    keep their input order.
    """
    ranked = sorted(
        (o for o in opportunities if o is not None),
        key=lambda o: o.priority,
        reverse=True,
    )
    if max_trades is not None:
        ranked = ranked[: max(0, max_trades)]
    return ranked


__all__ = [
    "AggressiveDecisionEngine",
    "DecisionState",
    "is_active_hour",
    "rank_opportunities",
]
