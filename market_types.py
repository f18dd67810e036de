"""Shared value types for the strategy core.

Bars flow in from the market feed, the technical engine turns them into
:class:`Signal` objects and the decision engine scores those into
:class:`TradingOpportunity` records.  Portfolio checks produce
:class:`PortfolioBalanceAssessment` rows.  The collaborator protocols at the
bottom describe the surrounding bot; the core never implements them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Sequence


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"


class Sentiment(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class RebalanceAction(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RejectionReason(str, Enum):
    """Why the decision engine declined to emit an opportunity."""

    LOW_CONFIDENCE = "LowConfidence"
    LOW_EXPECTED_RETURN = "LowExpectedReturn"
    DAILY_QUOTA_REACHED = "DailyQuotaReached"


@dataclass(frozen=True)
class Bar:
    """One OHLCV sample; ``timestamp`` is epoch seconds."""

    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: float = 0.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Bar":
        return cls(
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=float(data.get("volume", 0.0) or 0.0),
            timestamp=float(data.get("timestamp", 0.0) or 0.0),
        )

    @property
    def price_change(self) -> float:
        """Signed open-to-close move as a fraction of the open."""
        return (self.close - self.open) / self.open

    @property
    def volatility(self) -> float:
        """High-low range as a fraction of the close."""
        return (self.high - self.low) / self.close


@dataclass(frozen=True)
class SentimentHint:
    """Optional news sentiment attached to a signal upstream."""

    sentiment: Sentiment
    confidence: float

    def supports(self, direction: Direction) -> bool:
        if self.sentiment is Sentiment.BULLISH:
            return direction is Direction.LONG
        if self.sentiment is Sentiment.BEARISH:
            return direction is Direction.SHORT
        return False


@dataclass(frozen=True)
class Signal:
    """Directional hypothesis emitted by one winning strategy."""

    at: int
    symbol: str
    timeframe: str
    direction: Direction
    confidence: float
    name: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    sentiment: Optional[SentimentHint] = None

    def with_sentiment(self, hint: Optional[SentimentHint]) -> "Signal":
        return replace(self, sentiment=hint)


@dataclass(frozen=True)
class TradingOpportunity:
    symbol: str
    signal: Signal
    confidence: float
    expected_return: float
    risk_score: float
    priority: float
    reason: str
    timeframe: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "strategy": self.signal.name,
            "direction": self.signal.direction.value,
            "confidence": round(self.confidence, 4),
            "expected_return": round(self.expected_return, 4),
            "risk_score": round(self.risk_score, 4),
            "priority": round(self.priority, 4),
            "reason": self.reason,
            "timeframe": self.timeframe,
        }


@dataclass(frozen=True)
class PortfolioBalanceAssessment:
    symbol: str
    current_weight: float
    target_weight: float
    deviation: float
    needs_rebalancing: bool
    action: RebalanceAction
    urgency: Urgency


@dataclass(frozen=True)
class Position:
    """Live holding as reported by the position source."""

    symbol: str
    size: float
    mark_price: float

    @property
    def notional(self) -> float:
        return abs(self.size * self.mark_price)


# ---------------------------------------------------------------------------
# Collaborators supplied by the orchestrator
# ---------------------------------------------------------------------------


class MarketFeed(Protocol):
    """Chronological bars per ``(symbol, timeframe)``; gaps are not filled."""

    def latest_bar(self, symbol: str, timeframe: str) -> Optional[Bar]:
        ...


class PositionSource(Protocol):
    def positions(self) -> Sequence[Position]:
        ...

    def total_equity(self) -> float:
        ...


class OrderExecutor(Protocol):
    """Accepts an opportunity and performs the trade, retrying on its own."""

    def execute(self, opportunity: TradingOpportunity) -> bool:
        ...


def coerce_positions(raw: Iterable[Any]) -> list[Position]:
    """Accept :class:`Position` objects or exchange-style mappings."""

    positions: list[Position] = []
    for item in raw:
        if isinstance(item, Position):
            positions.append(item)
            continue
        mark = item.get("mark_price", item.get("markPrice", 0.0))
        positions.append(
            Position(
                symbol=str(item["symbol"]),
                size=float(item.get("size", 0.0) or 0.0),
                mark_price=float(mark or 0.0),
            )
        )
    return positions


__all__ = [
    "Bar",
    "Direction",
    "MarketFeed",
    "OrderExecutor",
    "PortfolioBalanceAssessment",
    "Position",
    "PositionSource",
    "RebalanceAction",
    "RejectionReason",
    "Sentiment",
    "SentimentHint",
    "Signal",
    "TradingOpportunity",
    "Urgency",
    "coerce_positions",
]
