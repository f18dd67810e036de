"""
Rule-based entry strategies evaluated by the technical analysis engine.

Each strategy is a pure function taking a :class:`MarketSnapshot` (recent
closes and volumes plus one shared :class:`IndicatorSet`) and returning a
candidate :class:`Signal` or ``None``.  ``STRATEGIES`` fixes the evaluation
order, and that order is also the tie-break: when two candidates share the
highest confidence the one declared first wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np

from indicators import IndicatorSet
from market_types import Direction, Signal

MAX_CONFIDENCE = 0.95
VOLUME_LOOKBACK = 20
SQUEEZE_BANDWIDTH = 0.02
VOLUME_SPIKE_MULTIPLIER = 1.5


@dataclass(frozen=True)
class MarketSnapshot:
    symbol: str
    timeframe: str
    at: int
    closes: np.ndarray
    volumes: np.ndarray
    indicators: IndicatorSet

    @property
    def price(self) -> float:
        return float(self.closes[-1])

    @property
    def previous_price(self) -> Optional[float]:
        if len(self.closes) < 2:
            return None
        return float(self.closes[-2])

    def band_position(self) -> Optional[float]:
        """Price position inside the Bollinger band, ``None`` for a zero-width band."""
        bb = self.indicators.bollinger
        if bb.upper == bb.lower:
            return None
        return bb.position(self.price)


StrategyFn = Callable[[MarketSnapshot], Optional[Signal]]


def _emit(
    snap: MarketSnapshot,
    name: str,
    direction: Direction,
    confidence: float,
    metadata: Dict[str, Any],
) -> Signal:
    return Signal(
        at=snap.at,
        symbol=snap.symbol,
        timeframe=snap.timeframe,
        direction=direction,
        confidence=min(MAX_CONFIDENCE, confidence),
        name=name,
        metadata=metadata,
    )


def rsi_macd_reversal(snap: MarketSnapshot) -> Optional[Signal]:
    """Oversold/overbought RSI confirmed by the MACD crossing its signal."""
    rsi = snap.indicators.rsi
    macd = snap.indicators.macd

    if rsi < 30 and macd.line > macd.signal and macd.histogram > 0:
        direction = Direction.LONG
        confidence = 0.7
        if rsi < 25:
            confidence += 0.1
        # fresh crossover
        if macd.previous_histogram <= 0:
            confidence += 0.1
    elif rsi > 70 and macd.line < macd.signal and macd.histogram < 0:
        direction = Direction.SHORT
        confidence = 0.7
        if rsi > 75:
            confidence += 0.1
        if macd.previous_histogram >= 0:
            confidence += 0.1
    else:
        return None

    return _emit(snap, "rsi-macd-reversal", direction, confidence, {
        "rsi": rsi,
        "macd": macd.line,
        "signal": macd.signal,
        "histogram": macd.histogram,
    })


def bollinger_mean_reversion(snap: MarketSnapshot) -> Optional[Signal]:
    bb = snap.indicators.bollinger
    rsi = snap.indicators.rsi
    price = snap.price
    if not price or not bb.upper or not bb.lower:
        return None
    bb_position = snap.band_position()
    if bb_position is None:
        return None

    if bb_position < 0.1 and rsi < 40:
        direction = Direction.LONG
        confidence = 0.65
        if price < bb.lower:
            confidence += 0.1
        if rsi < 30:
            confidence += 0.1
    elif bb_position > 0.9 and rsi > 60:
        direction = Direction.SHORT
        confidence = 0.65
        if price > bb.upper:
            confidence += 0.1
        if rsi > 70:
            confidence += 0.1
    else:
        return None

    return _emit(snap, "bb-mean-reversion", direction, confidence, {
        "bbPosition": bb_position,
        "rsi": rsi,
        "bbUpper": bb.upper,
        "bbLower": bb.lower,
        "bbMiddle": bb.middle,
        "bandwidth": bb.bandwidth,
    })


def triple_indicator_trend(snap: MarketSnapshot) -> Optional[Signal]:
    """RSI, MACD and the band midline all pointing the same way."""
    bb = snap.indicators.bollinger
    rsi = snap.indicators.rsi
    macd = snap.indicators.macd
    price = snap.price
    if not price or not bb.middle or not bb.upper or not bb.lower:
        return None

    if rsi > 60 and macd.line > 0 and price > bb.middle:
        direction = Direction.LONG
        confidence = 0.75
        if rsi > 65:
            confidence += 0.05
        if macd.histogram > 0:
            confidence += 0.05
        if price > bb.upper:
            confidence += 0.05
    elif rsi < 40 and macd.line < 0 and price < bb.middle:
        direction = Direction.SHORT
        confidence = 0.75
        if rsi < 35:
            confidence += 0.05
        if macd.histogram < 0:
            confidence += 0.05
        if price < bb.lower:
            confidence += 0.05
    else:
        return None

    return _emit(snap, "triple-trend-follow", direction, confidence, {
        "rsi": rsi,
        "macd": macd.line,
        "bbPosition": price / bb.middle,
    })


def bollinger_breakout(snap: MarketSnapshot) -> Optional[Signal]:
    """Close crossing a band on a volume spike; squeezes add conviction."""
    bb = snap.indicators.bollinger
    rsi = snap.indicators.rsi
    price = snap.price
    prev_price = snap.previous_price
    current_volume = float(snap.volumes[-1]) if len(snap.volumes) else 0.0
    if not price or not prev_price or not current_volume:
        return None

    avg_volume = float(snap.volumes[-VOLUME_LOOKBACK:].sum()) / VOLUME_LOOKBACK
    is_squeezed = bb.bandwidth < SQUEEZE_BANDWIDTH
    volume_spike = current_volume > avg_volume * VOLUME_SPIKE_MULTIPLIER

    if price > bb.upper and prev_price <= bb.upper and volume_spike and rsi > 55:
        direction = Direction.LONG
        confidence = 0.8
        if is_squeezed:
            confidence += 0.1
        if rsi > 60:
            confidence += 0.05
    elif price < bb.lower and prev_price >= bb.lower and volume_spike and rsi < 45:
        direction = Direction.SHORT
        confidence = 0.8
        if is_squeezed:
            confidence += 0.1
        if rsi < 40:
            confidence += 0.05
    else:
        return None

    return _emit(snap, "bb-breakout", direction, confidence, {
        "bandwidth": bb.bandwidth,
        "volumeRatio": current_volume / avg_volume,
        "rsi": rsi,
        "squeezed": is_squeezed,
    })


def macd_momentum(snap: MarketSnapshot) -> Optional[Signal]:
    """Histogram acceleration while price sits in the middle of the band."""
    bb = snap.indicators.bollinger
    rsi = snap.indicators.rsi
    macd = snap.indicators.macd
    if not snap.price or not bb.upper or not bb.lower:
        return None
    bb_position = snap.band_position()
    if bb_position is None or bb_position < 0.2 or bb_position > 0.8:
        return None

    if macd.histogram > 0 and macd.histogram > macd.previous_histogram and rsi > 45:
        direction = Direction.LONG
        confidence = 0.7
        if macd.line > macd.signal:
            confidence += 0.05
        if 50 < rsi < 70:
            confidence += 0.05
    elif macd.histogram < 0 and macd.histogram < macd.previous_histogram and rsi < 55:
        direction = Direction.SHORT
        confidence = 0.7
        if macd.line < macd.signal:
            confidence += 0.05
        if 30 < rsi < 50:
            confidence += 0.05
    else:
        return None

    return _emit(snap, "macd-momentum", direction, confidence, {
        "histogram": macd.histogram,
        "bbPosition": bb_position,
        "rsi": rsi,
        "momentum": macd.histogram - macd.previous_histogram,
    })


# Evaluation order doubles as the tie-break priority.
STRATEGIES: List[Tuple[str, StrategyFn]] = [
    ("rsi-macd-reversal", rsi_macd_reversal),
    ("bb-mean-reversion", bollinger_mean_reversion),
    ("triple-trend-follow", triple_indicator_trend),
    ("bb-breakout", bollinger_breakout),
    ("macd-momentum", macd_momentum),
]


def run_strategies(
    snap: MarketSnapshot,
    strategies: Iterable[Tuple[str, StrategyFn]] = STRATEGIES,
) -> List[Signal]:
    """Return every candidate in declaration order, skipping abstentions."""
    candidates: List[Signal] = []
    for _name, strategy in strategies:
        candidate = strategy(snap)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def select_best_signal(candidates: Iterable[Signal]) -> Optional[Signal]:
    """Highest confidence wins; on equal confidence the earlier candidate stays."""
    best: Optional[Signal] = None
    for candidate in candidates:
        if best is None or candidate.confidence > best.confidence:
            best = candidate
    return best


__all__ = [
    "MarketSnapshot",
    "STRATEGIES",
    "bollinger_breakout",
    "bollinger_mean_reversion",
    "macd_momentum",
    "rsi_macd_reversal",
    "run_strategies",
    "select_best_signal",
    "triple_indicator_trend",
]
