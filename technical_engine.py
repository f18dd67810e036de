"""
Technical analysis engine for the strategy core.

The engine keeps a bounded FIFO of bars per symbol.  Each call to
:meth:`TechnicalAnalysisEngine.analyze` appends the new bar, recomputes RSI,
MACD and Bollinger Bands from the closes, runs the five rule strategies in
:mod:`strategies` and returns the single most confident candidate.

The method never raises: fewer than ``min_bars`` bars simply yields ``None``
and any failure in the indicator math is logged and treated as "no signal"
so that one bad symbol cannot abort a batch.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, Dict, List, Optional

import pandas as pd

from clock import Clock, SystemClock, epoch_seconds
from config import TechnicalSettings, load_technical_settings
from indicators import compute_indicator_set
from log_utils import setup_logger
from market_types import Bar, Signal
from strategies import MarketSnapshot, run_strategies, select_best_signal

logger = setup_logger(__name__)

MIN_BARS_FOR_SIGNAL = 50


class TechnicalAnalysisEngine:
    """Turn a per-symbol bar stream into at most one signal per bar."""

    def __init__(
        self,
        history_length: Optional[int] = None,
        *,
        clock: Optional[Clock] = None,
        settings: Optional[TechnicalSettings] = None,
    ) -> None:
        settings = settings or load_technical_settings()
        length = history_length if history_length is not None else settings.history_length
        if length <= 0:
            raise ValueError("history_length must be positive")
        self.history_length = int(length)
        self.min_bars = max(settings.min_bars, MIN_BARS_FOR_SIGNAL)
        self._clock: Clock = clock or SystemClock()
        self._history: Dict[str, Deque[Bar]] = {}

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def _update_history(self, symbol: str, bar: Bar) -> Deque[Bar]:
        history = self._history.get(symbol)
        if history is None:
            history = deque(maxlen=self.history_length)
            self._history[symbol] = history
        history.append(bar)
        return history

    def history(self, symbol: str) -> List[Bar]:
        return list(self._history.get(symbol, ()))

    def history_size(self, symbol: str) -> int:
        return len(self._history.get(symbol, ()))

    @staticmethod
    def _frame(history: Deque[Bar]) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "close": [b.close for b in history],
                "volume": [b.volume for b in history],
            }
        )

    def _snapshot(self, df: pd.DataFrame, symbol: str, timeframe: str) -> MarketSnapshot:
        closes = df["close"].to_numpy(dtype=float)
        return MarketSnapshot(
            symbol=symbol,
            timeframe=timeframe,
            at=int(epoch_seconds(self._clock) * 1000),
            closes=closes,
            volumes=df["volume"].to_numpy(dtype=float),
            indicators=compute_indicator_set(closes),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def analyze(self, bar: Bar, symbol: str, timeframe: str) -> Optional[Signal]:
        """Record ``bar`` and return the best-confidence signal, if any."""
        try:
            history = self._update_history(symbol, bar)
            if len(history) < self.min_bars:
                logger.debug(
                    "[TA] %s: %d/%d bars, waiting for more data",
                    symbol,
                    len(history),
                    self.min_bars,
                )
                return None

            snapshot = self._snapshot(self._frame(history), symbol, timeframe)
            best = select_best_signal(run_strategies(snapshot))
            if best is not None:
                logger.info(
                    "[TA] %s %s: %s %s @ %.2f",
                    symbol,
                    timeframe,
                    best.name,
                    best.direction.value,
                    best.confidence,
                )
            return best
        except Exception as exc:
            logger.warning(
                "[TA] technical analysis failed for %s: %s", symbol, exc, exc_info=True
            )
            return None

    def get_indicators(self, symbol: str) -> Optional[Dict[str, Any]]:
        """Current indicator snapshot for diagnostics, ``None`` below the data floor."""
        history = self._history.get(symbol)
        if not history or len(history) < self.min_bars:
            return None
        closes = self._frame(history)["close"]
        snapshot = compute_indicator_set(closes).to_dict()
        snapshot["data_points"] = len(closes)
        return snapshot


__all__ = ["MIN_BARS_FOR_SIGNAL", "TechnicalAnalysisEngine"]
