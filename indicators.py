"""
Indicator math for the technical analysis engine.

All functions accept a plain sequence, NumPy array or :class:`pandas.Series`
of closing prices ordered oldest to newest and return scalars describing the
most recent bar.  The helpers deliberately mirror the simple formulations the
strategies were tuned against:

* ``calculate_rsi`` uses plain averages of the last ``period`` gains and
  losses (not Wilder smoothing).
* ``calculate_ema`` seeds with the SMA of the first ``period`` values.
* ``calculate_macd`` approximates the signal line by averaging MACD values
  recomputed on the nine most recent prefixes of the series.  This is a
  sliding-window stand-in for an EMA of the MACD line and is kept as-is
  because the strategy thresholds were calibrated on it.
* ``calculate_bollinger_bands`` reads the band from ``ta`` (population
  standard deviation) and falls back to a synthetic +/-2% band when
  there are fewer closes than the band period.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Union

import numpy as np
import pandas as pd
from ta.volatility import BollingerBands

PriceInput = Union[pd.Series, np.ndarray, Iterable[float]]

RSI_PERIOD = 14
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9
BB_PERIOD = 20
BB_STD_DEV = 2.0
SYNTHETIC_BAND_PCT = 0.02


@dataclass(frozen=True)
class MacdSnapshot:
    line: float
    signal: float
    histogram: float
    previous_histogram: float


@dataclass(frozen=True)
class BollingerSnapshot:
    upper: float
    middle: float
    lower: float
    bandwidth: float

    def position(self, price: float) -> float:
        """Where ``price`` sits inside the band: 0 at the lower edge, 1 at the upper."""
        return (price - self.lower) / (self.upper - self.lower)


@dataclass(frozen=True)
class IndicatorSet:
    rsi: float
    macd: MacdSnapshot
    bollinger: BollingerSnapshot

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _as_array(values: PriceInput) -> np.ndarray:
    if isinstance(values, pd.Series):
        return values.to_numpy(dtype=float)
    if isinstance(values, np.ndarray):
        return values.astype(float, copy=False)
    return np.asarray(list(values), dtype=float)


def calculate_rsi(closes: PriceInput, period: int = RSI_PERIOD) -> float:
    """Relative Strength Index of the last ``period`` close-to-close moves.

    Returns 50 when there are not enough closes and exactly 100 when the
    window contains no losses.
    """
    arr = _as_array(closes)
    if len(arr) < period + 1:
        return 50.0
    deltas = np.diff(arr)[-period:]
    avg_gain = float(np.clip(deltas, 0.0, None).sum()) / period
    avg_loss = float(np.clip(-deltas, 0.0, None).sum()) / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    rsi = 100.0 - (100.0 / (1.0 + rs))
    return float(min(max(rsi, 0.0), 100.0))


def calculate_ema(values: PriceInput, period: int) -> float:
    """Final value of an SMA-seeded exponential moving average."""
    arr = _as_array(values)
    if len(arr) == 0:
        return 0.0
    if len(arr) < period:
        return float(arr[-1])
    multiplier = 2.0 / (period + 1)
    ema = float(arr[:period].mean())
    for value in arr[period:]:
        ema = float(value) * multiplier + ema * (1.0 - multiplier)
    return ema


def _macd_line(arr: np.ndarray, fast: int, slow: int) -> float:
    return calculate_ema(arr, fast) - calculate_ema(arr, slow)


def calculate_macd(
    closes: PriceInput,
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal: int = MACD_SIGNAL,
) -> MacdSnapshot:
    """MACD line, approximate signal line and the current/previous histogram."""
    arr = _as_array(closes)
    n = len(arr)
    if n < slow:
        return MacdSnapshot(0.0, 0.0, 0.0, 0.0)

    line = _macd_line(arr, fast, slow)

    recent = []
    for i in range(signal):
        idx = n - signal + i
        if idx < 0:
            recent.append(0.0)
            continue
        recent.append(_macd_line(arr[: idx + 1], fast, slow))
    signal_line = float(np.mean(recent))
    histogram = line - signal_line

    # Same signal line on purpose: only the MACD line moves back one bar.
    previous_line = _macd_line(arr[:-1], fast, slow) if n > 1 else 0.0
    previous_histogram = previous_line - signal_line

    return MacdSnapshot(
        line=float(line),
        signal=signal_line,
        histogram=float(histogram),
        previous_histogram=float(previous_histogram),
    )


def calculate_bollinger_bands(
    closes: PriceInput,
    period: int = BB_PERIOD,
    std_dev: float = BB_STD_DEV,
) -> BollingerSnapshot:
    arr = _as_array(closes)
    if len(arr) < period:
        price = float(arr[-1]) if len(arr) else 0.0
        return BollingerSnapshot(
            upper=price * (1 + SYNTHETIC_BAND_PCT),
            middle=price,
            lower=price * (1 - SYNTHETIC_BAND_PCT),
            bandwidth=2 * SYNTHETIC_BAND_PCT,
        )
    bb = BollingerBands(pd.Series(arr), window=period, window_dev=std_dev)
    upper = float(bb.bollinger_hband().iloc[-1])
    middle = float(bb.bollinger_mavg().iloc[-1])
    lower = float(bb.bollinger_lband().iloc[-1])
    bandwidth = (upper - lower) / middle if middle else 0.0
    return BollingerSnapshot(upper=upper, middle=middle, lower=lower, bandwidth=bandwidth)


def compute_indicator_set(closes: PriceInput) -> IndicatorSet:
    arr = _as_array(closes)
    return IndicatorSet(
        rsi=calculate_rsi(arr),
        macd=calculate_macd(arr),
        bollinger=calculate_bollinger_bands(arr),
    )


__all__ = [
    "BollingerSnapshot",
    "IndicatorSet",
    "MacdSnapshot",
    "calculate_bollinger_bands",
    "calculate_ema",
    "calculate_macd",
    "calculate_rsi",
    "compute_indicator_set",
]
