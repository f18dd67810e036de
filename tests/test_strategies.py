import numpy as np
import pytest

from indicators import BollingerSnapshot, IndicatorSet, MacdSnapshot
from market_types import Direction, Signal
from strategies import (
    STRATEGIES,
    MarketSnapshot,
    bollinger_breakout,
    bollinger_mean_reversion,
    macd_momentum,
    rsi_macd_reversal,
    run_strategies,
    select_best_signal,
    triple_indicator_trend,
)


def _snapshot(
    *,
    rsi=50.0,
    macd=(0.0, 0.0, 0.0, 0.0),
    bands=(102.0, 100.0, 98.0, 0.04),
    closes=(100.0, 100.0),
    volumes=None,
):
    closes_arr = np.array([100.0] * 30 + list(closes), dtype=float)
    if volumes is None:
        volumes_arr = np.full(len(closes_arr), 1000.0)
    else:
        volumes_arr = np.array([1000.0] * (len(closes_arr) - len(volumes)) + list(volumes))
    line, signal, hist, prev_hist = macd
    upper, middle, lower, bandwidth = bands
    return MarketSnapshot(
        symbol="BTCUSDT",
        timeframe="15m",
        at=1_700_000_000_000,
        closes=closes_arr,
        volumes=volumes_arr,
        indicators=IndicatorSet(
            rsi=rsi,
            macd=MacdSnapshot(line, signal, hist, prev_hist),
            bollinger=BollingerSnapshot(upper, middle, lower, bandwidth),
        ),
    )


def test_strategy_order_is_fixed():
    assert [name for name, _ in STRATEGIES] == [
        "rsi-macd-reversal",
        "bb-mean-reversion",
        "triple-trend-follow",
        "bb-breakout",
        "macd-momentum",
    ]


def test_reversal_long_on_fresh_crossover_when_deeply_oversold():
    snap = _snapshot(rsi=22.0, macd=(0.5, 0.2, 0.3, -0.1))
    signal = rsi_macd_reversal(snap)
    assert signal.direction is Direction.LONG
    assert signal.confidence == pytest.approx(0.9)
    assert signal.name == "rsi-macd-reversal"
    assert signal.metadata["histogram"] == pytest.approx(0.3)


def test_reversal_short_mirror():
    snap = _snapshot(rsi=72.0, macd=(-0.5, -0.2, -0.3, -0.4))
    signal = rsi_macd_reversal(snap)
    assert signal.direction is Direction.SHORT
    assert signal.confidence == pytest.approx(0.7)


def test_reversal_abstains_without_macd_confirmation():
    assert rsi_macd_reversal(_snapshot(rsi=20.0, macd=(-0.5, 0.2, -0.7, -0.1))) is None


def test_mean_reversion_long_below_lower_band():
    snap = _snapshot(rsi=28.0, closes=(100.0, 97.5))
    signal = bollinger_mean_reversion(snap)
    assert signal.direction is Direction.LONG
    assert signal.confidence == pytest.approx(0.85)
    assert signal.metadata["bbPosition"] < 0


def test_mean_reversion_short_near_upper_band():
    snap = _snapshot(rsi=65.0, closes=(100.0, 101.7))
    signal = bollinger_mean_reversion(snap)
    assert signal.direction is Direction.SHORT
    assert signal.confidence == pytest.approx(0.65)


def test_mean_reversion_abstains_on_zero_width_band():
    snap = _snapshot(rsi=20.0, bands=(100.0, 100.0, 100.0, 0.0))
    assert bollinger_mean_reversion(snap) is None


def test_trend_long_collects_all_boosts():
    snap = _snapshot(rsi=68.0, macd=(1.2, 1.0, 0.2, 0.1), closes=(101.0, 102.5))
    signal = triple_indicator_trend(snap)
    assert signal.direction is Direction.LONG
    assert signal.confidence == pytest.approx(0.9)
    assert signal.metadata["bbPosition"] == pytest.approx(1.025)


def test_trend_short_base_confidence():
    snap = _snapshot(rsi=38.0, macd=(-0.2, -0.3, 0.1, 0.0), closes=(100.0, 99.0))
    signal = triple_indicator_trend(snap)
    assert signal.direction is Direction.SHORT
    assert signal.confidence == pytest.approx(0.75)


def test_breakout_from_squeeze_caps_at_max_confidence():
    volumes = [1000.0] * 19 + [3000.0]
    snap = _snapshot(
        rsi=62.0,
        bands=(102.0, 100.0, 98.0, 0.015),
        closes=(100.0, 103.0),
        volumes=volumes,
    )
    signal = bollinger_breakout(snap)
    assert signal.direction is Direction.LONG
    assert signal.confidence == pytest.approx(0.95)
    assert signal.confidence <= 0.95
    assert signal.metadata["squeezed"] is True
    assert signal.metadata["volumeRatio"] == pytest.approx(3000.0 / 1100.0)


def test_breakout_requires_volume_spike():
    snap = _snapshot(rsi=62.0, closes=(100.0, 103.0))
    assert bollinger_breakout(snap) is None


def test_breakdown_short():
    volumes = [1000.0] * 19 + [4000.0]
    snap = _snapshot(rsi=38.0, closes=(99.0, 97.0), volumes=volumes)
    signal = bollinger_breakout(snap)
    assert signal.direction is Direction.SHORT
    assert signal.confidence == pytest.approx(0.85)
    assert signal.metadata["squeezed"] is False


def test_momentum_long_inside_band():
    snap = _snapshot(rsi=60.0, macd=(1.0, 0.5, 0.5, 0.2), closes=(100.0, 100.5))
    signal = macd_momentum(snap)
    assert signal.direction is Direction.LONG
    assert signal.confidence == pytest.approx(0.8)
    assert signal.metadata["momentum"] == pytest.approx(0.3)


def test_momentum_ignores_band_extremes():
    snap = _snapshot(rsi=60.0, macd=(1.0, 0.5, 0.5, 0.2), closes=(100.0, 101.5))
    assert macd_momentum(snap) is None


def _signal(name, confidence):
    return Signal(
        at=0,
        symbol="BTCUSDT",
        timeframe="15m",
        direction=Direction.LONG,
        confidence=confidence,
        name=name,
    )


def test_select_best_signal_prefers_first_on_tie():
    first = _signal("bb-mean-reversion", 0.8)
    second = _signal("macd-momentum", 0.8)
    assert select_best_signal([first, second]) is first


def test_select_best_signal_takes_strict_maximum():
    low = _signal("rsi-macd-reversal", 0.7)
    high = _signal("bb-breakout", 0.85)
    assert select_best_signal([low, high]) is high
    assert select_best_signal([]) is None


def test_run_strategies_keeps_declaration_order():
    # trend long (0.85) and momentum long (0.8) both fire here
    snap = _snapshot(rsi=66.0, macd=(1.0, 0.5, 0.5, 0.2), closes=(100.0, 100.5))
    names = [s.name for s in run_strategies(snap)]
    assert names == ["triple-trend-follow", "macd-momentum"]
    assert select_best_signal(run_strategies(snap)).name == "triple-trend-follow"
