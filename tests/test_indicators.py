"""
Indicator library tests — moving averages, oscillators, volatility,
pivots, crossovers, swing points and the statistics helpers.
"""

import math
from datetime import date, timedelta

import pandas as pd
import pytest


def _make_bars(closes, volume=1_000_000):
    """Helper: OHLCV bars around each close, one per calendar day."""
    from models import Bar

    base = date(2024, 1, 1)
    return [
        Bar(date=base + timedelta(days=i), open=c * 0.995, high=c * 1.01,
            low=c * 0.99, close=c, volume=volume)
        for i, c in enumerate(closes)
    ]


# ═══════════════════════════════════════════════
#  MOVING AVERAGES
# ═══════════════════════════════════════════════

class TestMovingAverages:

    def test_sma_trailing_window(self):
        from indicators import sma
        values = [float(i) for i in range(1, 21)]
        result = sma(values, 5)
        assert len(result) == 20
        assert result.iloc[:4].isna().all()
        assert result.iloc[4] == pytest.approx(3.0)
        for i in range(4, 20):
            assert result.iloc[i] == pytest.approx(sum(values[i - 4:i + 1]) / 5)

    def test_sma_short_input_all_nan(self):
        from indicators import sma
        assert sma([1.0, 2.0], 5).isna().all()
        assert len(sma([], 5)) == 0

    def test_ema_seeded_with_sma(self):
        from indicators import ema
        values = [float(i) for i in range(1, 21)]
        result = ema(values, 5)
        assert result.iloc[:4].isna().all()
        assert result.iloc[4] == pytest.approx(3.0)
        k = 2 / 6
        assert result.iloc[5] == pytest.approx((6 - 3.0) * k + 3.0)

    def test_ema_fewer_values_than_period(self):
        from indicators import ema
        assert ema([1.0, 2.0, 3.0], 5).isna().all()


# ═══════════════════════════════════════════════
#  MOMENTUM
# ═══════════════════════════════════════════════

class TestRSI:

    def test_increasing_is_100(self):
        from indicators import rsi
        result = rsi([100 + i for i in range(30)], 14)
        assert result.iloc[:14].isna().all()
        assert result.iloc[-1] == 100.0

    def test_decreasing_is_0(self):
        from indicators import rsi
        result = rsi([200 - i for i in range(30)], 14)
        assert result.iloc[-1] == pytest.approx(0.0)

    def test_flat_is_50(self):
        from indicators import rsi
        assert rsi([100.0] * 50, 14).iloc[-1] == 50.0

    def test_bounded(self):
        from indicators import rsi
        closes = [100 + math.sin(i * 0.3) * 10 + i * 0.1 for i in range(200)]
        values = rsi(closes, 14).dropna()
        assert len(values) == 200 - 14
        assert ((values >= 0) & (values <= 100)).all()

    def test_short_input(self):
        from indicators import rsi
        assert rsi([1.0, 2.0, 3.0], 14).isna().all()


class TestMACD:

    def test_columns_and_alignment(self):
        from indicators import macd
        closes = [100 + math.sin(i * 0.2) * 5 for i in range(80)]
        df = macd(closes)
        assert list(df.columns) == ["macd", "signal", "histogram"]
        assert len(df) == 80
        # MACD line starts with the slow EMA, signal 8 bars later
        assert df["macd"].iloc[:25].isna().all()
        assert not pd.isna(df["macd"].iloc[25])
        assert df["signal"].iloc[:33].isna().all()
        assert not pd.isna(df["signal"].iloc[33])
        assert df["histogram"].iloc[-1] == pytest.approx(df["macd"].iloc[-1] - df["signal"].iloc[-1])


# ═══════════════════════════════════════════════
#  VOLATILITY / TREND STRENGTH
# ═══════════════════════════════════════════════

class TestVolatility:

    def test_true_range_first_is_nan(self):
        from indicators import true_range
        tr = true_range(_make_bars([100.0, 101.0, 102.0]))
        assert pd.isna(tr.iloc[0])
        assert tr.iloc[1] == pytest.approx(101 * 1.01 - 101 * 0.99)

    def test_atr_first_value_at_period(self):
        from indicators import atr, true_range
        bars = _make_bars([100 + i for i in range(30)])
        result = atr(bars, 14)
        assert result.iloc[:14].isna().all()
        assert result.iloc[14] == pytest.approx(true_range(bars).iloc[1:15].mean())

    def test_atr_constant_range(self):
        from indicators import atr
        from models import Bar
        bars = [Bar(date(2024, 1, 1) + timedelta(days=i), 100, 101, 99, 100, 1000) for i in range(40)]
        assert atr(bars, 14).iloc[-1] == pytest.approx(2.0)

    def test_adx_strong_uptrend(self):
        from indicators import adx
        assert adx(_make_bars([100 + i for i in range(60)])) == pytest.approx(100.0)

    def test_adx_flat_is_zero(self):
        from indicators import adx
        assert adx(_make_bars([100.0] * 60)) == 0.0

    def test_bollinger_population_std(self):
        from indicators import bollinger_bands
        bb = bollinger_bands([1.0, 2.0, 3.0, 4.0], period=4, std_dev=2)
        sd = math.sqrt(1.25)
        assert bb["middle"].iloc[-1] == pytest.approx(2.5)
        assert bb["upper"].iloc[-1] == pytest.approx(2.5 + 2 * sd)
        assert bb["lower"].iloc[-1] == pytest.approx(2.5 - 2 * sd)

    def test_ichimoku_span_b_needs_52_bars(self):
        from indicators import ichimoku
        cloud = ichimoku(_make_bars([100 + i for i in range(60)]))
        assert cloud["span_b"].iloc[:51].isna().all()
        assert not pd.isna(cloud["span_b"].iloc[51])
        assert cloud["span_a"].iloc[-1] == pytest.approx((cloud["tenkan"].iloc[-1] + cloud["kijun"].iloc[-1]) / 2)


# ═══════════════════════════════════════════════
#  VOLUME / STRUCTURE
# ═══════════════════════════════════════════════

class TestVolumeAndStructure:

    def test_obv(self):
        from indicators import obv
        bars = _make_bars([10.0, 11.0, 10.5, 10.5, 12.0], volume=100)
        assert list(obv(bars)) == [0.0, 100.0, 0.0, 0.0, 100.0]

    def test_fibonacci_pivots(self):
        from indicators import fibonacci_pivots
        p = fibonacci_pivots(110, 90, 100)
        assert p["pp"] == pytest.approx(100)
        assert p["r1"] == pytest.approx(107.64)
        assert p["r2"] == pytest.approx(112.36)
        assert p["r3"] == pytest.approx(120)
        assert p["s1"] == pytest.approx(92.36)
        assert p["s3"] == pytest.approx(80)

    def test_volume_breakout(self):
        from indicators import volume_breakout
        assert volume_breakout([100] * 20 + [300]) is True
        assert volume_breakout([100] * 21) is False
        # needs lookback + 1 values
        assert volume_breakout([100] * 19 + [1000]) is False

    def test_ma_crossover_signals(self):
        from indicators import ma_crossover_signals
        fast = [None, 1.0, 3.0, 3.0, 1.0]
        slow = [None, 2.0, 2.0, 2.0, 2.0]
        signals = ma_crossover_signals(fast, slow)
        assert [(s.index, s.type) for s in signals] == [(2, "BUY"), (4, "SELL")]

    def test_swing_points_strict(self):
        from indicators import find_swing_points
        closes = [100 + i for i in range(11)] + [110 - i for i in range(1, 11)]
        swings = find_swing_points(_make_bars(closes), lookback=5)
        assert swings.highs == [pytest.approx(110 * 1.01)]
        assert swings.lows == []


# ═══════════════════════════════════════════════
#  STATISTICS
# ═══════════════════════════════════════════════

class TestStatistics:

    def test_returns(self):
        from indicators import returns
        assert list(returns([100, 110, 99])) == [pytest.approx(0.1), pytest.approx(-0.1)]
        assert len(returns([100])) == 0

    def test_std_and_mean(self):
        from indicators import mean, std_dev
        assert mean([1, 2, 3, 4]) == pytest.approx(2.5)
        assert std_dev([1, 2, 3, 4]) == pytest.approx(math.sqrt(1.25))
        assert math.isnan(mean([]))

    def test_correlation(self):
        from indicators import correlation
        x = [1.0, 2.0, 4.0, 3.0, 5.0]
        assert correlation(x, [2 * v for v in x]) == pytest.approx(1.0)
        assert correlation(x, [-v for v in x]) == pytest.approx(-1.0)
        assert math.isnan(correlation(x, [1.0] * 5))

    def test_covariance_population(self):
        from indicators import covariance
        assert covariance([1, 2, 3], [2, 4, 6]) == pytest.approx(4 / 3)
        # tail-aligned on the common length
        assert covariance([100, 1, 2, 3], [2, 4, 6]) == pytest.approx(4 / 3)
        assert math.isnan(covariance([], []))

    def test_autocorrelation_lag1(self):
        from indicators import autocorrelation
        assert autocorrelation([1, 2, 3, 4, 5]) == pytest.approx(1.0)
        assert autocorrelation([1, -1, 1, -1, 1, -1]) == pytest.approx(-1.0)
        assert autocorrelation([1, 2, 3], lag=3) == 0.0

    def test_skewness_symmetric(self):
        from indicators import skewness, kurtosis
        assert skewness([1, 2, 3, 4, 5]) == pytest.approx(0.0)
        assert math.isnan(skewness([1, 1, 1]))
        assert not math.isnan(kurtosis([1, 2, 3, 4, 9]))

    def test_sharpe_and_volatility(self):
        from indicators import annualized_volatility, sharpe_ratio
        assert math.isnan(sharpe_ratio([100.0] * 30))
        assert annualized_volatility([100.0] * 30) == pytest.approx(0.0)
        rising = [100 * (1.01 ** i) + (i % 2) * 0.1 for i in range(60)]
        assert sharpe_ratio(rising) > 0

    def test_beta_and_alpha_against_itself(self):
        from indicators import alpha, beta
        prices = [100 + math.sin(i * 0.4) * 3 + i * 0.2 for i in range(61)]
        b = beta(prices, prices)
        assert b == pytest.approx(1.0)
        assert alpha(prices, prices, b) == pytest.approx(0.0, abs=1e-9)

    def test_round_half_up(self):
        from indicators import round_half_up
        assert round_half_up(2.5) == 3
        assert round_half_up(47.0) == 47
        assert round_half_up(88.25) == 88
