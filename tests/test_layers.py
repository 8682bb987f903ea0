"""
Layer analyzer tests — basic points, advanced layers, key levels and the
institutional structure / volume readings.
"""

from datetime import date, timedelta

import pytest


def _make_bars(closes, volumes=None):
    """Helper: bars with a 1% range around each close."""
    from models import Bar

    base = date(2024, 1, 1)
    volumes = volumes or [1_000_000] * len(closes)
    return [
        Bar(date=base + timedelta(days=i), open=c * 0.995, high=c * 1.01,
            low=c * 0.99, close=c, volume=v)
        for i, (c, v) in enumerate(zip(closes, volumes))
    ]


def _zigzag(n, slope=0.5, period=20, amplitude=10):
    """Triangle wave riding on a linear trend."""
    half = period // 2
    return [
        100 + slope * i + (i % period if i % period < half else period - i % period) * amplitude / half
        for i in range(n)
    ]


# ═══════════════════════════════════════════════
#  BASIC PROFILE
# ═══════════════════════════════════════════════

class TestBasicLayers:

    def test_rising_series_points(self):
        from layers import basic_fibonacci, basic_momentum, basic_trend, basic_volume
        bars = _make_bars([100 + i for i in range(300)])

        trend = basic_trend(bars)
        assert trend.score == 35
        assert trend.components[0].description == "Short-term trend is clearly above long-term average"

        momentum = basic_momentum(bars)
        assert momentum.score == 18
        assert momentum.components[0].description == "Momentum supports continuation"

        volume = basic_volume(bars)
        assert volume.score == 8
        assert volume.components[0].description == "Volume participation is average or low"

        fib = basic_fibonacci(bars)
        assert fib.score == 14
        assert fib.components[0].description == "Price is holding above key Fibonacci structure"

    def test_trend_needs_sma200(self):
        from layers import basic_trend
        result = basic_trend(_make_bars([100 + i for i in range(150)]))
        assert result.score == 0
        assert result.components == []

    def test_volume_surge(self):
        from layers import basic_volume
        result = basic_volume(_make_bars([100.0] * 30, [1000] * 29 + [5000]))
        assert result.score == 20
        assert result.components[0].signal.value == "Bullish"

    def test_zero_volume_ratio_is_neutral(self):
        from layers import basic_volume
        result = basic_volume(_make_bars([100.0] * 30, [0] * 30))
        assert result.components[0].value == 1.0
        assert result.score == 8

    def test_fibonacci_short_input(self):
        from layers import basic_fibonacci
        assert basic_fibonacci(_make_bars([100.0, 101.0, 102.0])).score == 0

    def test_falling_momentum(self):
        from layers import basic_momentum
        result = basic_momentum(_make_bars([300 - i for i in range(60)]))
        assert result.score == 5
        assert result.components[0].description == "Momentum is neutral or weakening"


# ═══════════════════════════════════════════════
#  ADVANCED PROFILE
# ═══════════════════════════════════════════════

class TestAdvancedLayers:

    def test_trend_strong_uptrend(self):
        from layers import analyze_trend
        result = analyze_trend(_make_bars([100 + i for i in range(300)]))
        assert result.score == 88
        names = [c.name for c in result.components]
        assert names == ["Ichimoku Cloud", "EMA Ribbon", "ADX Strength"]
        assert result.components[0].description == "Price above cloud, thick support"
        assert result.components[1].signal.value == "Bullish"
        assert result.components[1].description == "8/21/55 aligned upward"
        assert result.components[2].description == "ADX at 100, very strong trend"

    def test_trend_flat_is_near_neutral(self):
        from layers import analyze_trend
        result = analyze_trend(_make_bars([100.0] * 50))
        assert result.score == 47
        assert result.components[0].description == "Price inside cloud"
        assert result.components[1].description == "EMAs mixed"
        assert result.components[2].description == "ADX at 0, weak trend"

    def test_momentum_flat_rsi_50(self):
        from layers import analyze_momentum
        result = analyze_momentum(_make_bars([100.0] * 50))
        rsi_component = result.components[0]
        assert rsi_component.description == "RSI at 50.0, neutral momentum"
        assert rsi_component.value == 60
        assert 0 <= result.score <= 100

    def test_structure_near_support(self):
        from layers import analyze_structure
        closes = [120 - i for i in range(45)] + [76, 76.5, 77, 77.5, 78]
        result = analyze_structure(_make_bars(closes))
        assert result.score == 85
        assert result.components[0].description == "Near support, bouncing"

    def test_volatility_fixed_score(self):
        from layers import analyze_volatility
        from models import Bar
        bars = [Bar(date(2024, 1, 1) + timedelta(days=i), 100, 103, 97, 100, 1000) for i in range(50)]
        result = analyze_volatility(bars)
        assert result.score == 65
        assert result.components[0].description == "ATR 6.00%, elevated"

    def test_key_levels(self):
        from layers import calculate_key_levels
        closes = [100 + i for i in range(31)] + [130 - i for i in range(1, 31)]
        levels = calculate_key_levels(_make_bars(closes))
        assert levels.resistance == [pytest.approx(130 * 1.01)]
        assert levels.support == []

    def test_key_levels_empty(self):
        from layers import calculate_key_levels
        levels = calculate_key_levels([])
        assert levels.resistance == [] and levels.support == []


# ═══════════════════════════════════════════════
#  INSTITUTIONAL PROFILE
# ═══════════════════════════════════════════════

class TestInstitutionalLayers:

    def test_market_structure_uptrend(self):
        from layers import market_structure
        result = market_structure(_make_bars(_zigzag(100)))
        assert result.trend == "UPTREND"
        assert result.score == 85

    def test_market_structure_downtrend(self):
        from layers import market_structure
        result = market_structure(_make_bars(_zigzag(100, slope=-0.5)))
        assert result.trend == "DOWNTREND"
        assert result.score == 20

    def test_market_structure_undefined_without_swings(self):
        from layers import market_structure
        result = market_structure(_make_bars([100 + i for i in range(100)]))
        assert result.trend == "UNDEFINED"
        assert result.score == 50

    def test_volume_strong_accumulation(self):
        from layers import volume_accumulation
        bars = _make_bars([100 + i for i in range(30)], [1_000_000] * 29 + [2_000_000])
        result = volume_accumulation(bars)
        assert result.score == 85
        assert result.accumulation is True
        assert result.description == "Strong accumulation: 90% above average on green days"

    def test_volume_weak_participation(self):
        from layers import volume_accumulation
        bars = _make_bars([100.0] * 30, [1_000_000] * 29 + [100_000])
        result = volume_accumulation(bars)
        assert result.score == 40

    def test_ema_alignment_trend_averages_structure(self):
        from layers import MarketStructure, ema_alignment_trend
        bars = _make_bars([100 + i for i in range(100)])
        result = ema_alignment_trend(bars, MarketStructure("UNDEFINED", 50))
        assert result.score == pytest.approx(67.5)
        assert result.components[0].description == "Perfect EMA alignment (8>21>55) with price above key levels"

    def test_rsi_macd_description(self):
        from layers import rsi_macd_momentum
        result = rsi_macd_momentum(_make_bars([100.0] * 60))
        assert result.score == 50
        assert result.components[0].description.startswith("RSI at 50.0, MACD ")
