"""
Institutional deep-analysis tests — the eight layers over synthetic bars,
including zero-volume and missing-benchmark corners.
"""

import math
from datetime import date, timedelta

import pytest


def _make_bars(closes, volumes=None):
    from models import Bar

    base = date(2024, 1, 1)
    volumes = volumes or [1_000_000 + i * 10_000 for i in range(len(closes))]
    return [
        Bar(date=base + timedelta(days=i), open=c * 0.99, high=c * 1.01,
            low=c * 0.98, close=c, volume=v)
        for i, (c, v) in enumerate(zip(closes, volumes))
    ]


def _wavy(n, drift=0.1):
    return [100 + drift * i + 6 * math.sin(i / 5) for i in range(n)]


# ═══════════════════════════════════════════════
#  ANALYZER
# ═══════════════════════════════════════════════

class TestInstitutionalAnalyzer:

    def test_requires_60_bars(self):
        from institutional_analysis import InstitutionalAnalyzer
        from models import InsufficientDataError
        with pytest.raises(InsufficientDataError):
            InstitutionalAnalyzer().analyze(_make_bars(_wavy(59)))

    def test_all_layers_present(self):
        from institutional_analysis import InstitutionalAnalyzer
        bars = _make_bars(_wavy(150))
        market = _make_bars(_wavy(150, 0.05))
        result = InstitutionalAnalyzer().analyze(bars, market)

        assert 0 <= result.order_flow.score <= 100
        assert result.order_flow.signal in ("BULLISH", "BEARISH", "NEUTRAL")
        assert [c.name for c in result.order_flow.components] == [
            "VWMA Position", "Cumulative Volume Delta", "Order Flow Imbalance",
        ]
        assert 0 <= result.microstructure.score <= 100
        assert result.regime.current_regime in ("TRENDING", "MEAN_REVERTING", "VOLATILE", "QUIET")
        assert result.regime.volatility_regime in ("HIGH", "MEDIUM", "LOW")
        assert len(result.regime.recommendations) == 3
        assert len(result.volatility_surface.components) == 4
        assert result.liquidity.liquidity_risk in ("LOW", "MEDIUM", "HIGH")
        assert result.smart_money.wyckoff_phase in ("Accumulation", "Distribution", "Markup", "Markdown")
        assert -1 <= result.correlation.market_correlation <= 1
        assert result.warnings == []

    def test_missing_benchmark_is_neutral(self):
        from institutional_analysis import InstitutionalAnalyzer
        result = InstitutionalAnalyzer().analyze(_make_bars(_wavy(80)))
        assert result.correlation.market_correlation == 0.0
        assert result.correlation.description == "Benchmark data unavailable"
        assert len(result.warnings) == 1

    def test_identical_benchmark_correlates(self):
        from institutional_analysis import InstitutionalAnalyzer
        bars = _make_bars(_wavy(150))
        result = InstitutionalAnalyzer().analyze(bars, bars)
        assert result.correlation.market_correlation == pytest.approx(1.0)
        assert result.correlation.description == "Strong market correlation - moves with overall market"

    def test_zero_volume_does_not_break(self):
        from institutional_analysis import InstitutionalAnalyzer
        bars = _make_bars([100 + i * 0.5 for i in range(80)], [0] * 80)
        result = InstitutionalAnalyzer().analyze(bars)
        assert result.order_flow.components[0].value == 50
        assert result.microstructure.price_impact == 0.0
        assert result.liquidity.amihud_illiquidity == 0.0
        assert result.smart_money.composite_index == 50
        assert result.smart_money.institutional_activity == 0

    def test_steady_uptrend_regime(self):
        from institutional_analysis import InstitutionalAnalyzer
        bars = _make_bars([100 * (1.01 ** i) * (1 + 0.001 * (i % 3)) for i in range(120)])
        regime = InstitutionalAnalyzer().analyze(bars).regime
        assert regime.trend_strength > 60
        assert regime.current_regime in ("TRENDING", "VOLATILE")

    def test_volume_profile_poc(self):
        from institutional_analysis import InstitutionalAnalyzer
        closes = [100.0] * 30 + [110.0] * 30
        volumes = [1000] * 30 + [5000] * 30
        profile = InstitutionalAnalyzer().analyze(_make_bars(closes, volumes)).liquidity.volume_profile
        assert profile.poc == pytest.approx(110.0)
        assert profile.high_volume[0] == pytest.approx(110.0)

    def test_seasonality_weekdays_only(self):
        from institutional_analysis import InstitutionalAnalyzer
        season = InstitutionalAnalyzer().analyze(_make_bars(_wavy(140))).seasonality
        assert set(season.day_of_week) <= {"Monday", "Tuesday", "Wednesday", "Thursday", "Friday"}
        assert season.quarterly_pattern.startswith("Q")


# ═══════════════════════════════════════════════
#  ENGINE ENTRY POINT
# ═══════════════════════════════════════════════

class TestComputeInstitutionalAnalysis:

    def test_returns_none_when_short(self):
        from engine import compute_institutional_analysis
        assert compute_institutional_analysis(_make_bars(_wavy(30))) is None

    def test_accepts_rows(self):
        from engine import compute_institutional_analysis
        rows = [
            {"date": b.date.isoformat(), "open": b.open, "high": b.high,
             "low": b.low, "close": b.close, "volume": b.volume}
            for b in _make_bars(_wavy(100))
        ]
        assert compute_institutional_analysis(rows) is not None
