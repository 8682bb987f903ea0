"""
Layer Analyzers — turn raw indicators into 0-100 layer scores.

Each analyzer receives bars (oldest first), reads the indicators it needs,
and returns a LayerResult whose components carry the per-indicator score,
signal and a human-readable description. The thresholds below are fixed
scoring rules; changing them changes every downstream grade.

Three families:
  ─── basic            additive points (trend 35 / momentum 25 / volume 20 / fib 20)
  ─── advanced         trend, momentum, structure, volatility, key levels
  ─── institutional    EMA trend, swing structure, RSI+MACD, volume accumulation
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

import pandas as pd

from config import INDICATORS
from indicators import (
    adx, atr, closes_of, ema, fibonacci_pivots, find_swing_points,
    ichimoku, last_value, macd, obv, rsi, round_half_up, sma,
)
from models import Component, KeyLevels, LayerResult, SignalState

logger = logging.getLogger(__name__)


def _volume_ratio(bars: Sequence, window: int) -> float:
    """Latest volume over the mean of the last `window` volumes (1.0 when the mean is 0)."""
    recent = [b.volume for b in bars[-window:]]
    avg = sum(recent) / len(recent) if recent else 0.0
    return bars[-1].volume / avg if avg > 0 else 1.0


# ═══════════════════════════════════════════════════════════════════════════
# Basic profile: additive points
# ═══════════════════════════════════════════════════════════════════════════

def basic_trend(bars: Sequence) -> LayerResult:
    """SMA50 vs SMA200 spread; no points (and no reason) until both exist."""
    closes = closes_of(bars)
    s_fast = last_value(sma(closes, INDICATORS["sma_fast"]))
    s_slow = last_value(sma(closes, INDICATORS["sma_slow"]))
    if pd.isna(s_fast) or pd.isna(s_slow) or s_slow == 0:
        return LayerResult(score=0)

    strength = (s_fast - s_slow) / s_slow * 100
    if strength > 2:
        points = 35
    elif strength > 0.5:
        points = 25
    elif strength > -0.5:
        points = 15
    else:
        points = 5

    if points >= 25:
        signal, desc = SignalState.BULLISH, "Short-term trend is clearly above long-term average"
    else:
        signal, desc = SignalState.NEUTRAL, "Trend is weak or ranging relative to long-term average"
    return LayerResult(points, [Component("SMA 50/200", strength, signal, desc)])


def basic_momentum(bars: Sequence) -> LayerResult:
    value = last_value(rsi(closes_of(bars), INDICATORS["rsi_period"]))
    if pd.isna(value):
        value = 50.0

    if 60 < value < 70:
        points = 25
    elif value >= 50:
        points = 18
    elif value >= 40:
        points = 12
    else:
        points = 5

    if points >= 18:
        signal, desc = SignalState.BULLISH, "Momentum supports continuation"
    else:
        signal, desc = SignalState.NEUTRAL, "Momentum is neutral or weakening"
    return LayerResult(points, [Component("RSI (14)", value, signal, desc)])


def basic_volume(bars: Sequence) -> LayerResult:
    ratio = _volume_ratio(bars, INDICATORS["volume_window"])
    if ratio >= 1.5:
        points = 20
    elif ratio >= 1.2:
        points = 14
    elif ratio >= 1.0:
        points = 8
    else:
        points = 4

    if points >= 14:
        signal, desc = SignalState.BULLISH, "Above-average volume confirms participation"
    else:
        signal, desc = SignalState.NEUTRAL, "Volume participation is average or low"
    return LayerResult(points, [Component("Volume Ratio", ratio, signal, desc)])


def basic_fibonacci(bars: Sequence) -> LayerResult:
    """
    Distance of the last close from a Fibonacci pivot built from the closes
    of the three prior bars (bars[-2] as high, bars[-3] as low, bars[-4] as close).
    """
    if len(bars) < 4:
        return LayerResult(score=0)
    pivots = fibonacci_pivots(bars[-2].close, bars[-3].close, bars[-4].close)
    pp = pivots["pp"]
    distance = (bars[-1].close - pp) / pp * 100

    if distance > 1:
        points = 20
    elif distance > 0:
        points = 14
    elif distance > -1:
        points = 8
    else:
        points = 4

    if points >= 14:
        signal, desc = SignalState.BULLISH, "Price is holding above key Fibonacci structure"
    else:
        signal, desc = SignalState.NEUTRAL, "Price is near or below Fibonacci pivot"
    return LayerResult(points, [Component("Fibonacci Pivot", distance, signal, desc)])


# ═══════════════════════════════════════════════════════════════════════════
# Advanced profile
# ═══════════════════════════════════════════════════════════════════════════

def analyze_trend(bars: Sequence) -> LayerResult:
    """Ichimoku position (35%) + EMA 8/21/55 ribbon (35%) + ADX strength (30%)."""
    closes = closes_of(bars)
    price = closes.iloc[-1]
    components: List[Component] = []

    # ── Ichimoku ──
    cfg = INDICATORS["ichimoku"]
    cloud = ichimoku(bars, cfg["tenkan"], cfg["kijun"], cfg["senkou_b"])
    span_a = last_value(cloud["span_a"])
    span_b = last_value(cloud["span_b"])
    ichi_score, ichi_signal, ichi_desc = 50, SignalState.NEUTRAL, "Price inside cloud"
    if not (pd.isna(span_a) or pd.isna(span_b)):
        thickness = abs(span_a - span_b) / price
        if price > max(span_a, span_b):
            thick = thickness > 0.02
            ichi_score = 90 if thick else 75
            ichi_signal = SignalState.BULLISH
            ichi_desc = f"Price above cloud, {'thick' if thick else 'moderate'} support"
        elif price < min(span_a, span_b):
            ichi_score, ichi_signal, ichi_desc = 25, SignalState.BEARISH, "Price below cloud"
    components.append(Component("Ichimoku Cloud", ichi_score, ichi_signal, ichi_desc))

    # ── EMA ribbon ──
    fast, mid, slow = INDICATORS["ema_ribbon"]
    e_fast = last_value(ema(closes, fast))
    e_mid = last_value(ema(closes, mid))
    e_slow = last_value(ema(closes, slow))
    ema_score, ema_signal, ema_desc = 50, SignalState.NEUTRAL, "EMAs mixed"
    if not any(pd.isna(x) for x in (e_fast, e_mid, e_slow)):
        if e_fast > e_mid > e_slow and price > e_fast:
            ema_score, ema_signal, ema_desc = 85, SignalState.BULLISH, f"{fast}/{mid}/{slow} aligned upward"
        elif e_fast < e_mid < e_slow and price < e_fast:
            ema_score, ema_signal, ema_desc = 20, SignalState.BEARISH, f"{fast}/{mid}/{slow} aligned downward"
        elif price > e_mid:
            ema_score, ema_signal, ema_desc = 65, SignalState.BULLISH, "Price above key EMAs"
    components.append(Component("EMA Ribbon", ema_score, ema_signal, ema_desc))

    # ── ADX ──
    strength = adx(bars, INDICATORS["adx_period"])
    adx_signal = SignalState.MODERATE
    if strength > 40:
        adx_score, adx_signal, suffix = 90, SignalState.BULLISH, "very strong trend"
    elif strength > 25:
        adx_score, suffix = 70, "strengthening"
    else:
        adx_score, suffix = 40, "weak trend"
    components.append(Component("ADX Strength", adx_score, adx_signal,
                                f"ADX at {strength:.0f}, {suffix}"))

    score = round_half_up(ichi_score * 0.35 + ema_score * 0.35 + adx_score * 0.30)
    return LayerResult(score, components)


def analyze_momentum(bars: Sequence) -> LayerResult:
    """RSI band (50%) + MACD histogram direction (50%)."""
    closes = closes_of(bars)
    components: List[Component] = []

    value = last_value(rsi(closes, INDICATORS["rsi_period"]))
    if pd.isna(value):
        value = 50.0
    rsi_score, rsi_signal, suffix = 50, SignalState.NEUTRAL, ""
    if 60 < value < 70:
        rsi_score, rsi_signal, suffix = 75, SignalState.BULLISH, ", strong momentum"
    elif value > 70:
        rsi_score, suffix = 55, ", overbought"
    elif value < 30:
        rsi_score, rsi_signal, suffix = 70, SignalState.BULLISH, ", oversold bounce potential"
    elif value > 40:
        rsi_score, suffix = 60, ", neutral momentum"
    components.append(Component("RSI (14)", rsi_score, rsi_signal, f"RSI at {value:.1f}{suffix}"))

    cfg = INDICATORS["macd"]
    hist = macd(closes, cfg["fast"], cfg["slow"], cfg["signal"])["histogram"].dropna()
    current = float(hist.iloc[-1]) if len(hist) >= 1 else 0.0
    previous = float(hist.iloc[-2]) if len(hist) >= 2 else 0.0
    if current > 0 and current > previous:
        macd_score, macd_signal, macd_desc = 80, SignalState.BULLISH, "Positive and expanding"
    elif current > 0:
        macd_score, macd_signal, macd_desc = 65, SignalState.BULLISH, "Positive but weakening"
    elif current < 0 and current < previous:
        macd_score, macd_signal, macd_desc = 25, SignalState.BEARISH, "Negative and expanding"
    else:
        macd_score, macd_signal, macd_desc = 45, SignalState.NEUTRAL, "Negative but improving"
    components.append(Component("MACD Histogram", macd_score, macd_signal, macd_desc))

    score = round_half_up(rsi_score * 0.50 + macd_score * 0.50)
    return LayerResult(score, components)


def analyze_structure(bars: Sequence) -> LayerResult:
    """Where the last close sits relative to the lowest low of the recent range."""
    recent = bars[-INDICATORS["structure_window"]:]
    price = bars[-1].close
    lowest_low = min(b.low for b in recent)
    distance = (price - lowest_low) / price * 100
    reference = bars[-5].close if len(bars) >= 5 else bars[0].close

    if distance < 5 and price > reference:
        score, signal, desc = 85, SignalState.BULLISH, "Near support, bouncing"
    elif distance < 15:
        score, signal, desc = 65, SignalState.BULLISH, "In lower third of range"
    elif distance > 85:
        score, signal, desc = 35, SignalState.BEARISH, "Near resistance"
    else:
        score, signal, desc = 50, SignalState.NEUTRAL, "Mid-range"
    return LayerResult(score, [Component("Price Structure", score, signal, desc)])


def analyze_volatility(bars: Sequence) -> LayerResult:
    """ATR as % of price; the score is a fixed 65, only the description varies."""
    current_atr = last_value(atr(bars, INDICATORS["atr_period"]))
    if pd.isna(current_atr):
        current_atr = 0.0
    atr_pct = current_atr / bars[-1].close * 100

    if atr_pct < 1:
        label = "low volatility"
    elif atr_pct < 2:
        label = "normal range"
    else:
        label = "elevated"
    return LayerResult(65, [Component("ATR Analysis", 65, SignalState.MODERATE,
                                      f"ATR {atr_pct:.2f}%, {label}")])


def calculate_key_levels(bars: Sequence) -> KeyLevels:
    """Nearest three pivot highs above and pivot lows below the last close."""
    if not bars:
        return KeyLevels()
    recent = bars[-INDICATORS["key_level_window"]:]
    price = bars[-1].close
    pivots = find_swing_points(recent, lookback=2, margin=5)

    resistance = sorted(h for h in pivots.highs if h > price)[:3]
    support = sorted((l for l in pivots.lows if l < price), reverse=True)[:3]
    return KeyLevels(resistance=resistance, support=support)


# ═══════════════════════════════════════════════════════════════════════════
# Institutional profile
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class MarketStructure:
    trend: str               # UPTREND, DOWNTREND, BUILDING_UP, RANGING, UNDEFINED
    score: int


@dataclass
class VolumeProfileResult:
    score: int
    ratio: float
    accumulation: bool
    description: str


def market_structure(bars: Sequence) -> MarketStructure:
    """Higher-high / higher-low reading from ±5-bar swing points over the last 100 bars."""
    swings = find_swing_points(bars[-INDICATORS["key_level_window"]:],
                               lookback=INDICATORS["swing_lookback"])
    if len(swings.highs) < 2 or len(swings.lows) < 2:
        return MarketStructure("UNDEFINED", 50)

    highs = swings.highs[-3:]
    lows = swings.lows[-3:]
    higher_highs = highs[-1] > highs[0]
    higher_lows = lows[-1] > lows[0]
    lower_highs = highs[-1] < highs[0]
    lower_lows = lows[-1] < lows[0]

    if higher_highs and higher_lows:
        return MarketStructure("UPTREND", 85)
    if lower_highs and lower_lows:
        return MarketStructure("DOWNTREND", 20)
    if higher_highs or higher_lows:
        return MarketStructure("BUILDING_UP", 65)
    return MarketStructure("RANGING", 50)


def volume_accumulation(bars: Sequence) -> VolumeProfileResult:
    """Volume surge on an up day with rising OBV counts as accumulation."""
    window = INDICATORS["volume_window"]
    ratio = _volume_ratio(bars, window)

    balance = obv(bars)
    obv_up = len(balance) >= window and balance.iloc[-1] > balance.iloc[-window]
    price_up = len(bars) >= 2 and bars[-1].close > bars[-2].close
    accumulation = bool(ratio > 1.2 and price_up and obv_up)

    surplus = (ratio - 1) * 100
    if ratio >= 1.5 and accumulation:
        return VolumeProfileResult(85, ratio, True,
                                   f"Strong accumulation: {surplus:.0f}% above average on green days")
    if ratio >= 1.2 and accumulation:
        return VolumeProfileResult(70, ratio, True,
                                   f"Moderate accumulation: {surplus:.0f}% above average volume")
    if ratio < 0.8:
        return VolumeProfileResult(40, ratio, accumulation, "Below-average volume, weak participation")
    return VolumeProfileResult(50, ratio, accumulation, "Average volume participation")


def ema_alignment_trend(bars: Sequence, structure: MarketStructure) -> LayerResult:
    """EMA 8/21/55 alignment score averaged with the swing-structure score."""
    closes = closes_of(bars)
    price = closes.iloc[-1]
    fast, mid, slow = INDICATORS["ema_ribbon"]
    e_fast = last_value(ema(closes, fast))
    e_mid = last_value(ema(closes, mid))
    e_slow = last_value(ema(closes, slow))

    aligned = e_fast > e_mid > e_slow          # False when any value is NaN
    above = price > e_mid
    if aligned and above:
        ema_score = 85
    elif above:
        ema_score = 65
    elif price > e_slow:
        ema_score = 55
    else:
        ema_score = 35

    signal = SignalState.BULLISH if ema_score >= 65 else SignalState.BEARISH if ema_score <= 35 else SignalState.NEUTRAL
    desc = (f"{'Perfect EMA alignment (8>21>55)' if aligned else 'EMAs mixed'}"
            f" with price {'above' if above else 'below'} key levels")
    components = [
        Component("EMA Alignment", ema_score, signal, desc),
        Component("Market Structure", structure.score, SignalState.NEUTRAL, f"{structure.trend} pattern"),
    ]
    return LayerResult((ema_score + structure.score) / 2, components)


def rsi_macd_momentum(bars: Sequence) -> LayerResult:
    closes = closes_of(bars)
    value = last_value(rsi(closes, INDICATORS["rsi_period"]))
    if pd.isna(value):
        value = 50.0
    cfg = INDICATORS["macd"]
    hist = last_value(macd(closes, cfg["fast"], cfg["slow"], cfg["signal"])["histogram"])
    if pd.isna(hist):
        hist = 0.0

    if 60 < value < 70 and hist > 0:
        score = 80
    elif value > 50 and hist > 0:
        score = 65
    elif value < 30:
        score = 70
    elif value > 70:
        score = 45
    else:
        score = 50

    signal = SignalState.BULLISH if score >= 65 else SignalState.NEUTRAL
    desc = f"RSI at {value:.1f}, MACD {'positive' if hist > 0 else 'negative'}"
    return LayerResult(score, [Component("RSI + MACD", value, signal, desc)])
