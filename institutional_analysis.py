"""
Institutional Analysis — statistical deep-dive layers over daily bars.

Eight independent readings, each a small dataclass with a score or the
figures behind it:

  1. Order flow          — VWAP distance, cumulative volume delta, buy/sell imbalance
  2. Microstructure      — range spread proxy, volume dispersion, Amihud impact,
                           return autocorrelation
  3. Regime detection    — TRENDING / MEAN_REVERTING / VOLATILE / QUIET
  4. Volatility surface  — 10/20/60-bar realized vol, range-based implied proxy, skew
  5. Liquidity           — Amihud illiquidity + close-based volume profile (POC)
  6. Smart money         — Wyckoff phase, money flow index, large-volume bars, gaps
  7. Correlation         — Pearson vs benchmark, rolling-beta stability
  8. Seasonality         — weekday mean returns, monthly trend, best quarter

Deep module:
  Simple interface → InstitutionalAnalyzer().analyze(daily_bars, market_bars)
  Complexity hidden → every zero-volume / zero-variance corner resolves to a
                      neutral reading instead of NaN or an exception
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd

from config import INSTITUTIONAL, SCORING_PROFILES, TRADING_DAYS
from indicators import (
    autocorrelation, bars_to_frame, clamp, correlation, covariance,
    mean, returns, round_half_up, skewness, std_dev,
)
from models import InsufficientDataError

logger = logging.getLogger(__name__)

_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class FlowComponent:
    name: str
    value: float
    description: str
    interpretation: str


@dataclass
class OrderFlowAnalysis:
    score: int
    signal: str                          # BULLISH, BEARISH, NEUTRAL
    components: List[FlowComponent]
    summary: str


@dataclass
class MarketMicrostructure:
    score: int
    bid_ask_spread: float
    market_depth: float
    price_impact: float
    information_asymmetry: float
    description: str


@dataclass
class RegimeDetection:
    current_regime: str                  # TRENDING, MEAN_REVERTING, VOLATILE, QUIET
    confidence: int
    trend_strength: int
    mean_reversion_score: int
    volatility_regime: str               # HIGH, MEDIUM, LOW
    description: str
    recommendations: List[str]


@dataclass
class VolComponent:
    name: str
    value: float
    interpretation: str


@dataclass
class VolatilitySurface:
    realized_vol: float
    implied_vol: float
    vol_of_vol: float
    skew: float
    term: str
    components: List[VolComponent]


@dataclass
class VolumeProfile:
    """Close-price buckets ranked by traded volume."""
    high_volume: List[float]
    low_volume: List[float]
    poc: float                           # Point of Control


@dataclass
class LiquidityAnalysis:
    score: int
    amihud_illiquidity: float
    volume_profile: VolumeProfile
    liquidity_risk: str                  # LOW, MEDIUM, HIGH
    description: str


@dataclass
class SmartMoneyIndicators:
    score: int
    signal: str                          # ACCUMULATION, DISTRIBUTION, NEUTRAL
    wyckoff_phase: str
    composite_index: int
    institutional_activity: int
    dark_pool_activity: float
    description: str


@dataclass
class CorrelationMatrix:
    market_correlation: float
    sector_correlation: float
    beta_stability: float
    description: str


@dataclass
class SeasonalityPatterns:
    day_of_week: Dict[str, float]
    monthly_trend: float
    quarterly_pattern: str
    description: str


@dataclass
class InstitutionalAnalysis:
    order_flow: OrderFlowAnalysis
    microstructure: MarketMicrostructure
    regime: RegimeDetection
    volatility_surface: VolatilitySurface
    liquidity: LiquidityAnalysis
    smart_money: SmartMoneyIndicators
    correlation: CorrelationMatrix
    seasonality: SeasonalityPatterns
    warnings: List[str] = field(default_factory=list)


def _finite(value: float, default: float = 0.0) -> float:
    return default if value is None or not math.isfinite(value) else float(value)


def _annual_vol(rets: pd.Series) -> float:
    return _finite(std_dev(rets)) * math.sqrt(TRADING_DAYS) * 100


# ═══════════════════════════════════════════════════════════════════════════
# Analyzer
# ═══════════════════════════════════════════════════════════════════════════

class InstitutionalAnalyzer:
    """
    Runs the eight institutional layers over one symbol's daily bars.

    Simple interface:
        analyze(daily_bars, market_bars) -> InstitutionalAnalysis
    """

    def __init__(self):
        self.cfg = INSTITUTIONAL
        self.min_bars = SCORING_PROFILES["institutional"]["min_bars"]

    def analyze(self, bars: Sequence, market_bars: Sequence = ()) -> InstitutionalAnalysis:
        if len(bars) < self.min_bars:
            raise InsufficientDataError(
                f"institutional analysis needs {self.min_bars} bars, got {len(bars)}"
            )

        df = bars_to_frame(bars)
        rets = returns(df["close"])
        warnings: List[str] = []
        if not market_bars:
            warnings.append("Benchmark data unavailable, correlation layer is neutral")

        return InstitutionalAnalysis(
            order_flow=self._analyze_order_flow(df),
            microstructure=self._analyze_microstructure(df, rets),
            regime=self._detect_regime(rets),
            volatility_surface=self._analyze_volatility_surface(df, rets),
            liquidity=self._analyze_liquidity(df, rets),
            smart_money=self._analyze_smart_money(df),
            correlation=self._analyze_correlation(rets, market_bars),
            seasonality=self._analyze_seasonality(bars, rets),
            warnings=warnings,
        )

    # ── 1. Order flow ───────────────────────────────────────────────────

    def _analyze_order_flow(self, df: pd.DataFrame) -> OrderFlowAnalysis:
        window = self.cfg["flow_window"]
        recent = df.iloc[-window:]
        price = df["close"].iloc[-1]
        components: List[FlowComponent] = []

        # Rolling VWAP over the window
        typical = (recent["high"] + recent["low"] + recent["close"]) / 3
        total_volume = recent["volume"].sum()
        vwap = (typical * recent["volume"]).sum() / total_volume if total_volume > 0 else price
        distance = (price - vwap) / vwap * 100

        if distance > 1:
            vwap_score = 75
        elif distance > 0.5:
            vwap_score = 65
        elif distance < -1:
            vwap_score = 30
        else:
            vwap_score = 50
        components.append(FlowComponent(
            "VWMA Position", vwap_score,
            f"Price is {'above' if distance > 0 else 'below'} VWMA by {abs(distance):.2f}%",
            "Strong buying pressure - institutional accumulation likely" if distance > 1 else
            "Selling pressure dominant - potential distribution" if distance < -1 else
            "Price near fair value - balanced order flow",
        ))

        # Cumulative volume delta: a bar's volume counts as buying when it closes above its open
        body = df["close"] - df["open"]
        deltas = df["volume"].where(body > 0, -df["volume"]).iloc[1:]
        cumulative_delta = deltas.iloc[-window:].sum()
        avg_volume = df["volume"].iloc[-window:].mean()
        delta_pct = cumulative_delta / (avg_volume * window) * 100 if avg_volume > 0 else 0.0
        delta_score = clamp(50 + delta_pct * 50)
        components.append(FlowComponent(
            "Cumulative Volume Delta", round_half_up(delta_score),
            f"{'Positive' if cumulative_delta > 0 else 'Negative'} delta of {abs(delta_pct):.1f}%",
            "Strong net buying - aggressive buy orders overwhelming supply" if cumulative_delta > avg_volume else
            "Strong net selling - supply exceeding demand" if cumulative_delta < -avg_volume else
            "Balanced order flow - neutral market sentiment",
        ))

        # Buy/sell imbalance
        buy_volume = recent["volume"][recent["close"] > recent["open"]].sum()
        sell_volume = recent["volume"][recent["close"] < recent["open"]].sum()
        traded = buy_volume + sell_volume
        imbalance = (buy_volume - sell_volume) / traded * 100 if traded > 0 else 0.0
        side = "buying" if imbalance > 0 else "selling"
        if abs(imbalance) > 20:
            interpretation = f"Very strong {side} pressure - one-sided order flow"
        elif abs(imbalance) > 10:
            interpretation = f"Moderate {side} bias"
        else:
            interpretation = "Balanced two-way order flow"
        components.append(FlowComponent(
            "Order Flow Imbalance", round_half_up(clamp(50 + imbalance)),
            f"{'Buy' if imbalance > 0 else 'Sell'} side dominance of {abs(imbalance):.1f}%",
            interpretation,
        ))

        score = round_half_up(mean([c.value for c in components]))
        if score >= 65:
            signal, summary = "BULLISH", "Institutional order flow shows strong accumulation patterns with buy-side dominance"
        elif score <= 40:
            signal, summary = "BEARISH", "Distribution pattern detected with persistent sell-side pressure"
        else:
            signal, summary = "NEUTRAL", "Neutral order flow with balanced institutional activity"
        return OrderFlowAnalysis(score, signal, components, summary)

    # ── 2. Microstructure ───────────────────────────────────────────────

    def _analyze_microstructure(self, df: pd.DataFrame, rets: pd.Series) -> MarketMicrostructure:
        window = self.cfg["flow_window"]
        recent = df.iloc[-window:]

        spread = mean((recent["high"] - recent["low"]) / recent["close"] * 100)

        volumes = recent["volume"]
        avg_volume = volumes.mean()
        depth = std_dev(volumes) / avg_volume * 100 if avg_volume > 0 else 0.0

        # Amihud price impact, |return| per million shares; zero-volume bars skipped
        impact_rets = rets.iloc[-window:].abs().to_numpy()
        impact_vols = volumes.to_numpy()[-len(impact_rets):]
        traded = impact_vols > 0
        impact = float(np.mean(impact_rets[traded] / (impact_vols[traded] / 1_000_000))) if traded.any() else 0.0

        asymmetry = abs(_finite(autocorrelation(rets.iloc[-self.cfg["autocorr_window"]:], 1))) * 100

        raw = round_half_up(100 - spread * 10 - depth * 0.5 - impact * 20 - asymmetry * 0.5)
        if raw > 70:
            desc = "Excellent market microstructure with tight spreads and deep liquidity"
        elif raw > 50:
            desc = "Good microstructure - normal trading conditions"
        else:
            desc = "Challenged microstructure - wider spreads or lower liquidity"
        return MarketMicrostructure(
            score=int(clamp(raw)),
            bid_ask_spread=round(spread, 3),
            market_depth=round(depth, 2),
            price_impact=round(impact, 4),
            information_asymmetry=round(asymmetry, 2),
            description=desc,
        )

    # ── 3. Regime ───────────────────────────────────────────────────────

    def _detect_regime(self, rets: pd.Series) -> RegimeDetection:
        recent = rets.iloc[-self.cfg["regime_short"]:]
        up = recent[recent > 0].sum()
        down = abs(recent[recent < 0].sum())
        trend_strength = abs(up - down) / (up + down) * 100 if (up + down) > 0 else 0.0

        auto = _finite(autocorrelation(rets.iloc[-self.cfg["regime_autocorr"]:], 1))
        mean_reversion = (1 - auto) * 50

        vol_short = _annual_vol(rets.iloc[-self.cfg["regime_short"]:])
        vol_long = _annual_vol(rets.iloc[-self.cfg["regime_long"]:])
        if vol_short > vol_long * self.cfg["vol_high_ratio"]:
            vol_regime = "HIGH"
        elif vol_short < vol_long * self.cfg["vol_low_ratio"]:
            vol_regime = "LOW"
        else:
            vol_regime = "MEDIUM"

        regime, confidence = "MEAN_REVERTING", 50.0
        if trend_strength > 60 and vol_regime != "HIGH":
            regime, confidence = "TRENDING", min(90.0, 50 + trend_strength / 2)
        elif mean_reversion > 60 and vol_regime == "LOW":
            regime, confidence = "MEAN_REVERTING", min(85.0, 50 + mean_reversion / 3)
        elif vol_regime == "HIGH":
            regime, confidence = "VOLATILE", 75.0
        elif vol_regime == "LOW" and trend_strength < 30:
            regime, confidence = "QUIET", 70.0

        recommendations = {
            "TRENDING": [
                "Trend-following strategies optimal",
                "Use momentum indicators and moving average systems",
                "Wider stops to avoid noise",
            ],
            "MEAN_REVERTING": [
                "Range-bound strategies preferred",
                "Use oscillators (RSI, Stochastic)",
                "Fade extremes, take profits quickly",
            ],
            "VOLATILE": [
                "Reduce position sizes",
                "Widen stops or use time-based exits",
                "Consider options strategies",
            ],
            "QUIET": [
                "Low volatility - good for accumulation",
                "Tight stops acceptable",
                "Watch for breakout setups",
            ],
        }[regime]

        return RegimeDetection(
            current_regime=regime,
            confidence=round_half_up(confidence),
            trend_strength=round_half_up(trend_strength),
            mean_reversion_score=round_half_up(mean_reversion),
            volatility_regime=vol_regime,
            description=(f"Market is in {regime.replace('_', ' ').lower()} regime "
                         f"with {confidence:.0f}% confidence"),
            recommendations=list(recommendations),
        )

    # ── 4. Volatility surface ───────────────────────────────────────────

    def _analyze_volatility_surface(self, df: pd.DataFrame, rets: pd.Series) -> VolatilitySurface:
        vol10 = _annual_vol(rets.iloc[-10:])
        vol20 = _annual_vol(rets.iloc[-20:])
        vol60 = _annual_vol(rets.iloc[-60:])

        # Range-based proxy for implied vol
        avg_range = (df["high"] - df["low"]).iloc[-14:].mean()
        implied = avg_range / df["close"].iloc[-1] * math.sqrt(TRADING_DAYS) * 100

        vol_of_vol = std_dev([vol10, vol20, vol60])
        skew = _finite(skewness(rets.iloc[-60:]))

        if skew < -0.5:
            skew_text = "Negative skew - puts more expensive (fear premium)"
        elif skew > 0.5:
            skew_text = "Positive skew - calls more expensive (greed premium)"
        else:
            skew_text = "Balanced skew - neutral sentiment"

        components = [
            VolComponent("10-Day Realized Vol", round(vol10, 2),
                         "Rising short-term volatility" if vol10 > vol20 else "Declining short-term volatility"),
            VolComponent("20-Day Realized Vol", round(vol20, 2), "Current volatility baseline"),
            VolComponent("60-Day Realized Vol", round(vol60, 2),
                         "Volatility declining from highs" if vol60 > vol20 else "Volatility rising from lows"),
            VolComponent("Vol Skew", round(skew * 10, 2), skew_text),
        ]
        return VolatilitySurface(
            realized_vol=round(vol20, 2),
            implied_vol=round(implied, 2),
            vol_of_vol=round(vol_of_vol, 2),
            skew=round(skew, 3),
            term="20-day",
            components=components,
        )

    # ── 5. Liquidity ────────────────────────────────────────────────────

    def _analyze_liquidity(self, df: pd.DataFrame, rets: pd.Series) -> LiquidityAnalysis:
        volumes = df["volume"].to_numpy()
        abs_rets = rets.abs().to_numpy()

        # Amihud over the last 20 bars that actually traded
        next_vols = volumes[1:]
        traded = next_vols > 0
        illiquidity = abs_rets[traded] / (next_vols[traded] / 1_000_000)
        amihud = float(np.mean(illiquidity[-self.cfg["flow_window"]:])) if len(illiquidity) else 0.0

        profile = self._volume_profile(df.iloc[-self.cfg["profile_window"]:])

        recent_volume = df["volume"].iloc[-self.cfg["flow_window"]:]
        avg_volume = recent_volume.mean()
        consistency = 1 - std_dev(recent_volume) / avg_volume if avg_volume > 0 else 0.0
        raw = round_half_up((1 - amihud * 100) * 50 + consistency * 50)

        if raw > 70:
            risk, desc = "LOW", "Excellent liquidity - minimal slippage expected"
        elif raw < 40:
            risk, desc = "HIGH", "Poor liquidity - significant slippage risk"
        else:
            risk, desc = "MEDIUM", "Adequate liquidity - moderate slippage possible on large orders"

        return LiquidityAnalysis(
            score=int(clamp(raw)),
            amihud_illiquidity=round(amihud, 6),
            volume_profile=profile,
            liquidity_risk=risk,
            description=desc,
        )

    def _volume_profile(self, window: pd.DataFrame) -> VolumeProfile:
        """Bucket closes into equal-width price bins and rank bins by volume."""
        closes = window["close"]
        low_price = closes.min()
        bucket_size = (closes.max() - low_price) / self.cfg["profile_buckets"]

        if bucket_size > 0:
            buckets = np.floor((closes - low_price) / bucket_size).astype(int)
        else:
            buckets = pd.Series(0, index=closes.index)
        by_bucket = window["volume"].groupby(buckets).sum()
        # ties resolve to the lower bucket
        ranked = by_bucket.sort_index().sort_values(ascending=False, kind="stable")

        def level(bucket) -> float:
            return float(low_price + int(bucket) * bucket_size)

        return VolumeProfile(
            high_volume=[level(b) for b in ranked.index[:3]],
            low_volume=[level(b) for b in ranked.index[-3:]],
            poc=round(level(ranked.index[0]), 2),
        )

    # ── 6. Smart money ──────────────────────────────────────────────────

    def _analyze_smart_money(self, df: pd.DataFrame) -> SmartMoneyIndicators:
        window = self.cfg["wyckoff_window"]
        flow = self.cfg["flow_window"]
        closes = df["close"]
        volumes = df["volume"]

        recent_closes = closes.iloc[-window:]
        price_volatility = std_dev(recent_closes)
        volume_trend = volumes.iloc[-1] - volumes.iloc[-flow]
        price = closes.iloc[-1]
        high_price = recent_closes.max()
        low_price = recent_closes.min()

        if price < low_price * 1.05 and volume_trend > 0:
            phase = "Accumulation"
        elif price > high_price * 0.95 and volume_trend > 0:
            phase = "Distribution"
        elif price > low_price * 1.2 and price_volatility < recent_closes.mean() * 0.05:
            phase = "Markup"
        else:
            phase = "Markdown"

        # Money flow index over the flow window
        recent = df.iloc[-flow:]
        typical = ((recent["high"] + recent["low"] + recent["close"]) / 3).reset_index(drop=True)
        money_flow = typical * recent["volume"].reset_index(drop=True)
        rising = typical.diff() > 0
        positive = money_flow.iloc[1:][rising.iloc[1:]].sum()
        negative = money_flow.iloc[1:][~rising.iloc[1:]].sum()
        if negative > 0:
            composite = 100 - 100 / (1 + positive / negative)
        else:
            composite = 100.0 if positive > 0 else 50.0

        avg_volume = volumes.iloc[-self.cfg["profile_window"]:].mean()
        large_bars = int((recent["volume"] > avg_volume * 1.5).sum())
        activity = large_bars / flow * 100

        # Overnight gap size as a proxy for off-exchange activity
        gaps = (recent["open"].iloc[1:].to_numpy() - recent["close"].iloc[:-1].to_numpy())
        gap_pct = float(np.mean(np.abs(gaps) / recent["close"].iloc[:-1].to_numpy())) * 100 if len(gaps) else 0.0

        constructive = phase in ("Accumulation", "Markup")
        score = round_half_up(composite * 0.4 + activity * 0.3 + (70 if constructive else 30) * 0.3)

        if phase == "Accumulation" or (composite > 60 and activity > 30):
            signal, desc = "ACCUMULATION", f"Smart money accumulation detected ({phase} phase)"
        elif phase == "Distribution" or (composite < 40 and activity > 30):
            signal, desc = "DISTRIBUTION", f"Institutional distribution pattern ({phase} phase)"
        else:
            signal, desc = "NEUTRAL", "Neutral institutional positioning"

        return SmartMoneyIndicators(
            score=score,
            signal=signal,
            wyckoff_phase=phase,
            composite_index=round_half_up(composite),
            institutional_activity=round_half_up(activity),
            dark_pool_activity=round(gap_pct, 2),
            description=desc,
        )

    # ── 7. Correlation ──────────────────────────────────────────────────

    def _analyze_correlation(self, rets: pd.Series, market_bars: Sequence) -> CorrelationMatrix:
        if len(market_bars) < 2:
            return CorrelationMatrix(0.0, 0.0, 0.0, "Benchmark data unavailable")

        market_rets = returns([b.close for b in market_bars])
        market_corr = _finite(correlation(rets.iloc[-self.cfg["correlation_window"]:],
                                          market_rets.iloc[-self.cfg["correlation_window"]:]))
        sector_corr = _finite(correlation(rets.iloc[-self.cfg["sector_window"]:],
                                          market_rets.iloc[-self.cfg["sector_window"]:]))

        window = self.cfg["beta_window"]
        betas: List[float] = []
        for i in range(window, min(len(rets), len(market_rets))):
            stock_w = rets.iloc[i - window:i]
            market_w = market_rets.iloc[i - window:i]
            market_var = std_dev(market_w) ** 2
            if market_var > 0:
                betas.append(covariance(stock_w, market_w) / market_var)

        abs_mean = mean([abs(b) for b in betas]) if betas else 0.0
        stability = 1 - std_dev(betas) / abs_mean if betas and abs_mean > 0 else 0.0

        if abs(market_corr) > 0.7:
            desc = "Strong market correlation - moves with overall market"
        elif abs(market_corr) < 0.3:
            desc = "Low market correlation - independent behavior"
        else:
            desc = "Moderate market correlation"
        return CorrelationMatrix(
            market_correlation=round(market_corr, 3),
            sector_correlation=round(sector_corr, 3),
            beta_stability=round(stability, 3),
            description=desc,
        )

    # ── 8. Seasonality ──────────────────────────────────────────────────

    def _analyze_seasonality(self, bars: Sequence, rets: pd.Series) -> SeasonalityPatterns:
        recent = bars[-self.cfg["seasonality_window"]:]
        by_day: Dict[str, List[float]] = {day: [] for day in _WEEKDAYS}
        for prev, bar in zip(recent, recent[1:]):
            name = bar.date.strftime("%A")
            if name in by_day:
                by_day[name].append((bar.close - prev.close) / prev.close)
        day_of_week = {day: round(mean(vals) * 100, 3) for day, vals in by_day.items() if vals}

        monthly_trend = _finite(mean(rets.iloc[-21:])) * 100

        n = len(rets)
        quarters = []
        for start, end in ((252, 189), (189, 126), (126, 63), (63, 0)):
            chunk = rets.iloc[max(n - start, 0):n - end] if n - end > 0 else rets.iloc[:0]
            quarters.append(_finite(mean(chunk)) if len(chunk) else 0.0)
        best_quarter = quarters.index(max(quarters)) + 1

        return SeasonalityPatterns(
            day_of_week=day_of_week,
            monthly_trend=round(monthly_trend, 3),
            quarterly_pattern=f"Q{best_quarter} historically strongest",
            description=(f"Monthly trend: {'positive' if monthly_trend > 0 else 'negative'} "
                         f"{abs(monthly_trend):.2f}%"),
        )
