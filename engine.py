"""
Aggregation Engines — layer scores → one graded, biased confidence result.

Every engine variant is a named scoring profile (see config.SCORING_PROFILES):

  ─── basic            additive points, one timeframe
  ─── advanced         weighted layers per timeframe, blended daily/weekly/monthly
  ─── institutional    weighted layers + financial metrics + trade setup
  ─── multi_timeframe  basic daily × 0.4 + basic weekly × 0.6
  ─── confluence       basic daily × 0.6 + basic weekly × 0.4

Public entry points never raise on short or malformed input: raw rows are
sanitized, and an InsufficientDataError raised inside is turned into the
profile's neutral fallback result.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from config import INDICATORS, SCORING_PROFILES
from indicators import (
    alpha, annualized_volatility, atr, beta, clamp, closes_of, ema,
    last_value, round_half_up, sharpe_ratio,
)
from institutional_analysis import InstitutionalAnalysis, InstitutionalAnalyzer
from layers import (
    analyze_momentum, analyze_structure, analyze_trend, analyze_volatility,
    basic_fibonacci, basic_momentum, basic_trend, basic_volume,
    calculate_key_levels, ema_alignment_trend, market_structure,
    rsi_macd_momentum, volume_accumulation,
)
from models import (
    Bias, ConfidenceResult, FinancialMetrics, InstitutionalSignal,
    InsufficientDataError, MultiTimeframeResult, Opportunity, Risk,
    TimeframeResult, sanitize_bars,
)
from trade_setup import build_trade_setup

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA = "Insufficient data"


# ═══════════════════════════════════════════════════════════════════════════
# Scoring profiles
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ScoringProfile:
    """Weights, grade buckets and label rules for one engine variant."""
    name: str
    min_bars: int
    fallback_score: int
    weights: Mapping[str, float]
    timeframe_weights: Mapping[str, float]
    grades: Tuple[Tuple[int, str], ...]
    default_grade: str
    bias_rules: Tuple[Tuple[str, int, str], ...]
    confidence_labels: Tuple[Tuple[int, str], ...]
    default_confidence: str
    strength_labels: Tuple[Tuple[int, str], ...] = ()
    default_strength: str = ""
    time_horizon: str = ""

    @classmethod
    def from_config(cls, name: str) -> "ScoringProfile":
        cfg = SCORING_PROFILES[name]
        return cls(
            name=name,
            min_bars=cfg["min_bars"],
            fallback_score=cfg["fallback_score"],
            weights=MappingProxyType(dict(cfg.get("weights", {}))),
            timeframe_weights=MappingProxyType(dict(cfg.get("timeframe_weights", {}))),
            grades=tuple(sorted(cfg["grades"], reverse=True)),
            default_grade=cfg["default_grade"],
            bias_rules=tuple(cfg["bias"]),
            confidence_labels=tuple(sorted(cfg["confidence"], reverse=True)),
            default_confidence=cfg["default_confidence"],
            strength_labels=tuple(sorted(cfg.get("strength", []), reverse=True)),
            default_strength=cfg.get("default_strength", ""),
            time_horizon=cfg.get("time_horizon", ""),
        )

    @staticmethod
    def _bucket(score: float, table: Iterable[Tuple[int, str]], default: str) -> str:
        for threshold, label in table:
            if score >= threshold:
                return label
        return default

    def grade_for(self, score: float) -> str:
        return self._bucket(score, self.grades, self.default_grade)

    def confidence_for(self, score: float) -> str:
        return self._bucket(score, self.confidence_labels, self.default_confidence)

    def strength_for(self, score: float) -> str:
        return self._bucket(score, self.strength_labels, self.default_strength)

    def bias_for(self, score: float) -> Bias:
        """First matching rule wins; Neutral when none match."""
        for op, threshold, label in self.bias_rules:
            if (op == ">=" and score >= threshold) or (op == "<=" and score <= threshold):
                return Bias(label)
        return Bias.NEUTRAL

    def require(self, bars: Sequence, what: str = "bars") -> None:
        if len(bars) < self.min_bars:
            raise InsufficientDataError(
                f"{self.name} profile needs {self.min_bars} {what}, got {len(bars)}"
            )


PROFILES: Mapping[str, ScoringProfile] = MappingProxyType(
    {name: ScoringProfile.from_config(name) for name in SCORING_PROFILES}
)


def _final_score(value: float) -> int:
    return int(clamp(round_half_up(value)))


def _fallback(profile: ScoringProfile, breakdown_keys: Iterable[str] = ()) -> ConfidenceResult:
    score = profile.fallback_score
    return ConfidenceResult(
        profile=profile.name,
        score=score,
        grade=profile.grade_for(score),
        bias=Bias.NEUTRAL,
        reasons=[INSUFFICIENT_DATA],
        breakdown={k: 0 for k in breakdown_keys},
        confidence=profile.confidence_for(score),
        sufficient_data=False,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Basic
# ═══════════════════════════════════════════════════════════════════════════

def compute_confidence(bars: Sequence) -> ConfidenceResult:
    """Additive trend / momentum / volume / Fibonacci points on one timeframe."""
    profile = PROFILES["basic"]
    bars = sanitize_bars(bars)
    try:
        return _basic_confidence(bars, profile)
    except InsufficientDataError as e:
        logger.info(f"Basic confidence fallback: {e}")
        return _fallback(profile, profile.weights)


def _basic_confidence(bars: List, profile: ScoringProfile) -> ConfidenceResult:
    profile.require(bars)

    layers = {
        "trend": basic_trend(bars),
        "momentum": basic_momentum(bars),
        "volume": basic_volume(bars),
        "fibonacci": basic_fibonacci(bars),
    }
    # points are capped by the layer maxima in config
    breakdown = {name: min(layer.score, profile.weights[name]) for name, layer in layers.items()}
    score = _final_score(sum(breakdown.values()))
    reasons = [c.description for layer in layers.values() for c in layer.components]

    return ConfidenceResult(
        profile=profile.name,
        score=score,
        grade=profile.grade_for(score),
        bias=profile.bias_for(score),
        reasons=reasons,
        breakdown=breakdown,
        confidence=profile.confidence_for(score),
        layers=layers,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Advanced (multi-timeframe layers)
# ═══════════════════════════════════════════════════════════════════════════

def _trend_label(trend_score: float) -> str:
    if trend_score >= 70:
        return "Strong Up"
    if trend_score >= 55:
        return "Up"
    if trend_score <= 40:
        return "Down"
    return "Ranging"


def _analyze_timeframe(bars: List, profile: ScoringProfile) -> TimeframeResult:
    profile.require(bars)
    layers = {
        "trend": analyze_trend(bars),
        "momentum": analyze_momentum(bars),
        "structure": analyze_structure(bars),
        "volatility": analyze_volatility(bars),
    }
    score = _final_score(sum(layers[name].score * w for name, w in profile.weights.items()))
    return TimeframeResult(
        score=score,
        bias=profile.bias_for(score),
        trend=_trend_label(layers["trend"].score),
        layers=layers,
    )


def compute_advanced_confidence(daily: Sequence, weekly: Optional[Sequence] = None,
                                monthly: Optional[Sequence] = None) -> ConfidenceResult:
    """
    Trend / momentum / structure / volatility per timeframe, blended
    daily 40% / weekly 35% / monthly 25%.

    Weekly or monthly series that are missing or too short are left out and
    the remaining weights renormalized; only the daily series is mandatory.
    """
    profile = PROFILES["advanced"]
    series = {
        "daily": sanitize_bars(daily),
        "weekly": sanitize_bars(weekly),
        "monthly": sanitize_bars(monthly),
    }
    try:
        return _advanced_confidence(series, profile)
    except InsufficientDataError as e:
        logger.info(f"Advanced confidence fallback: {e}")
        return _fallback(profile, profile.weights)


def _advanced_confidence(series: Dict[str, List], profile: ScoringProfile) -> ConfidenceResult:
    timeframes: Dict[str, TimeframeResult] = {"daily": _analyze_timeframe(series["daily"], profile)}
    for name in ("weekly", "monthly"):
        try:
            timeframes[name] = _analyze_timeframe(series[name], profile)
        except InsufficientDataError as e:
            logger.debug(f"Skipping {name} timeframe: {e}")
            timeframes[name] = TimeframeResult(
                score=profile.fallback_score, bias=Bias.NEUTRAL, trend="Ranging", valid=False,
            )

    valid = {name: tf for name, tf in timeframes.items() if tf.valid}
    total_weight = sum(profile.timeframe_weights[name] for name in valid)
    score = _final_score(
        sum(tf.score * profile.timeframe_weights[name] for name, tf in valid.items()) / total_weight
    )

    daily = timeframes["daily"]
    weekly = timeframes["weekly"]
    key_levels = calculate_key_levels(series["daily"])

    opportunities: List[Opportunity] = []
    risks: List[Risk] = []
    if key_levels.support and score >= 60:
        opportunities.append(Opportunity(
            "High", f"Pullback to ${key_levels.support[0]:.2f} support offers entry"))
    if key_levels.resistance and daily.layers["momentum"].score >= 65:
        opportunities.append(Opportunity(
            "Medium", f"Breakout above ${key_levels.resistance[0]:.2f} confirms continuation"))
    if weekly.valid and daily.score > 70 and weekly.score < 55:
        risks.append(Risk("Medium", "Daily strength not confirmed by weekly timeframe"))

    reasons = [f"{c.name}: {c.description}"
               for layer in daily.layers.values() for c in layer.components]

    return ConfidenceResult(
        profile=profile.name,
        score=score,
        grade=profile.grade_for(score),
        bias=profile.bias_for(score),
        reasons=reasons,
        breakdown={name: layer.score for name, layer in daily.layers.items()},
        confidence=profile.confidence_for(score),
        layers=daily.layers,
        timeframes=timeframes,
        key_levels=key_levels,
        risks=risks,
        opportunities=opportunities,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Institutional signal
# ═══════════════════════════════════════════════════════════════════════════

def _pts(value: float) -> str:
    return f"{value:g}"


def _metric(value: float, digits: int) -> Optional[float]:
    return None if value is None or pd.isna(value) else round(float(value), digits)


def _financial_metrics(daily: List, market: List) -> FinancialMetrics:
    closes = [b.close for b in daily]
    window = closes[-60:]
    metrics = FinancialMetrics(
        sharpe_ratio=_metric(sharpe_ratio(window), 2),
        volatility=_metric(annualized_volatility(closes[-30:]), 1),
    )
    if len(market) >= 2:
        market_window = [b.close for b in market][-60:]
        b = beta(window, market_window)
        metrics.beta = _metric(b, 2)
        metrics.alpha = _metric(alpha(window, market_window, b), 1)
    return metrics


def compute_institutional_signal(daily: Sequence, market: Optional[Sequence] = None,
                                 symbol: str = "") -> InstitutionalSignal:
    """Trend 35% / momentum 30% / volume 20% / structure 15%, plus metrics and a trade setup."""
    profile = PROFILES["institutional"]
    bars = sanitize_bars(daily)
    market_bars = sanitize_bars(market)
    try:
        return _institutional_signal(bars, market_bars, symbol, profile)
    except InsufficientDataError as e:
        logger.info(f"{symbol or 'symbol'}: institutional signal fallback: {e}")
        price = bars[-1].close if bars else 0.0
        score = profile.fallback_score
        return InstitutionalSignal(
            symbol=symbol, price=price, change=0.0, change_percent=0.0,
            score=score, grade=profile.grade_for(score), bias=Bias.NEUTRAL,
            confidence=profile.confidence_for(score), strength=profile.strength_for(score),
            time_horizon=profile.time_horizon, summary=INSUFFICIENT_DATA,
            reasons=[INSUFFICIENT_DATA], breakdown={k: 0 for k in profile.weights},
            sufficient_data=False,
        )


def _institutional_signal(bars: List, market: List, symbol: str,
                          profile: ScoringProfile) -> InstitutionalSignal:
    profile.require(bars)

    price = bars[-1].close
    prev = bars[-2].close
    change = price - prev

    structure = market_structure(bars)
    volume = volume_accumulation(bars)
    trend = ema_alignment_trend(bars, structure)
    momentum = rsi_macd_momentum(bars)

    breakdown = {
        "trend": trend.score,
        "momentum": momentum.score,
        "volume": volume.score,
        "structure": structure.score,
    }
    score = _final_score(sum(breakdown[name] * w for name, w in profile.weights.items()))
    bias = profile.bias_for(score)
    confidence = profile.confidence_for(score)
    direction = bias.value.upper()

    setup_text = ("Strong technical setup with favorable risk/reward across multiple timeframes."
                  if score >= 70 else
                  "Mixed signals suggest cautious approach or waiting for better confirmation.")
    reasons = [
        f"Trend: {trend.components[0].description} (+{_pts(trend.score)} pts)",
        f"Momentum: {momentum.components[0].description} (+{_pts(momentum.score)} pts)",
        f"Volume: {volume.description} (+{_pts(volume.score)} pts)",
        f"Structure: {structure.trend} pattern confirmed (+{_pts(structure.score)} pts)",
    ]

    closes = closes_of(bars)
    trade = build_trade_setup(
        price,
        last_value(atr(bars, INDICATORS["atr_period"])),
        last_value(ema(closes, INDICATORS["ema_ribbon"][1])),
    )

    return InstitutionalSignal(
        symbol=symbol,
        price=price,
        change=change,
        change_percent=change / prev * 100,
        score=score,
        grade=profile.grade_for(score),
        bias=bias,
        confidence=confidence,
        strength=profile.strength_for(score),
        time_horizon=profile.time_horizon,
        metrics=_financial_metrics(bars, market),
        summary=f"{direction} signal with {confidence.lower()} confidence. {setup_text}",
        reasons=reasons,
        breakdown=breakdown,
        trade=trade,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Multi-timeframe blends
# ═══════════════════════════════════════════════════════════════════════════

def compute_multi_timeframe_confidence(daily: Sequence,
                                       weekly: Optional[Sequence] = None) -> MultiTimeframeResult:
    """Basic score per timeframe blended 40% daily / 60% weekly."""
    profile = PROFILES["multi_timeframe"]
    daily_result = compute_confidence(daily)
    weekly_result = compute_confidence(weekly) if weekly else None

    if weekly_result is None or weekly_result.is_fallback or daily_result.is_fallback:
        # identity on the daily result
        return MultiTimeframeResult(
            score=daily_result.score,
            bias=daily_result.bias,
            grade=daily_result.grade,
            daily=daily_result,
            weekly=weekly_result,
            reasons=list(daily_result.reasons),
        )

    w = profile.timeframe_weights
    score = _final_score(daily_result.score * w["daily"] + weekly_result.score * w["weekly"])

    if daily_result.bias == weekly_result.bias:
        confluence = [f"Daily & Weekly aligned ({weekly_result.bias.value})"]
    else:
        confluence = [f"Daily ({daily_result.bias.value}) vs Weekly ({weekly_result.bias.value}) divergence"]

    return MultiTimeframeResult(
        score=score,
        bias=profile.bias_for(score),
        grade=profile.grade_for(score),
        daily=daily_result,
        weekly=weekly_result,
        reasons=daily_result.reasons + confluence,
        confluence_reasons=confluence,
    )


def compute_confluence(daily_result: ConfidenceResult,
                       weekly_result: Optional[ConfidenceResult] = None) -> ConfidenceResult:
    """Blend two basic results 60% daily / 40% weekly; identity without a usable weekly result."""
    profile = PROFILES["confluence"]
    if weekly_result is None or weekly_result.is_fallback:
        score, bias = daily_result.score, daily_result.bias
    else:
        w = profile.timeframe_weights
        score = _final_score(daily_result.score * w["daily"] + weekly_result.score * w["weekly"])
        bias = profile.bias_for(score)

    return ConfidenceResult(
        profile=profile.name,
        score=score,
        grade=profile.grade_for(score),
        bias=bias,
        reasons=list(daily_result.reasons),
        breakdown={
            "daily": daily_result.score,
            "weekly": weekly_result.score if weekly_result else 0,
        },
        confidence=profile.confidence_for(score),
        sufficient_data=daily_result.sufficient_data,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Institutional deep analysis
# ═══════════════════════════════════════════════════════════════════════════

def compute_institutional_analysis(daily: Sequence,
                                   market: Optional[Sequence] = None) -> Optional[InstitutionalAnalysis]:
    """The eight institutional layers, or None when the daily history is too short."""
    try:
        return InstitutionalAnalyzer().analyze(sanitize_bars(daily), sanitize_bars(market))
    except InsufficientDataError as e:
        logger.info(f"Institutional analysis skipped: {e}")
        return None
