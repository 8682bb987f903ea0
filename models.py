"""Core data models — single source of truth for bars and engine results.

Every result object is recomputed from the bars it was built from; nothing
here is persisted. Derived fields (direction, target shortcuts, fallback
flags) are computed properties so the display never breaks on a missing
attribute.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class InsufficientDataError(ValueError):
    """Raised inside an engine when the bars cannot support its lookbacks."""


class Bias(Enum):
    BULLISH = "Bullish"
    BEARISH = "Bearish"
    NEUTRAL = "Neutral"
    NEUTRAL_TO_BULLISH = "Neutral to Bullish"
    NEUTRAL_TO_BEARISH = "Neutral to Bearish"


class SignalState(Enum):
    """Per-component reading attached to a layer score."""
    BULLISH = "Bullish"
    BEARISH = "Bearish"
    NEUTRAL = "Neutral"
    MODERATE = "Moderate"
    EXPANDING = "Expanding"


# ═══════════════════════════════════════════════════════════════════════════
# Bars
# ═══════════════════════════════════════════════════════════════════════════

def _parse_date(raw) -> Optional[date]:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, (int, float)):
        if not math.isfinite(raw):
            return None
        return datetime.fromtimestamp(raw, tz=timezone.utc).date()
    if hasattr(raw, "to_pydatetime"):          # pandas Timestamp
        return raw.to_pydatetime().date()
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError:
        return None


@dataclass(frozen=True)
class Bar:
    """One trading-period observation."""
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_mapping(cls, row) -> Optional["Bar"]:
        """Build a Bar from a provider row, or None when the row is malformed."""
        if isinstance(row, Bar):
            return row if row.is_valid() else None
        if not isinstance(row, Mapping):
            return None
        try:
            day = _parse_date(row.get("date"))
            o, h, l, c = (float(row[k]) for k in ("open", "high", "low", "close"))
            v = float(row.get("volume") or 0.0)
        except (KeyError, TypeError, ValueError):
            return None

        if day is None:
            return None
        bar = cls(date=day, open=o, high=h, low=l, close=c, volume=v)
        return bar if bar.is_valid() else None

    def is_valid(self) -> bool:
        """Finite positive prices, non-negative volume, low ≤ open, close ≤ high."""
        if not isinstance(self.date, date):
            return False
        try:
            values = [float(x) for x in (self.open, self.high, self.low, self.close, self.volume)]
        except (TypeError, ValueError):
            return False
        o, h, l, c, v = values
        if not all(math.isfinite(x) for x in values):
            return False
        if min(o, h, l, c) <= 0 or v < 0:
            return False
        return l <= min(o, c) and max(o, c) <= h


def sanitize_bars(rows: Optional[Iterable]) -> List[Bar]:
    """Drop malformed rows and return bars sorted ascending by date."""
    if not rows:
        return []
    bars: List[Bar] = []
    dropped = 0
    for row in rows:
        bar = Bar.from_mapping(row)
        if bar is None:
            dropped += 1
        else:
            bars.append(bar)
    if dropped:
        logger.debug(f"Dropped {dropped} malformed bar(s)")
    bars.sort(key=lambda b: b.date)
    return bars


# ═══════════════════════════════════════════════════════════════════════════
# Layer results
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Component:
    name: str
    value: float
    signal: SignalState
    description: str


@dataclass
class LayerResult:
    score: float
    components: List[Component] = field(default_factory=list)


@dataclass
class KeyLevels:
    resistance: List[float] = field(default_factory=list)
    support: List[float] = field(default_factory=list)


@dataclass
class Risk:
    level: str              # "Low", "Medium", "High"
    description: str


@dataclass
class Opportunity:
    probability: str        # "Low", "Medium", "High"
    description: str


@dataclass
class TimeframeResult:
    score: int
    bias: Bias
    trend: str
    layers: Dict[str, LayerResult] = field(default_factory=dict)
    valid: bool = True


# ═══════════════════════════════════════════════════════════════════════════
# Engine results
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class ConfidenceResult:
    profile: str
    score: int
    grade: str
    bias: Bias
    reasons: List[str] = field(default_factory=list)
    breakdown: Dict[str, float] = field(default_factory=dict)
    confidence: str = ""
    layers: Dict[str, LayerResult] = field(default_factory=dict)
    timeframes: Dict[str, TimeframeResult] = field(default_factory=dict)
    key_levels: Optional[KeyLevels] = None
    risks: List[Risk] = field(default_factory=list)
    opportunities: List[Opportunity] = field(default_factory=list)
    sufficient_data: bool = True

    @property
    def is_fallback(self) -> bool:
        return not self.sufficient_data


@dataclass
class MultiTimeframeResult:
    score: int
    bias: Bias
    grade: str
    daily: ConfidenceResult
    weekly: Optional[ConfidenceResult] = None
    reasons: List[str] = field(default_factory=list)
    confluence_reasons: List[str] = field(default_factory=list)


@dataclass
class TargetLevel:
    price: float
    percent: float
    probability: int
    reasoning: str


@dataclass
class TradeSetup:
    """Entry, stop and targets derived from price and ATR."""
    entry_optimal: float
    entry_aggressive: float
    entry_conservative: float
    entry_reasoning: str
    stop_loss: float
    stop_percent: float
    stop_reasoning: str
    targets: List[TargetLevel]
    risk_reward: float
    position_size_pct: float
    max_loss: float

    @property
    def target1(self) -> float:
        return self.targets[0].price

    @property
    def target2(self) -> float:
        return self.targets[1].price

    @property
    def target3(self) -> float:
        return self.targets[2].price

    @property
    def position_size(self) -> str:
        return f"{self.position_size_pct:.1f}% of portfolio"


@dataclass
class FinancialMetrics:
    """Return/risk statistics; None when the input cannot support them."""
    sharpe_ratio: Optional[float] = None
    alpha: Optional[float] = None
    beta: Optional[float] = None
    volatility: Optional[float] = None


@dataclass
class InstitutionalSignal:
    symbol: str
    price: float
    change: float
    change_percent: float
    score: int
    grade: str
    bias: Bias
    confidence: str
    strength: str
    time_horizon: str
    metrics: FinancialMetrics = field(default_factory=FinancialMetrics)
    summary: str = ""
    reasons: List[str] = field(default_factory=list)
    breakdown: Dict[str, float] = field(default_factory=dict)
    trade: Optional[TradeSetup] = None
    sufficient_data: bool = True

    @property
    def direction(self) -> str:
        return self.bias.value.upper()


@dataclass
class NewsItem:
    title: str
    publisher: str
    link: str
