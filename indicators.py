"""
Technical Indicator Library — pure functions over bar / price sequences.

Conventions
───────────
• Every series function returns a pandas Series (or DataFrame) aligned 1:1
  with its input. Positions without enough history hold NaN, never 0.
• Empty or short input never raises: it yields an all-NaN result, False,
  an empty list or NaN.
• Statistics use the population standard deviation unless noted.

Deep module:
  Simple interface → sma(closes, 50), rsi(closes), atr(bars) ...
  Complexity hidden → Wilder smoothing seeds, MACD alignment, pivots
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from config import RISK_FREE_RATE, TRADING_DAYS

logger = logging.getLogger(__name__)

_BAR_COLUMNS = ["open", "high", "low", "close", "volume"]


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def round_half_up(value: float) -> int:
    """Integer rounding with .5 always going up (2.5 → 3, -2.5 → -2)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def to_series(values) -> pd.Series:
    """Coerce a list / array / Series of numbers to a float Series with a 0..n-1 index."""
    if isinstance(values, pd.Series):
        return values.astype(float).reset_index(drop=True)
    return pd.Series(list(values), dtype=float)


def bars_to_frame(bars: Sequence) -> pd.DataFrame:
    """OHLCV DataFrame (0..n-1 index) from a list of Bar objects."""
    if not bars:
        return pd.DataFrame(columns=_BAR_COLUMNS, dtype=float)
    return pd.DataFrame(
        [[b.open, b.high, b.low, b.close, b.volume] for b in bars],
        columns=_BAR_COLUMNS,
        dtype=float,
    )


def closes_of(bars: Sequence) -> pd.Series:
    return pd.Series([b.close for b in bars], dtype=float)


def last_value(series: pd.Series) -> float:
    """Last element of a series, NaN when empty."""
    if series is None or len(series) == 0:
        return float("nan")
    return float(series.iloc[-1])


def _seeded_smoothing(values: pd.Series, period: int, alpha: float) -> pd.Series:
    """
    Recursive smoothing seeded with the mean of the first `period` values.

    out[period-1] = mean(values[:period])
    out[i]        = out[i-1] + alpha * (values[i] - out[i-1])
    """
    out = pd.Series(np.nan, index=values.index, dtype=float)
    if period <= 0 or len(values) < period:
        return out
    tail = values.iloc[period - 1:].copy()
    tail.iloc[0] = values.iloc[:period].mean()
    out.iloc[period - 1:] = tail.ewm(alpha=alpha, adjust=False).mean().to_numpy()
    return out


# ═══════════════════════════════════════════════════════════════════════════
# Moving averages
# ═══════════════════════════════════════════════════════════════════════════

def sma(values, period: int) -> pd.Series:
    """Trailing simple moving average; NaN for indices < period-1."""
    s = to_series(values)
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    return s.rolling(period).mean()


def ema(values, period: int) -> pd.Series:
    """Exponential moving average seeded with the SMA of the first `period` values."""
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    return _seeded_smoothing(to_series(values), period, 2.0 / (period + 1))


# ═══════════════════════════════════════════════════════════════════════════
# Momentum
# ═══════════════════════════════════════════════════════════════════════════

def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 50.0 if avg_gain == 0 else 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def rsi(values, period: int = 14) -> pd.Series:
    """
    Wilder-smoothed RSI.

    Seeded with the average gain / loss over the first `period` changes, so
    the first value sits at index `period`. A series with no losses reads 100
    and a perfectly flat series reads 50.
    """
    s = to_series(values)
    out = np.full(len(s), np.nan)
    if len(s) <= period:
        return pd.Series(out)

    delta = np.diff(s.to_numpy())
    gains = np.where(delta > 0, delta, 0.0)
    losses = np.where(delta < 0, -delta, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    out[period] = _rsi_from_averages(avg_gain, avg_loss)

    for i in range(period, len(delta)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out[i + 1] = _rsi_from_averages(avg_gain, avg_loss)

    return pd.Series(out)


def macd(values, fast: int = 12, slow: int = 26, signal: int = 9) -> pd.DataFrame:
    """MACD line, signal line and histogram; signal runs over the computable MACD values only."""
    s = to_series(values)
    line = ema(s, fast) - ema(s, slow)

    signal_line = pd.Series(np.nan, index=s.index, dtype=float)
    valid = line.dropna()
    if len(valid) >= signal:
        signal_line.loc[valid.index] = ema(valid, signal).to_numpy()

    return pd.DataFrame({
        "macd": line,
        "signal": signal_line,
        "histogram": line - signal_line,
    })


# ═══════════════════════════════════════════════════════════════════════════
# Volatility / trend strength
# ═══════════════════════════════════════════════════════════════════════════

def true_range(bars: Sequence) -> pd.Series:
    """True range per bar; index 0 has no previous close and is NaN."""
    df = bars_to_frame(bars)
    prev_close = df["close"].shift()
    tr = pd.concat([
        df["high"] - df["low"],
        (df["high"] - prev_close).abs(),
        (df["low"] - prev_close).abs(),
    ], axis=1).max(axis=1)
    if len(tr):
        tr.iloc[0] = np.nan
    return tr


def atr(bars: Sequence, period: int = 14) -> pd.Series:
    """Wilder ATR; the first value (index `period`) is the mean of the first `period` true ranges."""
    tr = true_range(bars)
    out = pd.Series(np.nan, index=tr.index, dtype=float)
    if len(tr) <= period:
        return out
    out.iloc[1:] = _seeded_smoothing(tr.iloc[1:].reset_index(drop=True), period, 1.0 / period).to_numpy()
    return out


def adx(bars: Sequence, period: int = 14) -> float:
    """
    Directional-movement trend strength in [0, 100].

    Sums +DM / −DM over the last `period` bars and normalises by the latest
    ATR. Returns 0 when there is no directional movement at all.
    """
    df = bars_to_frame(bars)
    if len(df) < 2:
        return 0.0

    window = df.iloc[-period:]
    up_move = window["high"].diff()
    down_move = -window["low"].diff()
    plus_dm = up_move.where((up_move > down_move) & (up_move > 0), 0.0).sum()
    minus_dm = down_move.where((down_move > up_move) & (down_move > 0), 0.0).sum()

    latest_atr = last_value(atr(bars, period))
    if pd.isna(latest_atr) or latest_atr == 0:
        latest_atr = 1.0

    plus_di = plus_dm / (period * latest_atr) * 100
    minus_di = minus_dm / (period * latest_atr) * 100
    total = plus_di + minus_di
    if total == 0:
        return 0.0
    return float(min(abs(plus_di - minus_di) / total * 100, 100.0))


def bollinger_bands(values, period: int = 20, std_dev: float = 2) -> pd.DataFrame:
    s = to_series(values)
    middle = s.rolling(period).mean()
    sd = s.rolling(period).std(ddof=0)
    return pd.DataFrame({
        "upper": middle + std_dev * sd,
        "middle": middle,
        "lower": middle - std_dev * sd,
    })


def ichimoku(bars: Sequence, tenkan: int = 9, kijun: int = 26, senkou_b: int = 52) -> pd.DataFrame:
    """Ichimoku lines as rolling high/low midpoints. Spans are not shifted forward."""
    df = bars_to_frame(bars)

    def midpoint(period: int) -> pd.Series:
        return (df["high"].rolling(period).max() + df["low"].rolling(period).min()) / 2

    tenkan_sen = midpoint(tenkan)
    kijun_sen = midpoint(kijun)
    return pd.DataFrame({
        "tenkan": tenkan_sen,
        "kijun": kijun_sen,
        "span_a": (tenkan_sen + kijun_sen) / 2,
        "span_b": midpoint(senkou_b),
    })


# ═══════════════════════════════════════════════════════════════════════════
# Volume / structure
# ═══════════════════════════════════════════════════════════════════════════

def obv(bars: Sequence) -> pd.Series:
    """On-Balance Volume, starting at 0."""
    df = bars_to_frame(bars)
    direction = np.sign(df["close"].diff()).fillna(0.0)
    return (df["volume"] * direction).cumsum()


def fibonacci_pivots(high: float, low: float, close: float) -> Dict[str, float]:
    pp = (high + low + close) / 3
    span = high - low
    return {
        "pp": pp,
        "r1": pp + 0.382 * span,
        "r2": pp + 0.618 * span,
        "r3": pp + 1.0 * span,
        "s1": pp - 0.382 * span,
        "s2": pp - 0.618 * span,
        "s3": pp - 1.0 * span,
    }


def volume_breakout(volumes, lookback: int = 20, ratio: float = 1.5) -> bool:
    """True when the latest volume is at least `ratio` × the mean of the last `lookback` volumes."""
    v = to_series(volumes)
    if len(v) < lookback + 1:
        return False
    return bool(v.iloc[-1] >= v.iloc[-lookback:].mean() * ratio)


@dataclass
class Crossover:
    index: int
    type: str                # "BUY" or "SELL"


def ma_crossover_signals(fast, slow) -> List[Crossover]:
    """Indices where the fast average crosses the slow one (NaN positions skipped)."""
    f = to_series(fast)
    s = to_series(slow)
    signals: List[Crossover] = []
    for i in range(1, min(len(f), len(s))):
        window = (f.iloc[i - 1], s.iloc[i - 1], f.iloc[i], s.iloc[i])
        if any(pd.isna(x) for x in window):
            continue
        f_prev, s_prev, f_now, s_now = window
        if f_prev < s_prev and f_now > s_now:
            signals.append(Crossover(i, "BUY"))
        elif f_prev > s_prev and f_now < s_now:
            signals.append(Crossover(i, "SELL"))
    return signals


@dataclass
class SwingPoints:
    highs: List[float]
    lows: List[float]


def find_swing_points(bars: Sequence, lookback: int = 5,
                      margin: Optional[int] = None) -> SwingPoints:
    """
    Strict local extrema: a bar's high (low) must be above (below) the
    `lookback` bars on each side. Candidates are scanned from `margin` to
    len - margin - 1 (margin defaults to lookback).
    """
    margin = lookback if margin is None else margin
    df = bars_to_frame(bars)
    highs = df["high"].to_numpy()
    lows = df["low"].to_numpy()

    swing_highs: List[float] = []
    swing_lows: List[float] = []
    for i in range(max(margin, lookback), len(df) - max(margin, lookback)):
        neighbours = [i - j for j in range(1, lookback + 1)] + [i + j for j in range(1, lookback + 1)]
        if all(highs[i] > highs[k] for k in neighbours):
            swing_highs.append(float(highs[i]))
        if all(lows[i] < lows[k] for k in neighbours):
            swing_lows.append(float(lows[i]))
    return SwingPoints(swing_highs, swing_lows)


# ═══════════════════════════════════════════════════════════════════════════
# Statistics
# ═══════════════════════════════════════════════════════════════════════════

def returns(values) -> pd.Series:
    """Simple period returns; length n-1."""
    s = to_series(values)
    if len(s) < 2:
        return pd.Series([], dtype=float)
    return (s.diff() / s.shift()).iloc[1:].reset_index(drop=True)


def mean(values) -> float:
    s = to_series(values)
    return float(s.mean()) if len(s) else float("nan")


def std_dev(values) -> float:
    s = to_series(values)
    return float(s.std(ddof=0)) if len(s) else float("nan")


def _tail_align(x, y):
    a, b = to_series(x), to_series(y)
    n = min(len(a), len(b))
    if n == 0:
        return a.iloc[:0], b.iloc[:0]
    return a.iloc[-n:].reset_index(drop=True), b.iloc[-n:].reset_index(drop=True)


def covariance(x, y) -> float:
    """Population covariance over the common trailing length."""
    a, b = _tail_align(x, y)
    if len(a) == 0:
        return float("nan")
    return float(((a - a.mean()) * (b - b.mean())).mean())


def correlation(x, y) -> float:
    """Pearson correlation; NaN when either side has zero variance."""
    a, b = _tail_align(x, y)
    sx, sy = std_dev(a), std_dev(b)
    if len(a) == 0 or sx == 0 or sy == 0:
        return float("nan")
    return covariance(a, b) / (sx * sy)


def autocorrelation(values, lag: int = 1) -> float:
    s = to_series(values)
    if lag <= 0 or lag >= len(s):
        return 0.0
    return correlation(s.iloc[:-lag], s.iloc[lag:])


def skewness(values) -> float:
    """Sample-adjusted skewness."""
    s = to_series(values)
    n = len(s)
    sd = std_dev(s)
    if n < 3 or sd == 0 or pd.isna(sd):
        return float("nan")
    z = ((s - s.mean()) / sd) ** 3
    return float(n / ((n - 1) * (n - 2)) * z.sum())


def kurtosis(values) -> float:
    """Sample-adjusted excess kurtosis."""
    s = to_series(values)
    n = len(s)
    sd = std_dev(s)
    if n < 4 or sd == 0 or pd.isna(sd):
        return float("nan")
    z = ((s - s.mean()) / sd) ** 4
    kurt = n * (n + 1) / ((n - 1) * (n - 2) * (n - 3)) * z.sum()
    correction = 3 * (n - 1) ** 2 / ((n - 2) * (n - 3))
    return float(kurt - correction)


def sharpe_ratio(prices, risk_free_rate: float = RISK_FREE_RATE) -> float:
    """Annualised Sharpe ratio of the price series' simple returns."""
    rets = returns(prices)
    sd = std_dev(rets)
    if len(rets) == 0 or sd == 0 or pd.isna(sd):
        return float("nan")
    annual_return = rets.mean() * TRADING_DAYS
    annual_std = sd * math.sqrt(TRADING_DAYS)
    return float((annual_return - risk_free_rate) / annual_std)


def beta(stock_prices, market_prices) -> float:
    stock, market = _tail_align(returns(stock_prices), returns(market_prices))
    if len(stock) == 0:
        return float("nan")
    market_var = ((market - market.mean()) ** 2).sum()
    if market_var == 0:
        return float("nan")
    cov = ((stock - stock.mean()) * (market - market.mean())).sum()
    return float(cov / market_var)


def alpha(stock_prices, market_prices, beta_value: float,
          risk_free_rate: float = RISK_FREE_RATE) -> float:
    """Jensen's alpha, annualised, in percent."""
    stock_rets = returns(stock_prices)
    market_rets = returns(market_prices)
    if len(stock_rets) == 0 or len(market_rets) == 0 or pd.isna(beta_value):
        return float("nan")
    stock_return = stock_rets.mean() * TRADING_DAYS
    market_return = market_rets.mean() * TRADING_DAYS
    expected = risk_free_rate + beta_value * (market_return - risk_free_rate)
    return float((stock_return - expected) * 100)


def annualized_volatility(prices) -> float:
    """Annualised standard deviation of returns, in percent."""
    rets = returns(prices)
    if len(rets) == 0:
        return float("nan")
    return std_dev(rets) * math.sqrt(TRADING_DAYS) * 100
