"""
Configuration for the Signal Confidence Engine
Centralized configuration, easy to modify.

Key scoring settings:
- Indicator periods shared by every engine
- Scoring profiles (basic / advanced / institutional / multi-timeframe / confluence)
- Trade-setup multipliers and the fixed reference account
- Price / news feed endpoints
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Base directories ────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).parent
LOGS_DIR = Path(os.getenv("LOGS_DIR", BASE_DIR / "logs"))

# ── Universe ────────────────────────────────────────────────────────────────
TICKERS = ["AAPL", "MSFT", "NVDA", "SPY"]

# Market series for beta / alpha / correlation
BENCHMARK_TICKER = os.getenv("BENCHMARK_TICKER", "SPY")

# ── Data ────────────────────────────────────────────────────────────────────
# "yfinance", "yahoo" (chart JSON API) or "stooq" (CSV download)
PRICE_PROVIDER = os.getenv("PRICE_PROVIDER", "yfinance")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))
CACHE_SECONDS = 60
USER_AGENT = "Mozilla/5.0"

TIMEFRAMES = {
    "daily": "1d",
    "weekly": "1wk",
    "monthly": "1mo",
}

# Short aliases accepted wherever an interval is expected
INTERVAL_ALIASES = {"d": "daily", "w": "weekly", "m": "monthly"}

# History requested per interval (long enough for SMA200 on daily bars)
PRICE_RANGES = {
    "daily": "2y",
    "weekly": "5y",
    "monthly": "10y",
}

YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
YAHOO_SEARCH_URL = "https://query1.finance.yahoo.com/v1/finance/search"
STOOQ_CSV_URL = "https://stooq.com/q/d/l/"
STOOQ_INTERVALS = {"daily": "d", "weekly": "w", "monthly": "m"}

NEWS_COUNT = 5
NEWS_COUNT_INTERNATIONAL = 10
NEWS_SEARCH_BY_NAME_SUFFIXES = (".NS", ".BO", ".T")

# ── Technical Indicators ────────────────────────────────────────────────────
INDICATORS = {
    # Trend
    "sma_fast": 50,
    "sma_slow": 200,
    "ema_ribbon": (8, 21, 55),
    "macd": {"fast": 12, "slow": 26, "signal": 9},
    "ichimoku": {"tenkan": 9, "kijun": 26, "senkou_b": 52},

    # Momentum
    "rsi_period": 14,

    # Volatility
    "atr_period": 14,

    # Trend strength
    "adx_period": 14,

    # Volume
    "volume_window": 20,
    "volume_breakout_ratio": 1.5,

    # Structure
    "structure_window": 50,
    "key_level_window": 100,
    "swing_lookback": 5,
}

# ── Institutional analysis windows ──────────────────────────────────────────
INSTITUTIONAL = {
    "flow_window": 20,
    "autocorr_window": 60,
    "regime_short": 20,
    "regime_autocorr": 40,
    "regime_long": 60,
    "vol_high_ratio": 1.5,
    "vol_low_ratio": 0.7,
    "profile_window": 60,
    "profile_buckets": 20,
    "wyckoff_window": 40,
    "correlation_window": 60,
    "sector_window": 120,
    "beta_window": 20,
    "seasonality_window": 120,
}

RISK_FREE_RATE = 0.045
TRADING_DAYS = 252

# ── Scoring profiles ────────────────────────────────────────────────────────
# Each profile keeps its own grade buckets and bias rules; they differ on
# purpose and are not unified.
_LETTER_GRADES = [(90, "A+"), (80, "A"), (70, "B"), (60, "C")]
_CONFIDENCE_LABELS = [(80, "Very High"), (70, "High"), (60, "Medium-High"), (50, "Medium")]
_FIVE_WAY_BIAS = [
    (">=", 75, "Bullish"),
    ("<=", 45, "Bearish"),
    ("<=", 74, "Neutral to Bullish"),
    (">=", 46, "Neutral to Bearish"),
]

SCORING_PROFILES = {
    "basic": {
        "min_bars": 200,
        "fallback_score": 0,
        "weights": {"trend": 35, "momentum": 25, "volume": 20, "fibonacci": 20},
        "grades": _LETTER_GRADES,
        "default_grade": "D",
        "bias": _FIVE_WAY_BIAS,
        "confidence": _CONFIDENCE_LABELS,
        "default_confidence": "Low",
    },
    "advanced": {
        "min_bars": 55,
        "fallback_score": 50,
        "weights": {"trend": 0.30, "momentum": 0.25, "structure": 0.25, "volatility": 0.20},
        "timeframe_weights": {"daily": 0.40, "weekly": 0.35, "monthly": 0.25},
        "grades": _LETTER_GRADES,
        "default_grade": "D",
        "bias": [
            (">=", 75, "Bullish"),
            (">=", 60, "Neutral to Bullish"),
            ("<=", 45, "Bearish"),
            ("<=", 60, "Neutral to Bearish"),
        ],
        "confidence": _CONFIDENCE_LABELS,
        "default_confidence": "Low",
    },
    "institutional": {
        "min_bars": 60,
        "fallback_score": 50,
        "weights": {"trend": 0.35, "momentum": 0.30, "volume": 0.20, "structure": 0.15},
        "grades": [
            (85, "A+"), (80, "A"), (75, "B+"), (70, "B"), (65, "B-"),
            (60, "C+"), (55, "C"), (50, "C-"), (45, "D+"),
        ],
        "default_grade": "D",
        "bias": [(">=", 65, "Bullish"), ("<=", 45, "Bearish")],
        "confidence": [(80, "VERY HIGH"), (70, "HIGH"), (55, "MEDIUM")],
        "default_confidence": "LOW",
        "strength": [(75, "STRONG"), (60, "MODERATE")],
        "default_strength": "WEAK",
        "time_horizon": "2-4 weeks",
    },
    "multi_timeframe": {
        "min_bars": 200,
        "fallback_score": 0,
        "timeframe_weights": {"daily": 0.40, "weekly": 0.60},
        "grades": _LETTER_GRADES,
        "default_grade": "D",
        "bias": [(">=", 65, "Bullish"), ("<=", 35, "Bearish")],
        "confidence": _CONFIDENCE_LABELS,
        "default_confidence": "Low",
    },
    "confluence": {
        "min_bars": 200,
        "fallback_score": 0,
        "timeframe_weights": {"daily": 0.60, "weekly": 0.40},
        "grades": _LETTER_GRADES,
        "default_grade": "D",
        "bias": _FIVE_WAY_BIAS,
        "confidence": _CONFIDENCE_LABELS,
        "default_confidence": "Low",
    },
}

# ── Trade setup ─────────────────────────────────────────────────────────────
TRADE_SETUP = {
    "stop_atr_multiple": 2.0,
    "target_atr_multiples": (1.5, 3.0, 4.5),
    "target_probabilities": (78, 61, 42),
    "aggressive_entry_premium": 0.002,
    "risk_pct_per_trade": 0.02,     # 2% risk rule
    "account_size": 10_000,         # reference account for position sizing
}

# ── Display ─────────────────────────────────────────────────────────────────
TERMINAL_WIDTH = 110
CURRENCY = "USD"

# ── Logging ─────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
