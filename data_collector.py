"""
Market Data Collector — OHLCV bars, benchmark bars and headlines.

Providers
─────────
1. yfinance  (default) — Ticker.history(period, interval)
2. yahoo     — chart JSON API, rows with null prices dropped
3. stooq     — CSV download, "N/D" rows dropped, ".us" added to bare symbols

News always comes from the Yahoo search endpoint.

Deep module:
  Simple interface → get_bars(symbol, "daily") -> List[Bar]
  Complexity hidden → provider dispatch, short-lived cache, error recovery.
  Every failure is logged and returned as an empty list, which the engines
  then treat as insufficient data.
"""

import io
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pandas as pd
import requests
import yfinance as yf

from config import (
    BENCHMARK_TICKER, CACHE_SECONDS, HTTP_TIMEOUT, INTERVAL_ALIASES,
    NEWS_COUNT, NEWS_COUNT_INTERNATIONAL, NEWS_SEARCH_BY_NAME_SUFFIXES,
    PRICE_PROVIDER, PRICE_RANGES, STOOQ_CSV_URL, STOOQ_INTERVALS,
    TIMEFRAMES, USER_AGENT, YAHOO_CHART_URL, YAHOO_SEARCH_URL,
)
from models import Bar, NewsItem, sanitize_bars

logger = logging.getLogger(__name__)


def normalize_interval(interval: str) -> str:
    """'d' / 'daily' → 'daily' etc. Unknown values raise ValueError."""
    key = (interval or "daily").strip().lower()
    key = INTERVAL_ALIASES.get(key, key)
    if key not in TIMEFRAMES:
        raise ValueError(f"Unknown interval '{interval}' (expected one of {sorted(TIMEFRAMES)})")
    return key


class DataCollector:
    """
    Fetches bars and news for a symbol.

    Simple interface:
        get_bars(symbol, interval) -> List[Bar]
        get_benchmark(interval)    -> List[Bar]
        get_news(symbol)           -> List[NewsItem]

    A requests.Session can be injected (tests pass a fake one).
    """

    def __init__(self, provider: str = PRICE_PROVIDER,
                 session: Optional[requests.Session] = None):
        if provider not in ("yfinance", "yahoo", "stooq"):
            raise ValueError(f"Unknown price provider '{provider}'")
        self.provider = provider
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT})
        self._cache: Dict[Tuple[str, str], Tuple[List[Bar], datetime]] = {}
        self._cache_timeout = timedelta(seconds=CACHE_SECONDS)

    # ── Public Interface ────────────────────────────────────────────────

    def get_bars(self, symbol: str, interval: str = "daily") -> List[Bar]:
        """Sanitized bars, oldest first; empty list on any failure."""
        symbol = (symbol or "").strip().upper()
        if not symbol:
            return []
        try:
            interval = normalize_interval(interval)
        except ValueError as e:
            logger.warning(str(e))
            return []

        key = (symbol, interval)
        if key in self._cache:
            bars, ts = self._cache[key]
            if datetime.now() - ts < self._cache_timeout:
                return bars

        try:
            rows = self._fetch_rows(symbol, interval)
        except Exception as e:
            logger.error(f"Failed to fetch {interval} bars for {symbol}: {e}", exc_info=True)
            return []

        bars = sanitize_bars(rows)
        if not bars:
            logger.warning(f"No {interval} bars returned for {symbol} ({self.provider})")
            return []
        logger.info(f"Fetched {len(bars)} {interval} bars for {symbol} ({self.provider})")
        self._cache[key] = (bars, datetime.now())
        return bars

    def get_benchmark(self, interval: str = "daily") -> List[Bar]:
        return self.get_bars(BENCHMARK_TICKER, interval)

    def get_news(self, symbol: str) -> List[NewsItem]:
        """Latest headlines; exchange-suffixed symbols are searched by their base name."""
        symbol = (symbol or "").strip().upper()
        if not symbol:
            return []

        query, count = symbol, NEWS_COUNT
        for suffix in NEWS_SEARCH_BY_NAME_SUFFIXES:
            if symbol.endswith(suffix):
                query, count = symbol[: -len(suffix)], NEWS_COUNT_INTERNATIONAL
                break

        try:
            resp = self._session.get(
                YAHOO_SEARCH_URL,
                params={"q": query, "newsCount": count},
                timeout=HTTP_TIMEOUT,
            )
            resp.raise_for_status()
            items = resp.json().get("news") or []
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"News fetch failed for {symbol}: {e}", exc_info=True)
            return []

        if not isinstance(items, list):
            return []
        return [
            NewsItem(
                title=item.get("title", ""),
                publisher=item.get("publisher", ""),
                link=item.get("link", ""),
            )
            for item in items
            if isinstance(item, dict)
        ]

    # ── Internal: providers ─────────────────────────────────────────────

    def _fetch_rows(self, symbol: str, interval: str) -> List[dict]:
        if self.provider == "yahoo":
            return self._fetch_yahoo(symbol, interval)
        if self.provider == "stooq":
            return self._fetch_stooq(symbol, interval)
        return self._fetch_yfinance(symbol, interval)

    def _fetch_yfinance(self, symbol: str, interval: str) -> List[dict]:
        hist = yf.Ticker(symbol).history(period=PRICE_RANGES[interval],
                                         interval=TIMEFRAMES[interval])
        if hist is None or hist.empty:
            return []
        return [
            {
                "date": idx,
                "open": row["Open"],
                "high": row["High"],
                "low": row["Low"],
                "close": row["Close"],
                "volume": row["Volume"],
            }
            for idx, row in hist.iterrows()
        ]

    def _fetch_yahoo(self, symbol: str, interval: str) -> List[dict]:
        resp = self._session.get(
            YAHOO_CHART_URL.format(symbol=symbol),
            params={"interval": TIMEFRAMES[interval], "range": PRICE_RANGES[interval]},
            timeout=HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        results = (resp.json().get("chart") or {}).get("result") or []
        if not results:
            return []

        result = results[0]
        timestamps = result.get("timestamp") or []
        quote = ((result.get("indicators") or {}).get("quote") or [{}])[0]

        def column(name: str) -> list:
            values = quote.get(name) or []
            return list(values) + [None] * (len(timestamps) - len(values))

        rows = []
        for ts, o, h, l, c, v in zip(timestamps, column("open"), column("high"),
                                     column("low"), column("close"), column("volume")):
            if None in (o, h, l, c):
                continue
            rows.append({
                "date": datetime.fromtimestamp(ts, tz=timezone.utc).date(),
                "open": o, "high": h, "low": l, "close": c,
                "volume": v or 0,
            })
        return rows

    def _fetch_stooq(self, symbol: str, interval: str) -> List[dict]:
        stooq_symbol = symbol.lower() if "." in symbol else f"{symbol.lower()}.us"
        resp = self._session.get(
            STOOQ_CSV_URL,
            params={"s": stooq_symbol, "i": STOOQ_INTERVALS[interval]},
            timeout=HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        return self._parse_stooq_csv(resp.text)

    @staticmethod
    def _parse_stooq_csv(text: str) -> List[dict]:
        if not text or not text.strip():
            return []
        try:
            df = pd.read_csv(io.StringIO(text.strip()), na_values=["N/D"])
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            logger.warning(f"Unreadable Stooq CSV: {e}")
            return []

        df.columns = [c.strip().lower() for c in df.columns]
        required = ["date", "open", "high", "low", "close"]
        if any(c not in df.columns for c in required):
            logger.warning(f"Stooq CSV missing columns: {list(df.columns)}")
            return []
        if "volume" not in df.columns:
            df["volume"] = 0.0

        df = df.dropna(subset=required + ["volume"])
        return df[required + ["volume"]].to_dict("records")
