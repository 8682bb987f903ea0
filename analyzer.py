"""
Signal Confidence Engine — main orchestrator.

One analysis pass per symbol:
1. Fetch daily / weekly / monthly bars, benchmark bars and headlines once
2. Run every scoring engine over the same bars
3. Bundle everything into an AnalysisReport
4. Hand the report to the terminal display

Usage:
    signal-engine AAPL MSFT        # or: python analyzer.py AAPL MSFT
"""

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from config import INDICATORS, LOG_FORMAT, LOG_LEVEL, LOGS_DIR, TICKERS
from data_collector import DataCollector
from display import Display, print_startup_banner
from engine import (
    compute_advanced_confidence, compute_confidence, compute_confluence,
    compute_institutional_analysis, compute_institutional_signal,
    compute_multi_timeframe_confidence,
)
from indicators import Crossover, closes_of, ma_crossover_signals, sma, volume_breakout
from institutional_analysis import InstitutionalAnalysis
from models import ConfidenceResult, InstitutionalSignal, MultiTimeframeResult, NewsItem

logger = logging.getLogger(__name__)


@dataclass
class AnalysisReport:
    """Everything computed for one symbol in one pass."""
    symbol: str
    generated_at: datetime
    price: Optional[float]
    bar_counts: dict
    confidence: ConfidenceResult
    multi_timeframe: MultiTimeframeResult
    confluence: ConfidenceResult
    advanced: ConfidenceResult
    institutional: InstitutionalSignal
    deep_analysis: Optional[InstitutionalAnalysis]
    crossovers: List[Crossover] = field(default_factory=list)
    volume_breakout: bool = False
    news: List[NewsItem] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return self.bar_counts.get("daily", 0) > 0


class StockAnalyzer:
    """
    Simple interface:
        analyze(symbol) -> AnalysisReport
    """

    def __init__(self, collector: Optional[DataCollector] = None):
        self.collector = collector or DataCollector()

    def analyze(self, symbol: str) -> AnalysisReport:
        symbol = symbol.strip().upper()
        logger.info(f"Analyzing {symbol}...")

        daily = self.collector.get_bars(symbol, "daily")
        weekly = self.collector.get_bars(symbol, "weekly")
        monthly = self.collector.get_bars(symbol, "monthly")
        market = self.collector.get_benchmark("daily")
        news = self.collector.get_news(symbol)

        confidence = compute_confidence(daily)
        weekly_confidence = compute_confidence(weekly) if weekly else None
        multi = compute_multi_timeframe_confidence(daily, weekly)
        confluence = compute_confluence(confidence, weekly_confidence)
        advanced = compute_advanced_confidence(daily, weekly, monthly)
        institutional = compute_institutional_signal(daily, market, symbol)
        deep = compute_institutional_analysis(daily, market)

        closes = closes_of(daily)
        crossovers = ma_crossover_signals(
            sma(closes, INDICATORS["sma_fast"]), sma(closes, INDICATORS["sma_slow"])
        )
        breakout = volume_breakout(
            [b.volume for b in daily],
            INDICATORS["volume_window"],
            INDICATORS["volume_breakout_ratio"],
        )

        report = AnalysisReport(
            symbol=symbol,
            generated_at=datetime.now(),
            price=daily[-1].close if daily else None,
            bar_counts={"daily": len(daily), "weekly": len(weekly),
                        "monthly": len(monthly), "benchmark": len(market)},
            confidence=confidence,
            multi_timeframe=multi,
            confluence=confluence,
            advanced=advanced,
            institutional=institutional,
            deep_analysis=deep,
            crossovers=crossovers,
            volume_breakout=breakout,
            news=news,
        )
        logger.info(
            f"  {symbol}: basic={confidence.score} ({confidence.bias.value}) "
            f"mtf={multi.score} advanced={advanced.score}{advanced.grade} "
            f"institutional={institutional.score} {institutional.direction}"
        )
        return report


def _configure_logging():
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=LOG_LEVEL,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(LOGS_DIR / f"engine_{datetime.now().strftime('%Y%m%d')}.log"),
            logging.StreamHandler(),
        ],
    )


def main(argv: Optional[Sequence[str]] = None):
    _configure_logging()
    symbols = list(argv if argv is not None else sys.argv[1:]) or TICKERS

    try:
        analyzer = StockAnalyzer()
        display = Display()
        print_startup_banner()
        for symbol in symbols:
            report = analyzer.analyze(symbol)
            display.show_report(report)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
