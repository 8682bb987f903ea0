"""
Terminal Display Module

Panels per symbol:
- Confidence summary (basic, multi-timeframe, confluence, advanced)
- Timeframe table and layer breakdown with per-component readings
- Institutional signal card with metrics and trade setup
- Deep institutional analysis (order flow, regime, liquidity, ...)
- Latest headlines
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from config import CURRENCY, TERMINAL_WIDTH
from models import Bias, ConfidenceResult, InstitutionalSignal, LayerResult, NewsItem, TradeSetup
from trade_setup import max_loss_label

logger = logging.getLogger(__name__)

_GREEN, _RED, _YELLOW, _BLUE, _GRAY, _RESET = (
    "\033[92m", "\033[91m", "\033[93m", "\033[94m", "\033[90m", "\033[0m",
)

_BIAS_COLORS = {
    Bias.BULLISH: _GREEN,
    Bias.NEUTRAL_TO_BULLISH: _BLUE,
    Bias.NEUTRAL: _YELLOW,
    Bias.NEUTRAL_TO_BEARISH: _YELLOW,
    Bias.BEARISH: _RED,
}


class Display:
    def __init__(self, width: int = TERMINAL_WIDTH, currency: str = CURRENCY):
        self.width = width
        self.currency = currency

    def _fc(self, amount: Optional[float]) -> str:
        """Format currency."""
        if amount is None:
            return "N/A"
        symbols = {"EUR": "€", "GBP": "£"}
        sym = symbols.get(self.currency, "$")
        return f"{sym}{amount:.2f}"

    # ── Report ──────────────────────────────────────────────────────────

    def show_report(self, report):
        self.show_header(report.symbol, report.price, report.generated_at)
        if not report.has_data:
            print(f"  {_RED}No price data available for {report.symbol}{_RESET}\n")
            return
        self.show_confidence_summary(report)
        self.show_timeframes(report.advanced)
        self.show_layers(report.advanced.layers)
        self.show_institutional(report.institutional)
        if report.deep_analysis is not None:
            self.show_deep_analysis(report.deep_analysis)
        self.show_news(report.news)

    def show_header(self, symbol: str, price: Optional[float], generated_at: datetime):
        w = self.width
        print("=" * w)
        title = f"SIGNAL CONFIDENCE ENGINE — {symbol}"
        print(f"{title:^{w}}")
        print("=" * w)
        print(f"  Last price: {self._fc(price)}   │   Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}")
        print("=" * w)
        print()

    def show_confidence_summary(self, report):
        w = self.width
        print(f"┌{'─' * (w - 2)}┐")
        print(f"│{'CONFIDENCE':^{w - 2}}│")
        print(f"├{'─' * (w - 2)}┤")

        rows = [
            ("Basic", report.confidence.score, report.confidence.grade, report.confidence.bias),
            ("Multi-TF", report.multi_timeframe.score, report.multi_timeframe.grade, report.multi_timeframe.bias),
            ("Confluence", report.confluence.score, report.confluence.grade, report.confluence.bias),
            ("Advanced", report.advanced.score, report.advanced.grade, report.advanced.bias),
        ]
        for name, score, grade, bias in rows:
            color = _BIAS_COLORS.get(bias, _RESET)
            print(f"│  {name:11s} {self._score_bar(score)} {score:>3d}  "
                  f"Grade {grade:3s}  {color}{bias.value:20s}{_RESET}")

        if report.advanced.confidence:
            print(f"│  Confidence: {report.advanced.confidence}")
        for reason in report.multi_timeframe.reasons:
            print(f"│   • {reason}")

        flags = []
        if report.volume_breakout:
            flags.append(f"{_GREEN}Volume breakout{_RESET}")
        if report.crossovers:
            last = report.crossovers[-1]
            flags.append(f"Last SMA 50/200 cross: {last.type} ({report.bar_counts['daily'] - 1 - last.index} bars ago)")
        if flags:
            print(f"│  {'  │  '.join(flags)}")
        print(f"└{'─' * (w - 2)}┘")
        print()

    def show_timeframes(self, result: ConfidenceResult):
        if not result.timeframes:
            return
        w = self.width
        print(f"┌{'─' * (w - 2)}┐")
        print(f"│{'TIMEFRAMES':^{w - 2}}│")
        print(f"├{'─' * (w - 2)}┤")
        print(f"│ {'Timeframe':10s} │ {'Score':>5s} │ {'Bias':20s} │ {'Trend':10s} │")
        print(f"├{'─' * (w - 2)}┤")
        for name, tf in result.timeframes.items():
            if not tf.valid:
                print(f"│ {name:10s} │ {'—':>5s} │ {_GRAY}{'insufficient data':20s}{_RESET} │ {'':10s} │")
                continue
            color = _BIAS_COLORS.get(tf.bias, _RESET)
            print(f"│ {name:10s} │ {tf.score:>5d} │ {color}{tf.bias.value:20s}{_RESET} │ {tf.trend:10s} │")

        if result.key_levels:
            res = ", ".join(self._fc(x) for x in result.key_levels.resistance) or "none"
            sup = ", ".join(self._fc(x) for x in result.key_levels.support) or "none"
            print(f"├{'─' * (w - 2)}┤")
            print(f"│  Resistance: {res}")
            print(f"│  Support:    {sup}")
        for opp in result.opportunities:
            print(f"│  {_GREEN}▲ [{opp.probability}]{_RESET} {opp.description}")
        for risk in result.risks:
            print(f"│  {_RED}▼ [{risk.level}]{_RESET} {risk.description}")
        print(f"└{'─' * (w - 2)}┘")
        print()

    def show_layers(self, layers: Dict[str, LayerResult]):
        if not layers:
            return
        w = self.width
        print(f"┌{'─' * (w - 2)}┐")
        print(f"│{'LAYER BREAKDOWN (daily)':^{w - 2}}│")
        print(f"├{'─' * (w - 2)}┤")
        for name, layer in layers.items():
            print(f"│  {name.upper():11s} {self._score_bar(layer.score)} {layer.score:>5.1f}")
            for comp in layer.components:
                print(f"│     {comp.name:16s} {comp.signal.value:10s} {comp.description}")
        print(f"└{'─' * (w - 2)}┘")
        print()

    def show_institutional(self, signal: InstitutionalSignal):
        w = self.width
        color = {"BULLISH": _GREEN, "BEARISH": _RED}.get(signal.direction, _YELLOW)
        print(f"┌{'─' * (w - 2)}┐")
        print(
            f"│ {color}{signal.direction:8s}{_RESET} │ Score: {signal.score:>3d} ({signal.grade}) │ "
            f"Confidence: {signal.confidence} │ Strength: {signal.strength} │ "
            f"Horizon: {signal.time_horizon or '—'}"
        )
        print(f"├{'─' * (w - 2)}┤")
        print(f"│  Price: {self._fc(signal.price):>10s}  ({self._format_change(signal.change_percent)})")

        m = signal.metrics
        print(
            f"│  Sharpe: {self._num(m.sharpe_ratio, '.2f')}  │  Alpha: {self._num(m.alpha, '+.1f', '%')}  │  "
            f"Beta: {self._num(m.beta, '.2f')}  │  Volatility: {self._num(m.volatility, '.1f', '%')}"
        )
        print(f"├{'─' * (w - 2)}┤")
        self._print_wrapped(f"│  {signal.summary}", w)
        for reason in signal.reasons:
            print(f"│   • {reason}")

        if signal.trade is not None:
            print(f"├{'─' * (w - 2)}┤")
            self._show_trade(signal.trade)
        print(f"└{'─' * (w - 2)}┘")
        print()

    def _show_trade(self, trade: TradeSetup):
        print(
            f"│  Entry: {self._fc(trade.entry_optimal)}  "
            f"(aggressive {self._fc(trade.entry_aggressive)}, conservative {self._fc(trade.entry_conservative)})"
        )
        print(f"│  Stop:  {self._fc(trade.stop_loss)}  ({trade.stop_percent:+.2f}%)  {_GRAY}{trade.stop_reasoning}{_RESET}")
        for i, target in enumerate(trade.targets, 1):
            print(
                f"│  T{i}:    {self._fc(target.price)}  ({target.percent:+.1f}%)  "
                f"p={target.probability}%  {_GRAY}{target.reasoning}{_RESET}"
            )
        print(
            f"│  R:R = 1:{trade.risk_reward:.1f}  │  Position: {trade.position_size}  │  "
            f"Max loss: {max_loss_label(trade)}"
        )
        if 0 < trade.risk_reward < 1.8:
            print(f"│  ⚠ LOW R:R ({trade.risk_reward:.1f}) — risk management suboptimal")

    def show_deep_analysis(self, analysis):
        w = self.width
        print(f"┌{'─' * (w - 2)}┐")
        print(f"│{'INSTITUTIONAL ANALYSIS':^{w - 2}}│")
        print(f"├{'─' * (w - 2)}┤")

        flow = analysis.order_flow
        print(f"│  Order flow      {self._score_bar(flow.score)} {flow.score:>3d}  {flow.signal:8s} {flow.summary}")
        for comp in flow.components:
            print(f"│     {comp.name:24s} {comp.value:>5}  {comp.description}")

        micro = analysis.microstructure
        print(f"│  Microstructure  {self._score_bar(micro.score)} {micro.score:>3d}  {micro.description}")

        regime = analysis.regime
        print(f"│  Regime          {regime.current_regime:15s} vol {regime.volatility_regime:6s} {regime.description}")
        for rec in regime.recommendations:
            print(f"│     → {rec}")

        vol = analysis.volatility_surface
        print(
            f"│  Volatility      realized {vol.realized_vol:.2f}%  implied~ {vol.implied_vol:.2f}%  "
            f"vol-of-vol {vol.vol_of_vol:.2f}  skew {vol.skew:+.3f}"
        )

        liq = analysis.liquidity
        print(
            f"│  Liquidity       {self._score_bar(liq.score)} {liq.score:>3d}  risk {liq.liquidity_risk:6s} "
            f"POC {self._fc(liq.volume_profile.poc)}  {liq.description}"
        )

        smart = analysis.smart_money
        print(
            f"│  Smart money     {self._score_bar(smart.score)} {smart.score:>3d}  {smart.signal:12s} "
            f"{smart.wyckoff_phase} phase, MFI {smart.composite_index}"
        )

        corr = analysis.correlation
        print(
            f"│  Correlation     market {corr.market_correlation:+.3f}  beta stability {corr.beta_stability:.3f}  "
            f"{corr.description}"
        )

        season = analysis.seasonality
        days = "  ".join(f"{d[:3]} {v:+.3f}%" for d, v in season.day_of_week.items())
        print(f"│  Seasonality     {season.description}  │  {season.quarterly_pattern}")
        if days:
            print(f"│     {days}")

        for warning in analysis.warnings:
            print(f"│  {_YELLOW}⚠ {warning}{_RESET}")
        print(f"└{'─' * (w - 2)}┘")
        print()

    def show_news(self, news: List[NewsItem]):
        if not news:
            return
        w = self.width
        print(f"┌{'─' * (w - 2)}┐")
        print(f"│{'NEWS':^{w - 2}}│")
        print(f"├{'─' * (w - 2)}┤")
        for item in news:
            print(f"│  {item.title[:w - 30]}  {_GRAY}({item.publisher}){_RESET}")
            if item.link:
                print(f"│     {_GRAY}{item.link[:w - 8]}{_RESET}")
        print(f"└{'─' * (w - 2)}┘")
        print()

    # ── Helpers ─────────────────────────────────────────────────────────

    def _print_wrapped(self, text: str, width: int):
        words = text.split()
        line = ""
        for word in words:
            if len(line) + len(word) + 1 > width - 3:
                print(f"{line:<{width - 1}}│")
                line = "│  " + word + " "
            else:
                line += word + " " if line else "│  " + word + " "
        if line:
            print(f"{line:<{width - 1}}│")

    @staticmethod
    def _score_bar(score: float) -> str:
        filled = max(0, min(10, int(score / 10)))
        return f"[{'█' * filled}{'░' * (10 - filled)}]"

    @staticmethod
    def _num(value: Optional[float], fmt: str, suffix: str = "") -> str:
        return "N/A" if value is None else f"{value:{fmt}}{suffix}"

    def _format_change(self, change: float) -> str:
        if change > 0:
            return f"{_GREEN}+{change:>5.1f}%{_RESET}"
        elif change < 0:
            return f"{_RED}{change:>6.1f}%{_RESET}"
        return f"{change:>6.1f}%"


def print_startup_banner():
    banner = """
╔═══════════════════════════════════════════════════════════════════════════════╗
║                                                                               ║
║                        SIGNAL CONFIDENCE ENGINE                               ║
║                                                                               ║
║            Multi-Layer · Multi-Timeframe · Institutional Analytics            ║
║                                                                               ║
║    • Ichimoku, EMA ribbon, ADX, RSI, MACD, ATR, OBV, Fibonacci pivots         ║
║    • Daily / weekly / monthly confluence scoring with letter grades           ║
║    • Sharpe, alpha, beta and ATR-based trade setups                           ║
║    • Order flow, regime, liquidity and smart-money analysis                   ║
║                                                                               ║
╚═══════════════════════════════════════════════════════════════════════════════╝
    """
    print(banner)
