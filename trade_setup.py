"""
Trade-Setup Generator — ATR-based entry, stop and targets.

Simple public API: build_trade_setup(price, atr, conservative_entry)
Hides: the 2×ATR stop, the 1.5 / 3 / 4.5 ATR target ladder, the 2% risk
rule on a fixed reference account, and the zero-ATR guard.
"""

import logging
from typing import Optional

import pandas as pd

from config import TRADE_SETUP
from models import TargetLevel, TradeSetup

logger = logging.getLogger(__name__)

_TARGET_REASONS = (
    "First resistance, take 30%",
    "Major resistance, take 50%",
    "Extended target, let 20% run",
)


def build_trade_setup(price: float, atr: float,
                      conservative_entry: Optional[float] = None) -> TradeSetup:
    """Entry zones, stop and three targets for a long setup at `price`."""
    if atr is None or pd.isna(atr) or atr < 0:
        atr = 0.0
    if conservative_entry is None or pd.isna(conservative_entry):
        conservative_entry = price

    stop_distance = atr * TRADE_SETUP["stop_atr_multiple"]
    stop_price = price - stop_distance
    stop_percent = -stop_distance / price * 100 if price else 0.0

    targets = [
        _target(price, price + atr * multiple, probability, reason)
        for multiple, probability, reason in zip(
            TRADE_SETUP["target_atr_multiples"],
            TRADE_SETUP["target_probabilities"],
            _TARGET_REASONS,
        )
    ]

    account = TRADE_SETUP["account_size"]
    max_loss = account * TRADE_SETUP["risk_pct_per_trade"]
    if stop_distance > 0:
        # second target defines the reward side of R:R
        risk_reward = (price + atr * TRADE_SETUP["target_atr_multiples"][1] - price) / stop_distance
        position_value = max_loss / stop_distance * price
        position_pct = position_value / account * 100
    else:
        logger.info(f"Zero ATR at {price:.2f}, trade setup has no position size")
        risk_reward = 0.0
        position_pct = 0.0

    return TradeSetup(
        entry_optimal=round(price, 2),
        entry_aggressive=round(price * (1 + TRADE_SETUP["aggressive_entry_premium"]), 2),
        entry_conservative=round(conservative_entry, 2),
        entry_reasoning="Optimal entry at current levels. Conservative waits for EMA21 pullback.",
        stop_loss=round(stop_price, 2),
        stop_percent=round(stop_percent, 2),
        stop_reasoning="2x ATR below entry - invalidates bullish structure",
        targets=targets,
        risk_reward=round(risk_reward, 1),
        position_size_pct=round(position_pct, 1),
        max_loss=round(max_loss, 2),
    )


def max_loss_label(setup: TradeSetup) -> str:
    account = TRADE_SETUP["account_size"]
    return f"${setup.max_loss:.0f} per ${account / 1000:.0f}k account"


def _target(price: float, level: float, probability: int, reason: str) -> TargetLevel:
    pct = (level - price) / price * 100 if price else 0.0
    return TargetLevel(price=round(level, 2), percent=round(pct, 1),
                       probability=probability, reasoning=reason)
