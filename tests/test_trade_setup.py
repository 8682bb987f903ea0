"""Trade-setup generator tests."""

import math

import pytest


class TestTradeSetup:

    def test_reference_levels(self):
        from trade_setup import build_trade_setup
        setup = build_trade_setup(100.0, 2.0)
        assert setup.stop_loss == 96.0
        assert setup.stop_percent == -4.0
        assert (setup.target1, setup.target2, setup.target3) == (103.0, 106.0, 109.0)
        assert [t.probability for t in setup.targets] == [78, 61, 42]
        assert [t.percent for t in setup.targets] == [3.0, 6.0, 9.0]
        assert setup.risk_reward == 1.5
        assert setup.entry_optimal == 100.0
        assert setup.entry_aggressive == 100.2
        # no EMA21 given: conservative entry falls back to price
        assert setup.entry_conservative == 100.0

    def test_two_percent_risk_rule(self):
        from trade_setup import build_trade_setup, max_loss_label
        setup = build_trade_setup(100.0, 2.0)
        # $200 risk / $4 stop distance = 50 shares = $5,000 of a $10k account
        assert setup.max_loss == 200.0
        assert setup.position_size_pct == 50.0
        assert setup.position_size == "50.0% of portfolio"
        assert max_loss_label(setup) == "$200 per $10k account"

    def test_conservative_entry_rounded(self):
        from trade_setup import build_trade_setup
        setup = build_trade_setup(100.0, 2.0, 97.456)
        assert setup.entry_conservative == 97.46

    def test_zero_atr(self):
        from trade_setup import build_trade_setup
        setup = build_trade_setup(50.0, 0.0)
        assert setup.stop_loss == 50.0
        assert setup.risk_reward == 0.0
        assert setup.position_size_pct == 0.0
        assert all(t.price == 50.0 for t in setup.targets)

    @pytest.mark.parametrize("atr", [float("nan"), None, -1.0])
    def test_unusable_atr_treated_as_zero(self, atr):
        from trade_setup import build_trade_setup
        setup = build_trade_setup(80.0, atr)
        assert setup.stop_loss == 80.0
        assert not math.isnan(setup.risk_reward)
        assert setup.risk_reward == 0.0

    def test_stop_below_targets(self):
        from trade_setup import build_trade_setup
        setup = build_trade_setup(37.25, 0.83)
        assert setup.stop_loss < setup.entry_optimal < setup.target1 < setup.target2 < setup.target3
