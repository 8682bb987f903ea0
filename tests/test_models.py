"""Bar validation and result model tests."""

from datetime import date, datetime

import pytest


class TestBarFromMapping:

    def _row(self, **overrides):
        row = {"date": "2024-01-02", "open": 10.0, "high": 11.0, "low": 9.0, "close": 10.5, "volume": 100}
        row.update(overrides)
        return row

    def test_valid_row(self):
        from models import Bar
        bar = Bar.from_mapping(self._row())
        assert bar.date == date(2024, 1, 2)
        assert (bar.open, bar.high, bar.low, bar.close, bar.volume) == (10.0, 11.0, 9.0, 10.5, 100.0)

    @pytest.mark.parametrize("overrides", [
        {"high": 10.2},                 # close above high
        {"low": 10.2},                  # open below low
        {"close": 0},
        {"volume": -5},
        {"open": float("nan")},
        {"close": None},
        {"date": "not a date"},
        {"date": None},
    ])
    def test_malformed_rows_rejected(self, overrides):
        from models import Bar
        assert Bar.from_mapping(self._row(**overrides)) is None

    def test_missing_volume_defaults_to_zero(self):
        from models import Bar
        row = self._row()
        del row["volume"]
        assert Bar.from_mapping(row).volume == 0.0

    @pytest.mark.parametrize("raw", [
        date(2024, 1, 2), datetime(2024, 1, 2, 15, 30), 1704189600, "2024-01-02T09:30:00",
    ])
    def test_date_formats(self, raw):
        from models import Bar
        assert Bar.from_mapping(self._row(date=raw)).date == date(2024, 1, 2)


class TestSanitizeBars:

    def test_sorts_and_drops(self):
        from models import sanitize_bars
        rows = [
            {"date": "2024-01-03", "open": 2, "high": 3, "low": 1, "close": 2, "volume": 1},
            {"date": "2024-01-01", "open": 2, "high": 3, "low": 1, "close": 2, "volume": 1},
            {"date": "2024-01-02", "open": 2, "high": 1, "low": 1, "close": 2, "volume": 1},
        ]
        bars = sanitize_bars(rows)
        assert [b.date.day for b in bars] == [1, 3]

    def test_empty(self):
        from models import sanitize_bars
        assert sanitize_bars(None) == []
        assert sanitize_bars([]) == []

    def test_invalid_bar_instances_dropped(self):
        from models import Bar, sanitize_bars
        nan = float("nan")
        good = Bar(date(2024, 1, 1), 2, 3, 1, 2, 10)
        rows = [
            good,
            Bar(date(2024, 1, 2), nan, nan, nan, nan, 10),
            Bar(date(2024, 1, 3), 2, 1.5, 1, 2, 10),       # high below open
            Bar(date(2024, 1, 4), 2, 3, 1, 2, -1),
            Bar("2024-01-05", 2, 3, 1, 2, 10),
        ]
        assert sanitize_bars(rows) == [good]

    @pytest.mark.parametrize("row", [None, ("2024-01-02", 10, 11, 9, 10.5, 100), "2024-01-02", 42])
    def test_non_mapping_rows_dropped(self, row):
        from models import Bar, sanitize_bars
        good = {"date": "2024-01-01", "open": 2, "high": 3, "low": 1, "close": 2, "volume": 1}
        assert Bar.from_mapping(row) is None
        assert len(sanitize_bars([good, row])) == 1

    def test_is_valid(self):
        from models import Bar
        assert Bar(date(2024, 1, 1), 2, 3, 1, 2, 0).is_valid()
        assert not Bar(date(2024, 1, 1), 2, 3, 1, float("inf"), 0).is_valid()
        assert not Bar(date(2024, 1, 1), 0, 3, 0, 2, 0).is_valid()


class TestResultModels:

    def test_signal_direction(self):
        from models import Bias, InstitutionalSignal
        signal = InstitutionalSignal(
            symbol="X", price=1.0, change=0.0, change_percent=0.0, score=70, grade="B",
            bias=Bias.BULLISH, confidence="HIGH", strength="MODERATE", time_horizon="2-4 weeks",
        )
        assert signal.direction == "BULLISH"
        assert signal.metrics.beta is None

