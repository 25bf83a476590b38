"""Tests for rolling price statistics and the fallback protocol."""

import sqlite3
from datetime import date, timedelta

import pytest

from price_tracker.models import DailyRollupRow
from price_tracker.price_stats import daily_price_range, percent_diff, weighted_average

TENANT = "rest-1"
KEY = (TENANT, "sysco", "1001")
AS_OF = date(2026, 3, 28)


def _row(day: int, quantity: float, spend: float) -> DailyRollupRow:
    return DailyRollupRow(business_date=date(2026, 3, day), quantity_sum=quantity, spend_sum=spend)


class TestHelpers:
    """Tests for the pure window helpers."""

    def test_weighted_average_uses_quantity(self):
        """Spend over quantity, not a mean of prices."""
        rows = [_row(1, 10.0, 20.0), _row(2, 1.0, 5.0)]

        assert weighted_average(rows) == pytest.approx(25.0 / 11.0)

    def test_weighted_average_empty(self):
        """No quantity means an average of 0."""
        assert weighted_average([]) == 0.0

    def test_daily_range_ignores_free_days(self):
        """Days averaging 0 are left out of min/max."""
        rows = [_row(1, 2.0, 4.0), _row(2, 1.0, 0.0), _row(3, 1.0, 3.0)]

        assert daily_price_range(rows) == (2.0, 3.0)

    def test_daily_range_all_free(self):
        """Only free days gives no range."""
        assert daily_price_range([_row(1, 1.0, 0.0)]) == (None, None)

    def test_percent_diff(self):
        """Diff is relative to the reference price."""
        assert percent_diff(2.2, 2.0) == pytest.approx(10.0)
        assert percent_diff(2.2, 0.0) == 0.0
        assert percent_diff(None, 2.0) == 0.0


class TestRecomputeRolling:
    """Tests for PriceStatsCalculator.recompute_rolling."""

    def test_weighted_windows(self, calculator, rollups, accumulator):
        """7- and 28-day averages weight each day by quantity."""
        # Inside both windows
        rollups.add_rollup(*KEY, AS_OF, 10.0, 20.0)
        rollups.add_rollup(*KEY, AS_OF - timedelta(days=6), 1.0, 5.0)
        # Inside the 28-day window only
        rollups.add_rollup(*KEY, AS_OF - timedelta(days=7), 4.0, 16.0)
        rollups.add_rollup(*KEY, AS_OF - timedelta(days=27), 5.0, 15.0)
        # Outside both windows
        rollups.add_rollup(*KEY, AS_OF - timedelta(days=28), 100.0, 10000.0)
        accumulator.update_last_paid(*KEY, 2.5, AS_OF)

        result = calculator.recompute_rolling(*KEY, AS_OF)

        assert result.avg_7d_price == pytest.approx(25.0 / 11.0)
        assert result.avg_28d_price == pytest.approx(56.0 / 20.0)
        assert result.min_28d_price == pytest.approx(2.0)
        assert result.max_28d_price == pytest.approx(5.0)
        assert result.data_points_7d == 2
        assert result.data_points_28d == 4
        assert result.diff_vs_7d_pct == pytest.approx((2.5 - 25.0 / 11.0) / (25.0 / 11.0) * 100)
        assert result.diff_vs_28d_pct == pytest.approx((2.5 - 2.8) / 2.8 * 100)

        stats = accumulator.get(*KEY)
        assert stats.avg_7d_price == pytest.approx(result.avg_7d_price)
        assert stats.avg_28d_price == pytest.approx(result.avg_28d_price)
        assert stats.min_28d_price == pytest.approx(2.0)
        assert stats.max_28d_price == pytest.approx(5.0)

    def test_without_last_paid_diffs_are_zero(self, calculator, rollups):
        """Diffs are 0 until a last paid price exists."""
        rollups.add_rollup(*KEY, AS_OF, 1.0, 3.0)

        result = calculator.recompute_rolling(*KEY, AS_OF)

        assert result.diff_vs_7d_pct == 0.0
        assert result.diff_vs_28d_pct == 0.0

    def test_empty_window_keeps_accumulated_values(self, calculator, accumulator):
        """An empty window writes nothing over accumulated stats."""
        accumulator.increment_28d(*KEY, 4.0)
        accumulator.increment_28d(*KEY, 6.0)
        accumulator.upsert(*KEY, {"avg_7d_price": 5.0, "avg_28d_price": 5.0})

        assert calculator.recompute_rolling(*KEY, AS_OF) is None

        stats = accumulator.get(*KEY)
        assert stats.min_28d_price == 4.0
        assert stats.max_28d_price == 6.0
        assert stats.count_28d == 2
        assert stats.avg_7d_price == 5.0

    def test_empty_window_seeds_missing_range_from_avg(self, calculator, accumulator):
        """A missing range is seeded from the 28-day average first."""
        accumulator.upsert(*KEY, {"avg_28d_price": 3.5, "last_paid_price": 4.0})

        calculator.recompute_rolling(*KEY, AS_OF)

        stats = accumulator.get(*KEY)
        assert stats.min_28d_price == 3.5
        assert stats.max_28d_price == 3.5

    def test_empty_window_seeds_from_last_paid(self, calculator, accumulator):
        """Without an average the last paid price seeds the range."""
        accumulator.update_last_paid(*KEY, 4.0, AS_OF)

        calculator.recompute_rolling(*KEY, AS_OF)

        stats = accumulator.get(*KEY)
        assert stats.min_28d_price == 4.0
        assert stats.max_28d_price == 4.0

    def test_empty_window_without_stats_is_noop(self, calculator, accumulator):
        """Nothing is created for a key that was never ingested."""
        assert calculator.recompute_rolling(*KEY, AS_OF) is None
        assert accumulator.get(*KEY) is None

    def test_storage_error_falls_back(self, calculator, accumulator, monkeypatch):
        """A failing window query is logged and never raised."""
        accumulator.update_last_paid(*KEY, 4.0, AS_OF)

        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(calculator.rollups, "get_window", broken)

        assert calculator.recompute_rolling(*KEY, AS_OF) is None
        assert accumulator.get(*KEY).min_28d_price == 4.0

    def test_only_free_days_keep_range(self, calculator, rollups, accumulator):
        """Rows with only zero prices never blank min/max."""
        accumulator.increment_28d(*KEY, 4.0)
        rollups.add_rollup(*KEY, AS_OF, 2.0, 0.0)

        result = calculator.recompute_rolling(*KEY, AS_OF)

        assert result.min_28d_price is None
        stats = accumulator.get(*KEY)
        assert stats.min_28d_price == 4.0
        assert stats.max_28d_price == 4.0
        assert stats.avg_28d_price == 0.0

    def test_range_never_null_across_sequence(self, calculator, rollups, accumulator):
        """Min/max stay populated through any mix of recomputes."""
        rollups.add_rollup(*KEY, AS_OF, 1.0, 3.0)
        accumulator.increment_28d(*KEY, 3.0)
        accumulator.update_last_paid(*KEY, 3.0, AS_OF)

        for as_of in (AS_OF, AS_OF + timedelta(days=60), AS_OF - timedelta(days=60), AS_OF):
            calculator.recompute_rolling(*KEY, as_of)
            stats = accumulator.get(*KEY)
            assert stats.min_28d_price is not None
            assert stats.max_28d_price is not None
