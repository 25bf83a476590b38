"""Tests for the rolling stats accumulator."""

from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

TENANT = "rest-1"
KEY = (TENANT, "sysco", "1001")


class TestIncrement28d:
    """Tests for the atomic 28-day increment."""

    def test_first_increment_creates_row(self, accumulator):
        """The first price seeds every accumulator."""
        accumulator.increment_28d(*KEY, 20.0)

        stats = accumulator.get(*KEY)
        assert stats.sum_28d_price == 20.0
        assert stats.count_28d == 1
        assert stats.min_28d_price == 20.0
        assert stats.max_28d_price == 20.0

    def test_increments_accumulate(self, accumulator):
        """Sum and count grow while min/max track extremes."""
        for price in (20.0, 18.5, 23.0):
            accumulator.increment_28d(*KEY, price)

        stats = accumulator.get(*KEY)
        assert stats.sum_28d_price == pytest.approx(61.5)
        assert stats.count_28d == 3
        assert stats.min_28d_price == 18.5
        assert stats.max_28d_price == 23.0

    @pytest.mark.parametrize("price", [0.0, -1.0])
    def test_non_positive_price_rejected(self, accumulator, price):
        """Only positive prices are accumulated."""
        with pytest.raises(ValueError):
            accumulator.increment_28d(*KEY, price)

        assert accumulator.get(*KEY) is None

    def test_concurrent_increments_lose_nothing(self, accumulator):
        """Parallel increments of one key all land."""
        n = 50
        with ThreadPoolExecutor(max_workers=10) as pool:
            list(pool.map(lambda i: accumulator.increment_28d(*KEY, 10.0 + i), range(n)))

        stats = accumulator.get(*KEY)
        assert stats.count_28d == n
        assert stats.sum_28d_price == pytest.approx(sum(10.0 + i for i in range(n)))
        assert stats.min_28d_price == 10.0
        assert stats.max_28d_price == 10.0 + n - 1


class TestUpsert:
    """Tests for partial stats merges."""

    def test_merges_subset(self, accumulator):
        """Only the given fields change."""
        accumulator.increment_28d(*KEY, 20.0)
        stats = accumulator.upsert(*KEY, {"avg_7d_price": 19.0, "diff_vs_7d_pct": 5.26})

        assert stats.avg_7d_price == 19.0
        assert stats.diff_vs_7d_pct == 5.26
        assert stats.count_28d == 1
        assert stats.min_28d_price == 20.0

    def test_none_never_blanks_monotonic_fields(self, accumulator):
        """None for min/max/sum/count is ignored."""
        accumulator.increment_28d(*KEY, 20.0)
        stats = accumulator.upsert(
            *KEY,
            {
                "min_28d_price": None,
                "max_28d_price": None,
                "sum_28d_price": None,
                "count_28d": None,
                "avg_28d_price": 20.0,
            },
        )

        assert stats.min_28d_price == 20.0
        assert stats.max_28d_price == 20.0
        assert stats.sum_28d_price == 20.0
        assert stats.count_28d == 1
        assert stats.avg_28d_price == 20.0

    def test_creates_missing_row(self, accumulator):
        """Upserting an unknown key creates it with default accumulators."""
        stats = accumulator.upsert(*KEY, {"best_price_across_vendors": 1.8})

        assert stats.best_price_across_vendors == 1.8
        assert stats.count_28d == 0
        assert stats.sum_28d_price == 0.0

    def test_dates_are_stored(self, accumulator):
        """Date values round-trip through the upsert."""
        stats = accumulator.upsert(*KEY, {"last_paid_at": date(2026, 3, 10)})

        assert stats.last_paid_at == date(2026, 3, 10)

    def test_unknown_field_rejected(self, accumulator):
        """Field names outside the stats columns are refused."""
        with pytest.raises(ValueError, match="Unknown stats fields"):
            accumulator.upsert(*KEY, {"tenant_id": "other"})


class TestUpdateLastPaid:
    """Tests for the chronological last paid update."""

    def test_first_price_is_written(self, accumulator):
        """A key without last paid always takes the price."""
        assert accumulator.update_last_paid(*KEY, 20.0, date(2026, 3, 10)) is True

        stats = accumulator.get(*KEY)
        assert stats.last_paid_price == 20.0
        assert stats.last_paid_at == date(2026, 3, 10)

    def test_newer_date_replaces(self, accumulator):
        """A later business date wins."""
        accumulator.update_last_paid(*KEY, 20.0, date(2026, 3, 10))

        assert accumulator.update_last_paid(*KEY, 22.0, date(2026, 3, 11)) is True
        assert accumulator.get(*KEY).last_paid_price == 22.0

    def test_older_or_same_date_ignored(self, accumulator):
        """Replays of older or same-day invoices do not regress last paid."""
        accumulator.update_last_paid(*KEY, 22.0, date(2026, 3, 11))

        assert accumulator.update_last_paid(*KEY, 20.0, date(2026, 3, 10)) is False
        assert accumulator.update_last_paid(*KEY, 25.0, date(2026, 3, 11)) is False

        stats = accumulator.get(*KEY)
        assert stats.last_paid_price == 22.0
        assert stats.last_paid_at == date(2026, 3, 11)

    def test_keeps_accumulators(self, accumulator):
        """Updating last paid leaves 28-day accumulators alone."""
        accumulator.increment_28d(*KEY, 20.0)
        accumulator.update_last_paid(*KEY, 20.0, date(2026, 3, 10))

        assert accumulator.get(*KEY).count_28d == 1


class TestConcurrentIngestion:
    """Concurrency through the full ingestion path."""

    def test_parallel_record_line_counts_every_line(self, service, make_line):
        """N concurrent lines for one key leave count_28d == N."""
        n = 10

        def record(i):
            return service.record_line(**make_line(unit_price=20.0 + i))

        with ThreadPoolExecutor(max_workers=n) as pool:
            outcomes = list(pool.map(record, range(n)))

        assert all(o.success for o in outcomes)
        assert len({o.canonical_item_id for o in outcomes}) == 1

        stats = service.accumulator.get(TENANT, "sysco", "1001")
        assert stats.count_28d == n
        assert stats.sum_28d_price == pytest.approx(sum(20.0 + i for i in range(n)))
        assert stats.min_28d_price is not None
        assert stats.max_28d_price is not None

        day = service.rollups.get_day(TENANT, "sysco", "1001", date(2026, 3, 10))
        assert day.quantity_sum == n
