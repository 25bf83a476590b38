"""Rolling 7/28-day price statistics computed from daily rollups."""

import logging
import sqlite3
from datetime import date, timedelta

from .daily_rollups import DailyRollupStore
from .models import DailyRollupRow, RollingStats
from .stats_accumulator import RollingStatsAccumulator

logger = logging.getLogger(__name__)

WINDOW_7D = 7
WINDOW_28D = 28


def weighted_average(rows: list[DailyRollupRow]) -> float:
    """Total spend over total quantity, 0 when there is no quantity."""
    total_quantity = sum(row.quantity_sum for row in rows)
    total_spend = sum(row.spend_sum for row in rows)
    return total_spend / total_quantity if total_quantity > 0 else 0.0


def daily_price_range(rows: list[DailyRollupRow]) -> tuple[float | None, float | None]:
    """Min and max of the per-day average unit prices, ignoring non-positive days."""
    prices = [
        row.average_unit_price
        for row in rows
        if row.average_unit_price is not None and row.average_unit_price > 0
    ]
    if not prices:
        return None, None
    return min(prices), max(prices)


def percent_diff(price: float | None, reference: float) -> float:
    """Percentage difference of price against a reference, 0 when undefined."""
    if not price or reference <= 0:
        return 0.0
    return (price - reference) / reference * 100


class PriceStatsCalculator:
    """Recomputes the rolling trackers of a vendor item."""

    def __init__(self, rollups: DailyRollupStore, accumulator: RollingStatsAccumulator):
        self.rollups = rollups
        self.accumulator = accumulator

    def recompute_rolling(
        self,
        tenant_id: str,
        vendor_id: str,
        item_number: str,
        as_of: date,
    ) -> RollingStats | None:
        """Recompute averages, diffs and the 28-day range as of a business date.

        Windows are inclusive and end at ``as_of``. If the 28-day window is
        empty, or storage fails, nothing is written except seeding a missing
        min/max. Failures are logged and never raised.

        Returns:
            The values written, or None when the fallback ran instead
        """
        key = {"tenant_id": tenant_id, "vendor_id": vendor_id, "item_number": item_number}

        try:
            rows_7d = self.rollups.get_window(
                tenant_id, vendor_id, item_number, as_of - timedelta(days=WINDOW_7D - 1), as_of
            )
            rows_28d = self.rollups.get_window(
                tenant_id, vendor_id, item_number, as_of - timedelta(days=WINDOW_28D - 1), as_of
            )

            if not rows_28d:
                logger.warning(
                    "Empty 28-day window, preserving accumulated stats",
                    extra={"event": "recompute.fallback", "reason": "empty_window", **key},
                )
                self.ensure_min_max_seeded(tenant_id, vendor_id, item_number)
                return None

            avg_7d = weighted_average(rows_7d)
            avg_28d = weighted_average(rows_28d)
            min_28d, max_28d = daily_price_range(rows_28d)

            current = self.accumulator.get(tenant_id, vendor_id, item_number)
            last_paid = current.last_paid_price if current else None

            result = RollingStats(
                as_of=as_of,
                avg_7d_price=avg_7d,
                avg_28d_price=avg_28d,
                diff_vs_7d_pct=percent_diff(last_paid, avg_7d),
                diff_vs_28d_pct=percent_diff(last_paid, avg_28d),
                min_28d_price=min_28d,
                max_28d_price=max_28d,
                data_points_7d=len(rows_7d),
                data_points_28d=len(rows_28d),
            )
            # None min/max are skipped by the accumulator.
            self.accumulator.upsert(
                tenant_id,
                vendor_id,
                item_number,
                result.model_dump(exclude={"as_of", "data_points_7d", "data_points_28d"}),
            )
            if min_28d is None:
                self.ensure_min_max_seeded(tenant_id, vendor_id, item_number)
        except sqlite3.Error:
            logger.exception(
                "Recompute failed, preserving accumulated stats",
                extra={"event": "recompute.fallback", "reason": "error", **key},
            )
            self._seed_after_error(tenant_id, vendor_id, item_number)
            return None

        logger.info(
            "Rolling averages recomputed",
            extra={
                "event": "recompute.success",
                "as_of": as_of.isoformat(),
                "avg_7d_price": result.avg_7d_price,
                "avg_28d_price": result.avg_28d_price,
                "data_points_7d": result.data_points_7d,
                "data_points_28d": result.data_points_28d,
                **key,
            },
        )
        return result

    def ensure_min_max_seeded(self, tenant_id: str, vendor_id: str, item_number: str) -> bool:
        """Seed a missing 28-day min/max from avg_28d_price or last_paid_price.

        Populated values are never touched.

        Returns:
            True if the range was seeded
        """
        stats = self.accumulator.get(tenant_id, vendor_id, item_number)
        if stats is None:
            return False
        if stats.min_28d_price is not None and stats.max_28d_price is not None:
            return False

        seed = stats.avg_28d_price or stats.last_paid_price
        if not seed or seed <= 0:
            return False

        self.accumulator.upsert(
            tenant_id,
            vendor_id,
            item_number,
            {"min_28d_price": seed, "max_28d_price": seed},
        )
        logger.info(
            "Seeded 28-day price range",
            extra={
                "event": "recompute.seed",
                "tenant_id": tenant_id,
                "vendor_id": vendor_id,
                "item_number": item_number,
                "seed_price": seed,
            },
        )
        return True

    def _seed_after_error(self, tenant_id: str, vendor_id: str, item_number: str) -> None:
        try:
            self.ensure_min_max_seeded(tenant_id, vendor_id, item_number)
        except sqlite3.Error:
            logger.exception(
                "Could not seed 28-day price range",
                extra={
                    "event": "recompute.seed_failed",
                    "tenant_id": tenant_id,
                    "vendor_id": vendor_id,
                    "item_number": item_number,
                },
            )
