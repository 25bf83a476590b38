"""Best-price comparison across every vendor item sharing a canonical item."""

import logging
import sqlite3

from .models import FanOutResult, StatsWithItem
from .sqlite_store import SQLiteStore
from .stats_accumulator import RollingStatsAccumulator

logger = logging.getLogger(__name__)


def find_best_price(rows: list[StatsWithItem]) -> StatsWithItem | None:
    """Row with the lowest positive last paid price; ties keep the earlier row."""
    best: StatsWithItem | None = None
    for row in rows:
        price = row.last_paid_price
        if price is None or price <= 0:
            continue
        if best is None or price < best.last_paid_price:
            best = row
    return best


class CrossVendorComparator:
    """Propagates the best cross-vendor price to linked vendor items."""

    def __init__(self, store: SQLiteStore, accumulator: RollingStatsAccumulator):
        self.store = store
        self.accumulator = accumulator

    def refresh(self, tenant_id: str, canonical_item_id: str) -> FanOutResult:
        """Recompute best price and per-item diff for a canonical item.

        All linked rows are loaded in one query. Each priced row is then
        written on its own, so one failing row never undoes its siblings.
        Rows without a positive last paid price are skipped.
        """
        rows = self.store.list_stats_with_items(tenant_id, canonical_item_id)
        result = FanOutResult(canonical_item_id=canonical_item_id)

        best = find_best_price(rows)
        if best is None:
            result.skipped = len(rows)
            return result

        result.best_price = best.last_paid_price
        result.best_vendor_name = best.vendor_name

        for row in rows:
            if row.last_paid_price is None or row.last_paid_price <= 0:
                result.skipped += 1
                continue

            fields = {
                "best_price_across_vendors": result.best_price,
                "best_vendor_name": result.best_vendor_name,
                "diff_vs_best_pct": (row.last_paid_price - result.best_price)
                / result.best_price
                * 100,
            }
            try:
                self.accumulator.upsert(row.tenant_id, row.vendor_id, row.item_number, fields)
                result.updated += 1
            except sqlite3.Error:
                result.failed += 1
                logger.exception(
                    "Cross-vendor update failed for linked item",
                    extra={
                        "event": "fanout.row_failed",
                        "tenant_id": row.tenant_id,
                        "vendor_id": row.vendor_id,
                        "item_number": row.item_number,
                        "canonical_item_id": canonical_item_id,
                    },
                )

        logger.info(
            "Cross-vendor comparison refreshed",
            extra={
                "event": "fanout.complete",
                "tenant_id": tenant_id,
                "canonical_item_id": canonical_item_id,
                "best_price": result.best_price,
                "best_vendor_name": result.best_vendor_name,
                "updated": result.updated,
                "failed": result.failed,
            },
        )
        return result
