"""Per-day quantity and spend accumulators, the ground truth for rolling windows."""

import logging
from datetime import date

from .models import DailyRollupRow
from .sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class DailyRollupStore:
    """Additive (tenant, vendor, item, business date) rollups."""

    def __init__(self, store: SQLiteStore):
        self.store = store

    def add_rollup(
        self,
        tenant_id: str,
        vendor_id: str,
        item_number: str,
        business_date: date,
        quantity: float,
        spend: float,
    ) -> None:
        """Add a line's quantity and spend to its day.

        Creates the day's row on first use, otherwise increments both sums in
        the same statement.

        Raises:
            ValueError: If quantity is not positive
        """
        if quantity <= 0:
            raise ValueError("Rollup quantity must be greater than 0")

        with self.store.connection() as conn:
            conn.execute(
                """
                INSERT INTO vendor_item_daily
                (tenant_id, vendor_id, item_number, business_date, quantity_sum, spend_sum)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(tenant_id, vendor_id, item_number, business_date) DO UPDATE SET
                    quantity_sum = quantity_sum + excluded.quantity_sum,
                    spend_sum = spend_sum + excluded.spend_sum
                """,
                (
                    tenant_id,
                    vendor_id,
                    item_number,
                    business_date.isoformat(),
                    quantity,
                    spend,
                ),
            )

        logger.debug(
            "Daily rollup updated",
            extra={
                "event": "rollup.add",
                "tenant_id": tenant_id,
                "vendor_id": vendor_id,
                "item_number": item_number,
                "business_date": business_date.isoformat(),
            },
        )

    def get_window(
        self,
        tenant_id: str,
        vendor_id: str,
        item_number: str,
        start_date: date,
        end_date: date,
    ) -> list[DailyRollupRow]:
        """Daily rows with start_date <= business_date <= end_date, oldest first."""
        with self.store.connection() as conn:
            rows = conn.execute(
                """
                SELECT business_date, quantity_sum, spend_sum
                FROM vendor_item_daily
                WHERE tenant_id = ? AND vendor_id = ? AND item_number = ?
                    AND business_date >= ? AND business_date <= ?
                ORDER BY business_date
                """,
                (
                    tenant_id,
                    vendor_id,
                    item_number,
                    start_date.isoformat(),
                    end_date.isoformat(),
                ),
            ).fetchall()

            return [self._row_from_db(row) for row in rows]

    def get_day(
        self,
        tenant_id: str,
        vendor_id: str,
        item_number: str,
        business_date: date,
    ) -> DailyRollupRow | None:
        """A single day's row, if any line was recorded that day."""
        rows = self.get_window(tenant_id, vendor_id, item_number, business_date, business_date)
        return rows[0] if rows else None

    @staticmethod
    def _row_from_db(row) -> DailyRollupRow:
        return DailyRollupRow(
            business_date=date.fromisoformat(row["business_date"]),
            quantity_sum=row["quantity_sum"],
            spend_sum=row["spend_sum"],
        )
