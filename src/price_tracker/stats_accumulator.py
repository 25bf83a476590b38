"""Persisted per-item price trackers with storage-level atomic updates.

Every mutation here is a single SQL statement, so concurrent ingestion of the
same key never loses an update and no application-side locking is needed.
"""

from datetime import date, datetime

from .models import ItemStats, StatsWithItem
from .sqlite_store import STATS_COLUMNS, SQLiteStore, parse_date, parse_datetime

# Accumulators that must stay populated once set.
MONOTONIC_COLUMNS = frozenset({"min_28d_price", "max_28d_price", "sum_28d_price", "count_28d"})


class RollingStatsAccumulator:
    """Owns the one-row-per-(tenant, vendor, item) stats table."""

    def __init__(self, store: SQLiteStore):
        self.store = store

    def increment_28d(
        self,
        tenant_id: str,
        vendor_id: str,
        item_number: str,
        unit_price: float,
    ) -> None:
        """Fold one observed unit price into the 28-day accumulators.

        Creates the stats row when missing. Sum, count, min and max all
        change in one conditional upsert.

        Raises:
            ValueError: If unit_price is not positive
        """
        if unit_price <= 0:
            raise ValueError("Unit price must be greater than 0")

        with self.store.connection() as conn:
            conn.execute(
                """
                INSERT INTO vendor_item_stats
                (tenant_id, vendor_id, item_number, sum_28d_price, count_28d,
                 min_28d_price, max_28d_price, updated_at)
                VALUES (?, ?, ?, ?, 1, ?, ?, ?)
                ON CONFLICT(tenant_id, vendor_id, item_number) DO UPDATE SET
                    sum_28d_price = sum_28d_price + excluded.sum_28d_price,
                    count_28d = count_28d + 1,
                    min_28d_price = MIN(
                        COALESCE(min_28d_price, excluded.min_28d_price),
                        excluded.min_28d_price
                    ),
                    max_28d_price = MAX(
                        COALESCE(max_28d_price, excluded.max_28d_price),
                        excluded.max_28d_price
                    ),
                    updated_at = excluded.updated_at
                """,
                (
                    tenant_id,
                    vendor_id,
                    item_number,
                    unit_price,
                    unit_price,
                    unit_price,
                    datetime.now().isoformat(),
                ),
            )

    def upsert(
        self,
        tenant_id: str,
        vendor_id: str,
        item_number: str,
        fields: dict,
    ) -> ItemStats | None:
        """Merge a subset of tracker fields into the row, creating it if needed.

        ``None`` is ignored for min/max/sum/count so a caller can never blank
        an accumulator that is already populated.

        Raises:
            ValueError: If a field name is not a stats column
        """
        unknown = set(fields) - set(STATS_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown stats fields: {', '.join(sorted(unknown))}")

        values = {
            column: value.isoformat() if isinstance(value, date) else value
            for column, value in fields.items()
            if not (column in MONOTONIC_COLUMNS and value is None)
        }
        columns = list(values)
        insert_columns = ["tenant_id", "vendor_id", "item_number", *columns, "updated_at"]
        assignments = [f"{column} = excluded.{column}" for column in [*columns, "updated_at"]]

        with self.store.connection() as conn:
            conn.execute(
                f"""
                INSERT INTO vendor_item_stats ({", ".join(insert_columns)})
                VALUES ({", ".join("?" * len(insert_columns))})
                ON CONFLICT(tenant_id, vendor_id, item_number) DO UPDATE SET
                    {", ".join(assignments)}
                """,
                (
                    tenant_id,
                    vendor_id,
                    item_number,
                    *values.values(),
                    datetime.now().isoformat(),
                ),
            )

        return self.get(tenant_id, vendor_id, item_number)

    def update_last_paid(
        self,
        tenant_id: str,
        vendor_id: str,
        item_number: str,
        unit_price: float,
        business_date: date,
    ) -> bool:
        """Record the last paid price if business_date is newer than the stored one.

        Older or same-day replays leave the row untouched, so "last paid"
        follows business chronology rather than arrival order.

        Returns:
            True if the row was written
        """
        with self.store.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO vendor_item_stats
                (tenant_id, vendor_id, item_number, last_paid_price, last_paid_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(tenant_id, vendor_id, item_number) DO UPDATE SET
                    last_paid_price = excluded.last_paid_price,
                    last_paid_at = excluded.last_paid_at,
                    updated_at = excluded.updated_at
                WHERE vendor_item_stats.last_paid_at IS NULL
                    OR excluded.last_paid_at > vendor_item_stats.last_paid_at
                """,
                (
                    tenant_id,
                    vendor_id,
                    item_number,
                    unit_price,
                    business_date.isoformat(),
                    datetime.now().isoformat(),
                ),
            )
            return cursor.rowcount > 0

    def get(self, tenant_id: str, vendor_id: str, item_number: str) -> ItemStats | None:
        """Get the stats row for a key, or None if it was never written."""
        with self.store.connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM vendor_item_stats
                WHERE tenant_id = ? AND vendor_id = ? AND item_number = ?
                """,
                (tenant_id, vendor_id, item_number),
            ).fetchone()

            if not row:
                return None

            values = {column: row[column] for column in STATS_COLUMNS}
            values["last_paid_at"] = parse_date(row["last_paid_at"])
            return ItemStats(
                tenant_id=row["tenant_id"],
                vendor_id=row["vendor_id"],
                item_number=row["item_number"],
                updated_at=parse_datetime(row["updated_at"]),
                **values,
            )

    def list_for_tenant(self, tenant_id: str) -> list[StatsWithItem]:
        """Every vendor item of a tenant joined with its stats and names."""
        return self.store.list_stats_with_items(tenant_id)
