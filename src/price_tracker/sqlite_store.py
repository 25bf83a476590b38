"""SQLite-based persistence for the price tracker.

This module owns the connection lifecycle and schema, plus the vendor and
item catalog tables. The daily rollup and stats tables are written by
``daily_rollups`` and ``stats_accumulator`` through :meth:`SQLiteStore.connection`.
"""

import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

from .models import CanonicalItem, StatsWithItem, Vendor, VendorItem

STATS_COLUMNS = (
    "last_paid_price",
    "last_paid_at",
    "avg_7d_price",
    "avg_28d_price",
    "diff_vs_7d_pct",
    "diff_vs_28d_pct",
    "best_price_across_vendors",
    "best_vendor_name",
    "diff_vs_best_pct",
    "min_28d_price",
    "max_28d_price",
    "sum_28d_price",
    "count_28d",
)


def parse_date(value: str | None) -> date | None:
    """Convert a stored ISO date back to a date."""
    return date.fromisoformat(value) if value else None


def parse_datetime(value: str | None) -> datetime | None:
    """Convert a stored ISO timestamp back to a datetime."""
    return datetime.fromisoformat(value) if value else None


class SQLiteStore:
    """Manages SQLite database persistence for price intelligence data."""

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | None = None, busy_timeout: float = 30.0):
        """Initialize SQLite store.

        Args:
            db_path: Path to the SQLite database file. Defaults to ./data/prices.db
            busy_timeout: Seconds a writer waits for the database lock
        """
        if db_path is None:
            db_path = Path.cwd() / "data" / "prices.db"
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._ensure_directories()
        self._init_database()

    def _ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connection(self, immediate: bool = False):
        """Get a database connection with proper cleanup.

        Args:
            immediate: Take the write lock up front. Use for blocks that read
                and then write, so concurrent writers queue instead of failing
                to upgrade their lock.
        """
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_database(self) -> None:
        """Initialize database schema if not exists."""
        with self.connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript("""
                -- Schema version tracking
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                );

                -- Tenant-scoped suppliers
                CREATE TABLE IF NOT EXISTS vendors (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    name TEXT NOT NULL COLLATE NOCASE,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    UNIQUE(tenant_id, name)
                );

                -- Cross-vendor grouping entities
                CREATE TABLE IF NOT EXISTS canonical_items (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    normalized_name TEXT NOT NULL,
                    category TEXT NOT NULL DEFAULT 'Other',
                    unit TEXT NOT NULL DEFAULT 'each',
                    description TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE(tenant_id, normalized_name)
                );

                -- A vendor's view of a product
                CREATE TABLE IF NOT EXISTS vendor_items (
                    tenant_id TEXT NOT NULL,
                    vendor_id TEXT NOT NULL,
                    item_number TEXT NOT NULL,
                    last_seen_name TEXT NOT NULL,
                    last_seen_unit TEXT,
                    canonical_item_id TEXT REFERENCES canonical_items(id),
                    last_seen_at TEXT NOT NULL,
                    PRIMARY KEY (tenant_id, vendor_id, item_number)
                );

                CREATE INDEX IF NOT EXISTS idx_vendor_items_canonical
                    ON vendor_items(tenant_id, canonical_item_id);

                -- Daily quantity/spend accumulators
                CREATE TABLE IF NOT EXISTS vendor_item_daily (
                    tenant_id TEXT NOT NULL,
                    vendor_id TEXT NOT NULL,
                    item_number TEXT NOT NULL,
                    business_date TEXT NOT NULL,
                    quantity_sum REAL NOT NULL DEFAULT 0.0,
                    spend_sum REAL NOT NULL DEFAULT 0.0,
                    PRIMARY KEY (tenant_id, vendor_id, item_number, business_date)
                );

                -- The four price trackers
                CREATE TABLE IF NOT EXISTS vendor_item_stats (
                    tenant_id TEXT NOT NULL,
                    vendor_id TEXT NOT NULL,
                    item_number TEXT NOT NULL,
                    last_paid_price REAL,
                    last_paid_at TEXT,
                    avg_7d_price REAL,
                    avg_28d_price REAL,
                    diff_vs_7d_pct REAL,
                    diff_vs_28d_pct REAL,
                    best_price_across_vendors REAL,
                    best_vendor_name TEXT,
                    diff_vs_best_pct REAL,
                    min_28d_price REAL,
                    max_28d_price REAL,
                    sum_28d_price REAL NOT NULL DEFAULT 0.0,
                    count_28d INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT,
                    PRIMARY KEY (tenant_id, vendor_id, item_number)
                );

                -- Record schema version
                INSERT OR IGNORE INTO schema_version (version) VALUES (1);
            """)

    # --- Vendor Operations ---

    def find_or_create_vendor(self, tenant_id: str, name: str) -> Vendor:
        """Find a vendor by name (case-insensitive) or create it.

        Args:
            tenant_id: Owning tenant
            name: Vendor display name

        Returns:
            Existing or newly created Vendor
        """
        name = name.strip()
        if not name:
            raise ValueError("Vendor name must not be blank")

        with self.connection(immediate=True) as conn:
            row = conn.execute(
                "SELECT * FROM vendors WHERE tenant_id = ? AND name = ?",
                (tenant_id, name),
            ).fetchone()
            if row:
                return self._vendor_from_row(row)

            vendor = Vendor(tenant_id=tenant_id, name=name)
            conn.execute(
                """
                INSERT INTO vendors (id, tenant_id, name, is_active, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    vendor.id,
                    vendor.tenant_id,
                    vendor.name,
                    1,
                    vendor.created_at.isoformat(),
                ),
            )
            return vendor

    def get_vendor(self, vendor_id: str) -> Vendor | None:
        """Get a vendor by ID."""
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM vendors WHERE id = ?", (vendor_id,)).fetchone()
            return self._vendor_from_row(row) if row else None

    def list_vendors(self, tenant_id: str, active_only: bool = False) -> list[Vendor]:
        """List a tenant's vendors sorted by name."""
        query = "SELECT * FROM vendors WHERE tenant_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY name"
        with self.connection() as conn:
            rows = conn.execute(query, (tenant_id,)).fetchall()
            return [self._vendor_from_row(row) for row in rows]

    def set_vendor_active(self, vendor_id: str, is_active: bool) -> Vendor | None:
        """Change a vendor's activity status, the only mutable vendor field."""
        with self.connection() as conn:
            conn.execute(
                "UPDATE vendors SET is_active = ? WHERE id = ?",
                (1 if is_active else 0, vendor_id),
            )
        return self.get_vendor(vendor_id)

    def _vendor_from_row(self, row: sqlite3.Row) -> Vendor:
        return Vendor(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            is_active=bool(row["is_active"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # --- Canonical Item Operations ---

    def find_canonical_by_normalized_name(
        self, tenant_id: str, normalized_name: str
    ) -> CanonicalItem | None:
        """Exact lookup of a canonical item inside one tenant."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM canonical_items WHERE tenant_id = ? AND normalized_name = ?",
                (tenant_id, normalized_name),
            ).fetchone()
            return self._canonical_from_row(row) if row else None

    def list_canonical_items(self, tenant_id: str) -> list[CanonicalItem]:
        """All canonical items of a tenant, oldest first."""
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM canonical_items WHERE tenant_id = ? ORDER BY created_at, id",
                (tenant_id,),
            ).fetchall()
            return [self._canonical_from_row(row) for row in rows]

    def get_canonical_item(self, canonical_item_id: str) -> CanonicalItem | None:
        """Get a canonical item by ID."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM canonical_items WHERE id = ?", (canonical_item_id,)
            ).fetchone()
            return self._canonical_from_row(row) if row else None

    def create_canonical_item(self, item: CanonicalItem) -> CanonicalItem:
        """Insert a canonical item, or return the one that already owns its name.

        Concurrent creators of the same normalized name all get the same row.
        """
        with self.connection(immediate=True) as conn:
            conn.execute(
                """
                INSERT INTO canonical_items
                (id, tenant_id, name, normalized_name, category, unit, description, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tenant_id, normalized_name) DO NOTHING
                """,
                (
                    item.id,
                    item.tenant_id,
                    item.name,
                    item.normalized_name,
                    item.category,
                    item.unit,
                    item.description,
                    item.created_at.isoformat(),
                ),
            )
            row = conn.execute(
                "SELECT * FROM canonical_items WHERE tenant_id = ? AND normalized_name = ?",
                (item.tenant_id, item.normalized_name),
            ).fetchone()
            return self._canonical_from_row(row)

    def _canonical_from_row(self, row: sqlite3.Row) -> CanonicalItem:
        return CanonicalItem(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            normalized_name=row["normalized_name"],
            category=row["category"],
            unit=row["unit"],
            description=row["description"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # --- Vendor Item Operations ---

    def upsert_vendor_item(
        self,
        tenant_id: str,
        vendor_id: str,
        item_number: str,
        name: str,
        unit: str | None,
        canonical_item_id: str | None,
    ) -> VendorItem:
        """Create or refresh a vendor item.

        The last-seen name and unit always refresh. The canonical link is only
        set while it is still empty; an established link is never replaced.

        Returns:
            The stored VendorItem, carrying its effective canonical link
        """
        now = datetime.now()
        with self.connection(immediate=True) as conn:
            conn.execute(
                """
                INSERT INTO vendor_items
                (tenant_id, vendor_id, item_number, last_seen_name, last_seen_unit,
                 canonical_item_id, last_seen_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tenant_id, vendor_id, item_number) DO UPDATE SET
                    last_seen_name = excluded.last_seen_name,
                    last_seen_unit = excluded.last_seen_unit,
                    canonical_item_id = COALESCE(canonical_item_id, excluded.canonical_item_id),
                    last_seen_at = excluded.last_seen_at
                """,
                (
                    tenant_id,
                    vendor_id,
                    item_number,
                    name,
                    unit,
                    canonical_item_id,
                    now.isoformat(),
                ),
            )
            row = conn.execute(
                """
                SELECT * FROM vendor_items
                WHERE tenant_id = ? AND vendor_id = ? AND item_number = ?
                """,
                (tenant_id, vendor_id, item_number),
            ).fetchone()
            return self._vendor_item_from_row(row)

    def get_vendor_item(
        self, tenant_id: str, vendor_id: str, item_number: str
    ) -> VendorItem | None:
        """Get a vendor item by its natural key."""
        with self.connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM vendor_items
                WHERE tenant_id = ? AND vendor_id = ? AND item_number = ?
                """,
                (tenant_id, vendor_id, item_number),
            ).fetchone()
            return self._vendor_item_from_row(row) if row else None

    def _vendor_item_from_row(self, row: sqlite3.Row) -> VendorItem:
        return VendorItem(
            tenant_id=row["tenant_id"],
            vendor_id=row["vendor_id"],
            item_number=row["item_number"],
            last_seen_name=row["last_seen_name"],
            last_seen_unit=row["last_seen_unit"],
            canonical_item_id=row["canonical_item_id"],
            last_seen_at=parse_datetime(row["last_seen_at"]),
        )

    # --- Joined Stats Queries ---

    _JOINED_STATS_SELECT = """
        SELECT
            vi.tenant_id, vi.vendor_id, vi.item_number,
            vi.last_seen_name AS item_name,
            vi.last_seen_unit AS item_unit,
            vi.last_seen_at,
            vi.canonical_item_id,
            ci.name AS canonical_name,
            COALESCE(v.name, vi.vendor_id) AS vendor_name,
            s.last_paid_price, s.last_paid_at, s.avg_7d_price, s.avg_28d_price,
            s.diff_vs_7d_pct, s.diff_vs_28d_pct, s.best_price_across_vendors,
            s.best_vendor_name, s.diff_vs_best_pct, s.min_28d_price, s.max_28d_price,
            COALESCE(s.sum_28d_price, 0.0) AS sum_28d_price,
            COALESCE(s.count_28d, 0) AS count_28d,
            s.updated_at,
            s.item_number IS NOT NULL AS has_stats
        FROM vendor_items vi
        LEFT JOIN vendor_item_stats s
            ON s.tenant_id = vi.tenant_id
            AND s.vendor_id = vi.vendor_id
            AND s.item_number = vi.item_number
        LEFT JOIN vendors v
            ON v.id = vi.vendor_id AND v.tenant_id = vi.tenant_id
        LEFT JOIN canonical_items ci
            ON ci.id = vi.canonical_item_id
    """

    def get_stats_with_item(
        self, tenant_id: str, vendor_id: str, item_number: str
    ) -> StatsWithItem | None:
        """Stats for one vendor item joined with names; None if never ingested."""
        with self.connection() as conn:
            row = conn.execute(
                self._JOINED_STATS_SELECT
                + " WHERE vi.tenant_id = ? AND vi.vendor_id = ? AND vi.item_number = ?",
                (tenant_id, vendor_id, item_number),
            ).fetchone()
            if not row or not row["has_stats"]:
                return None
            return self._joined_from_row(row)

    def list_stats_with_items(
        self,
        tenant_id: str,
        canonical_item_id: str | None = None,
    ) -> list[StatsWithItem]:
        """Joined stats rows for a tenant, optionally limited to one canonical item.

        Vendor items without a stats row are included with empty trackers.
        """
        query = self._JOINED_STATS_SELECT + " WHERE vi.tenant_id = ?"
        params: list[str] = [tenant_id]
        if canonical_item_id is not None:
            query += " AND vi.canonical_item_id = ?"
            params.append(canonical_item_id)
        query += " ORDER BY vendor_name, vi.last_seen_name, vi.item_number"

        with self.connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._joined_from_row(row) for row in rows]

    def _joined_from_row(self, row: sqlite3.Row) -> StatsWithItem:
        values = {column: row[column] for column in STATS_COLUMNS}
        values["last_paid_at"] = parse_date(row["last_paid_at"])
        return StatsWithItem(
            tenant_id=row["tenant_id"],
            vendor_id=row["vendor_id"],
            item_number=row["item_number"],
            updated_at=parse_datetime(row["updated_at"]),
            item_name=row["item_name"],
            item_unit=row["item_unit"],
            vendor_name=row["vendor_name"],
            canonical_item_id=row["canonical_item_id"],
            canonical_name=row["canonical_name"],
            last_seen_at=parse_datetime(row["last_seen_at"]),
            **values,
        )
