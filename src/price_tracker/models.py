"""Core data models for the price tracker."""

import math
from datetime import date, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def _new_id() -> str:
    return str(uuid4())


class MatchType(str, Enum):
    """How an incoming item was resolved to a canonical item."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    CREATED = "created"


class ErrorType(str, Enum):
    """Per-line failure categories reported by batch ingestion."""

    VALIDATION = "validation"
    MATCHING = "matching"
    STORAGE = "storage"


class Vendor(BaseModel):
    """A tenant-scoped supplier."""

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    name: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)


class CanonicalItem(BaseModel):
    """Cross-vendor grouping entity for "the same product"."""

    id: str = Field(default_factory=_new_id)
    tenant_id: str
    name: str
    normalized_name: str
    category: str = "Other"
    unit: str = "each"
    description: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class VendorItem(BaseModel):
    """A vendor's view of a product."""

    tenant_id: str
    vendor_id: str
    item_number: str
    last_seen_name: str
    last_seen_unit: str | None = None
    canonical_item_id: str | None = None
    last_seen_at: datetime | None = None


class InvoiceLine(BaseModel):
    """A normalized invoice line fed to the ingestion service."""

    tenant_id: str
    vendor_id: str
    item_number: str
    name: str
    unit: str = ""
    unit_price: float
    quantity: float
    business_date: date
    category_hint: str | None = None

    @field_validator("tenant_id", "vendor_id", "item_number", "name")
    @classmethod
    def require_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("unit", mode="before")
    @classmethod
    def default_unit(cls, v: str | None) -> str:
        return (v or "").strip()

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        if not math.isfinite(v) or v <= 0:
            raise ValueError("quantity must be greater than 0")
        return v

    @field_validator("unit_price")
    @classmethod
    def validate_unit_price(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("unit price must be a finite number")
        if v < 0:
            raise ValueError("unit price must not be negative")
        return v


class DailyRollupRow(BaseModel):
    """Quantity and spend accumulated for one item on one business date."""

    business_date: date
    quantity_sum: float
    spend_sum: float

    @property
    def average_unit_price(self) -> float | None:
        """Day's quantity-weighted unit price."""
        if self.quantity_sum <= 0:
            return None
        return self.spend_sum / self.quantity_sum


class ItemStats(BaseModel):
    """The four price trackers plus 28-day accumulators for one vendor item."""

    tenant_id: str
    vendor_id: str
    item_number: str
    last_paid_price: float | None = None
    last_paid_at: date | None = None
    avg_7d_price: float | None = None
    avg_28d_price: float | None = None
    diff_vs_7d_pct: float | None = None
    diff_vs_28d_pct: float | None = None
    best_price_across_vendors: float | None = None
    best_vendor_name: str | None = None
    diff_vs_best_pct: float | None = None
    min_28d_price: float | None = None
    max_28d_price: float | None = None
    sum_28d_price: float = 0.0
    count_28d: int = 0
    updated_at: datetime | None = None


class StatsWithItem(ItemStats):
    """Stats row joined with its vendor item and vendor names."""

    item_name: str | None = None
    item_unit: str | None = None
    vendor_name: str | None = None
    canonical_item_id: str | None = None
    canonical_name: str | None = None
    last_seen_at: datetime | None = None


class MatchResult(BaseModel):
    """Outcome of resolving an incoming item to a canonical item."""

    canonical_item_id: str
    canonical_name: str
    match_type: MatchType
    confidence: float
    reason: str


class RollingStats(BaseModel):
    """Values written by a rolling-window recompute."""

    as_of: date
    avg_7d_price: float
    avg_28d_price: float
    diff_vs_7d_pct: float
    diff_vs_28d_pct: float
    min_28d_price: float | None = None
    max_28d_price: float | None = None
    data_points_7d: int = 0
    data_points_28d: int = 0


class FanOutResult(BaseModel):
    """Outcome of propagating the best cross-vendor price to linked items."""

    canonical_item_id: str
    best_price: float | None = None
    best_vendor_name: str | None = None
    updated: int = 0
    failed: int = 0
    skipped: int = 0


class LineOutcome(BaseModel):
    """Per-line ingestion result."""

    success: bool
    tenant_id: str | None = None
    vendor_id: str | None = None
    item_number: str | None = None
    business_date: date | None = None
    unit_price: float | None = None
    quantity: float | None = None
    canonical_item_id: str | None = None
    match_type: MatchType | None = None
    last_paid_updated: bool = False
    error: str | None = None
    error_type: ErrorType | None = None


class BatchResult(BaseModel):
    """Result of ingesting a batch of lines."""

    total_lines: int
    success_count: int
    error_count: int
    recomputed: bool
    results: list[LineOutcome] = Field(default_factory=list)


class PriceIntelligence(BaseModel):
    """Everything known about the price of one vendor item."""

    last_paid_price: float | None = None
    last_paid_at: date | None = None
    avg_7d_price: float | None = None
    avg_28d_price: float | None = None
    best_price_across_vendors: float | None = None
    best_vendor_name: str | None = None
    diff_vs_7d_pct: float | None = None
    diff_vs_28d_pct: float | None = None
    diff_vs_best_pct: float | None = None
    min_28d_price: float | None = None
    max_28d_price: float | None = None
    count_28d: int = 0
    item_name: str | None = None
    item_unit: str | None = None
    vendor_name: str | None = None
    canonical_item_id: str | None = None
    last_seen_at: datetime | None = None


class PriceAlert(BaseModel):
    """An item whose last paid price moved away from its rolling averages."""

    tenant_id: str
    vendor_id: str
    vendor_name: str | None = None
    item_number: str
    item_name: str | None = None
    last_paid_price: float | None = None
    last_paid_at: date | None = None
    avg_7d_price: float | None = None
    avg_28d_price: float | None = None
    diff_vs_7d_pct: float | None = None
    diff_vs_28d_pct: float | None = None
    alert_type: str
    severity: str


class PricingTrend(BaseModel):
    """Recent price position of one vendor item."""

    tenant_id: str
    vendor_id: str
    vendor_name: str | None = None
    item_number: str
    item_name: str | None = None
    canonical_name: str | None = None
    last_paid_price: float | None = None
    last_paid_at: date | None = None
    avg_7d_price: float | None = None
    avg_28d_price: float | None = None
    best_price_across_vendors: float | None = None
    best_vendor_name: str | None = None
    diff_vs_7d_pct: float | None = None
    diff_vs_28d_pct: float | None = None
    diff_vs_best_pct: float | None = None
    min_28d_price: float | None = None
    max_28d_price: float | None = None
    price_volatility_pct: float = 0.0


class CoverageStats(BaseModel):
    """How many items have each tracker populated."""

    items_with_pricing: int = 0
    items_with_7d_avg: int = 0
    items_with_28d_avg: int = 0
    items_with_cross_vendor: int = 0
    coverage_percentage: float = 0.0


class AlertCounts(BaseModel):
    """Alert totals by severity."""

    total: int = 0
    high: int = 0
    medium: int = 0


class PriceMovements(BaseModel):
    """Items grouped by the direction of their 7-day price change."""

    increases: int = 0
    decreases: int = 0
    stable: int = 0


class RecentActivity(BaseModel):
    """Items paid in the last week and their average absolute change."""

    items_updated_last_7d: int = 0
    avg_price_change_7d: float = 0.0


class IntelligenceSummary(BaseModel):
    """Tenant-level price intelligence overview."""

    tenant_id: str
    total_items: int
    coverage: CoverageStats
    alerts: AlertCounts
    price_movements: PriceMovements
    recent_activity: RecentActivity
    generated_at: datetime = Field(default_factory=datetime.now)
