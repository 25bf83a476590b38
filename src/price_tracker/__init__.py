"""Vendor Price Tracker - Real-time price intelligence from invoice lines."""

from .analytics import PriceAnalytics
from .config import ConfigManager, MatchingConfig
from .cross_vendor import CrossVendorComparator
from .daily_rollups import DailyRollupStore
from .errors import IngestionError, ItemMatchingError, LineValidationError, PriceTrackerError
from .ingestion import PriceIngestionService
from .invoice_processor import InvoiceImportResult, InvoiceInput, InvoiceProcessor
from .item_matcher import ItemMatcher
from .models import (
    BatchResult,
    CanonicalItem,
    DailyRollupRow,
    ErrorType,
    FanOutResult,
    IntelligenceSummary,
    InvoiceLine,
    ItemStats,
    LineOutcome,
    MatchResult,
    MatchType,
    PriceAlert,
    PriceIntelligence,
    PricingTrend,
    RollingStats,
    Vendor,
    VendorItem,
)
from .output_formatter import OutputFormatter
from .price_stats import PriceStatsCalculator
from .sqlite_store import SQLiteStore
from .stats_accumulator import RollingStatsAccumulator

__version__ = "0.1.0"

__all__ = [
    "BatchResult",
    "CanonicalItem",
    "ConfigManager",
    "CrossVendorComparator",
    "DailyRollupRow",
    "DailyRollupStore",
    "ErrorType",
    "FanOutResult",
    "IngestionError",
    "IntelligenceSummary",
    "InvoiceImportResult",
    "InvoiceInput",
    "InvoiceLine",
    "InvoiceProcessor",
    "ItemMatcher",
    "ItemMatchingError",
    "ItemStats",
    "LineOutcome",
    "LineValidationError",
    "MatchResult",
    "MatchType",
    "MatchingConfig",
    "OutputFormatter",
    "PriceAlert",
    "PriceAnalytics",
    "PriceIngestionService",
    "PriceIntelligence",
    "PriceStatsCalculator",
    "PriceTrackerError",
    "PricingTrend",
    "RollingStats",
    "RollingStatsAccumulator",
    "SQLiteStore",
    "Vendor",
    "VendorItem",
]
