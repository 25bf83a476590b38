"""Shared test fixtures for the Vendor Price Tracker."""

import json
from datetime import date

import pytest

from price_tracker.config import MatchingConfig
from price_tracker.cross_vendor import CrossVendorComparator
from price_tracker.daily_rollups import DailyRollupStore
from price_tracker.ingestion import PriceIngestionService
from price_tracker.item_matcher import ItemMatcher
from price_tracker.price_stats import PriceStatsCalculator
from price_tracker.sqlite_store import SQLiteStore
from price_tracker.stats_accumulator import RollingStatsAccumulator

TENANT = "rest-1"


@pytest.fixture
def temp_data_dir(tmp_path):
    """Create a temporary data directory."""
    data_dir = tmp_path / "test_data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def db_path(temp_data_dir):
    """Path of a fresh SQLite database."""
    return temp_data_dir / "prices.db"


@pytest.fixture
def store(db_path):
    """Create a SQLiteStore with temporary storage."""
    return SQLiteStore(db_path=db_path, busy_timeout=10.0)


@pytest.fixture
def rollups(store):
    """Create a DailyRollupStore."""
    return DailyRollupStore(store)


@pytest.fixture
def accumulator(store):
    """Create a RollingStatsAccumulator."""
    return RollingStatsAccumulator(store)


@pytest.fixture
def calculator(rollups, accumulator):
    """Create a PriceStatsCalculator."""
    return PriceStatsCalculator(rollups, accumulator)


@pytest.fixture
def matcher(store):
    """Create an ItemMatcher with default tables."""
    return ItemMatcher(store, MatchingConfig())


@pytest.fixture
def comparator(store, accumulator):
    """Create a CrossVendorComparator."""
    return CrossVendorComparator(store, accumulator)


@pytest.fixture
def service(store, matcher, rollups, accumulator, calculator, comparator):
    """Create a PriceIngestionService wired to the shared components."""
    return PriceIngestionService(
        store,
        matcher=matcher,
        rollups=rollups,
        accumulator=accumulator,
        calculator=calculator,
        comparator=comparator,
    )


@pytest.fixture
def make_line():
    """Factory for invoice line dicts with sensible defaults."""

    def _make(**overrides):
        line = {
            "tenant_id": TENANT,
            "vendor_id": "sysco",
            "item_number": "1001",
            "name": "Roma Tomatoes 25lb",
            "unit": "case",
            "unit_price": 20.0,
            "quantity": 1.0,
            "business_date": date(2026, 3, 10),
        }
        line.update(overrides)
        return line

    return _make


@pytest.fixture
def sample_invoice_data():
    """Sample parsed invoice dictionary for testing."""
    return {
        "vendor_name": "Sysco",
        "invoice_date": "2026-03-10",
        "invoice_number": "INV-1001",
        "lines": [
            {
                "item_number": "T-100",
                "name": "Roma Tomatoes 25lb",
                "unit": "case",
                "unit_price": 24.50,
                "quantity": 2,
            },
            {
                "item_number": "C-200",
                "name": "Chicken Breast Boneless",
                "unit": "lb",
                "unit_price": 3.25,
                "quantity": 40,
            },
        ],
    }


@pytest.fixture
def sample_invoice_json(sample_invoice_data):
    """Sample invoice data as JSON string."""
    return json.dumps(sample_invoice_data)
