"""Integration tests for complete workflows."""

import json
from datetime import date

import pytest
from typer.testing import CliRunner

from price_tracker.analytics import PriceAnalytics
from price_tracker.ingestion import PriceIngestionService
from price_tracker.invoice_processor import InvoiceProcessor
from price_tracker.main import app
from price_tracker.sqlite_store import SQLiteStore

runner = CliRunner()

TENANT = "rest-1"


@pytest.fixture
def processor(service, store):
    """Create an InvoiceProcessor over the shared ingestion service."""
    return InvoiceProcessor(service, store)


def _invoice(vendor_name, invoice_date, price, quantity):
    return {
        "vendor_name": vendor_name,
        "invoice_date": invoice_date,
        "lines": [
            {
                "item_number": f"{vendor_name[:3].upper()}-ONION",
                "name": "Yellow Onions 50lb",
                "unit": "lb",
                "unit_price": price,
                "quantity": quantity,
            }
        ],
    }


class TestInvoiceWorkflow:
    """Integration tests for invoices flowing into price intelligence."""

    def test_two_vendors_over_two_weeks(self, processor, service, accumulator):
        """Test complete pricing workflow using Python API.

        This workflow tests:
        1. Weekly invoices from one vendor build rolling averages
        2. A second vendor's cheaper line links to the same canonical item
        3. Both vendors see the best cross-vendor price
        4. Analytics read the accumulated stats
        """
        first = processor.process_invoice_dict(TENANT, _invoice("Sysco", "2026-03-02", 2.00, 10))
        processor.process_invoice_dict(TENANT, _invoice("Sysco", "2026-03-09", 2.20, 10))
        baldor = processor.process_invoice_dict(TENANT, _invoice("Baldor", "2026-03-09", 1.80, 5))

        sysco = service.get_price_intelligence(TENANT, first.vendor.id, "SYS-ONION")
        assert sysco.last_paid_price == 2.20
        assert sysco.last_paid_at == date(2026, 3, 9)
        assert sysco.avg_7d_price == pytest.approx(2.20)
        assert sysco.avg_28d_price == pytest.approx(2.10)
        assert sysco.diff_vs_28d_pct == pytest.approx(4.76, abs=0.01)
        assert sysco.min_28d_price == pytest.approx(2.00)
        assert sysco.max_28d_price == pytest.approx(2.20)
        assert sysco.best_price_across_vendors == 1.80
        assert sysco.best_vendor_name == "Baldor"
        assert sysco.diff_vs_best_pct == pytest.approx(22.22, abs=0.01)

        other = service.get_price_intelligence(TENANT, baldor.vendor.id, "BAL-ONION")
        assert other.canonical_item_id == sysco.canonical_item_id
        assert other.diff_vs_best_pct == 0.0

        summary = PriceAnalytics(accumulator).intelligence_summary(TENANT, as_of=date(2026, 3, 10))
        assert summary.total_items == 2
        assert summary.coverage.items_with_pricing == 2
        assert summary.coverage.items_with_cross_vendor == 2
        assert summary.recent_activity.items_updated_last_7d == 2

    def test_out_of_order_invoice(self, processor, service):
        """A late invoice for an older date never replaces the last paid price."""
        vendor = processor.process_invoice_dict(
            TENANT, _invoice("Sysco", "2026-03-09", 2.20, 10)
        ).vendor
        late = processor.process_invoice_dict(TENANT, _invoice("Sysco", "2026-03-02", 1.90, 10))

        assert late.results[0].last_paid_updated is False
        intel = service.get_price_intelligence(TENANT, vendor.id, "SYS-ONION")
        assert intel.last_paid_price == 2.20
        assert intel.last_paid_at == date(2026, 3, 9)
        assert intel.count_28d == 2

    def test_complete_workflow_cli(self, db_path, tmp_path, sample_invoice_json):
        """Test the same flow through the CLI."""
        config_file = tmp_path / "config.toml"
        config_file.write_text('[logging]\nlevel = "ERROR"\n')
        base = ["--json", "--db", str(db_path), "--config", str(config_file)]

        result = runner.invoke(app, [*base, "import", "--tenant", TENANT, "--data", sample_invoice_json])
        assert result.exit_code == 0
        vendor_id = json.loads(result.stdout)["data"]["invoice"]["vendor"]["id"]

        result = runner.invoke(app, [*base, "intel", TENANT, vendor_id, "C-200"])
        assert result.exit_code == 0
        intel = json.loads(result.stdout)["data"]["intelligence"]
        assert intel["last_paid_price"] == 3.25
        assert intel["best_vendor_name"] == "Sysco"

        result = runner.invoke(app, [*base, "vendors", "list", TENANT])
        assert [v["name"] for v in json.loads(result.stdout)["data"]["vendors"]] == ["Sysco"]


class TestDataPersistenceWorkflow:
    """Integration tests for data persistence."""

    def test_data_survives_restart(self, db_path, processor):
        """Stats written by one service are read back by a fresh one."""
        vendor = processor.process_invoice_dict(
            TENANT, _invoice("Sysco", "2026-03-09", 2.20, 10)
        ).vendor

        reopened = PriceIngestionService(SQLiteStore(db_path))
        intel = reopened.get_price_intelligence(TENANT, vendor.id, "SYS-ONION")

        assert intel.last_paid_price == 2.20
        assert intel.avg_28d_price == pytest.approx(2.20)
        assert intel.vendor_name == "Sysco"
