"""Tests for structured invoice intake."""

from datetime import date

import pytest
from pydantic import ValidationError

from price_tracker.invoice_processor import InvoiceInput, InvoiceProcessor
from price_tracker.models import ErrorType

TENANT = "rest-1"


@pytest.fixture
def processor(service, store):
    """Create an InvoiceProcessor over the shared ingestion service."""
    return InvoiceProcessor(service, store)


class TestInvoiceInput:
    """Tests for invoice validation."""

    def test_requires_lines(self):
        """An invoice needs at least one line."""
        with pytest.raises(ValidationError):
            InvoiceInput(vendor_name="Sysco", invoice_date="2026-03-10", lines=[])

    def test_requires_vendor_name(self):
        """A blank vendor name is rejected."""
        with pytest.raises(ValidationError):
            InvoiceInput(vendor_name=" ", invoice_date="2026-03-10", lines=[{"name": "x"}])


class TestProcessInvoice:
    """Tests for InvoiceProcessor."""

    def test_processes_all_lines(self, processor, service, store, sample_invoice_data):
        """Every line is recorded against the resolved vendor."""
        result = processor.process_invoice_dict(TENANT, sample_invoice_data)

        assert result.vendor.name == "Sysco"
        assert result.invoice_number == "INV-1001"
        assert result.processed_count == 2
        assert result.failed_count == 0
        assert result.recomputed is True

        intel = service.get_price_intelligence(TENANT, result.vendor.id, "C-200")
        assert intel.last_paid_price == 3.25
        assert intel.last_paid_at == date(2026, 3, 10)
        assert intel.vendor_name == "Sysco"

    def test_vendor_reused_across_invoices(self, processor, store, sample_invoice_data):
        """The same vendor name resolves to the same vendor."""
        first = processor.process_invoice_dict(TENANT, sample_invoice_data)
        sample_invoice_data["vendor_name"] = "SYSCO"
        second = processor.process_invoice_dict(TENANT, sample_invoice_data)

        assert second.vendor.id == first.vendor.id
        assert len(store.list_vendors(TENANT)) == 1

    def test_line_date_overrides_invoice_date(self, processor, service, sample_invoice_data):
        """Lines with their own business date keep it."""
        sample_invoice_data["lines"][0]["business_date"] = "2026-03-08"

        result = processor.process_invoice_dict(TENANT, sample_invoice_data)

        intel = service.get_price_intelligence(TENANT, result.vendor.id, "T-100")
        assert intel.last_paid_at == date(2026, 3, 8)

    def test_bad_line_reported(self, processor, sample_invoice_data):
        """Invalid lines fail individually."""
        sample_invoice_data["lines"].append(
            {"item_number": "X-1", "name": "Broken", "unit_price": 1.0, "quantity": 0}
        )

        result = processor.process_invoice_dict(TENANT, sample_invoice_data)

        assert result.processed_count == 2
        assert result.failed_count == 1
        assert result.results[2].error_type == ErrorType.VALIDATION

    def test_invalid_invoice_raises(self, processor):
        """A malformed invoice raises before anything is written."""
        with pytest.raises(ValidationError):
            processor.process_invoice_dict(TENANT, {"vendor_name": "Sysco", "lines": []})

    def test_default_ingestion(self, store, sample_invoice_data):
        """A processor built from a store wires its own ingestion service."""
        processor = InvoiceProcessor(store=store)

        result = processor.process_invoice_dict(TENANT, sample_invoice_data)

        assert result.processed_count == 2
