"""Structured invoice intake."""

import logging
from datetime import date
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .ingestion import PriceIngestionService
from .models import LineOutcome, Vendor
from .sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class InvoiceInput(BaseModel):
    """Input model for an already-parsed invoice (e.g., from an extraction step)."""

    vendor_name: str
    invoice_date: date
    invoice_number: str | None = None
    lines: list[dict[str, Any]]

    @field_validator("vendor_name")
    @classmethod
    def validate_vendor_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Invoice must name a vendor")
        return v

    @field_validator("lines")
    @classmethod
    def validate_lines(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not v:
            raise ValueError("Invoice must have at least one line")
        return v


class InvoiceImportResult(BaseModel):
    """Outcome of importing one invoice."""

    vendor: Vendor
    invoice_number: str | None = None
    invoice_date: date
    processed_count: int
    failed_count: int
    recomputed: bool = False
    results: list[LineOutcome] = Field(default_factory=list)


class InvoiceProcessor:
    """Feeds parsed invoices into the ingestion service."""

    def __init__(
        self,
        ingestion: PriceIngestionService | None = None,
        store: SQLiteStore | None = None,
    ):
        """Initialize invoice processor.

        Args:
            ingestion: PriceIngestionService instance
            store: SQLiteStore instance, defaults to the ingestion service's
        """
        self.ingestion = ingestion or PriceIngestionService(store)
        self.store = store or self.ingestion.store

    def process_invoice(
        self,
        tenant_id: str,
        invoice_input: InvoiceInput,
        recompute: bool = True,
    ) -> InvoiceImportResult:
        """Resolve the vendor and record every line of an invoice.

        Lines without a business_date are dated with the invoice date.
        """
        vendor = self.store.find_or_create_vendor(tenant_id, invoice_input.vendor_name)

        lines = []
        for line in invoice_input.lines:
            prepared = dict(line)
            prepared["tenant_id"] = tenant_id
            prepared["vendor_id"] = vendor.id
            if not prepared.get("business_date"):
                prepared["business_date"] = invoice_input.invoice_date
            lines.append(prepared)

        batch = self.ingestion.record_batch(lines, recompute=recompute)

        logger.info(
            "Invoice imported",
            extra={
                "event": "invoice.import",
                "tenant_id": tenant_id,
                "vendor_id": vendor.id,
                "invoice_number": invoice_input.invoice_number,
                "processed": batch.success_count,
                "failed": batch.error_count,
            },
        )

        return InvoiceImportResult(
            vendor=vendor,
            invoice_number=invoice_input.invoice_number,
            invoice_date=invoice_input.invoice_date,
            processed_count=batch.success_count,
            failed_count=batch.error_count,
            recomputed=batch.recomputed,
            results=batch.results,
        )

    def process_invoice_dict(
        self,
        tenant_id: str,
        data: dict[str, Any],
        recompute: bool = True,
    ) -> InvoiceImportResult:
        """Process an invoice from a dict (e.g., parsed JSON).

        Raises:
            pydantic.ValidationError: If the invoice itself is malformed
        """
        return self.process_invoice(tenant_id, InvoiceInput(**data), recompute=recompute)
