"""Invoice line ingestion: the orchestrator behind the price trackers.

For each line, in order:
  1. Resolve the canonical item
  2. Upsert the vendor item and add the line to its daily rollup
  3. Fold a positive price into the 28-day accumulators
  4. Update "last paid" when the business date is newer
  5. Recompute rolling averages (optional)
  6. Fan out the best price across vendors

Only validation, matching and vendor-item/rollup storage failures fail a
line. Steps 3 to 6 are best effort: they log and carry on, and the next
line for the same item brings them up to date.
"""

import logging
import sqlite3
from datetime import date
from typing import Any

from pydantic import ValidationError

from .config import MatchingConfig
from .cross_vendor import CrossVendorComparator
from .daily_rollups import DailyRollupStore
from .errors import IngestionError, ItemMatchingError, LineValidationError
from .item_matcher import ItemMatcher
from .models import (
    BatchResult,
    ErrorType,
    InvoiceLine,
    LineOutcome,
    PriceIntelligence,
)
from .price_stats import PriceStatsCalculator
from .sqlite_store import SQLiteStore
from .stats_accumulator import RollingStatsAccumulator

logger = logging.getLogger(__name__)


def validate_line(raw: dict[str, Any]) -> InvoiceLine:
    """Build an InvoiceLine, turning pydantic errors into LineValidationError."""
    try:
        return InvoiceLine.model_validate(raw)
    except ValidationError as e:
        messages = []
        for error in e.errors():
            field_name = ".".join(str(part) for part in error["loc"]) or "line"
            messages.append(f"{field_name}: {error['msg']}")
        raise LineValidationError(messages, raw if isinstance(raw, dict) else None) from e


class PriceIngestionService:
    """Records invoice lines and answers price intelligence queries."""

    def __init__(
        self,
        store: SQLiteStore | None = None,
        matching_config: MatchingConfig | None = None,
        matcher: ItemMatcher | None = None,
        rollups: DailyRollupStore | None = None,
        accumulator: RollingStatsAccumulator | None = None,
        calculator: PriceStatsCalculator | None = None,
        comparator: CrossVendorComparator | None = None,
    ):
        """Initialize the ingestion service.

        Args:
            store: SQLiteStore instance shared by every component
            matching_config: Matcher tuning, used when no matcher is given
            matcher: ItemMatcher instance
            rollups: DailyRollupStore instance
            accumulator: RollingStatsAccumulator instance
            calculator: PriceStatsCalculator instance
            comparator: CrossVendorComparator instance
        """
        self.store = store or SQLiteStore()
        self.matcher = matcher or ItemMatcher(self.store, matching_config)
        self.rollups = rollups or DailyRollupStore(self.store)
        self.accumulator = accumulator or RollingStatsAccumulator(self.store)
        self.calculator = calculator or PriceStatsCalculator(self.rollups, self.accumulator)
        self.comparator = comparator or CrossVendorComparator(self.store, self.accumulator)

    def record_line(
        self,
        tenant_id: str,
        vendor_id: str,
        item_number: str,
        name: str,
        unit: str | None,
        unit_price: float,
        quantity: float,
        business_date: date | str,
        recompute: bool = True,
        category_hint: str | None = None,
    ) -> LineOutcome:
        """Record one invoice line and refresh the item's price intelligence.

        Raises:
            LineValidationError: If the line is invalid; nothing is written
            ItemMatchingError: If the canonical item cannot be resolved
            IngestionError: If the vendor item or daily rollup cannot be written
        """
        line = validate_line(
            {
                "tenant_id": tenant_id,
                "vendor_id": vendor_id,
                "item_number": item_number,
                "name": name,
                "unit": unit,
                "unit_price": unit_price,
                "quantity": quantity,
                "business_date": business_date,
                "category_hint": category_hint,
            }
        )
        return self._ingest(line, recompute=recompute)

    def record_batch(
        self,
        lines: list[dict[str, Any] | InvoiceLine],
        recompute: bool = True,
    ) -> BatchResult:
        """Record lines one by one, reporting each line's outcome.

        A failing line never stops the batch. With ``recompute`` set, rolling
        averages are recomputed once per distinct (tenant, vendor, item,
        business date) after every line is written, oldest date first.
        """
        results: list[LineOutcome] = []
        pending: dict[tuple[str, str, str, date], None] = {}

        for raw in lines:
            try:
                line = raw if isinstance(raw, InvoiceLine) else validate_line(raw)
                outcome = self._ingest(line, recompute=False)
            except LineValidationError as e:
                outcome = self._failed_outcome(raw, str(e), ErrorType.VALIDATION)
            except ItemMatchingError as e:
                outcome = self._failed_outcome(raw, str(e), ErrorType.MATCHING)
            except IngestionError as e:
                outcome = self._failed_outcome(raw, str(e), ErrorType.STORAGE)
            else:
                pending[(line.tenant_id, line.vendor_id, line.item_number, line.business_date)] = (
                    None
                )
            results.append(outcome)

        if recompute:
            done: set[tuple[str, str, str, date]] = set()
            for tenant_id, vendor_id, item_number, business_date in sorted(
                pending, key=lambda key: key[3]
            ):
                as_of = self._recompute_as_of(tenant_id, vendor_id, item_number, business_date)
                if (tenant_id, vendor_id, item_number, as_of) in done:
                    continue
                done.add((tenant_id, vendor_id, item_number, as_of))
                self.calculator.recompute_rolling(tenant_id, vendor_id, item_number, as_of)

        success_count = sum(1 for outcome in results if outcome.success)
        batch = BatchResult(
            total_lines=len(results),
            success_count=success_count,
            error_count=len(results) - success_count,
            recomputed=recompute and bool(pending),
            results=results,
        )
        logger.info(
            "Batch ingested",
            extra={
                "event": "ingest.batch",
                "total_lines": batch.total_lines,
                "success_count": batch.success_count,
                "error_count": batch.error_count,
                "recompute_keys": len(pending) if recompute else 0,
            },
        )
        return batch

    def get_price_intelligence(
        self, tenant_id: str, vendor_id: str, item_number: str
    ) -> PriceIntelligence | None:
        """All four trackers for a vendor item, or None if it was never ingested."""
        row = self.store.get_stats_with_item(tenant_id, vendor_id, item_number)
        if row is None:
            return None
        return PriceIntelligence(
            **row.model_dump(include=set(PriceIntelligence.model_fields))
        )

    def _recompute(
        self, tenant_id: str, vendor_id: str, item_number: str, business_date: date
    ) -> None:
        as_of = self._recompute_as_of(tenant_id, vendor_id, item_number, business_date)
        self.calculator.recompute_rolling(tenant_id, vendor_id, item_number, as_of)

    def _recompute_as_of(
        self, tenant_id: str, vendor_id: str, item_number: str, business_date: date
    ) -> date:
        """Window end for a recompute: the line's date or the stored last paid date.

        A late line for an older date must not pull the averages back to its
        window while "last paid" stays on the newer date.
        """
        try:
            stats = self.accumulator.get(tenant_id, vendor_id, item_number)
        except sqlite3.Error:
            logger.exception(
                "Could not read last paid date before recompute",
                extra={
                    "event": "recompute.as_of_failed",
                    "tenant_id": tenant_id,
                    "vendor_id": vendor_id,
                    "item_number": item_number,
                },
            )
            return business_date
        if stats and stats.last_paid_at and stats.last_paid_at > business_date:
            return stats.last_paid_at
        return business_date

    def _ingest(self, line: InvoiceLine, recompute: bool) -> LineOutcome:
        key = {
            "tenant_id": line.tenant_id,
            "vendor_id": line.vendor_id,
            "item_number": line.item_number,
        }

        match = self.matcher.resolve(
            line.tenant_id,
            line.vendor_id,
            line.item_number,
            line.name,
            line.unit,
            line.category_hint,
        )

        try:
            vendor_item = self.store.upsert_vendor_item(
                line.tenant_id,
                line.vendor_id,
                line.item_number,
                line.name,
                line.unit or None,
                match.canonical_item_id,
            )
            self.rollups.add_rollup(
                line.tenant_id,
                line.vendor_id,
                line.item_number,
                line.business_date,
                line.quantity,
                line.unit_price * line.quantity,
            )
        except sqlite3.Error as e:
            logger.error(
                "Line could not be stored",
                extra={"event": "ingest.storage_error", **key},
            )
            raise IngestionError(
                f"Could not store invoice line: {e}",
                line.tenant_id,
                line.vendor_id,
                line.item_number,
            ) from e

        if line.unit_price > 0:
            try:
                self.accumulator.increment_28d(
                    line.tenant_id, line.vendor_id, line.item_number, line.unit_price
                )
            except sqlite3.Error:
                logger.exception(
                    "28-day accumulator increment failed",
                    extra={"event": "ingest.increment_failed", **key},
                )

        last_paid_updated = False
        try:
            last_paid_updated = self.accumulator.update_last_paid(
                line.tenant_id,
                line.vendor_id,
                line.item_number,
                line.unit_price,
                line.business_date,
            )
        except sqlite3.Error:
            logger.exception(
                "Last paid update failed",
                extra={"event": "ingest.last_paid_failed", **key},
            )
        else:
            logger.info(
                "Last paid price updated" if last_paid_updated else "Last paid price kept",
                extra={
                    "event": "ingest.last_paid",
                    "updated": last_paid_updated,
                    "business_date": line.business_date.isoformat(),
                    **key,
                },
            )

        if recompute:
            self._recompute(line.tenant_id, line.vendor_id, line.item_number, line.business_date)

        # The stored link wins over this line's match once it is set.
        canonical_item_id = vendor_item.canonical_item_id or match.canonical_item_id
        try:
            self.comparator.refresh(line.tenant_id, canonical_item_id)
        except sqlite3.Error:
            logger.exception(
                "Cross-vendor fan-out failed",
                extra={"event": "ingest.fanout_failed", "canonical_item_id": canonical_item_id, **key},
            )

        logger.info(
            "Invoice line ingested",
            extra={
                "event": "ingest.line",
                "canonical_item_id": canonical_item_id,
                "match_type": match.match_type.value,
                "unit_price": line.unit_price,
                "quantity": line.quantity,
                "business_date": line.business_date.isoformat(),
                **key,
            },
        )

        return LineOutcome(
            success=True,
            tenant_id=line.tenant_id,
            vendor_id=line.vendor_id,
            item_number=line.item_number,
            business_date=line.business_date,
            unit_price=line.unit_price,
            quantity=line.quantity,
            canonical_item_id=canonical_item_id,
            match_type=match.match_type,
            last_paid_updated=last_paid_updated,
        )

    @staticmethod
    def _failed_outcome(
        raw: dict[str, Any] | InvoiceLine, message: str, error_type: ErrorType
    ) -> LineOutcome:
        if isinstance(raw, InvoiceLine):
            data = raw.model_dump()
        else:
            data = raw if isinstance(raw, dict) else {}
        logger.warning(
            "Invoice line rejected",
            extra={
                "event": "ingest.line_failed",
                "error_type": error_type.value,
                "tenant_id": data.get("tenant_id"),
                "vendor_id": data.get("vendor_id"),
                "item_number": data.get("item_number"),
            },
        )
        return LineOutcome(
            success=False,
            tenant_id=_text_or_none(data.get("tenant_id")),
            vendor_id=_text_or_none(data.get("vendor_id")),
            item_number=_text_or_none(data.get("item_number")),
            error=message,
            error_type=error_type,
        )


def _text_or_none(value: Any) -> str | None:
    return str(value) if value is not None else None
