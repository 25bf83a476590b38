"""CLI entry point for the Vendor Price Tracker."""

import json
from datetime import date
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError

from .analytics import PriceAnalytics
from .config import ConfigManager
from .errors import IngestionError, ItemMatchingError, LineValidationError
from .ingestion import PriceIngestionService
from .invoice_processor import InvoiceProcessor
from .logging_config import configure_logging
from .output_formatter import OutputFormatter
from .sqlite_store import SQLiteStore

app = typer.Typer(
    name="price-tracker",
    help="Vendor invoice price intelligence",
    no_args_is_help=True,
)

# Global state for formatter and services (set by callback)
formatter: OutputFormatter = OutputFormatter()
config: ConfigManager | None = None
store: SQLiteStore | None = None
ingestion: PriceIngestionService | None = None


def get_config() -> ConfigManager:
    """Get or create ConfigManager instance."""
    global config
    if config is None:
        config = ConfigManager()
    return config


def get_store() -> SQLiteStore:
    """Get or create SQLiteStore instance using config values."""
    global store
    if store is None:
        cfg = get_config()
        store = SQLiteStore(cfg.data.db_path, busy_timeout=cfg.data.busy_timeout_seconds)
    return store


def get_ingestion() -> PriceIngestionService:
    """Get or create PriceIngestionService instance."""
    global ingestion
    if ingestion is None:
        ingestion = PriceIngestionService(get_store(), matching_config=get_config().matching)
    return ingestion


def get_analytics() -> PriceAnalytics:
    """Build a PriceAnalytics instance over the shared stats accumulator."""
    return PriceAnalytics(get_ingestion().accumulator, get_config().alerts)


def _parse_date(value: str | None) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        formatter.error(f"Invalid date: {value} (expected YYYY-MM-DD)", error_code="VALIDATION_ERROR")
        raise typer.Exit(code=1)


@app.callback()
def main(
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON for programmatic use")
    ] = False,
    db: Annotated[Path | None, typer.Option("--db", help="SQLite database path")] = None,
    config_file: Annotated[
        Path | None, typer.Option("--config", help="Path to config.toml")
    ] = None,
) -> None:
    """Vendor Price Tracker CLI - price intelligence from invoice lines."""
    global formatter, config, store, ingestion

    formatter = OutputFormatter(json_mode=json_output)

    # Load config early
    config = ConfigManager(config_file)
    configure_logging(config.logging.level)

    # CLI --db overrides config, which overrides default
    db_path = db if db else config.data.db_path
    store = SQLiteStore(db_path, busy_timeout=config.data.busy_timeout_seconds)
    ingestion = PriceIngestionService(store, matching_config=config.matching)


@app.command()
def record(
    tenant: Annotated[str, typer.Argument(help="Tenant (restaurant) ID")],
    vendor: Annotated[str, typer.Argument(help="Vendor ID")],
    item_number: Annotated[str, typer.Argument(help="Vendor item number")],
    name: Annotated[str, typer.Argument(help="Item name as printed on the invoice")],
    price: Annotated[float, typer.Option("--price", "-p", help="Unit price")],
    quantity: Annotated[float, typer.Option("--quantity", "-q", help="Quantity purchased")],
    business_date: Annotated[
        str | None, typer.Option("--date", "-d", help="Business date (YYYY-MM-DD)")
    ] = None,
    unit: Annotated[str | None, typer.Option("--unit", "-u", help="Unit of measure")] = None,
    category: Annotated[
        str | None, typer.Option("--category", "-c", help="Category hint")
    ] = None,
    no_recompute: Annotated[
        bool, typer.Option("--no-recompute", help="Skip the rolling average recompute")
    ] = False,
) -> None:
    """Record one invoice line."""
    try:
        outcome = get_ingestion().record_line(
            tenant_id=tenant,
            vendor_id=vendor,
            item_number=item_number,
            name=name,
            unit=unit,
            unit_price=price,
            quantity=quantity,
            business_date=business_date or date.today(),
            recompute=not no_recompute,
            category_hint=category,
        )

        output_data = {
            "success": True,
            "data": {"line": outcome.model_dump(mode="json")},
        }
        formatter.output(output_data, f"Recorded {item_number} at ${price:.2f}")
    except LineValidationError as e:
        formatter.error(str(e), error_code="VALIDATION_ERROR")
        raise typer.Exit(code=1)
    except ItemMatchingError as e:
        formatter.error(str(e), error_code="MATCHING_ERROR")
        raise typer.Exit(code=1)
    except IngestionError as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@app.command(name="import")
def import_invoice(
    tenant: Annotated[str, typer.Option("--tenant", "-t", help="Tenant (restaurant) ID")],
    data: Annotated[str | None, typer.Option("--data", help="JSON invoice data")] = None,
    file: Annotated[Path | None, typer.Option("--file", "-f", help="Path to JSON file")] = None,
    no_recompute: Annotated[
        bool, typer.Option("--no-recompute", help="Skip the rolling average recompute")
    ] = False,
) -> None:
    """Import a parsed invoice as a batch of lines."""
    if not data and not file:
        formatter.error("Must provide either --data or --file")
        raise typer.Exit(code=1)

    try:
        if data:
            invoice_dict = json.loads(data)
        else:
            with open(file) as f:  # type: ignore[arg-type]
                invoice_dict = json.load(f)

        processor = InvoiceProcessor(get_ingestion(), get_store())
        result = processor.process_invoice_dict(tenant, invoice_dict, recompute=not no_recompute)

        output_data = {
            "success": True,
            "data": {"invoice": result.model_dump(mode="json")},
        }
        formatter.output(
            output_data,
            f"Imported {result.processed_count} lines from {result.vendor.name}",
        )
    except json.JSONDecodeError as e:
        formatter.error(f"Invalid JSON: {e}", error_code="INVALID_JSON")
        raise typer.Exit(code=1)
    except ValidationError as e:
        formatter.error(f"Invalid invoice: {e}", error_code="VALIDATION_ERROR")
        raise typer.Exit(code=1)
    except (OSError, ValueError) as e:
        formatter.error(str(e))
        raise typer.Exit(code=1)


@app.command()
def intel(
    tenant: Annotated[str, typer.Argument(help="Tenant (restaurant) ID")],
    vendor: Annotated[str, typer.Argument(help="Vendor ID")],
    item_number: Annotated[str, typer.Argument(help="Vendor item number")],
) -> None:
    """Show price intelligence for a vendor item."""
    intelligence = get_ingestion().get_price_intelligence(tenant, vendor, item_number)
    if intelligence is None:
        formatter.error(f"No pricing recorded for item {item_number}", error_code="NOT_FOUND")
        raise typer.Exit(code=1)

    output_data = {
        "success": True,
        "data": {
            "item_number": item_number,
            "intelligence": intelligence.model_dump(mode="json"),
        },
    }
    formatter.output(output_data)


@app.command()
def recompute(
    tenant: Annotated[str, typer.Argument(help="Tenant (restaurant) ID")],
    vendor: Annotated[str, typer.Argument(help="Vendor ID")],
    item_number: Annotated[str, typer.Argument(help="Vendor item number")],
    as_of: Annotated[
        str | None, typer.Option("--as-of", help="Window end date (YYYY-MM-DD)")
    ] = None,
) -> None:
    """Recompute rolling averages for a vendor item."""
    as_of_date = _parse_date(as_of)
    service = get_ingestion()

    if service.store.get_vendor_item(tenant, vendor, item_number) is None:
        formatter.error(f"Unknown item {item_number}", error_code="NOT_FOUND")
        raise typer.Exit(code=1)

    stats = service.calculator.recompute_rolling(tenant, vendor, item_number, as_of_date)
    output_data = {
        "success": True,
        "data": {"recompute": stats.model_dump(mode="json") if stats else None},
    }
    formatter.output(output_data, f"Recomputed {item_number} as of {as_of_date}")


# Vendor subcommand group
vendors_app = typer.Typer(help="Vendor registry commands")
app.add_typer(vendors_app, name="vendors")


@vendors_app.command("list")
def vendors_list(
    tenant: Annotated[str, typer.Argument(help="Tenant (restaurant) ID")],
    active_only: Annotated[
        bool, typer.Option("--active-only", help="Hide inactive vendors")
    ] = False,
) -> None:
    """List a tenant's vendors."""
    vendors = get_store().list_vendors(tenant, active_only=active_only)

    output_data = {
        "success": True,
        "data": {"vendors": [v.model_dump(mode="json") for v in vendors]},
    }
    formatter.output(output_data, f"Found {len(vendors)} vendors")


@vendors_app.command("add")
def vendors_add(
    tenant: Annotated[str, typer.Argument(help="Tenant (restaurant) ID")],
    name: Annotated[str, typer.Argument(help="Vendor name")],
) -> None:
    """Find or create a vendor by name."""
    try:
        vendor = get_store().find_or_create_vendor(tenant, name)
    except ValueError as e:
        formatter.error(str(e), error_code="VALIDATION_ERROR")
        raise typer.Exit(code=1)

    output_data = {
        "success": True,
        "data": {"vendor": vendor.model_dump(mode="json")},
    }
    formatter.output(output_data, f"Vendor {vendor.name}")


@vendors_app.command("deactivate")
def vendors_deactivate(
    vendor_id: Annotated[str, typer.Argument(help="Vendor ID")],
) -> None:
    """Mark a vendor inactive."""
    vendor = get_store().set_vendor_active(vendor_id, False)
    if vendor is None:
        formatter.error(f"Vendor not found: {vendor_id}", error_code="NOT_FOUND")
        raise typer.Exit(code=1)

    formatter.success(f"Deactivated {vendor.name}", {"vendor": vendor.model_dump(mode="json")})


# Stats subcommand group
stats_app = typer.Typer(help="Price analytics")
app.add_typer(stats_app, name="stats")


@stats_app.command("alerts")
def stats_alerts(
    tenant: Annotated[str, typer.Argument(help="Tenant (restaurant) ID")],
    threshold: Annotated[
        float | None, typer.Option("--threshold", help="Minimum change in percent")
    ] = None,
) -> None:
    """Items whose last paid price moved away from its averages."""
    alerts = get_analytics().price_alerts(tenant, threshold_pct=threshold)

    output_data = {
        "success": True,
        "data": {"alerts": [a.model_dump(mode="json") for a in alerts]},
    }
    formatter.output(output_data, f"{len(alerts)} price alerts")


@stats_app.command("trends")
def stats_trends(
    tenant: Annotated[str, typer.Argument(help="Tenant (restaurant) ID")],
    days: Annotated[int, typer.Option("--days", help="Look-back window in days")] = 30,
    as_of: Annotated[
        str | None, typer.Option("--as-of", help="Reference date (YYYY-MM-DD)")
    ] = None,
) -> None:
    """Items paid recently, with price volatility."""
    trends = get_analytics().pricing_trends(tenant, days=days, as_of=_parse_date(as_of))

    output_data = {
        "success": True,
        "data": {"trends": [t.model_dump(mode="json") for t in trends]},
    }
    formatter.output(output_data, f"Pricing trends ({days} days)")


@stats_app.command("summary")
def stats_summary(
    tenant: Annotated[str, typer.Argument(help="Tenant (restaurant) ID")],
    as_of: Annotated[
        str | None, typer.Option("--as-of", help="Reference date (YYYY-MM-DD)")
    ] = None,
) -> None:
    """Tenant-level price intelligence summary."""
    summary = get_analytics().intelligence_summary(tenant, as_of=_parse_date(as_of))

    output_data = {
        "success": True,
        "data": {"summary": summary.model_dump(mode="json")},
    }
    formatter.output(output_data, "Price intelligence summary")


if __name__ == "__main__":
    app()
