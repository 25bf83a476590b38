"""Output formatting for CLI and programmatic use."""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for output."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def _money(value: float | None) -> str:
    return f"${value:.2f}" if value is not None else "-"


def _pct(value: float | None) -> str:
    if value is None:
        return "-"
    color = "red" if value > 0 else "green" if value < 0 else "white"
    return f"[{color}]{value:+.1f}%[/{color}]"


class OutputFormatter:
    """Formats output for both Rich terminal and JSON modes."""

    def __init__(self, json_mode: bool = False):
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode
        self.console = Console()

    def output(self, data: dict[str, Any], message: str = "") -> None:
        """Output data in appropriate format.

        Args:
            data: Data to output
            message: Optional message for Rich mode
        """
        if self.json_mode:
            self._output_json(data)
        else:
            self._output_rich(data, message)

    def _output_json(self, data: dict[str, Any]) -> None:
        """Output as JSON to stdout."""
        print(json.dumps(data, cls=JSONEncoder, indent=2))

    def _output_rich(self, data: dict[str, Any], message: str) -> None:
        """Output with Rich formatting."""
        if message:
            self.console.print(f"[green]✓[/green] {message}")

        payload = data.get("data", {})
        if "intelligence" in payload:
            self._render_intelligence(data)
        elif "line" in payload:
            self._render_line(data)
        elif "invoice" in payload:
            self._render_invoice(data)
        elif "recompute" in payload:
            self._render_recompute(data)
        elif "vendors" in payload:
            self._render_vendors(data)
        elif "vendor" in payload:
            self._render_vendor(data)
        elif "alerts" in payload:
            self._render_alerts(data)
        elif "trends" in payload:
            self._render_trends(data)
        elif "summary" in payload:
            self._render_summary(data)

    def _render_intelligence(self, data: dict) -> None:
        """Render the four price trackers of one vendor item."""
        intel = data["data"]["intelligence"]

        title = intel.get("item_name") or data["data"].get("item_number", "Item")
        panel_content = f"""[bold]{title}[/bold] ({intel.get("item_unit") or "each"})
Vendor: {intel.get("vendor_name") or "-"}

Last paid: {_money(intel.get("last_paid_price"))} on {intel.get("last_paid_at") or "-"}
7-day avg: {_money(intel.get("avg_7d_price"))}  {_pct(intel.get("diff_vs_7d_pct"))}
28-day avg: {_money(intel.get("avg_28d_price"))}  {_pct(intel.get("diff_vs_28d_pct"))}
28-day range: {_money(intel.get("min_28d_price"))} - {_money(intel.get("max_28d_price"))}
Prices seen (28d): {intel.get("count_28d", 0)}"""

        if intel.get("best_price_across_vendors") is not None:
            panel_content += (
                f"\n\nBest price: {_money(intel['best_price_across_vendors'])}"
                f" from {intel.get('best_vendor_name') or '-'}"
                f"  {_pct(intel.get('diff_vs_best_pct'))}"
            )

        panel = Panel(panel_content, title="Price Intelligence", border_style="green")
        self.console.print(panel)

    def _render_line(self, data: dict) -> None:
        """Render the outcome of recording one line."""
        line = data["data"]["line"]

        self.console.print(f"Canonical item: {line.get('canonical_item_id')}")
        self.console.print(f"Match: {line.get('match_type')}")
        if line.get("last_paid_updated"):
            self.console.print("[cyan]Last paid price updated[/cyan]")
        else:
            self.console.print("[dim]Last paid price unchanged (older business date)[/dim]")

    def _render_invoice(self, data: dict) -> None:
        """Render an invoice import summary and per-line results."""
        invoice = data["data"]["invoice"]

        panel = Panel(
            f"""[bold]{invoice["vendor"]["name"]}[/bold]

Invoice: {invoice.get("invoice_number") or "-"}
Date: {invoice["invoice_date"]}
Recorded: {invoice["processed_count"]}
Failed: {invoice["failed_count"]}""",
            title="Invoice Imported",
            border_style="green" if not invoice["failed_count"] else "yellow",
        )
        self.console.print(panel)

        table = Table(show_header=True)
        table.add_column("Item #")
        table.add_column("Price", justify="right")
        table.add_column("Qty", justify="right")
        table.add_column("Result")

        for result in invoice["results"]:
            if result["success"]:
                outcome = f"[green]{result.get('match_type')}[/green]"
            else:
                outcome = f"[red]{result.get('error_type')}: {result.get('error')}[/red]"
            table.add_row(
                result.get("item_number") or "-",
                _money(result.get("unit_price")),
                str(result["quantity"]) if result.get("quantity") is not None else "-",
                outcome,
            )

        self.console.print(table)

    def _render_recompute(self, data: dict) -> None:
        """Render recomputed rolling statistics."""
        stats = data["data"]["recompute"]

        if stats is None:
            self.console.print(
                "[yellow]No daily data in the 28-day window; existing stats kept[/yellow]"
            )
            return

        self.console.print(f"\n[bold]Rolling stats as of {stats['as_of']}[/bold]")
        self.console.print(
            f"7-day avg: {_money(stats['avg_7d_price'])} ({stats['data_points_7d']} days)"
        )
        self.console.print(
            f"28-day avg: {_money(stats['avg_28d_price'])} ({stats['data_points_28d']} days)"
        )
        self.console.print(
            f"28-day range: {_money(stats.get('min_28d_price'))}"
            f" - {_money(stats.get('max_28d_price'))}"
        )

    def _render_vendors(self, data: dict) -> None:
        """Render a tenant's vendors."""
        vendors = data["data"]["vendors"]

        if not vendors:
            self.console.print("[dim]No vendors found[/dim]")
            return

        table = Table(title="Vendors", show_header=True, header_style="bold cyan")
        table.add_column("Name", style="cyan")
        table.add_column("ID", style="dim")
        table.add_column("Active")

        for vendor in vendors:
            table.add_row(
                vendor["name"],
                vendor["id"],
                "[green]yes[/green]" if vendor["is_active"] else "[red]no[/red]",
            )

        self.console.print(table)

    def _render_vendor(self, data: dict) -> None:
        """Render a single vendor."""
        vendor = data["data"]["vendor"]

        self.console.print(f"[bold]{vendor['name']}[/bold] ({vendor['id']})")
        self.console.print(f"Active: {'yes' if vendor['is_active'] else 'no'}")

    def _render_alerts(self, data: dict) -> None:
        """Render price alerts."""
        alerts = data["data"]["alerts"]

        if not alerts:
            self.console.print("[dim]No price alerts[/dim]")
            return

        table = Table(title="Price Alerts", show_header=True, header_style="bold red")
        table.add_column("Item", style="cyan")
        table.add_column("Vendor")
        table.add_column("Last Paid", justify="right")
        table.add_column("vs 7d", justify="right")
        table.add_column("vs 28d", justify="right")
        table.add_column("Severity")

        for alert in alerts:
            severity_color = "red" if alert["severity"] == "high" else "yellow"
            table.add_row(
                alert.get("item_name") or alert["item_number"],
                alert.get("vendor_name") or alert["vendor_id"],
                _money(alert.get("last_paid_price")),
                _pct(alert.get("diff_vs_7d_pct")),
                _pct(alert.get("diff_vs_28d_pct")),
                f"[{severity_color}]{alert['severity']}[/{severity_color}]",
            )

        self.console.print(table)

    def _render_trends(self, data: dict) -> None:
        """Render pricing trends."""
        trends = data["data"]["trends"]

        if not trends:
            self.console.print("[dim]No recent pricing activity[/dim]")
            return

        table = Table(title="Pricing Trends", show_header=True, header_style="bold cyan")
        table.add_column("Item", style="cyan")
        table.add_column("Vendor")
        table.add_column("Last Paid", justify="right")
        table.add_column("28d Avg", justify="right")
        table.add_column("Best", justify="right")
        table.add_column("Volatility", justify="right")

        for trend in trends:
            table.add_row(
                trend.get("canonical_name") or trend.get("item_name") or trend["item_number"],
                trend.get("vendor_name") or trend["vendor_id"],
                _money(trend.get("last_paid_price")),
                _money(trend.get("avg_28d_price")),
                _money(trend.get("best_price_across_vendors")),
                f"{trend['price_volatility_pct']:.1f}%",
            )

        self.console.print(table)

    def _render_summary(self, data: dict) -> None:
        """Render the tenant intelligence summary."""
        summary = data["data"]["summary"]
        coverage = summary["coverage"]
        alerts = summary["alerts"]
        movements = summary["price_movements"]
        activity = summary["recent_activity"]

        self.console.print(f"\n[bold]Price Intelligence: {summary['tenant_id']}[/bold]")
        self.console.print(f"Items tracked: {summary['total_items']}")
        self.console.print(
            f"Coverage: {coverage['coverage_percentage']:.1f}%"
            f" ({coverage['items_with_pricing']} priced,"
            f" {coverage['items_with_cross_vendor']} compared across vendors)"
        )

        alert_color = "red" if alerts["high"] else "yellow" if alerts["total"] else "green"
        self.console.print(
            f"Alerts: [{alert_color}]{alerts['total']}[/{alert_color}]"
            f" ({alerts['high']} high, {alerts['medium']} medium)"
        )

        table = Table(show_header=True, header_style="bold")
        table.add_column("Increases", justify="right", style="red")
        table.add_column("Decreases", justify="right", style="green")
        table.add_column("Stable", justify="right")
        table.add_row(
            str(movements["increases"]),
            str(movements["decreases"]),
            str(movements["stable"]),
        )
        self.console.print(table)

        self.console.print(
            f"Paid in last 7 days: {activity['items_updated_last_7d']}"
            f" (avg change {activity['avg_price_change_7d']:.1f}%)"
        )

    def error(self, message: str, error_code: str | None = None) -> None:
        """Output error message.

        Args:
            message: Error message
            error_code: Optional error code
        """
        if self.json_mode:
            output = {"success": False, "error": message}
            if error_code:
                output["error_code"] = error_code
            print(json.dumps(output))
        else:
            self.console.print(f"[red]✗ Error:[/red] {message}")

    def success(self, message: str, data: dict | None = None) -> None:
        """Output success message.

        Args:
            message: Success message
            data: Optional data to include
        """
        if self.json_mode:
            output: dict[str, Any] = {"success": True, "message": message}
            if data:
                output["data"] = data
            print(json.dumps(output, cls=JSONEncoder))
        else:
            self.console.print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        """Output warning message.

        Args:
            message: Warning message
        """
        if self.json_mode:
            print(json.dumps({"warning": message}))
        else:
            self.console.print(f"[yellow]⚠[/yellow] {message}")
