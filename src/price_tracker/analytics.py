"""Price alerts, trends and tenant-level summaries."""

import logging
from datetime import date, timedelta

from .config import AlertsConfig
from .models import (
    AlertCounts,
    CoverageStats,
    IntelligenceSummary,
    PriceAlert,
    PriceMovements,
    PricingTrend,
    RecentActivity,
    StatsWithItem,
)
from .stats_accumulator import RollingStatsAccumulator

logger = logging.getLogger(__name__)

# Percent change in diff_vs_7d_pct that counts as a price movement.
MOVEMENT_THRESHOLD_PCT = 5.0


def _positive(value: float | None) -> bool:
    return value is not None and value > 0


class PriceAnalytics:
    """Read-only analytics over a tenant's price trackers."""

    def __init__(
        self,
        accumulator: RollingStatsAccumulator,
        alerts_config: AlertsConfig | None = None,
    ):
        self.accumulator = accumulator
        self.alerts_config = alerts_config or AlertsConfig()

    def price_alerts(
        self,
        tenant_id: str,
        threshold_pct: float | None = None,
    ) -> list[PriceAlert]:
        """Items whose last paid price moved at least threshold_pct from an average.

        Args:
            tenant_id: Tenant to scan
            threshold_pct: Minimum absolute change in percent. Defaults to
                the configured alert threshold.

        Returns:
            Alerts sorted by 7-day change, largest increase first
        """
        if threshold_pct is None:
            threshold_pct = self.alerts_config.threshold_pct

        rows = self.accumulator.list_for_tenant(tenant_id)
        return self._alerts_from_rows(rows, threshold_pct)

    def pricing_trends(
        self,
        tenant_id: str,
        days: int = 30,
        as_of: date | None = None,
    ) -> list[PricingTrend]:
        """Items paid within the last ``days`` days, most recent first."""
        rows = self.accumulator.list_for_tenant(tenant_id)
        return self._trends_from_rows(rows, days, as_of or date.today())

    def intelligence_summary(
        self,
        tenant_id: str,
        as_of: date | None = None,
    ) -> IntelligenceSummary:
        """Coverage, alerts, price movements and recent activity for a tenant."""
        rows = self.accumulator.list_for_tenant(tenant_id)
        alerts = self._alerts_from_rows(rows, self.alerts_config.threshold_pct)
        recent = self._trends_from_rows(rows, 7, as_of or date.today())

        total_items = len(rows)
        with_pricing = sum(1 for r in rows if _positive(r.last_paid_price))
        increases = sum(1 for r in rows if (r.diff_vs_7d_pct or 0) > MOVEMENT_THRESHOLD_PCT)
        decreases = sum(1 for r in rows if (r.diff_vs_7d_pct or 0) < -MOVEMENT_THRESHOLD_PCT)

        summary = IntelligenceSummary(
            tenant_id=tenant_id,
            total_items=total_items,
            coverage=CoverageStats(
                items_with_pricing=with_pricing,
                items_with_7d_avg=sum(1 for r in rows if _positive(r.avg_7d_price)),
                items_with_28d_avg=sum(1 for r in rows if _positive(r.avg_28d_price)),
                items_with_cross_vendor=sum(
                    1 for r in rows if _positive(r.best_price_across_vendors)
                ),
                coverage_percentage=(with_pricing / total_items * 100) if total_items else 0.0,
            ),
            alerts=AlertCounts(
                total=len(alerts),
                high=sum(1 for a in alerts if a.severity == "high"),
                medium=sum(1 for a in alerts if a.severity == "medium"),
            ),
            price_movements=PriceMovements(
                increases=increases,
                decreases=decreases,
                stable=total_items - increases - decreases,
            ),
            recent_activity=RecentActivity(
                items_updated_last_7d=len(recent),
                avg_price_change_7d=(
                    sum(abs(t.diff_vs_7d_pct or 0) for t in recent) / len(recent)
                    if recent
                    else 0.0
                ),
            ),
        )

        logger.info(
            "Price intelligence summary generated",
            extra={
                "event": "analytics.summary",
                "tenant_id": tenant_id,
                "total_items": total_items,
                "alert_count": len(alerts),
            },
        )
        return summary

    def _alerts_from_rows(
        self, rows: list[StatsWithItem], threshold_pct: float
    ) -> list[PriceAlert]:
        alerts = []
        for row in rows:
            diff_7d = abs(row.diff_vs_7d_pct or 0)
            diff_28d = abs(row.diff_vs_28d_pct or 0)
            if diff_7d < threshold_pct and diff_28d < threshold_pct:
                continue

            alerts.append(
                PriceAlert(
                    tenant_id=row.tenant_id,
                    vendor_id=row.vendor_id,
                    vendor_name=row.vendor_name,
                    item_number=row.item_number,
                    item_name=row.item_name,
                    last_paid_price=row.last_paid_price,
                    last_paid_at=row.last_paid_at,
                    avg_7d_price=row.avg_7d_price,
                    avg_28d_price=row.avg_28d_price,
                    diff_vs_7d_pct=row.diff_vs_7d_pct,
                    diff_vs_28d_pct=row.diff_vs_28d_pct,
                    alert_type="7d_change" if diff_7d > diff_28d else "28d_change",
                    severity=(
                        "high"
                        if max(diff_7d, diff_28d) > self.alerts_config.high_severity_pct
                        else "medium"
                    ),
                )
            )

        alerts.sort(key=lambda a: a.diff_vs_7d_pct or 0, reverse=True)
        return alerts

    @staticmethod
    def _trends_from_rows(
        rows: list[StatsWithItem], days: int, as_of: date
    ) -> list[PricingTrend]:
        cutoff = as_of - timedelta(days=days)
        trends = []
        for row in rows:
            if row.last_paid_at is None or row.last_paid_at < cutoff:
                continue

            volatility = 0.0
            if row.max_28d_price and row.min_28d_price and row.avg_28d_price:
                volatility = (row.max_28d_price - row.min_28d_price) / row.avg_28d_price * 100

            trends.append(
                PricingTrend(
                    **row.model_dump(include=set(PricingTrend.model_fields)),
                    price_volatility_pct=volatility,
                )
            )

        trends.sort(key=lambda t: t.last_paid_at, reverse=True)
        return trends
