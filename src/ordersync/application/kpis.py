from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class DashboardKpis:
    revenue: Decimal = Decimal("0")
    order_count: int = 0
    average_ticket: Decimal = Decimal("0")

    def add_order(self, total: Decimal) -> DashboardKpis:
        revenue = self.revenue + total
        count = self.order_count + 1
        return DashboardKpis(revenue=revenue, order_count=count, average_ticket=revenue / count)
