from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ordersync.application.kpis import DashboardKpis
from ordersync.domain.common.ids import OrderId, RestaurantId, TableId
from ordersync.domain.order.entities import Order, OrderStatus
from ordersync.domain.table.entities import Table, TableStatus


@dataclass(frozen=True)
class SnapshotScope:
    restaurant_id: RestaurantId
    statuses: frozenset[OrderStatus] | None = None
    include_tables: bool = True
    include_kpis: bool = False
    page_size: int = 100


class OrderBackend(Protocol):
    async def list_orders(self, scope: SnapshotScope) -> list[Order]: ...

    async def list_tables(self, restaurant_id: RestaurantId) -> list[Table]: ...

    async def get_dashboard_summary(self, restaurant_id: RestaurantId) -> DashboardKpis: ...

    async def perform_order_action(self, order_id: OrderId, action: str) -> None: ...

    async def update_table(self, table_id: TableId, code: str, status: TableStatus) -> None: ...


class TokenProvider(Protocol):
    def get_token(self) -> str | None: ...


class BackendError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class BackendUnavailableError(BackendError):
    pass
