from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from opentelemetry import trace

from ordersync.application.errors import MalformedPayloadError, SnapshotLoadError
from ordersync.application.history import RecentHistory
from ordersync.application.kpis import DashboardKpis
from ordersync.application.ports.backend import BackendError, OrderBackend, SnapshotScope
from ordersync.application.store import LocalStateStore
from ordersync.domain.common.ids import OrderId, TableId
from ordersync.domain.order.entities import Order, OrderStatus
from ordersync.domain.table.entities import Table

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class Snapshot:
    orders: list[Order]
    tables: list[Table] | None
    kpis: DashboardKpis | None = None


def _is_newer(current: Order | Table | None, incoming: Order | Table) -> bool:
    return (
        current is not None
        and current.version is not None
        and incoming.version is not None
        and current.version > incoming.version
    )


class SnapshotLoader:
    def __init__(self, backend: OrderBackend, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._backend = backend
        self._timeout_seconds = timeout_seconds

    async def load(self, scope: SnapshotScope) -> Snapshot:
        with tracer.start_as_current_span("ordersync.snapshot.load") as span:
            span.set_attribute("ordersync.restaurant_id", str(scope.restaurant_id))
            try:
                orders, tables, kpis = await asyncio.wait_for(
                    self._fetch(scope), timeout=self._timeout_seconds
                )
            except asyncio.TimeoutError as exc:
                raise SnapshotLoadError(
                    f"snapshot load timed out after {self._timeout_seconds:g}s"
                ) from exc
            except (BackendError, MalformedPayloadError) as exc:
                raise SnapshotLoadError(str(exc)) from exc

            kept = [
                order
                for order in orders
                if order.status != OrderStatus.CANCELLED
                and (scope.statuses is None or order.status in scope.statuses)
            ]
            span.set_attribute("ordersync.orders", len(kept))
            logger.debug(
                "snapshot_fetched",
                extra={
                    "restaurant_id": scope.restaurant_id,
                    "orders": len(kept),
                    "dropped": len(orders) - len(kept),
                },
            )
            return Snapshot(orders=kept, tables=tables, kpis=kpis)

    async def _fetch(
        self, scope: SnapshotScope
    ) -> tuple[list[Order], list[Table] | None, DashboardKpis | None]:
        async def tables() -> list[Table] | None:
            if not scope.include_tables:
                return None
            return await self._backend.list_tables(scope.restaurant_id)

        async def kpis() -> DashboardKpis | None:
            if not scope.include_kpis:
                return None
            return await self._backend.get_dashboard_summary(scope.restaurant_id)

        orders, table_list, summary = await asyncio.gather(
            self._backend.list_orders(scope), tables(), kpis()
        )
        return orders, table_list, summary


def build_order_set(
    orders: list[Order], current: LocalStateStore
) -> tuple[dict[OrderId, Order], RecentHistory]:
    """Build the next active set and history off-store.

    A copy already held with a strictly newer version wins over the snapshot's.
    """
    active: dict[OrderId, Order] = {}
    finished: dict[OrderId, Order] = {}
    for incoming in orders:
        held = current.get_order(incoming.order_id)
        order = held if held is not None and _is_newer(held, incoming) else incoming
        target = finished if order.status == OrderStatus.DELIVERED else active
        (active if target is finished else finished).pop(order.order_id, None)
        target[order.order_id] = order
    newest_first = sorted(finished.values(), key=lambda order: order.created_at, reverse=True)
    return active, RecentHistory(current.history_capacity, newest_first)


def build_table_set(tables: list[Table], current: LocalStateStore) -> dict[TableId, Table]:
    result: dict[TableId, Table] = {}
    for incoming in tables:
        held = current.get_table(incoming.table_id)
        result[incoming.table_id] = held if held is not None and _is_newer(held, incoming) else incoming
    return result
