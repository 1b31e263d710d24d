from __future__ import annotations

from typing import Iterable, Iterator, Mapping

from ordersync.application.history import DEFAULT_HISTORY_CAPACITY, RecentHistory
from ordersync.domain.common.ids import OrderId, TableId
from ordersync.domain.order.entities import Bucket, Order, OrderStatus
from ordersync.domain.table.entities import Table


def _newest_first(orders: Iterable[Order]) -> list[Order]:
    return sorted(orders, key=lambda order: order.created_at, reverse=True)


class StatusView:
    """Lazy view over the orders of one status, newest first.

    Every iteration reads the store's current collections, so a view taken
    before a snapshot swap reflects the new set afterwards.
    """

    def __init__(self, store: LocalStateStore, status: OrderStatus) -> None:
        self._store = store
        self._status = status

    @property
    def status(self) -> OrderStatus:
        return self._status

    def __iter__(self) -> Iterator[Order]:
        if self._status == OrderStatus.DELIVERED:
            return iter(self._store.history)
        orders = self._store.orders
        return iter(_newest_first(o for o in orders.values() if o.status == self._status))

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return any(True for _ in self)


class LocalStateStore:
    """Keyed Order and Table collections owned by one engine instance.

    Orders in a terminal status are not part of the active set: delivered
    orders live in a bounded recent-history ring and cancelled orders are
    dropped. Whole collections are swapped by reference so readers see either
    the old or the new set.
    """

    def __init__(self, history_capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        self._orders: dict[OrderId, Order] = {}
        self._tables: dict[TableId, Table] = {}
        self._history = RecentHistory(history_capacity)

    @property
    def orders(self) -> Mapping[OrderId, Order]:
        return self._orders

    @property
    def history(self) -> RecentHistory:
        return self._history

    @property
    def history_capacity(self) -> int:
        return self._history.capacity

    def get_order(self, order_id: OrderId) -> Order | None:
        order = self._orders.get(order_id)
        if order is None:
            order = self._history.get(order_id)
        return order

    def has_order(self, order_id: OrderId) -> bool:
        return order_id in self._orders or order_id in self._history

    def upsert_order(self, order: Order) -> None:
        if order.status == OrderStatus.CANCELLED:
            self.remove_order(order.order_id)
            return
        if order.status == OrderStatus.DELIVERED:
            self._orders.pop(order.order_id, None)
            self._history.push(order)
            return
        self._history.remove(order.order_id)
        self._orders[order.order_id] = order

    def remove_order(self, order_id: OrderId) -> Order | None:
        removed = self._orders.pop(order_id, None)
        from_history = self._history.remove(order_id)
        return removed or from_history

    def replace_orders(self, orders: dict[OrderId, Order], history: RecentHistory) -> None:
        self._orders, self._history = orders, history

    def get_table(self, table_id: TableId) -> Table | None:
        return self._tables.get(table_id)

    def upsert_table(self, table: Table) -> None:
        self._tables[table.table_id] = table

    def replace_tables(self, tables: dict[TableId, Table]) -> None:
        self._tables = tables

    def project_by_status(self, status: OrderStatus) -> StatusView:
        return StatusView(self, status)

    def tables(self) -> list[Table]:
        return sorted(self._tables.values(), key=lambda table: table.code)

    def counts(self) -> dict[Bucket, int]:
        counts = {bucket: 0 for bucket in Bucket}
        for order in self._orders.values():
            bucket = order.bucket
            if bucket is not None:
                counts[bucket] += 1
        counts[Bucket.DELIVERED] = len(self._history)
        return counts

    def total_active(self) -> int:
        return len(self._orders)

    def recent_orders(self, limit: int = DEFAULT_HISTORY_CAPACITY) -> list[Order]:
        return _newest_first([*self._orders.values(), *self._history])[:limit]
