from __future__ import annotations

from collections import deque
from typing import Iterable, Iterator

from ordersync.domain.common.ids import OrderId
from ordersync.domain.order.entities import Order

DEFAULT_HISTORY_CAPACITY = 5


class RecentHistory:
    """Fixed-capacity ring of recently finished orders, most recent first.

    Pushing beyond capacity evicts the oldest entry. Pushing an id that is
    already held replaces the held copy and moves it to the front.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY, orders: Iterable[Order] = ()) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._items: deque[Order] = deque(maxlen=capacity)
        self.evicted = 0
        # Oldest first so the newest ends up at the front.
        for order in reversed(list(orders)):
            self.push(order)

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, order: Order) -> Order | None:
        self._discard(order.order_id)
        evicted: Order | None = None
        if len(self._items) == self._capacity:
            evicted = self._items[-1]
            self.evicted += 1
        self._items.appendleft(order)
        return evicted

    def get(self, order_id: OrderId) -> Order | None:
        for order in self._items:
            if order.order_id == order_id:
                return order
        return None

    def remove(self, order_id: OrderId) -> Order | None:
        return self._discard(order_id)

    def _discard(self, order_id: OrderId) -> Order | None:
        found = self.get(order_id)
        if found is not None:
            self._items.remove(found)
        return found

    def __contains__(self, order_id: object) -> bool:
        return any(order.order_id == order_id for order in self._items)

    def __iter__(self) -> Iterator[Order]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)
