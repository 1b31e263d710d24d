from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ordersync.domain.common.ids import OrderId
from ordersync.domain.order.entities import Order, OrderStatus


@dataclass(frozen=True)
class NewOrder:
    order: Order
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class OrderStatusUpdated:
    order_id: OrderId
    new_status: OrderStatus
    version: int | None = None
    occurred_at: datetime | None = None
