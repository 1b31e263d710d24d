from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum

from ordersync.domain.common.ids import OrderId, RestaurantId


class OrderStatus(str, Enum):
    AWAITING_PAYMENT = "AwaitingPayment"
    PENDING = "Pending"
    IN_PREPARATION = "InPreparation"
    READY = "Ready"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class Bucket(str, Enum):
    AWAITING = "awaiting"
    PENDING = "pending"
    IN_PREPARATION = "inPreparation"
    READY = "ready"
    DELIVERED = "delivered"


MAIN_PATH: tuple[OrderStatus, ...] = (
    OrderStatus.AWAITING_PAYMENT,
    OrderStatus.PENDING,
    OrderStatus.IN_PREPARATION,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
)

CANCELLABLE: frozenset[OrderStatus] = frozenset(
    {OrderStatus.AWAITING_PAYMENT, OrderStatus.PENDING}
)

TERMINAL: frozenset[OrderStatus] = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

STATUS_BUCKETS: dict[OrderStatus, Bucket] = {
    OrderStatus.AWAITING_PAYMENT: Bucket.AWAITING,
    OrderStatus.PENDING: Bucket.PENDING,
    OrderStatus.IN_PREPARATION: Bucket.IN_PREPARATION,
    OrderStatus.READY: Bucket.READY,
    OrderStatus.DELIVERED: Bucket.DELIVERED,
}


def bucket_for(status: OrderStatus) -> Bucket | None:
    return STATUS_BUCKETS.get(status)


def is_forward_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """True when ``target`` may follow ``current``.

    Moves along the main path may skip steps but never go back. Cancellation
    is only reachable before the kitchen has started the order, and terminal
    statuses accept nothing.
    """
    if current in TERMINAL or current == target:
        return False
    if target == OrderStatus.CANCELLED:
        return current in CANCELLABLE
    return MAIN_PATH.index(target) > MAIN_PATH.index(current)


@dataclass(frozen=True)
class OrderItem:
    name: str
    quantity: int

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError("quantity must be >= 1")


@dataclass(frozen=True)
class Order:
    order_id: OrderId
    order_code: str
    table_code: str
    status: OrderStatus
    created_at: datetime
    items: tuple[OrderItem, ...]
    total: Decimal
    version: int | None = None
    restaurant_id: RestaurantId | None = None

    def __post_init__(self) -> None:
        if self.total < 0:
            raise ValueError("total must be >= 0")
        if self.created_at.tzinfo is None:
            raise ValueError("created_at must be timezone-aware")

    @property
    def bucket(self) -> Bucket | None:
        return bucket_for(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    def with_status(self, status: OrderStatus, version: int | None = None) -> Order:
        if not is_forward_transition(self.status, status):
            raise OrderTransitionError(
                f"cannot move order {self.order_id} from {self.status.value} to {status.value}"
            )
        return replace(self, status=status, version=version if version is not None else self.version)


class OrderTransitionError(Exception):
    pass
