from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ordersync.domain.order.entities import Bucket, OrderStatus


class Surface(str, Enum):
    KITCHEN = "kitchen"
    WAITER = "waiter"
    DASHBOARD = "dashboard"


class OrderAction(str, Enum):
    START = "start"
    READY = "ready"
    APPROVE = "approve"
    REJECT = "reject"
    DELIVER = "deliver"


class TableAction(str, Enum):
    RELEASE = "release"
    OCCUPY = "occupy"


ACTION_TARGETS: dict[OrderAction, OrderStatus] = {
    OrderAction.START: OrderStatus.IN_PREPARATION,
    OrderAction.READY: OrderStatus.READY,
    OrderAction.APPROVE: OrderStatus.PENDING,
    OrderAction.REJECT: OrderStatus.CANCELLED,
    OrderAction.DELIVER: OrderStatus.DELIVERED,
}

_ACTIVE_STATUSES = frozenset(status for status in OrderStatus if status != OrderStatus.CANCELLED)


@dataclass(frozen=True)
class SurfaceProfile:
    surface: Surface
    buckets: tuple[Bucket, ...]
    snapshot_statuses: frozenset[OrderStatus]
    load_tables: bool
    track_kpis: bool
    order_actions: frozenset[OrderAction]
    table_actions: frozenset[TableAction]


PROFILES: dict[Surface, SurfaceProfile] = {
    Surface.KITCHEN: SurfaceProfile(
        surface=Surface.KITCHEN,
        buckets=(Bucket.PENDING, Bucket.IN_PREPARATION, Bucket.READY),
        snapshot_statuses=frozenset(
            {OrderStatus.PENDING, OrderStatus.IN_PREPARATION, OrderStatus.READY}
        ),
        load_tables=False,
        track_kpis=False,
        order_actions=frozenset({OrderAction.START, OrderAction.READY}),
        table_actions=frozenset(),
    ),
    Surface.WAITER: SurfaceProfile(
        surface=Surface.WAITER,
        buckets=(Bucket.AWAITING, Bucket.READY, Bucket.DELIVERED),
        snapshot_statuses=_ACTIVE_STATUSES,
        load_tables=True,
        track_kpis=False,
        order_actions=frozenset({OrderAction.APPROVE, OrderAction.REJECT, OrderAction.DELIVER}),
        table_actions=frozenset({TableAction.RELEASE, TableAction.OCCUPY}),
    ),
    Surface.DASHBOARD: SurfaceProfile(
        surface=Surface.DASHBOARD,
        buckets=tuple(Bucket),
        snapshot_statuses=_ACTIVE_STATUSES,
        load_tables=True,
        track_kpis=True,
        order_actions=frozenset(OrderAction),
        table_actions=frozenset(TableAction),
    ),
}


def profile_for(surface: Surface | str) -> SurfaceProfile:
    return PROFILES[Surface(surface)]
