from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from ordersync.application.kpis import DashboardKpis
from ordersync.domain.common.ids import OrderId, TableId
from ordersync.domain.order.entities import Bucket, Order
from ordersync.domain.table.entities import Table, TableStatus


class EntityKind(str, Enum):
    ORDER = "order"
    TABLE = "table"


class ChangeOrigin(str, Enum):
    EVENT = "event"
    ACTION = "action"
    SNAPSHOT = "snapshot"


@dataclass(frozen=True)
class EntityChange:
    kind: EntityKind
    entity_id: str
    before: Order | Table | None
    after: Order | Table | None
    origin: ChangeOrigin = ChangeOrigin.EVENT


class ToastLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AudioCueKind(str, Enum):
    NEW_ORDER = "new_order"
    ORDER_READY = "order_ready"


class BannerKind(str, Enum):
    LOAD_ERROR = "load_error"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class OrderAdded:
    order_id: OrderId
    bucket: Bucket | None


@dataclass(frozen=True)
class OrderMoved:
    order_id: OrderId
    from_bucket: Bucket | None
    to_bucket: Bucket | None


@dataclass(frozen=True)
class OrderRemoved:
    order_id: OrderId
    bucket: Bucket | None


@dataclass(frozen=True)
class TableChanged:
    table_id: TableId
    before: TableStatus | None
    after: TableStatus


@dataclass(frozen=True)
class CountersUpdated:
    counts: tuple[tuple[Bucket, int], ...]
    total_active: int

    def as_dict(self) -> dict[str, int]:
        return {bucket.value: count for bucket, count in self.counts}


@dataclass(frozen=True)
class AudioCue:
    kind: AudioCueKind


@dataclass(frozen=True)
class Toast:
    level: ToastLevel
    message: str


@dataclass(frozen=True)
class KpiUpdated:
    kpis: DashboardKpis


@dataclass(frozen=True)
class SnapshotApplied:
    orders: int
    tables: int
    reason: str


@dataclass(frozen=True)
class Banner:
    kind: BannerKind
    message: str | None
    visible: bool = True


@dataclass(frozen=True)
class ConnectionIndicator:
    connected: bool
    message: str


Effect = Union[
    OrderAdded,
    OrderMoved,
    OrderRemoved,
    TableChanged,
    CountersUpdated,
    AudioCue,
    Toast,
    KpiUpdated,
    SnapshotApplied,
    Banner,
    ConnectionIndicator,
]


@dataclass(frozen=True)
class ProjectionChanged:
    effects: tuple[Effect, ...]
