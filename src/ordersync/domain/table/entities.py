from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from ordersync.domain.common.ids import RestaurantId, TableId


class TableStatus(str, Enum):
    AVAILABLE = "Available"
    OCCUPIED = "Occupied"
    RESERVED = "Reserved"
    MAINTENANCE = "Maintenance"


@dataclass(frozen=True)
class Table:
    table_id: TableId
    code: str
    status: TableStatus
    version: int | None = None
    restaurant_id: RestaurantId | None = None

    def __post_init__(self) -> None:
        if not self.code:
            raise ValueError("table code must not be empty")

    def with_status(self, status: TableStatus, version: int | None = None) -> Table:
        return replace(self, status=status, version=version if version is not None else self.version)
