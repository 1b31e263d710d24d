from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ordersync.domain.common.ids import TableId
from ordersync.domain.table.entities import TableStatus


@dataclass(frozen=True)
class TableStateUpdated:
    table_id: TableId
    new_status: TableStatus
    version: int | None = None
    occurred_at: datetime | None = None
