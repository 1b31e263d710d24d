from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Protocol, Union

from ordersync.domain.order.events import NewOrder, OrderStatusUpdated
from ordersync.domain.table.events import TableStateUpdated


class ConnectionPhase(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    RECONNECTED = "reconnected"
    CLOSED = "closed"


@dataclass(frozen=True)
class ConnectionChanged:
    phase: ConnectionPhase
    attempt: int = 0
    error: str | None = None
    gave_up: bool = False


ChannelEvent = Union[NewOrder, OrderStatusUpdated, TableStateUpdated, ConnectionChanged]

EventHandler = Callable[[ChannelEvent], Awaitable[None]]


class EventChannel(Protocol):
    async def connect(self, handler: EventHandler) -> None: ...

    async def disconnect(self) -> None: ...
