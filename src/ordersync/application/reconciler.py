from __future__ import annotations

import logging
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable

from ordersync.application.effects import (
    Banner,
    BannerKind,
    ChangeOrigin,
    ConnectionIndicator,
    Effect,
    EntityChange,
    EntityKind,
)
from ordersync.application.metrics.sync_metrics import record_channel_transition, record_event
from ordersync.application.ports.channel import ChannelEvent, ConnectionChanged, ConnectionPhase
from ordersync.application.store import LocalStateStore
from ordersync.domain.common.ids import OrderId, TableId
from ordersync.domain.order.entities import Order, OrderStatus, is_forward_transition
from ordersync.domain.order.events import NewOrder, OrderStatusUpdated
from ordersync.domain.table.entities import TableStatus
from ordersync.domain.table.events import TableStateUpdated

logger = logging.getLogger(__name__)

APPLIED = "applied"
DUPLICATE = "duplicate"
NOOP = "noop"
STALE = "stale"
UNKNOWN = "unknown"
BUFFERED = "buffered"

DEGRADED_MESSAGE = "Real-time updates unavailable; use refresh to update the board"


@dataclass
class ConnectionState:
    connected: bool = False
    reconnect_attempts: int = 0
    has_connected: bool = False
    degraded: bool = False
    last_error: str | None = None


@dataclass(frozen=True)
class ConfirmedStatus:
    """A status the backend confirmed while a snapshot load was in flight."""

    kind: EntityKind
    entity_id: str
    status: OrderStatus | TableStatus


def _is_stale(current_version: int | None, incoming_version: int | None) -> bool:
    return (
        current_version is not None
        and incoming_version is not None
        and incoming_version < current_version
    )


class EventReconciler:
    """Applies push events and confirmed actions to the local store.

    Every handler is idempotent: replaying an event that is already reflected
    in the store changes nothing. Order statuses only move forward; updates
    that would move an order backwards, or that carry a version older than
    the held one, are dropped as stale.

    While events are held (a snapshot load is in flight) they are queued and
    replayed in arrival order once the last holder releases them. Confirmed
    actions apply at once and are queued as well, so a snapshot fetched before
    the backend applied them cannot roll them back.
    """

    def __init__(
        self,
        store: LocalStateStore,
        *,
        emit_change: Callable[[EntityChange], None],
        emit_effects: Callable[[list[Effect]], None],
        reload: Callable[[str], Awaitable[bool]],
        restaurant_id: str,
        surface: str,
        on_degraded: Callable[[], Awaitable[None]] | None = None,
        on_recovered: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._store = store
        self._emit_change = emit_change
        self._emit_effects = emit_effects
        self._reload = reload
        self._restaurant_id = restaurant_id
        self._surface = surface
        self._on_degraded = on_degraded
        self._on_recovered = on_recovered
        self._hold_depth = 0
        self._buffer: deque[ChannelEvent | ConfirmedStatus] = deque()
        self.connection = ConnectionState()

    @property
    def holding(self) -> bool:
        return self._hold_depth > 0

    @asynccontextmanager
    async def hold_events(self) -> AsyncIterator[None]:
        self._hold_depth += 1
        try:
            yield
        finally:
            self._hold_depth -= 1
            if self._hold_depth == 0:
                await self._replay()

    async def _replay(self) -> None:
        while self._buffer and not self.holding:
            item = self._buffer.popleft()
            if isinstance(item, ConfirmedStatus):
                self._reapply(item)
            else:
                await self.handle(item)

    def _reapply(self, confirmed: ConfirmedStatus) -> None:
        if confirmed.kind == EntityKind.ORDER:
            outcome = self._apply_order_status(
                OrderId(confirmed.entity_id), OrderStatus(confirmed.status), None, ChangeOrigin.SNAPSHOT
            )
        else:
            outcome = self._apply_table_status(
                TableId(confirmed.entity_id), TableStatus(confirmed.status), None, ChangeOrigin.SNAPSHOT
            )
        logger.debug(
            "confirmed_status_reapplied",
            extra={"entity_id": confirmed.entity_id, "status": confirmed.status.value, "outcome": outcome},
        )

    async def handle(self, event: ChannelEvent) -> str:
        if isinstance(event, ConnectionChanged):
            await self.on_connection_changed(event)
            return APPLIED
        if self.holding:
            self._buffer.append(event)
            outcome = BUFFERED
        elif isinstance(event, NewOrder):
            outcome = self.on_new_order(event.order)
        elif isinstance(event, OrderStatusUpdated):
            outcome = self.on_order_status_updated(event.order_id, event.new_status, event.version)
        elif isinstance(event, TableStateUpdated):
            outcome = self.on_table_state_updated(event.table_id, event.new_status, event.version)
        else:
            raise TypeError(f"unsupported channel event: {type(event).__name__}")
        record_event(self._restaurant_id, self._surface, type(event).__name__, outcome)
        return outcome

    def on_new_order(self, order: Order) -> str:
        if self._store.has_order(order.order_id):
            logger.debug("event_duplicate_order", extra={"order_id": order.order_id})
            return DUPLICATE
        if order.status == OrderStatus.CANCELLED:
            return NOOP
        self._store.upsert_order(order)
        self._emit_change(
            EntityChange(kind=EntityKind.ORDER, entity_id=order.order_id, before=None, after=order)
        )
        return APPLIED

    def on_order_status_updated(
        self, order_id: OrderId, new_status: OrderStatus, version: int | None = None
    ) -> str:
        return self._apply_order_status(order_id, new_status, version, ChangeOrigin.EVENT)

    def apply_confirmed_order_status(self, order_id: OrderId, new_status: OrderStatus) -> str:
        if self.holding:
            self._buffer.append(ConfirmedStatus(EntityKind.ORDER, order_id, new_status))
        return self._apply_order_status(order_id, new_status, None, ChangeOrigin.ACTION)

    def _apply_order_status(
        self,
        order_id: OrderId,
        new_status: OrderStatus,
        version: int | None,
        origin: ChangeOrigin,
    ) -> str:
        current = self._store.get_order(order_id)
        if current is None:
            logger.info(
                "event_unknown_order",
                extra={"order_id": order_id, "status": new_status.value},
            )
            return UNKNOWN
        if _is_stale(current.version, version):
            logger.info(
                "event_stale_order_version",
                extra={"order_id": order_id, "version": version, "held_version": current.version},
            )
            return STALE
        if current.status == new_status:
            return NOOP
        if not is_forward_transition(current.status, new_status):
            logger.warning(
                "event_backward_transition",
                extra={
                    "order_id": order_id,
                    "status": new_status.value,
                    "held_status": current.status.value,
                },
            )
            return STALE

        updated = current.with_status(new_status, version)
        if new_status == OrderStatus.CANCELLED:
            self._store.remove_order(order_id)
            after: Order | None = None
        else:
            self._store.upsert_order(updated)
            after = updated
        self._emit_change(
            EntityChange(
                kind=EntityKind.ORDER,
                entity_id=order_id,
                before=current,
                after=after,
                origin=origin,
            )
        )
        return APPLIED

    def on_table_state_updated(
        self, table_id: TableId, new_status: TableStatus, version: int | None = None
    ) -> str:
        return self._apply_table_status(table_id, new_status, version, ChangeOrigin.EVENT)

    def apply_confirmed_table_status(self, table_id: TableId, new_status: TableStatus) -> str:
        if self.holding:
            self._buffer.append(ConfirmedStatus(EntityKind.TABLE, table_id, new_status))
        return self._apply_table_status(table_id, new_status, None, ChangeOrigin.ACTION)

    def _apply_table_status(
        self,
        table_id: TableId,
        new_status: TableStatus,
        version: int | None,
        origin: ChangeOrigin,
    ) -> str:
        current = self._store.get_table(table_id)
        if current is None:
            logger.info(
                "event_unknown_table",
                extra={"table_id": table_id, "status": new_status.value},
            )
            return UNKNOWN
        if _is_stale(current.version, version):
            return STALE
        if current.status == new_status:
            return NOOP
        updated = current.with_status(new_status, version)
        self._store.upsert_table(updated)
        self._emit_change(
            EntityChange(
                kind=EntityKind.TABLE,
                entity_id=table_id,
                before=current,
                after=updated,
                origin=origin,
            )
        )
        return APPLIED

    async def on_connection_changed(self, event: ConnectionChanged) -> None:
        state = self.connection
        phase = event.phase
        if phase == ConnectionPhase.CONNECTING:
            state.connected = False
        elif phase in (ConnectionPhase.CONNECTED, ConnectionPhase.RECONNECTED):
            reconnect = state.has_connected
            was_degraded = state.degraded
            state.connected = True
            state.has_connected = True
            state.reconnect_attempts = 0
            state.degraded = False
            state.last_error = None
            effects: list[Effect] = [ConnectionIndicator(connected=True, message="Live")]
            if was_degraded:
                effects.append(Banner(kind=BannerKind.DEGRADED, message=None, visible=False))
                if self._on_recovered is not None:
                    await self._on_recovered()
            self._emit_effects(effects)
            if reconnect:
                logger.info("channel_reconnected_resync", extra={"restaurant_id": self._restaurant_id})
                await self._reload("reconnect")
        elif phase == ConnectionPhase.RECONNECTING:
            state.connected = False
            state.reconnect_attempts = event.attempt
            state.last_error = event.error
            self._emit_effects(
                [ConnectionIndicator(connected=False, message=f"Reconnecting (attempt {event.attempt})")]
            )
        elif phase == ConnectionPhase.CLOSED:
            state.connected = False
            state.last_error = event.error
            effects = [ConnectionIndicator(connected=False, message="Disconnected")]
            if event.gave_up and not state.degraded:
                state.degraded = True
                effects.append(Banner(kind=BannerKind.DEGRADED, message=DEGRADED_MESSAGE))
                logger.warning(
                    "channel_degraded",
                    extra={"restaurant_id": self._restaurant_id, "error": event.error},
                )
                if self._on_degraded is not None:
                    await self._on_degraded()
            self._emit_effects(effects)
        else:
            raise TypeError(f"unsupported connection phase: {phase}")
        record_channel_transition(self._restaurant_id, self._surface, phase.value, state.connected)
