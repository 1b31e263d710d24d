from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))

from ordersync.application.effects import Banner, BannerKind, ConnectionIndicator, EntityChange
from ordersync.application.ports.channel import ConnectionChanged, ConnectionPhase
from ordersync.application.reconciler import (
    APPLIED,
    BUFFERED,
    DUPLICATE,
    NOOP,
    STALE,
    UNKNOWN,
    EventReconciler,
)
from ordersync.application.store import LocalStateStore
from ordersync.domain.common.ids import OrderId, TableId
from ordersync.domain.order.entities import Order, OrderStatus
from ordersync.domain.order.events import NewOrder, OrderStatusUpdated
from ordersync.domain.table.entities import Table, TableStatus
from ordersync.domain.table.events import TableStateUpdated

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _order(order_id: str, status: OrderStatus = OrderStatus.PENDING, version: int | None = None) -> Order:
    return Order(
        order_id=OrderId(order_id),
        order_code=order_id.upper(),
        table_code="T1",
        status=status,
        created_at=BASE_TIME + timedelta(minutes=len(order_id)),
        items=(),
        total=Decimal("12"),
        version=version,
    )


class Recorder:
    def __init__(self) -> None:
        self.changes: list[EntityChange] = []
        self.effects: list = []
        self.reloads: list[str] = []
        self.degraded = 0
        self.recovered = 0

    def change(self, change: EntityChange) -> None:
        self.changes.append(change)

    def emit(self, effects: list) -> None:
        self.effects.extend(effects)

    async def reload(self, reason: str) -> bool:
        self.reloads.append(reason)
        return True

    async def on_degraded(self) -> None:
        self.degraded += 1

    async def on_recovered(self) -> None:
        self.recovered += 1


def _reconciler(store: LocalStateStore | None = None) -> tuple[EventReconciler, Recorder, LocalStateStore]:
    store = store or LocalStateStore()
    recorder = Recorder()
    reconciler = EventReconciler(
        store,
        emit_change=recorder.change,
        emit_effects=recorder.emit,
        reload=recorder.reload,
        restaurant_id="r1",
        surface="kitchen",
        on_degraded=recorder.on_degraded,
        on_recovered=recorder.on_recovered,
    )
    return reconciler, recorder, store


def test_new_order_is_inserted_once() -> None:
    reconciler, recorder, store = _reconciler()

    first = asyncio.run(reconciler.handle(NewOrder(order=_order("o1"))))
    second = asyncio.run(reconciler.handle(NewOrder(order=_order("o1"))))

    assert (first, second) == (APPLIED, DUPLICATE)
    assert list(store.orders) == ["o1"]
    assert len(recorder.changes) == 1
    assert recorder.changes[0].before is None


def test_status_update_applies_forward_and_ignores_replay() -> None:
    reconciler, recorder, store = _reconciler()
    store.upsert_order(_order("o1"))
    event = OrderStatusUpdated(order_id=OrderId("o1"), new_status=OrderStatus.IN_PREPARATION)

    assert asyncio.run(reconciler.handle(event)) == APPLIED
    assert asyncio.run(reconciler.handle(event)) == NOOP
    assert store.get_order(OrderId("o1")).status == OrderStatus.IN_PREPARATION
    assert len(recorder.changes) == 1


def test_backward_update_is_stale() -> None:
    reconciler, recorder, store = _reconciler()
    store.upsert_order(_order("o1", OrderStatus.READY))

    outcome = reconciler.on_order_status_updated(OrderId("o1"), OrderStatus.PENDING)

    assert outcome == STALE
    assert store.get_order(OrderId("o1")).status == OrderStatus.READY
    assert recorder.changes == []


def test_older_version_is_stale() -> None:
    reconciler, _, store = _reconciler()
    store.upsert_order(_order("o1", OrderStatus.PENDING, version=5))

    outcome = reconciler.on_order_status_updated(OrderId("o1"), OrderStatus.READY, version=4)

    assert outcome == STALE
    assert store.get_order(OrderId("o1")).status == OrderStatus.PENDING


def test_unknown_order_is_ignored() -> None:
    reconciler, recorder, store = _reconciler()

    outcome = reconciler.on_order_status_updated(OrderId("ghost"), OrderStatus.READY)

    assert outcome == UNKNOWN
    assert store.total_active() == 0
    assert recorder.changes == []


def test_cancelled_update_removes_order() -> None:
    reconciler, recorder, store = _reconciler()
    store.upsert_order(_order("o1", OrderStatus.AWAITING_PAYMENT))

    outcome = reconciler.on_order_status_updated(OrderId("o1"), OrderStatus.CANCELLED)

    assert outcome == APPLIED
    assert not store.has_order(OrderId("o1"))
    assert recorder.changes[0].after is None


def test_table_update_applies_and_skips_unknown_tables() -> None:
    reconciler, recorder, store = _reconciler()
    store.upsert_table(Table(table_id=TableId("t1"), code="T1", status=TableStatus.OCCUPIED))

    applied = asyncio.run(
        reconciler.handle(TableStateUpdated(table_id=TableId("t1"), new_status=TableStatus.AVAILABLE))
    )
    unknown = reconciler.on_table_state_updated(TableId("t9"), TableStatus.AVAILABLE)

    assert (applied, unknown) == (APPLIED, UNKNOWN)
    assert store.get_table(TableId("t1")).status == TableStatus.AVAILABLE
    assert len(recorder.changes) == 1


def test_events_are_buffered_while_held_and_replayed_in_order() -> None:
    reconciler, recorder, store = _reconciler()
    outcomes: list[str] = []

    async def scenario() -> None:
        async with reconciler.hold_events():
            async with reconciler.hold_events():
                outcomes.append(await reconciler.handle(NewOrder(order=_order("o1"))))
            outcomes.append(
                await reconciler.handle(
                    OrderStatusUpdated(order_id=OrderId("o1"), new_status=OrderStatus.READY)
                )
            )
            assert store.total_active() == 0
        assert not reconciler.holding

    asyncio.run(scenario())

    assert outcomes == [BUFFERED, BUFFERED]
    assert store.get_order(OrderId("o1")).status == OrderStatus.READY
    assert len(recorder.changes) == 2


def test_reconnect_triggers_exactly_one_reload() -> None:
    reconciler, recorder, _ = _reconciler()

    async def scenario() -> None:
        await reconciler.handle(ConnectionChanged(phase=ConnectionPhase.CONNECTING))
        await reconciler.handle(ConnectionChanged(phase=ConnectionPhase.CONNECTED))
        await reconciler.handle(ConnectionChanged(phase=ConnectionPhase.RECONNECTING, attempt=1, error="boom"))
        await reconciler.handle(ConnectionChanged(phase=ConnectionPhase.RECONNECTED))

    asyncio.run(scenario())

    assert recorder.reloads == ["reconnect"]
    assert reconciler.connection.connected
    assert reconciler.connection.reconnect_attempts == 0
    indicators = [effect for effect in recorder.effects if isinstance(effect, ConnectionIndicator)]
    assert [indicator.message for indicator in indicators] == [
        "Live",
        "Reconnecting (attempt 1)",
        "Live",
    ]


def test_exhausted_channel_degrades_then_recovers() -> None:
    reconciler, recorder, _ = _reconciler()

    async def scenario() -> None:
        await reconciler.handle(ConnectionChanged(phase=ConnectionPhase.CONNECTED))
        await reconciler.handle(
            ConnectionChanged(phase=ConnectionPhase.CLOSED, attempt=5, error="refused", gave_up=True)
        )
        assert reconciler.connection.degraded
        await reconciler.handle(ConnectionChanged(phase=ConnectionPhase.RECONNECTED))

    asyncio.run(scenario())

    banners = [effect for effect in recorder.effects if isinstance(effect, Banner)]
    assert [(banner.kind, banner.visible) for banner in banners] == [
        (BannerKind.DEGRADED, True),
        (BannerKind.DEGRADED, False),
    ]
    assert (recorder.degraded, recorder.recovered) == (1, 1)
    assert not reconciler.connection.degraded
