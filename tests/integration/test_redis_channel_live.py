from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from ordersync.application.engine import SyncEngine
from ordersync.application.ports.backend import SnapshotScope
from ordersync.domain.common.ids import OrderId, RestaurantId
from ordersync.domain.order.entities import Order, OrderStatus
from ordersync.domain.order.events import NewOrder, OrderStatusUpdated
from ordersync.infrastructure.messaging.redis_channel import RedisEventChannel


class EmptyBackend:
    async def list_orders(self, scope: SnapshotScope) -> list[Order]:
        return []

    async def list_tables(self, restaurant_id: RestaurantId):
        return []


def test_engine_applies_events_published_on_redis(publish_event, redis_url: str) -> None:
    restaurant_id = "rst_live_001"
    order = Order(
        order_id=OrderId("ord_live_1"),
        order_code="L1",
        table_code="T9",
        status=OrderStatus.PENDING,
        created_at=datetime.now(timezone.utc),
        items=(),
        total=Decimal("7.00"),
    )

    async def scenario() -> SyncEngine:
        engine = SyncEngine(
            restaurant_id=RestaurantId(restaurant_id),
            backend=EmptyBackend(),
            channel=RedisEventChannel(redis_url, restaurant_id),
        )
        await engine.start()
        for _ in range(50):
            if engine.connection.connected:
                break
            await asyncio.sleep(0.05)

        publish_event(restaurant_id, NewOrder(order=order))
        publish_event(
            restaurant_id, OrderStatusUpdated(order_id=order.order_id, new_status=OrderStatus.READY)
        )
        for _ in range(60):
            held = engine.store.get_order(order.order_id)
            if held is not None and held.status == OrderStatus.READY:
                break
            await asyncio.sleep(0.05)
        await engine.stop()
        return engine

    engine = asyncio.run(scenario())

    assert [held.order_id for held in engine.get_orders_by_status(OrderStatus.READY)] == ["ord_live_1"]
