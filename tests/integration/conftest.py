from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator
from uuid import uuid4

import pytest
import redis

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from ordersync.domain.order.events import NewOrder, OrderStatusUpdated
from ordersync.infrastructure.messaging.redis_channel import channel_for


def _event_body(event: NewOrder | OrderStatusUpdated) -> tuple[str, dict[str, Any]]:
    if isinstance(event, NewOrder):
        order = event.order
        return "NewOrder", {
            "id": str(order.order_id),
            "orderCode": order.order_code,
            "tableCode": order.table_code,
            "status": order.status.value,
            "createdAt": order.created_at.isoformat(),
            "items": [{"name": item.name, "quantity": item.quantity} for item in order.items],
            "total": str(order.total),
            "version": order.version,
        }
    if isinstance(event, OrderStatusUpdated):
        return "OrderStatusUpdated", {
            "orderId": str(event.order_id),
            "newStatus": event.new_status.value,
            "version": event.version,
        }
    raise TypeError(f"unsupported event: {type(event).__name__}")


@pytest.fixture(scope="session")
def redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")


@pytest.fixture
def redis_client(redis_url: str) -> Iterator[redis.Redis]:
    client = redis.Redis.from_url(redis_url, socket_connect_timeout=0.5, socket_timeout=1.0)
    try:
        client.ping()
    except redis.RedisError:
        client.close()
        pytest.skip(f"redis not reachable at {redis_url}")
    yield client
    client.close()


@pytest.fixture
def publish_event(redis_client: redis.Redis) -> Callable[[str, NewOrder | OrderStatusUpdated], None]:
    """Publish a domain event the way the backend does on ``events:{restaurant_id}``."""

    def publish(restaurant_id: str, event: NewOrder | OrderStatusUpdated) -> None:
        event_type, payload = _event_body(event)
        envelope = {
            "event_id": str(uuid4()),
            "event_type": event_type,
            "occurred_at": (event.occurred_at or datetime.now(timezone.utc)).isoformat(),
            "restaurant_id": restaurant_id,
            "payload": payload,
        }
        redis_client.publish(channel_for(restaurant_id), json.dumps(envelope, separators=(",", ":")))

    return publish
