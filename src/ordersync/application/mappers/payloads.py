from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from ordersync.application.dto.wire import (
    DashboardSummaryPayload,
    EventEnvelope,
    OrderPayload,
    OrderStatusUpdatedPayload,
    TablePayload,
    TableStateUpdatedPayload,
)
from ordersync.application.errors import MalformedPayloadError
from ordersync.application.kpis import DashboardKpis
from ordersync.application.ports.channel import ChannelEvent
from ordersync.domain.common.ids import OrderId, RestaurantId, TableId
from ordersync.domain.order.entities import Order, OrderItem
from ordersync.domain.order.events import NewOrder, OrderStatusUpdated
from ordersync.domain.table.entities import Table
from ordersync.domain.table.events import TableStateUpdated

NEW_ORDER = "NewOrder"
ORDER_STATUS_UPDATED = "OrderStatusUpdated"
TABLE_STATE_UPDATED = "TableStateUpdated"


def to_order(raw: Any) -> Order:
    try:
        payload = OrderPayload.model_validate(raw)
        return Order(
            order_id=OrderId(payload.id),
            order_code=payload.order_code,
            table_code=payload.table_code,
            status=payload.status,
            created_at=payload.created_at,
            items=tuple(
                OrderItem(name=item.name, quantity=item.quantity) for item in payload.items
            ),
            total=payload.total,
            version=payload.version,
            restaurant_id=RestaurantId(payload.restaurant_id) if payload.restaurant_id else None,
        )
    except (ValidationError, ValueError) as exc:
        raise MalformedPayloadError(f"invalid order payload: {exc}") from exc


def to_table(raw: Any) -> Table:
    try:
        payload = TablePayload.model_validate(raw)
        return Table(
            table_id=TableId(payload.id),
            code=payload.code,
            status=payload.status,
            version=payload.version,
            restaurant_id=RestaurantId(payload.restaurant_id) if payload.restaurant_id else None,
        )
    except (ValidationError, ValueError) as exc:
        raise MalformedPayloadError(f"invalid table payload: {exc}") from exc


def to_orders(raw: Any) -> list[Order]:
    # Paged endpoints wrap the list in {"items": [...]}.
    if isinstance(raw, dict) and isinstance(raw.get("items"), list):
        raw = raw["items"]
    if not isinstance(raw, list):
        raise MalformedPayloadError("order snapshot must be a list")
    return [to_order(item) for item in raw]


def to_tables(raw: Any) -> list[Table]:
    if not isinstance(raw, list):
        raise MalformedPayloadError("table snapshot must be a list")
    return [to_table(item) for item in raw]


def to_dashboard_kpis(raw: Any) -> DashboardKpis:
    try:
        payload = DashboardSummaryPayload.model_validate(raw)
    except ValidationError as exc:
        raise MalformedPayloadError(f"invalid dashboard summary: {exc}") from exc
    average = payload.average_ticket_today
    if average is None:
        average = payload.revenue_today / payload.orders_today if payload.orders_today else Decimal("0")
    return DashboardKpis(
        revenue=payload.revenue_today,
        order_count=payload.orders_today,
        average_ticket=average,
    )


def parse_envelope(message: str | bytes) -> tuple[EventEnvelope, ChannelEvent]:
    """Decode one channel message into its envelope and typed event.

    Raises MalformedPayloadError for invalid JSON, an unknown event type or a
    payload that does not match the event type.
    """
    try:
        data = json.loads(message)
        envelope = EventEnvelope.model_validate(data)
    except (ValueError, ValidationError) as exc:
        raise MalformedPayloadError(f"invalid event envelope: {exc}") from exc

    payload = envelope.payload
    try:
        if envelope.event_type == NEW_ORDER:
            event: ChannelEvent = NewOrder(order=to_order(payload), occurred_at=envelope.occurred_at)
        elif envelope.event_type == ORDER_STATUS_UPDATED:
            status_payload = OrderStatusUpdatedPayload.model_validate(payload)
            event = OrderStatusUpdated(
                order_id=OrderId(status_payload.order_id),
                new_status=status_payload.new_status,
                version=status_payload.version,
                occurred_at=envelope.occurred_at,
            )
        elif envelope.event_type == TABLE_STATE_UPDATED:
            table_payload = TableStateUpdatedPayload.model_validate(payload)
            event = TableStateUpdated(
                table_id=TableId(table_payload.table_id),
                new_status=table_payload.new_state,
                version=table_payload.version,
                occurred_at=envelope.occurred_at,
            )
        else:
            raise MalformedPayloadError(f"unknown event type: {envelope.event_type}")
    except ValidationError as exc:
        raise MalformedPayloadError(
            f"invalid {envelope.event_type} payload: {exc}"
        ) from exc
    return envelope, event
