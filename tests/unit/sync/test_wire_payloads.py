from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))

from ordersync.application.errors import MalformedPayloadError
from ordersync.application.mappers.payloads import (
    parse_envelope,
    to_dashboard_kpis,
    to_order,
    to_orders,
    to_table,
)
from ordersync.domain.common.ids import OrderId, TableId
from ordersync.domain.order.entities import Order, OrderItem, OrderStatus
from ordersync.domain.order.events import NewOrder, OrderStatusUpdated
from ordersync.domain.table.entities import TableStatus
from ordersync.domain.table.events import TableStateUpdated


def _order_json(**overrides) -> dict:
    payload = {
        "orderId": "o1",
        "orderCode": "A1",
        "tableCode": "T4",
        "status": "InPreparation",
        "createdAt": "2026-03-01T12:00:00",
        "items": [{"name": "Burger", "quantity": 2}],
        "totalPrice": "31.90",
        "version": 4,
    }
    payload.update(overrides)
    return payload


def test_to_order_accepts_aliases_and_normalizes_timestamp() -> None:
    order = to_order(_order_json())

    assert order.order_id == "o1"
    assert order.status == OrderStatus.IN_PREPARATION
    assert order.total == Decimal("31.90")
    assert order.created_at.tzinfo is not None
    assert order.items[0].quantity == 2


def test_to_order_status_lookup_is_lenient() -> None:
    assert to_order(_order_json(status="in_preparation")).status == OrderStatus.IN_PREPARATION
    assert to_order(_order_json(status="READY")).status == OrderStatus.READY


def test_to_order_rejects_bad_payloads() -> None:
    with pytest.raises(MalformedPayloadError):
        to_order(_order_json(status="Teleported"))
    with pytest.raises(MalformedPayloadError):
        to_order(_order_json(totalPrice="-3"))
    with pytest.raises(MalformedPayloadError):
        to_order({"orderCode": "A1"})


def test_to_orders_unwraps_paged_bodies() -> None:
    orders = to_orders({"items": [_order_json(), _order_json(orderId="o2")]})

    assert [order.order_id for order in orders] == ["o1", "o2"]
    with pytest.raises(MalformedPayloadError):
        to_orders({"data": []})


def test_to_table_accepts_numeric_status_codes() -> None:
    table = to_table({"tableId": "t1", "code": "T1", "status": 2})

    assert table.status == TableStatus.OCCUPIED
    with pytest.raises(MalformedPayloadError):
        to_table({"id": "t1", "code": "T1", "status": 9})


def test_dashboard_summary_derives_missing_average() -> None:
    kpis = to_dashboard_kpis({"revenueToday": "90", "ordersToday": 4})

    assert kpis.average_ticket == Decimal("22.5")
    assert to_dashboard_kpis({"revenueToday": 0, "ordersToday": 0}).average_ticket == Decimal("0")
    with pytest.raises(MalformedPayloadError):
        to_dashboard_kpis({"revenueToday": -1, "ordersToday": 1})


def test_parse_envelope_decodes_each_event_type() -> None:
    status_message = json.dumps(
        {
            "event_id": "e1",
            "event_type": "OrderStatusUpdated",
            "occurred_at": "2026-03-01T12:05:00+00:00",
            "restaurant_id": "r1",
            "payload": {"orderId": "o1", "newStatus": "Ready", "version": 7},
        }
    )
    table_message = json.dumps(
        {
            "event_type": "TableStateUpdated",
            "payload": {"tableId": "t1", "newState": "Available"},
        }
    ).encode("utf-8")

    envelope, status_event = parse_envelope(status_message)
    _, table_event = parse_envelope(table_message)

    assert envelope.restaurant_id == "r1"
    assert status_event == OrderStatusUpdated(
        order_id=OrderId("o1"),
        new_status=OrderStatus.READY,
        version=7,
        occurred_at=datetime(2026, 3, 1, 12, 5, tzinfo=timezone.utc),
    )
    assert table_event == TableStateUpdated(table_id=TableId("t1"), new_status=TableStatus.AVAILABLE)


def test_parse_envelope_builds_new_order_from_bytes() -> None:
    order = Order(
        order_id=OrderId("o9"),
        order_code="B9",
        table_code="T2",
        status=OrderStatus.PENDING,
        created_at=datetime(2026, 3, 1, 13, 0, tzinfo=timezone.utc),
        items=(OrderItem(name="Tea", quantity=1),),
        total=Decimal("4.50"),
        version=1,
    )
    message = json.dumps(
        {
            "event_id": "e9",
            "event_type": "NewOrder",
            "occurred_at": "2026-03-01T13:00:05+00:00",
            "restaurant_id": "r1",
            "payload": _order_json(
                id="o9",
                orderCode="B9",
                tableCode="T2",
                status="Pending",
                createdAt="2026-03-01T13:00:00+00:00",
                items=[{"name": "Tea", "quantity": 1}],
                total="4.50",
                version=1,
            ),
        }
    ).encode("utf-8")

    envelope, event = parse_envelope(message)

    assert envelope.event_type == "NewOrder"
    assert isinstance(event, NewOrder)
    assert event.order == order


@pytest.mark.parametrize(
    "message",
    [
        "not json",
        json.dumps({"event_type": "NewOrder"}),
        json.dumps({"event_type": "OrderDeleted", "payload": {}}),
        json.dumps({"event_type": "OrderStatusUpdated", "payload": {"orderId": "o1"}}),
        b"\xff\xfe{",
        b"\x80\x81",
    ],
)
def test_parse_envelope_rejects_malformed_messages(message: str | bytes) -> None:
    with pytest.raises(MalformedPayloadError):
        parse_envelope(message)
