from __future__ import annotations

from dataclasses import fields
from decimal import Decimal
from enum import Enum
from typing import Any

from ordersync.application.dto.responses import (
    ConnectionResponse,
    EffectMessage,
    KpiResponse,
    OrderItemResponse,
    OrderResponse,
    TableResponse,
)
from ordersync.application.effects import CountersUpdated, Effect, KpiUpdated
from ordersync.application.kpis import DashboardKpis
from ordersync.application.reconciler import ConnectionState
from ordersync.domain.order.entities import Order
from ordersync.domain.table.entities import Table


def to_order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        orderId=str(order.order_id),
        orderCode=order.order_code,
        tableCode=order.table_code,
        status=order.status.value,
        bucket=order.bucket.value if order.bucket is not None else None,
        items=[OrderItemResponse(name=item.name, quantity=item.quantity) for item in order.items],
        total=str(order.total),
        createdAt=order.created_at,
        version=order.version,
    )


def to_table_response(table: Table) -> TableResponse:
    return TableResponse(
        tableId=str(table.table_id),
        code=table.code,
        status=table.status.value,
        version=table.version,
    )


def to_kpi_response(kpis: DashboardKpis) -> KpiResponse:
    return KpiResponse(
        revenue=str(kpis.revenue),
        orderCount=kpis.order_count,
        averageTicket=str(kpis.average_ticket.quantize(Decimal("0.01"))),
    )


def to_connection_response(state: ConnectionState) -> ConnectionResponse:
    return ConnectionResponse(
        connected=state.connected,
        degraded=state.degraded,
        reconnectAttempts=state.reconnect_attempts,
        lastError=state.last_error,
    )


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return value


def to_effect_message(effect: Effect) -> EffectMessage:
    if isinstance(effect, CountersUpdated):
        data: dict[str, Any] = {"counts": effect.as_dict(), "totalActive": effect.total_active}
    elif isinstance(effect, KpiUpdated):
        data = to_kpi_response(effect.kpis).model_dump()
    else:
        data = {field.name: _plain(getattr(effect, field.name)) for field in fields(effect)}
    return EffectMessage(type=type(effect).__name__, data=data)
