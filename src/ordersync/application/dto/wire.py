from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ordersync.domain.order.entities import OrderStatus
from ordersync.domain.table.entities import TableStatus

# Table updates on the backend use numeric codes.
TABLE_STATUS_CODES: dict[int, TableStatus] = {
    1: TableStatus.AVAILABLE,
    2: TableStatus.OCCUPIED,
    3: TableStatus.RESERVED,
    4: TableStatus.MAINTENANCE,
}

TABLE_STATUS_WIRE_CODES: dict[TableStatus, int] = {
    status: code for code, status in TABLE_STATUS_CODES.items()
}


def _to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(part.capitalize() for part in parts[1:])


def _lookup(enum_cls: Any, raw: str) -> Any:
    needle = raw.strip().replace("_", "").lower()
    for member in enum_cls:
        if needle in (member.value.lower(), member.name.replace("_", "").lower()):
            return member
    raise ValueError(f"unknown {enum_cls.__name__}: {raw}")


def parse_order_status(raw: Any) -> OrderStatus:
    if isinstance(raw, OrderStatus):
        return raw
    if not isinstance(raw, str):
        raise ValueError(f"order status must be a string, got {type(raw).__name__}")
    return _lookup(OrderStatus, raw)


def parse_table_status(raw: Any) -> TableStatus:
    if isinstance(raw, TableStatus):
        return raw
    if isinstance(raw, int) and not isinstance(raw, bool):
        try:
            return TABLE_STATUS_CODES[raw]
        except KeyError:
            raise ValueError(f"unknown table status code: {raw}") from None
    if not isinstance(raw, str):
        raise ValueError(f"table status must be a string, got {type(raw).__name__}")
    return _lookup(TableStatus, raw)


class CamelBaseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
    )


class OrderItemPayload(CamelBaseModel):
    name: str
    quantity: int = Field(ge=1)


class OrderPayload(CamelBaseModel):
    id: str = Field(validation_alias=AliasChoices("id", "orderId"))
    order_code: str
    table_code: str
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime
    items: list[OrderItemPayload] = Field(default_factory=list)
    total: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        validation_alias=AliasChoices("total", "totalPrice"),
    )
    version: int | None = None
    restaurant_id: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> OrderStatus:
        return parse_order_status(value)

    @field_validator("created_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class TablePayload(CamelBaseModel):
    id: str = Field(validation_alias=AliasChoices("id", "tableId"))
    code: str
    status: TableStatus
    version: int | None = None
    restaurant_id: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> TableStatus:
        return parse_table_status(value)


class DashboardSummaryPayload(CamelBaseModel):
    revenue_today: Decimal = Field(ge=0)
    orders_today: int = Field(ge=0)
    average_ticket_today: Decimal | None = Field(default=None, ge=0)


class OrderStatusUpdatedPayload(CamelBaseModel):
    order_id: str
    new_status: OrderStatus
    version: int | None = None

    @field_validator("new_status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> OrderStatus:
        return parse_order_status(value)


class TableStateUpdatedPayload(CamelBaseModel):
    table_id: str
    new_state: TableStatus = Field(validation_alias=AliasChoices("newState", "newStatus"))
    version: int | None = None

    @field_validator("new_state", mode="before")
    @classmethod
    def _status(cls, value: Any) -> TableStatus:
        return parse_table_status(value)


class EventEnvelope(BaseModel):
    event_id: str | None = None
    event_type: str
    occurred_at: datetime | None = None
    restaurant_id: str | None = None
    payload: dict[str, Any]
