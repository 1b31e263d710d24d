from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class OrderItemResponse(BaseModel):
    name: str
    quantity: int


class OrderResponse(BaseModel):
    orderId: str
    orderCode: str
    tableCode: str
    status: str
    bucket: str | None = None
    items: list[OrderItemResponse] = Field(default_factory=list)
    total: str
    createdAt: datetime
    version: int | None = None


class TableResponse(BaseModel):
    tableId: str
    code: str
    status: str
    version: int | None = None


class KpiResponse(BaseModel):
    revenue: str
    orderCount: int
    averageTicket: str


class ConnectionResponse(BaseModel):
    connected: bool
    degraded: bool
    reconnectAttempts: int
    lastError: str | None = None


class BoardResponse(BaseModel):
    restaurantId: str
    surface: str
    loaded: bool
    lastLoadError: str | None = None
    counts: dict[str, int] = Field(default_factory=dict)
    columns: dict[str, list[OrderResponse]] = Field(default_factory=dict)
    tables: list[TableResponse] = Field(default_factory=list)
    recentOrders: list[OrderResponse] = Field(default_factory=list)
    kpis: KpiResponse | None = None
    connection: ConnectionResponse


class ActionResponse(BaseModel):
    ok: bool
    action: str
    entityId: str
    message: str | None = None


class RefreshResponse(BaseModel):
    ok: bool
    lastLoadError: str | None = None


class EffectMessage(BaseModel):
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
