from __future__ import annotations

import asyncio
import json
import sys
from decimal import Decimal
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))

from ordersync.application.errors import MalformedPayloadError
from ordersync.application.ports.backend import BackendError, BackendUnavailableError, SnapshotScope
from ordersync.domain.common.ids import OrderId, RestaurantId, TableId
from ordersync.domain.order.entities import OrderStatus
from ordersync.domain.table.entities import TableStatus
from ordersync.infrastructure.http.rest_backend import RestOrderBackend, StaticTokenProvider

ORDER_JSON = {
    "id": "o1",
    "orderCode": "A1",
    "tableCode": "T1",
    "status": "Pending",
    "createdAt": "2026-03-01T12:00:00Z",
    "items": [],
    "total": "18.00",
}


def _backend(handler, token: str | None = "secret") -> RestOrderBackend:
    return RestOrderBackend(
        "https://api.example.test",
        token_provider=StaticTokenProvider(token),
        transport=httpx.MockTransport(handler),
    )


async def _call(backend: RestOrderBackend, coro_factory):
    try:
        return await coro_factory(backend)
    finally:
        await backend.aclose()


def test_list_orders_sends_scope_and_bearer_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[ORDER_JSON])

    scope = SnapshotScope(
        restaurant_id=RestaurantId("r1"),
        statuses=frozenset({OrderStatus.READY, OrderStatus.PENDING}),
        page_size=50,
    )
    orders = asyncio.run(_call(_backend(handler), lambda backend: backend.list_orders(scope)))

    assert [order.order_id for order in orders] == ["o1"]
    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/kitchen-orders"
    assert request.url.params["restaurantId"] == "r1"
    assert request.url.params["status"] == "Pending,Ready"
    assert request.url.params["pageSize"] == "50"
    assert request.headers["Authorization"] == "Bearer secret"


def test_requests_without_token_omit_authorization() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "t1", "code": "T1", "status": "Available"}])

    tables = asyncio.run(
        _call(_backend(handler, token=None), lambda backend: backend.list_tables(RestaurantId("r1")))
    )

    assert tables[0].status == TableStatus.AVAILABLE
    assert "Authorization" not in seen[0].headers


def test_dashboard_summary_becomes_kpis() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"revenueToday": 150.5, "ordersToday": 4, "averageTicketToday": 37.625}
        )

    kpis = asyncio.run(
        _call(_backend(handler), lambda backend: backend.get_dashboard_summary(RestaurantId("r1")))
    )

    assert seen[0].url.path == "/dashboard/summary"
    assert seen[0].url.params["restaurantId"] == "r1"
    assert kpis.revenue == Decimal("150.5")
    assert kpis.order_count == 4
    assert kpis.average_ticket == Decimal("37.625")


def test_actions_and_table_updates_use_put() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    async def run(backend: RestOrderBackend) -> None:
        await backend.perform_order_action(OrderId("o1"), "ready")
        await backend.update_table(TableId("t1"), "T1", TableStatus.AVAILABLE)
        await backend.update_table(TableId("t2"), "T2", TableStatus.OCCUPIED)

    asyncio.run(_call(_backend(handler), run))

    assert [(request.method, request.url.path) for request in seen] == [
        ("PUT", "/orders/o1/ready"),
        ("PUT", "/tables/t1"),
        ("PUT", "/tables/t2"),
    ]
    assert json.loads(seen[1].content) == {"code": "T1", "status": 1}
    assert json.loads(seen[2].content) == {"code": "T2", "status": 2}


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ({"message": "Order already delivered"}, "Order already delivered"),
        ({"error": {"code": "CONFLICT", "message": "Stale order"}}, "Stale order"),
        (None, "backend responded with HTTP 409"),
    ],
)
def test_error_responses_carry_server_message(body, message: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if body is None:
            return httpx.Response(409, text="conflict")
        return httpx.Response(409, json=body)

    with pytest.raises(BackendError) as exc_info:
        asyncio.run(
            _call(_backend(handler), lambda backend: backend.perform_order_action(OrderId("o1"), "start"))
        )

    assert exc_info.value.message == message
    assert exc_info.value.status_code == 409


def test_transport_failures_map_to_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(BackendUnavailableError):
        asyncio.run(_call(_backend(handler), lambda backend: backend.list_tables(RestaurantId("r1"))))


def test_unexpected_snapshot_shape_is_malformed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"orders": []})

    scope = SnapshotScope(restaurant_id=RestaurantId("r1"))
    with pytest.raises(MalformedPayloadError):
        asyncio.run(_call(_backend(handler), lambda backend: backend.list_orders(scope)))
