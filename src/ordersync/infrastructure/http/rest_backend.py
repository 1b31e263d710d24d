from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ordersync.application.dto.wire import TABLE_STATUS_WIRE_CODES
from ordersync.application.kpis import DashboardKpis
from ordersync.application.mappers.payloads import to_dashboard_kpis, to_orders, to_tables
from ordersync.application.ports.backend import (
    BackendError,
    BackendUnavailableError,
    SnapshotScope,
    TokenProvider,
)
from ordersync.domain.common.ids import OrderId, RestaurantId, TableId
from ordersync.domain.order.entities import Order
from ordersync.domain.table.entities import Table, TableStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaticTokenProvider:
    token: str | None = None

    def get_token(self) -> str | None:
        return self.token


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message")
        error = body.get("error")
        if not message and isinstance(error, dict):
            message = error.get("message")
        if message:
            return str(message)
    return f"backend responded with HTTP {response.status_code}"


class RestOrderBackend:
    """httpx client for the restaurant REST backend."""

    def __init__(
        self,
        base_url: str,
        *,
        token_provider: TokenProvider | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_provider = token_provider or StaticTokenProvider()
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token_provider.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(
                "backend_unreachable",
                extra={"method": method, "path": path, "error": str(exc)},
            )
            raise BackendUnavailableError(f"backend unreachable: {exc}") from exc

        if response.is_error:
            message = _error_message(response)
            logger.warning(
                "backend_request_failed",
                extra={"method": method, "path": path, "status_code": response.status_code},
            )
            raise BackendError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(
                "backend returned a non-JSON body", status_code=response.status_code
            ) from exc

    async def list_orders(self, scope: SnapshotScope) -> list[Order]:
        params: dict[str, Any] = {
            "restaurantId": scope.restaurant_id,
            "pageSize": scope.page_size,
        }
        if scope.statuses is not None:
            params["status"] = ",".join(sorted(status.value for status in scope.statuses))
        return to_orders(await self._request("GET", "/kitchen-orders", params=params))

    async def list_tables(self, restaurant_id: RestaurantId) -> list[Table]:
        return to_tables(
            await self._request("GET", "/tables", params={"restaurantId": restaurant_id})
        )

    async def get_dashboard_summary(self, restaurant_id: RestaurantId) -> DashboardKpis:
        return to_dashboard_kpis(
            await self._request("GET", "/dashboard/summary", params={"restaurantId": restaurant_id})
        )

    async def perform_order_action(self, order_id: OrderId, action: str) -> None:
        await self._request("PUT", f"/orders/{order_id}/{action}")

    async def update_table(self, table_id: TableId, code: str, status: TableStatus) -> None:
        await self._request(
            "PUT",
            f"/tables/{table_id}",
            json={"code": code, "status": TABLE_STATUS_WIRE_CODES[status]},
        )
