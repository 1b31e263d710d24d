from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response, status

from ordersync.application.dto.responses import (
    ActionResponse,
    BoardResponse,
    OrderResponse,
    RefreshResponse,
    TableResponse,
)
from ordersync.application.engine import ActionResult, SyncEngine
from ordersync.application.errors import SnapshotLoadError, UnknownActionError
from ordersync.application.mappers.views import (
    to_connection_response,
    to_kpi_response,
    to_order_response,
    to_table_response,
)
from ordersync.application.surfaces import OrderAction, TableAction
from ordersync.domain.order.entities import STATUS_BUCKETS, OrderStatus

router = APIRouter(prefix="/v1/board")


def _engine(request: Request) -> SyncEngine:
    return request.app.state.engine


def _parse_status(raw: str) -> OrderStatus:
    try:
        return OrderStatus(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"unknown order status: {raw}") from None


def _action_response(result: ActionResult, response: Response) -> ActionResponse:
    if not result.ok:
        response.status_code = status.HTTP_409_CONFLICT
    return ActionResponse(
        ok=result.ok,
        action=result.action,
        entityId=result.entity_id,
        message=result.message,
    )


@router.get("", response_model=BoardResponse)
def get_board(request: Request) -> BoardResponse:
    engine = _engine(request)
    profile = engine.profile
    columns = {
        bucket.value: [
            to_order_response(order)
            for status_ in STATUS_BUCKETS
            if STATUS_BUCKETS[status_] == bucket
            for order in engine.get_orders_by_status(status_)
        ]
        for bucket in profile.buckets
    }
    return BoardResponse(
        restaurantId=str(engine.restaurant_id),
        surface=profile.surface.value,
        loaded=engine.loaded,
        lastLoadError=engine.last_load_error,
        counts={bucket.value: count for bucket, count in engine.get_counts().items()},
        columns=columns,
        tables=[to_table_response(table) for table in engine.get_tables()],
        recentOrders=[to_order_response(order) for order in engine.get_recent_orders()],
        kpis=to_kpi_response(engine.kpis) if profile.track_kpis else None,
        connection=to_connection_response(engine.connection),
    )


@router.get("/orders", response_model=list[OrderResponse])
def list_orders(request: Request, status: str) -> list[OrderResponse]:
    engine = _engine(request)
    return [to_order_response(order) for order in engine.get_orders_by_status(_parse_status(status))]


@router.get("/tables", response_model=list[TableResponse])
def list_tables(request: Request) -> list[TableResponse]:
    return [to_table_response(table) for table in _engine(request).get_tables()]


@router.get("/counts")
def get_counts(request: Request) -> dict[str, int]:
    return {bucket.value: count for bucket, count in _engine(request).get_counts().items()}


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(request: Request) -> RefreshResponse:
    engine = _engine(request)
    if not await engine.refresh("manual"):
        raise SnapshotLoadError(engine.last_load_error or "snapshot load failed")
    return RefreshResponse(ok=True, lastLoadError=None)


@router.post("/orders/{order_id}/{action}", response_model=ActionResponse)
async def order_action(
    request: Request, response: Response, order_id: str, action: str
) -> ActionResponse:
    if action not in {item.value for item in OrderAction}:
        raise UnknownActionError(f"unknown order action: {action}")
    result = await _engine(request).perform_action(action, order_id)
    return _action_response(result, response)


@router.post("/tables/{table_id}/{action}", response_model=ActionResponse)
async def table_action(
    request: Request, response: Response, table_id: str, action: str
) -> ActionResponse:
    if action not in {item.value for item in TableAction}:
        raise UnknownActionError(f"unknown table action: {action}")
    result = await _engine(request).perform_action(action, table_id)
    return _action_response(result, response)
