from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ordersync.api.middleware.request_id import REQUEST_ID_HEADER, bind_request_id
from ordersync.api.ws.manager import ConnectionManager
from ordersync.application.effects import CountersUpdated
from ordersync.application.engine import SyncEngine, connection_indicator
from ordersync.application.mappers.views import to_effect_message

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    engine: SyncEngine = websocket.app.state.engine
    restaurant_id = websocket.query_params.get("restaurant_id")
    if not restaurant_id:
        await websocket.close(code=1008, reason="restaurant_id query parameter is required")
        return
    if restaurant_id != str(engine.restaurant_id):
        await websocket.close(code=1008, reason="unknown restaurant_id")
        return

    manager: ConnectionManager = websocket.app.state.ws_manager
    with bind_request_id(websocket.headers.get(REQUEST_ID_HEADER)):
        await _serve(websocket, manager, engine, restaurant_id)


async def _serve(
    websocket: WebSocket, manager: ConnectionManager, engine: SyncEngine, restaurant_id: str
) -> None:
    await manager.register(
        websocket=websocket, restaurant_id=restaurant_id, role=engine.profile.surface.value
    )
    # Late joiners start from the current indicator and counters.
    for effect in (
        connection_indicator(engine.connection),
        CountersUpdated(
            counts=tuple(engine.get_counts().items()),
            total_active=engine.store.total_active(),
        ),
    ):
        await websocket.send_text(to_effect_message(effect).model_dump_json())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await manager.unregister(websocket)
    except Exception:
        logger.exception("ws_connection_error", extra={"restaurant_id": restaurant_id})
        await manager.unregister(websocket)
