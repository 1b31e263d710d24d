from __future__ import annotations

from fastapi import APIRouter, Request, Response, status

from ordersync.application.engine import SyncEngine, SyncStrategy

router = APIRouter()


@router.get("/health/live")
def live() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/ready")
def ready(request: Request, response: Response) -> dict[str, object]:
    engine: SyncEngine | None = getattr(request.app.state, "engine", None)
    snapshot_ready = engine is not None and engine.loaded
    channel_ready = engine is not None and (
        engine.strategy == SyncStrategy.PULL or engine.connection.connected
    )

    if snapshot_ready and channel_ready:
        return {"status": "ok"}

    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "unavailable",
        "checks": {"snapshot": snapshot_ready, "channel": channel_ready},
    }
