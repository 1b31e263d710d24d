from __future__ import annotations

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager, suppress
from typing import Callable, Protocol

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ordersync.api.error_handling import register_exception_handlers
from ordersync.api.middleware.request_id import RequestIDMiddleware
from ordersync.api.routes.board import router as board_router
from ordersync.api.routes.health import router as health_router
from ordersync.api.routes.metrics import router as metrics_router
from ordersync.api.ws.manager import ConnectionManager
from ordersync.api.ws.routes import router as ws_router
from ordersync.application.effects import ProjectionChanged
from ordersync.application.engine import SyncEngine
from ordersync.application.mappers.views import to_effect_message
from ordersync.bootstrap import build_engine
from ordersync.config import EngineSettings
from ordersync.infrastructure.observability.logging_config import configure_logging
from ordersync.infrastructure.observability.otel import configure_otel

logger = logging.getLogger("ordersync.api.access")

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "path", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)


class Runtime(Protocol):
    engine: SyncEngine

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


def _default_runtime() -> Runtime:
    return build_engine(EngineSettings.from_env())


def _cors_allow_origins() -> list[str]:
    env = os.getenv("APP_ENV", "dev").lower()

    # Dev/test: unblock everything (no credentials allowed)
    if env in {"dev", "test"}:
        return ["*"]

    raw_value = os.getenv("CORS_ALLOW_ORIGINS", "")
    return [origin.strip() for origin in raw_value.split(",") if origin.strip()]


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        path = request.url.path
        method = request.method
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - started) * 1000
            REQUEST_COUNT.labels(method=method, path=path, status_code="500").inc()
            REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000)
            logger.exception(
                "request_error",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": 500,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        REQUEST_COUNT.labels(method=method, path=path, status_code=str(response.status_code)).inc()
        REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000)
        logger.info(
            "request_complete",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response


def _fan_out(manager: ConnectionManager, restaurant_id: str) -> Callable[[ProjectionChanged], None]:
    def publish(changed: ProjectionChanged) -> None:
        for effect in changed.effects:
            manager.enqueue(restaurant_id, to_effect_message(effect).model_dump_json())

    return publish


@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime: Runtime = app.state.runtime_factory()
    engine = runtime.engine
    manager = ConnectionManager()
    app.state.engine = engine
    app.state.ws_manager = manager

    unsubscribe = engine.on_projection_changed(_fan_out(manager, str(engine.restaurant_id)))
    pump_task = asyncio.create_task(manager.pump())
    await runtime.start()
    try:
        yield
    finally:
        unsubscribe()
        await runtime.stop()
        pump_task.cancel()
        with suppress(asyncio.CancelledError):
            await pump_task


def create_app(runtime_factory: Callable[[], Runtime] | None = None) -> FastAPI:
    configure_logging()

    app = FastAPI(title="ordersync", version="0.1.0", lifespan=lifespan)
    app.state.runtime_factory = runtime_factory or _default_runtime
    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(board_router)
    app.include_router(ws_router)

    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_allow_origins(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )

    configure_otel(app)
    return app


app = create_app()
