from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ordersync.application.engine import SyncEngine, SyncStrategy
from ordersync.config import EngineSettings
from ordersync.domain.common.ids import RestaurantId
from ordersync.infrastructure.http.rest_backend import RestOrderBackend, StaticTokenProvider
from ordersync.infrastructure.messaging.redis_channel import ReconnectPolicy, RedisEventChannel

logger = logging.getLogger(__name__)


@dataclass
class EngineRuntime:
    engine: SyncEngine
    backend: RestOrderBackend

    async def start(self) -> None:
        await self.engine.start()

    async def stop(self) -> None:
        try:
            await self.engine.stop()
        finally:
            await self.backend.aclose()


def build_engine(
    settings: EngineSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> EngineRuntime:
    backend = RestOrderBackend(
        settings.api_url,
        token_provider=StaticTokenProvider(settings.api_token),
        timeout_seconds=settings.request_timeout_seconds,
        transport=transport,
    )
    channel = None
    if settings.strategy == SyncStrategy.PUSH and settings.redis_url:
        channel = RedisEventChannel(
            settings.redis_url,
            settings.restaurant_id,
            policy=ReconnectPolicy(max_attempts=settings.reconnect_max_attempts),
        )
    engine = SyncEngine(
        restaurant_id=RestaurantId(settings.restaurant_id),
        backend=backend,
        channel=channel,
        surface=settings.surface,
        strategy=settings.strategy,
        request_timeout_seconds=settings.request_timeout_seconds,
        poll_interval_seconds=settings.poll_interval_seconds,
        history_capacity=settings.history_capacity,
    )
    logger.info(
        "engine_built",
        extra={
            "restaurant_id": settings.restaurant_id,
            "surface": settings.surface.value,
            "strategy": settings.strategy.value,
        },
    )
    return EngineRuntime(engine=engine, backend=backend)
