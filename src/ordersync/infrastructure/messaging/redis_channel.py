from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator

from redis import asyncio as redis_asyncio

from ordersync.application.errors import MalformedPayloadError
from ordersync.application.mappers.payloads import parse_envelope
from ordersync.application.metrics.sync_metrics import record_malformed_message
from ordersync.application.ports.channel import (
    ChannelEvent,
    ConnectionChanged,
    ConnectionPhase,
    EventHandler,
)

logger = logging.getLogger(__name__)

CHANNEL_NAME = "redis"


def channel_for(restaurant_id: str) -> str:
    return f"events:{restaurant_id}"


@dataclass(frozen=True)
class ReconnectPolicy:
    initial_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 30.0
    max_attempts: int = 5

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        for _ in range(self.max_attempts):
            yield min(delay, self.max_delay)
            delay *= self.factor


async def _close(resource: Any) -> None:
    aclose = getattr(resource, "aclose", None)
    if callable(aclose):
        await aclose()
    else:
        await resource.close()


class RedisEventChannel:
    """Push channel over Redis pub/sub, one channel per restaurant.

    Lifecycle changes are delivered to the handler as ConnectionChanged
    events. After ``policy.max_attempts`` failed reconnects the channel
    reports a terminal close and stops retrying.
    """

    def __init__(
        self,
        redis_url: str,
        restaurant_id: str,
        *,
        policy: ReconnectPolicy | None = None,
        client_factory: Callable[[str], Any] = redis_asyncio.from_url,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._redis_url = redis_url
        self._restaurant_id = restaurant_id
        self._policy = policy or ReconnectPolicy()
        self._client_factory = client_factory
        self._sleep = sleep
        self._handler: EventHandler | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def channel(self) -> str:
        return channel_for(self._restaurant_id)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def connect(self, handler: EventHandler) -> None:
        if self.running:
            return
        self._handler = handler
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def disconnect(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def _emit(self, event: ChannelEvent) -> None:
        if self._handler is None:
            return
        try:
            await self._handler(event)
        except Exception:
            logger.exception(
                "channel_handler_error",
                extra={"restaurant_id": self._restaurant_id, "event_type": type(event).__name__},
            )

    async def _run(self) -> None:
        delays = self._policy.delays()
        attempt = 0
        connected_before = False
        await self._emit(ConnectionChanged(phase=ConnectionPhase.CONNECTING))
        while True:
            client: Any = None
            pubsub: Any = None
            try:
                client = self._client_factory(self._redis_url)
                pubsub = client.pubsub()
                await pubsub.subscribe(self.channel)
                logger.info(
                    "redis_channel_subscribed",
                    extra={"channel": self.channel, "attempt": attempt},
                )
                phase = ConnectionPhase.RECONNECTED if connected_before else ConnectionPhase.CONNECTED
                connected_before = True
                attempt = 0
                delays = self._policy.delays()
                await self._emit(ConnectionChanged(phase=phase))
                await self._consume(pubsub)
            except asyncio.CancelledError:
                logger.info("redis_channel_cancelled", extra={"channel": self.channel})
                raise
            except Exception as exc:
                attempt += 1
                delay = next(delays, None)
                if delay is None:
                    logger.error(
                        "redis_channel_gave_up",
                        extra={"channel": self.channel, "attempts": attempt - 1, "error": str(exc)},
                    )
                    await self._emit(
                        ConnectionChanged(
                            phase=ConnectionPhase.CLOSED,
                            attempt=attempt - 1,
                            error=str(exc),
                            gave_up=True,
                        )
                    )
                    return
                logger.warning(
                    "redis_channel_error",
                    extra={"channel": self.channel, "backoff_seconds": delay, "attempt": attempt},
                )
                await self._emit(
                    ConnectionChanged(phase=ConnectionPhase.RECONNECTING, attempt=attempt, error=str(exc))
                )
                await self._sleep(delay)
            finally:
                if pubsub is not None:
                    await _close(pubsub)
                if client is not None:
                    await _close(client)

    async def _consume(self, pubsub: Any) -> None:
        while True:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message is None:
                await asyncio.sleep(0.05)
                continue

            payload = message.get("data")
            if not payload:
                continue
            # Raw bytes go to the parser so undecodable data counts as malformed.
            try:
                envelope, event = parse_envelope(payload)
            except MalformedPayloadError as exc:
                record_malformed_message(CHANNEL_NAME)
                logger.warning(
                    "redis_channel_malformed_message",
                    extra={"channel": self.channel, "error": str(exc)},
                )
                continue

            if envelope.restaurant_id and envelope.restaurant_id != self._restaurant_id:
                logger.debug(
                    "redis_channel_foreign_restaurant",
                    extra={"channel": self.channel, "event_restaurant_id": envelope.restaurant_id},
                )
                continue
            await self._emit(event)
