from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from ordersync.application.engine import SyncStrategy
from ordersync.application.history import DEFAULT_HISTORY_CAPACITY
from ordersync.application.snapshot import DEFAULT_TIMEOUT_SECONDS
from ordersync.application.surfaces import Surface

DEFAULT_RECONNECT_MAX_ATTEMPTS = 5


class ConfigurationError(ValueError):
    pass


def _required(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise ConfigurationError(f"{name} is not set")
    return value


def _positive_float(env: Mapping[str, str], name: str, default: float | None) -> float | None:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be > 0")
    return value


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ConfigurationError(f"{name} must be >= 1")
    return value


def _choice(env: Mapping[str, str], name: str, enum_cls, default):
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(f"{name} must be one of: {allowed}") from None


@dataclass(frozen=True)
class EngineSettings:
    api_url: str
    restaurant_id: str
    api_token: str | None = None
    redis_url: str | None = None
    surface: Surface = Surface.KITCHEN
    strategy: SyncStrategy = SyncStrategy.PUSH
    request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    poll_interval_seconds: float | None = None
    history_capacity: int = DEFAULT_HISTORY_CAPACITY
    reconnect_max_attempts: int = DEFAULT_RECONNECT_MAX_ATTEMPTS

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> EngineSettings:
        env = os.environ if env is None else env
        strategy = _choice(env, "ORDERSYNC_STRATEGY", SyncStrategy, SyncStrategy.PUSH)
        redis_url = env.get("REDIS_URL", "").strip() or None
        poll_interval = _positive_float(env, "ORDERSYNC_POLL_INTERVAL_SECONDS", None)

        if strategy == SyncStrategy.PUSH and redis_url is None:
            raise ConfigurationError("REDIS_URL is required for the push strategy")
        if strategy == SyncStrategy.PULL and poll_interval is None:
            raise ConfigurationError("ORDERSYNC_POLL_INTERVAL_SECONDS is required for the pull strategy")

        return cls(
            api_url=_required(env, "ORDERSYNC_API_URL").rstrip("/"),
            restaurant_id=_required(env, "ORDERSYNC_RESTAURANT_ID"),
            api_token=env.get("ORDERSYNC_API_TOKEN", "").strip() or None,
            redis_url=redis_url,
            surface=_choice(env, "ORDERSYNC_SURFACE", Surface, Surface.KITCHEN),
            strategy=strategy,
            request_timeout_seconds=_positive_float(
                env, "ORDERSYNC_REQUEST_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS
            )
            or DEFAULT_TIMEOUT_SECONDS,
            poll_interval_seconds=poll_interval,
            history_capacity=_positive_int(env, "ORDERSYNC_HISTORY_CAPACITY", DEFAULT_HISTORY_CAPACITY),
            reconnect_max_attempts=_positive_int(
                env, "ORDERSYNC_RECONNECT_MAX_ATTEMPTS", DEFAULT_RECONNECT_MAX_ATTEMPTS
            ),
        )
