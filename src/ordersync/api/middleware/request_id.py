from __future__ import annotations

import re
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

REQUEST_ID_HEADER = "X-Request-Id"
# Caller ids end up in JSON log lines; anything else is replaced.
_ACCEPTED_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

_current_request_id: ContextVar[str | None] = ContextVar("ordersync_request_id", default=None)


def get_request_id() -> str | None:
    return _current_request_id.get()


def resolve_request_id(candidate: str | None) -> str:
    if candidate and _ACCEPTED_ID.match(candidate):
        return candidate
    return uuid4().hex


@contextmanager
def bind_request_id(candidate: str | None = None) -> Iterator[str]:
    """Tag everything logged inside the block, e.g. one websocket session."""
    request_id = resolve_request_id(candidate)
    token = _current_request_id.set(request_id)
    try:
        yield request_id
    finally:
        _current_request_id.reset(token)


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        with bind_request_id(request.headers.get(REQUEST_ID_HEADER)) as request_id:
            request.state.request_id = request_id
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
