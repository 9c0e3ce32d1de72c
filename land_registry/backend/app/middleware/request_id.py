# backend/app/middleware/request_id.py
from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

MAX_REQUEST_ID_LEN = 64


def get_request_id() -> str | None:
    return request_id_ctx.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Per-request correlation id, echoed back in X-Request-ID.

    An incoming X-Request-ID is reused (truncated); otherwise a UUID4 is
    generated. The id lives in a ContextVar for the JSON log formatter and
    on request.state for handlers that want to copy it into audit metadata.
    """

    header_out = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = (request.headers.get("X-Request-ID") or "").strip()[:MAX_REQUEST_ID_LEN]
        if not rid:
            rid = str(uuid.uuid4())

        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        try:
            resp = await call_next(request)
            resp.headers[self.header_out] = rid
            return resp
        finally:
            request_id_ctx.reset(token)
