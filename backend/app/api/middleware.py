"""Request Pipeline — middleware that runs ahead of route dispatch.

Invariants:
    - Order per request: BodyLimit → RequestObserver → ReadinessGate → route
    - RequestObserver never changes the request or the response
    - ReadinessGate answers a failed connect itself (one 500, no route executed);
      the error sink never sees it

Design Decisions:
    - BaseHTTPMiddleware classes registered in main.create_app, in reverse
      order (Starlette wraps the last-added middleware outermost)
    - BodyLimit is plain ASGI: it must see body chunks before anything reads them
    - Body snapshots are built by app.core.request_summary (pure)
"""

import json
import logging
from urllib.parse import parse_qsl

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core.errors import DatabaseConnectionError, PayloadTooLargeError
from app.core.request_summary import (
    DEFAULT_THRESHOLD, should_log_body, summarize_body,
)

logger = logging.getLogger(__name__)


class BodyLimitMiddleware:
    """Reject request bodies larger than max_bytes with 413.

    A declared Content-Length is checked up front. A body without one
    (chunked transfer) is buffered as it arrives, counting bytes, and
    replayed downstream only if it stayed within the limit.
    """

    def __init__(self, app: ASGIApp, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None:
            if declared.isdigit() and int(declared) > self.max_bytes:
                await self._reject(scope, receive, send, declared)
                return
            await self.app(scope, receive, send)
            return

        chunks, received = [], 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body = message.get("body", b"")
            received += len(body)
            if received > self.max_bytes:
                await self._reject(scope, receive, send, f"{received}+")
                return
            chunks.append(body)
            if not message.get("more_body", False):
                break

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if replayed:
                return await receive()
            replayed = True
            return {"type": "http.request", "body": b"".join(chunks), "more_body": False}

        await self.app(scope, replay, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, size: str) -> None:
        error = PayloadTooLargeError(self.max_bytes)
        logger.warning(
            "Rejected oversized body (%s bytes)", size,
            extra={"method": scope["method"], "path": scope["path"], **error.log_extra()},
        )
        response = JSONResponse(
            status_code=error.http_status,
            content={"message": "Request entity too large"},
        )
        await response(scope, receive, send)


class RequestObserverMiddleware(BaseHTTPMiddleware):
    """Log method, path and (for POST/PUT) a log-safe body snapshot."""

    def __init__(self, app, threshold: int = DEFAULT_THRESHOLD):
        super().__init__(app)
        self.threshold = threshold

    async def dispatch(self, request: Request, call_next):
        method, path = request.method, request.url.path
        logger.info(
            "%s %s", method, path, extra={"method": method, "path": path},
        )
        if should_log_body(method):
            snapshot = await self._body_snapshot(request)
            logger.info(
                "Request body: %s", snapshot,
                extra={"method": method, "path": path, "body": snapshot},
            )
        return await call_next(request)

    async def _body_snapshot(self, request: Request):
        raw = await request.body()
        if not raw:
            return {}
        content_type = request.headers.get("content-type", "")
        try:
            if content_type.startswith("application/json"):
                body = json.loads(raw)
            elif content_type.startswith("application/x-www-form-urlencoded"):
                body = dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True))
            else:
                return f"[{content_type or 'unknown'} body - {len(raw)} bytes]"
        except ValueError:
            return f"[unparsable body - {len(raw)} bytes]"
        return summarize_body(body, self.threshold)


class ReadinessGateMiddleware(BaseHTTPMiddleware):
    """Ensure a live database connection before any route runs."""

    async def dispatch(self, request: Request, call_next):
        manager = request.app.state.connection_manager
        try:
            await manager.ensure_connected()
        except DatabaseConnectionError as e:
            logger.error(
                "Database connection failed: %s", e.message,
                extra={"path": request.url.path, **e.log_extra()},
            )
            return JSONResponse(
                status_code=e.http_status,
                content=e.to_response("Database connection failed"),
            )
        return await call_next(request)
