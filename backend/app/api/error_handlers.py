"""Error Handlers — terminal error sink and validation handler for the gateway.

Invariants:
    - Unhandled route errors → 500, verbose (message + stack) outside
      production, exactly {"message": "Something went wrong!"} in production
    - The side-channel write is best-effort; its failure never reaches the client
    - RequestValidationError → 400 with field-level details

Design Decisions:
    - Error sink is the innermost middleware, not an exception_handler(Exception):
      Starlette re-raises from ServerErrorMiddleware after responding, which
      would log every failure twice under uvicorn
    - Extracted from main.py (ADR: keep app factory small)
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.infrastructure.error_sink import ErrorLogSink, ErrorRecord

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "Something went wrong!"


class ErrorSinkMiddleware(BaseHTTPMiddleware):
    """Catch anything a route raised: log, persist, respond 500."""

    def __init__(self, app, sink: ErrorLogSink, verbose: bool):
        super().__init__(app)
        self.sink = sink
        self.verbose = verbose

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            return self._handle(request, exc)

    def _handle(self, request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Server error on {request.url.path}: {exc}",
            extra={"method": request.method, "path": request.url.path},
            exc_info=exc,
        )
        record = ErrorRecord.from_exception(
            exc, request.url.path, request.method, request.headers,
        )
        self.sink.record_best_effort(record)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=build_error_body(record, self.verbose),
        )


def build_error_body(record: ErrorRecord, verbose: bool) -> dict:
    if not verbose:
        return {"message": GENERIC_MESSAGE}
    return {
        "message": GENERIC_MESSAGE,
        "error": record.message,
        "stack": record.stack,
    }


def register_error_handlers(app: FastAPI) -> None:
    """Register request validation handler on the FastAPI app."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        """Handle Pydantic validation errors."""
        logger.warning(
            f"Validation error on {request.url.path}: {exc.errors()}",
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_build_validation_error_response(exc),
        )


def _build_validation_error_response(exc: RequestValidationError) -> dict:
    """Build structured validation error response."""
    return {
        "message": "Invalid request data",
        "errors": [
            {
                "field": ".".join(str(loc) for loc in e["loc"]),
                "message": e["msg"],
                "type": e["type"],
            }
            for e in exc.errors()
        ],
    }
