"""Diagnostic Routes — root status, server test, and detailed health document.

Invariants:
    - Database readiness in every body is derived from ReadyState
    - /api/health reports configuration presence flags, never values
    - Each route answers its own failures with a 500 {message, error, ...};
      nothing here escalates to the error sink
"""

import logging
import time
from datetime import datetime, timezone

import psutil
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.api.dependencies import get_app_settings, get_connection_manager
from app.config import Settings
from app.core.errors import DatabaseConnectionError
from app.infrastructure.database import ConnectionManager

logger = logging.getLogger(__name__)
router = APIRouter(tags=["diagnostics"])

_PROCESS = psutil.Process()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def process_uptime() -> float:
    """Seconds since this process started."""
    return round(time.time() - _PROCESS.create_time(), 3)


def memory_snapshot() -> dict[str, int]:
    info = _PROCESS.memory_info()
    return {"rss": info.rss, "vms": info.vms}


@router.get("/")
async def root_status(
    manager: ConnectionManager = Depends(get_connection_manager),
    settings: Settings = Depends(get_app_settings),
):
    try:
        await manager.ensure_connected()
    except DatabaseConnectionError as e:
        return JSONResponse(
            status_code=e.http_status,
            content=e.to_response(
                "Auth API is running but database connection failed!",
            ),
        )
    return {
        "message": "Auth API is running!",
        "database": manager.state.label,
        "version": settings.api_version,
    }


@router.get("/api/test")
async def server_test(
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Confirm the server answers and the cached connection still round-trips."""
    try:
        await manager.ping()
    except DatabaseConnectionError as e:
        logger.error("Server test failed: %s", e.message, extra=e.log_extra())
        return JSONResponse(
            status_code=e.http_status,
            content=e.to_response("Server test failed"),
        )
    return {
        "message": "Server is working!",
        "database": manager.state.label,
        "timestamp": _now_iso(),
    }


@router.get("/api/health", status_code=status.HTTP_200_OK)
async def health_check(
    manager: ConnectionManager = Depends(get_connection_manager),
    settings: Settings = Depends(get_app_settings),
):
    """Detailed health document: database, process and configuration state."""
    try:
        await manager.ensure_connected()
    except DatabaseConnectionError as e:
        logger.error(
            "Error in health check endpoint: %s", e.message, extra=e.log_extra(),
        )
        return JSONResponse(
            status_code=e.http_status,
            content={
                **e.to_response("Health check failed"),
                "mongodb": "disconnected",
            },
        )
    return {
        "status": "ok",
        "timestamp": _now_iso(),
        "environment": settings.node_env,
        "mongodb": manager.state.label,
        "mongodb_state": int(manager.state),
        "uptime": process_uptime(),
        "memory": memory_snapshot(),
        "env_vars": settings.presence_flags(),
    }
