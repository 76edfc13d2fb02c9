"""Request dependencies for app-owned state."""

from fastapi import Request

from app.config import Settings
from app.infrastructure.database import get_connection_manager, get_database

__all__ = ["get_app_settings", "get_connection_manager", "get_database"]


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
