"""Connection Manager — cached MongoDB connection with connect-or-reuse semantics.

Invariants:
    - At most one live client per manager; a reconnect tears down the previous
      handle exactly once before creating the next
    - A failed connect is never cached: state returns to DISCONNECTED and the
      partial client is closed
    - Concurrent callers during a connect share one in-flight attempt (single-flight)
    - disconnect() is idempotent and safe when nothing was ever connected

Design Decisions:
    - Owned object on app.state instead of a module global: the gate, routes and
      lifecycle all receive the same instance (ADR: no hidden global state)
    - Readiness tracked by the manager and downgraded by a topology listener,
      so "connected" reflects what the driver last reported
    - client_factory injectable: tests run against an in-memory fake client
"""

import asyncio
import logging

from fastapi import Request
from pymongo import AsyncMongoClient, monitoring
from pymongo.errors import PyMongoError

from app.core.connection_state import ConnectionOptions, ReadyState
from app.core.errors import DatabaseConnectionError

logger = logging.getLogger(__name__)


class _TopologyWatcher(monitoring.TopologyListener):
    """Downgrades the manager's readiness when the driver loses every readable server."""

    def __init__(self, manager: "ConnectionManager"):
        self._manager = manager
        self.client = None

    def opened(self, event):
        pass

    def description_changed(self, event):
        if self.client is None:
            return
        if not event.new_description.has_readable_server():
            self._manager._mark_stale(self.client, "no readable server in topology")

    def closed(self, event):
        pass


class ConnectionManager:
    """Holds the process-wide MongoDB client and its readiness state."""

    def __init__(
        self,
        uri: str | None,
        database_name: str = "auth",
        options: ConnectionOptions | None = None,
        client_factory=AsyncMongoClient,
    ):
        self._uri = uri
        self._database_name = database_name
        self._options = options or ConnectionOptions()
        self._client_factory = client_factory
        self._client = None
        self._state = ReadyState.DISCONNECTED
        self._inflight: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "ConnectionManager":
        return cls(
            settings.mongodb_uri,
            settings.mongodb_database,
            ConnectionOptions.from_settings(settings),
            **kwargs,
        )

    @property
    def state(self) -> ReadyState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._state is ReadyState.CONNECTED

    @property
    def database(self):
        """Default database named in the URI, else the configured one."""
        if self._client is None:
            raise DatabaseConnectionError("No active database connection")
        return self._client.get_default_database(default=self._database_name)

    async def ensure_connected(self):
        """Return the cached client, connecting (or reconnecting) if needed."""
        if self.is_connected:
            logger.debug("Using cached MongoDB connection")
            return self._client
        if self._inflight is None:
            self._inflight = asyncio.create_task(self._connect())
        else:
            logger.debug("Joining in-flight MongoDB connection attempt")
        return await asyncio.shield(self._inflight)

    async def ping(self) -> None:
        """Round-trip to the server on the cached client.

        A failed ping marks the connection stale so the next
        ensure_connected() reconnects.
        """
        client = self._client
        if client is None:
            raise DatabaseConnectionError("No active database connection")
        try:
            await client.admin.command("ping")
        except PyMongoError as e:
            self._mark_stale(client, str(e))
            raise DatabaseConnectionError(str(e)) from e

    async def disconnect(self) -> None:
        """Close the cached client, cancelling any in-flight connect first."""
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            inflight.cancel()
            await asyncio.wait({inflight})
            # A task cancelled before its first step never reaches its finally.
            if self._inflight is inflight:
                self._inflight = None
        await self._teardown()

    async def _connect(self):
        try:
            if self._client is not None:
                await self._teardown()
            if not self._uri:
                raise DatabaseConnectionError("MONGODB_URI is not set")

            logger.info("Creating new MongoDB connection...")
            self._state = ReadyState.CONNECTING
            watcher = _TopologyWatcher(self)
            client = None
            connected = False
            try:
                client = self._client_factory(
                    self._uri,
                    event_listeners=[watcher],
                    **self._options.to_client_kwargs(),
                )
                await client.admin.command("ping")
                connected = True
            except PyMongoError as e:
                logger.error("MongoDB connection error: %s", e)
                raise DatabaseConnectionError(str(e)) from e
            finally:
                if not connected:
                    self._state = ReadyState.DISCONNECTED
                    await self._close_quietly(client)

            watcher.client = client
            self._client = client
            self._state = ReadyState.CONNECTED
            logger.info("Connected to MongoDB successfully")
            return client
        finally:
            self._inflight = None

    async def _teardown(self) -> None:
        client, self._client = self._client, None
        self._state = ReadyState.DISCONNECTED
        if client is None:
            return
        logger.info("Closing MongoDB connection")
        await self._close_quietly(client)

    def _mark_stale(self, client, reason: str) -> None:
        if client is self._client and self._state is ReadyState.CONNECTED:
            logger.warning("MongoDB connection no longer ready: %s", reason)
            self._state = ReadyState.DISCONNECTED

    @staticmethod
    async def _close_quietly(client) -> None:
        if client is None:
            return
        try:
            await client.close()
        except PyMongoError as e:
            logger.warning("Error while closing MongoDB client: %s", e)


def get_connection_manager(request: Request) -> ConnectionManager:
    """FastAPI dependency for the app-owned connection manager."""
    return request.app.state.connection_manager


async def get_database(request: Request):
    """FastAPI dependency for the database handle (forces a live connection)."""
    manager = get_connection_manager(request)
    await manager.ensure_connected()
    return manager.database
