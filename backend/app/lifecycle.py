"""Process Lifecycle — connect-then-listen startup and signal-driven shutdown.

Invariants:
    - Phases: INIT → CONNECTING → LISTENING, or INIT → CONNECTING → FAILED
    - The listening socket is opened only after the first successful connect
    - A failed first connect is fatal: run() returns exit status 1, no retry
    - SIGINT/SIGTERM handlers are installed before the first connect:
      close the cached connection (awaited), stop the server, exit status 0,
      whether or not a connection was ever made
    - A signal while CONNECTING cancels the attempt; the server is never built

Design Decisions:
    - GatewayServer disables uvicorn's own signal capture, which would
      re-raise the captured signal after shutdown instead of exiting 0
    - server_factory injectable: tests drive run() with a fake server
"""

import asyncio
import contextlib
import logging
import signal

import uvicorn
from fastapi import FastAPI

from app.config import Settings
from app.core.connection_state import LifecyclePhase
from app.core.errors import DatabaseConnectionError, StartupError

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class GatewayServer(uvicorn.Server):
    """uvicorn server that leaves termination signals to the lifecycle manager."""

    @contextlib.contextmanager
    def capture_signals(self):
        # LifecycleManager.run owns SIGINT/SIGTERM for the whole run
        yield


class LifecycleManager:
    """Owns startup sequencing and shutdown for one gateway process."""

    def __init__(self, app: FastAPI, settings: Settings, server_factory=None):
        self.app = app
        self.settings = settings
        self.connections = app.state.connection_manager
        self.phase = LifecyclePhase.INIT
        self._server_factory = server_factory or self._build_server
        self._server = None
        self._shutdown_task: asyncio.Task | None = None

    @property
    def stopping(self) -> bool:
        return self._shutdown_task is not None

    async def start(self) -> None:
        """First connection attempt; raises StartupError on failure."""
        self._enter(LifecyclePhase.CONNECTING)
        try:
            await self.connections.ensure_connected()
        except DatabaseConnectionError as e:
            self._enter(LifecyclePhase.FAILED)
            raise StartupError(e.message) from e

    async def run(self) -> int:
        """Start, serve until told to stop, and return the process exit status."""
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self.handle_signal, sig)
        try:
            return await self._run()
        finally:
            for sig in SHUTDOWN_SIGNALS:
                loop.remove_signal_handler(sig)

    async def _run(self) -> int:
        try:
            await self.start()
        except StartupError as e:
            logger.critical(
                e.message, extra={**e.log_extra(), "phase": self.phase.value},
            )
            return 1
        except asyncio.CancelledError:
            # shutdown() cancelled the in-flight connect
            if not self.stopping:
                raise

        if self.stopping:
            logger.info(
                "Shutdown requested before listening", extra={"phase": self.phase.value},
            )
            await self._shutdown_task
            return 0

        self._server = self._server_factory(self.app)
        self._enter(LifecyclePhase.LISTENING)
        logger.info(f"Server running on port {self.settings.port}")
        logger.info(f"API available at http://localhost:{self.settings.port}/api/auth")
        await self._server.serve()

        if self._shutdown_task is not None:
            await self._shutdown_task
        else:
            await self.connections.disconnect()
        return 0

    def handle_signal(self, sig: int) -> None:
        """Signal callback (runs on the event loop); repeated signals are ignored."""
        if self._shutdown_task is not None:
            return
        name = signal.Signals(sig).name
        logger.info(
            f"Received {name}, closing MongoDB connection...",
            extra={"signal": name},
        )
        self._shutdown_task = asyncio.get_running_loop().create_task(self.shutdown())

    async def shutdown(self) -> None:
        await self.connections.disconnect()
        if self._server is not None:
            self._server.should_exit = True

    def _enter(self, phase: LifecyclePhase) -> None:
        logger.info(f"Lifecycle phase: {phase.value}", extra={"phase": phase.value})
        self.phase = phase

    def _build_server(self, app: FastAPI) -> GatewayServer:
        config = uvicorn.Config(
            app,
            host=self.settings.host,
            port=self.settings.port,
            lifespan="on",
            log_config=None,
        )
        return GatewayServer(config)
