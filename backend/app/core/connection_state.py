"""Connection State — value types for the cached database connection and process lifecycle.

Invariants:
    - ReadyState values are the raw codes reported as mongodb_state
    - Only CONNECTED is reported as "connected"; every other state is "disconnected"
    - ConnectionOptions is immutable once built from settings
"""

from dataclasses import dataclass
from enum import Enum, IntEnum


class ReadyState(IntEnum):
    """Readiness of the single cached connection slot."""
    DISCONNECTED = 0
    CONNECTED = 1
    CONNECTING = 2

    @property
    def label(self) -> str:
        return "connected" if self is ReadyState.CONNECTED else "disconnected"


class LifecyclePhase(str, Enum):
    """Process startup phases. LISTENING and FAILED are terminal."""
    INIT = "init"
    CONNECTING = "connecting"
    LISTENING = "listening"
    FAILED = "failed"


@dataclass(frozen=True)
class ConnectionOptions:
    """Non-default reliability parameters for the Mongo client."""
    server_selection_timeout_ms: int = 10_000
    socket_timeout_ms: int = 45_000
    min_pool_size: int = 5
    max_pool_size: int = 10
    max_idle_time_ms: int = 30_000

    @classmethod
    def from_settings(cls, settings) -> "ConnectionOptions":
        return cls(
            server_selection_timeout_ms=settings.server_selection_timeout_ms,
            socket_timeout_ms=settings.socket_timeout_ms,
            min_pool_size=settings.min_pool_size,
            max_pool_size=settings.max_pool_size,
            max_idle_time_ms=settings.max_idle_time_ms,
        )

    def to_client_kwargs(self) -> dict[str, int]:
        """Driver keyword arguments (camelCase, as pymongo expects)."""
        return {
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
            "socketTimeoutMS": self.socket_timeout_ms,
            "minPoolSize": self.min_pool_size,
            "maxPoolSize": self.max_pool_size,
            "maxIdleTimeMS": self.max_idle_time_ms,
        }
