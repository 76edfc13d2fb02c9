"""Error Hierarchy — typed, categorized exceptions for all gateway failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - to_response() produces the gateway envelope {message, error}
    - log_extra() carries code, category and severity into structured logs
    - Route-level failures (HandlerError) are plain exceptions; only the error
      sink catches them

Design Decisions:
    - Single hierarchy with GatewayError base: middleware and routes catch one type
    - DatabaseConnectionError, not ConnectionError: the builtin name is taken
"""

from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    DATABASE = "database"
    SIDE_CHANNEL = "side_channel"
    STARTUP = "startup"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self, summary: str) -> dict:
        """Convert to the gateway REST error envelope."""
        return {"message": summary, "error": self.message}

    def log_extra(self) -> dict:
        """Structured log fields for this error."""
        return {
            "error_code": self.code,
            "error_category": self.category.value,
            "severity": self.severity.value,
            "error_time": self.context.timestamp.isoformat(),
        }


class DatabaseConnectionError(GatewayError):
    """Database could not be reached or the connection could not be established."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "DATABASE_CONNECTION_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 500,
        )


class SinkWriteError(GatewayError):
    """Persisting an ErrorRecord to the side channel failed."""
    def __init__(self, message: str, destination: str, context: ErrorContext | None = None):
        super().__init__(
            f"Could not write error record to {destination}: {message}",
            "SINK_WRITE_ERROR", ErrorCategory.SIDE_CHANNEL,
            ErrorSeverity.WARNING, context, 500,
        )
        self.destination = destination


class StartupError(GatewayError):
    """Initial database connection failed during boot."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Failed to start server: {message}",
            "STARTUP_ERROR", ErrorCategory.STARTUP,
            ErrorSeverity.CRITICAL, context, 500,
        )


class PayloadTooLargeError(GatewayError):
    """Request body exceeded the configured limit."""
    def __init__(self, limit: int, context: ErrorContext | None = None):
        super().__init__(
            f"Request body exceeds {limit} bytes",
            "PAYLOAD_TOO_LARGE", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 413,
        )
        self.limit = limit
