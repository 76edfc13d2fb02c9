"""Error Side Channel — best-effort persistence of unhandled request failures.

Invariants:
    - write() raises SinkWriteError, never OSError/TypeError
    - record_best_effort() never raises; a failed write is logged and dropped
    - Credential headers are redacted before the record leaves the process
"""

import json
import logging
import traceback
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from app.core.errors import SinkWriteError

logger = logging.getLogger(__name__)

REDACTED_HEADERS = frozenset({"authorization", "cookie", "proxy-authorization"})


@dataclass
class ErrorRecord:
    """Snapshot of one unhandled failure."""
    message: str
    stack: str
    path: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    time: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
    )

    @classmethod
    def from_exception(cls, exc: BaseException, path: str, method: str, headers) -> "ErrorRecord":
        return cls(
            message=str(exc),
            stack=format_stack(exc),
            path=path,
            method=method,
            headers=redact_headers(headers),
        )


def format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def redact_headers(headers) -> dict[str, str]:
    return {
        k: "[redacted]" if k.lower() in REDACTED_HEADERS else v
        for k, v in dict(headers).items()
    }


class ErrorLogSink:
    """Overwrites a fixed local file with the latest ErrorRecord."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def write(self, record: ErrorRecord) -> None:
        try:
            payload = json.dumps(asdict(record), indent=2)
            self.path.write_text(payload, encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            raise SinkWriteError(str(e), str(self.path)) from e

    def record_best_effort(self, record: ErrorRecord) -> bool:
        """Write record; returns False (after logging) if the write failed."""
        try:
            self.write(record)
        except SinkWriteError as e:
            logger.error(
                "Could not write error to file: %s", e.message,
                extra=e.log_extra(),
            )
            return False
        return True
