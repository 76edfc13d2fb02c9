"""Request Summary — log-safe snapshots of request bodies.

Invariants:
    - Input body is never mutated (shallow copy only)
    - Only recognized image-carrying fields are elided, and only when they are
      strings longer than the threshold
    - Credential fields are always redacted, whatever their value
"""

from typing import Any

LARGE_FIELDS = ("profileImage", "avatar", "image")
SECRET_FIELDS = ("password", "currentPassword", "newPassword", "confirmPassword")
REDACTED = "[redacted]"
DEFAULT_THRESHOLD = 100
LOGGED_METHODS = frozenset({"POST", "PUT"})


def should_log_body(method: str) -> bool:
    return method.upper() in LOGGED_METHODS


def elide_placeholder(length: int) -> str:
    return f"[Base64 image data - {length} chars]"


def summarize_body(
    body: Any,
    threshold: int = DEFAULT_THRESHOLD,
    fields: tuple[str, ...] = LARGE_FIELDS,
) -> Any:
    """Return a shallow copy of body with oversized image fields replaced
    and credential fields redacted.

    Non-dict bodies (lists, scalars) are returned unchanged.
    """
    if not isinstance(body, dict):
        return body
    snapshot = dict(body)
    for name in fields:
        value = snapshot.get(name)
        if isinstance(value, str) and len(value) > threshold:
            snapshot[name] = elide_placeholder(len(value))
    for name in SECRET_FIELDS:
        if name in snapshot:
            snapshot[name] = REDACTED
    return snapshot
