"""Auth Mount Point — the prefix under which the credential service's handlers live.

Invariants:
    - The gateway owns the /api/auth prefix only; handlers are supplied by the
      auth collaborator (create_app(auth_router=...)) or included into this router
    - Handlers reach the cached connection through get_database, never a new client
"""

from fastapi import APIRouter

AUTH_PREFIX = "/api/auth"

router = APIRouter(tags=["auth"])
