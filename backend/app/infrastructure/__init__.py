"""Infrastructure Layer — external resources and cross-cutting concerns.

Invariants:
    - Infrastructure never imports from api/
    - Driver and filesystem errors are mapped to app.core.errors types here
"""
