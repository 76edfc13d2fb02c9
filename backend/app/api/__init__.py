"""API Layer — FastAPI routes, middleware and error handling.

Invariants:
    - Routes and middleware registered explicitly in main.create_app (no auto-discovery)
    - All endpoints return JSON, except static client files
"""
