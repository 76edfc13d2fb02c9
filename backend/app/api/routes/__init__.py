"""Route Modules — one file per concern.

Invariants:
    - Each module defines its own APIRouter (or fallback strategy)
    - Fallback strategy is installed last in main.create_app
"""
