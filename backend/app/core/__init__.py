"""Core Layer — pure domain types and functions, no IO, no async.

Invariants:
    - No module in core/ imports from api/ or infrastructure/
"""
