"""Database layer - engine, base classes, types, and immutability."""

from fbms_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from fbms_kernel.db.engine import create_tables, get_engine, get_session
from fbms_kernel.db.types import Money, Rate, round_money

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Rate",
    "round_money",
]
