"""Database layer - engine, base classes, types, and immutability."""

from milestone_kernel.db.base import UUID, Base, CreatedAtMixin, UTCDateTime, UUIDString
from milestone_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from milestone_kernel.db.types import round_money, to_amount

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "CreatedAtMixin",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "round_money",
    "to_amount",
]
