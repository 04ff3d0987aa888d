"""Database layer - engine, base classes, and transactional scopes."""

from billing_kernel.db.base import UUID, Base, TrackedBase, UUIDString, enum_type
from billing_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    run_in_transaction,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "run_in_transaction",
    "session_scope",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "enum_type",
]
