"""Database infrastructure for the voucher kernel."""

from voucher_kernel.db.base import Base, UUIDString
from voucher_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
