"""SQLite database module for claim persistence, challenges, sessions and audit logging."""

from claim_desk.db.database import get_connection, get_db_path, init_db
from claim_desk.db.repository import ClaimRepository
from claim_desk.db.sessions import StaffSessionStore

__all__ = [
    "ClaimRepository",
    "StaffSessionStore",
    "get_connection",
    "get_db_path",
    "init_db",
]
