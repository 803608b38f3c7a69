"""SQLite connection and schema initialization."""

import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

# Tracks which database paths have had schema applied (avoid running on every connection)
_schema_initialized: set[str] = set()
_schema_lock = threading.Lock()

# Seconds a writer waits on another writer's lock before giving up
BUSY_TIMEOUT = 10.0

SCHEMA_SQL = """
-- Claims table (main record)
CREATE TABLE IF NOT EXISTS claims (
    id TEXT PRIMARY KEY,
    claimant_name TEXT NOT NULL,
    claimant_id TEXT NOT NULL,
    email TEXT NOT NULL,
    phone TEXT,
    address TEXT,
    claim_type TEXT NOT NULL,
    claim_amount REAL NOT NULL CHECK (claim_amount > 0),
    incident_date TEXT,
    incident_location TEXT,
    description TEXT,
    supporting_documents TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'pending' CHECK (
        status IN ('pending', 'reviewing', 'approved', 'confirmed', 'rejected', 'payment_pending', 'paid')
    ),
    submitted_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Audit log (state changes)
CREATE TABLE IF NOT EXISTS claim_audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    claim_id TEXT NOT NULL,
    action TEXT NOT NULL,
    old_status TEXT,
    new_status TEXT,
    actor TEXT,
    details TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (claim_id) REFERENCES claims(id)
);

-- One-time code challenges; at most one 'live' row per (claim_id, purpose)
CREATE TABLE IF NOT EXISTS otp_challenges (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    claim_id TEXT NOT NULL,
    purpose TEXT NOT NULL,
    code_salt TEXT NOT NULL,
    code_hash TEXT NOT NULL,
    state TEXT NOT NULL DEFAULT 'live',
    failed_attempts INTEGER NOT NULL DEFAULT 0,
    expires_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    consumed_at TEXT,
    FOREIGN KEY (claim_id) REFERENCES claims(id)
);

-- Bearer sessions for staff
CREATE TABLE IF NOT EXISTS staff_sessions (
    token_hash TEXT PRIMARY KEY,
    staff_id TEXT NOT NULL,
    role TEXT NOT NULL,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    revoked_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_claims_status ON claims(status);
CREATE INDEX IF NOT EXISTS idx_audit_claim ON claim_audit_log(claim_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_otp_one_live
    ON otp_challenges(claim_id, purpose) WHERE state = 'live';
"""


def get_db_path() -> str:
    """Return path to SQLite database from CLAIMS_DB_PATH env or default data/claims.db."""
    path = os.environ.get("CLAIMS_DB_PATH", "data/claims.db")
    return path


def init_db(path: str | None = None) -> None:
    """Create tables if they do not exist."""
    db_path = path or get_db_path()
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.executescript(SCHEMA_SQL)
    with _schema_lock:
        _schema_initialized.add(db_path)


def _ensure_schema(db_path: str) -> None:
    """Run schema once per path. Thread-safe."""
    with _schema_lock:
        if db_path in _schema_initialized:
            return
    # Run init outside lock to avoid holding it during I/O
    init_db(db_path)


@contextmanager
def get_connection(path: str | None = None, immediate: bool = False):
    """Context manager yielding a database connection. Ensures schema exists once per path.

    With immediate=True the write lock is taken up front (BEGIN IMMEDIATE), so
    a read-check-write sequence inside the block cannot interleave with another
    writer. The block commits on success and rolls back on any exception.
    """
    db_path = path or get_db_path()
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    _ensure_schema(db_path)
    conn = sqlite3.connect(db_path, timeout=BUSY_TIMEOUT)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        if immediate:
            conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def connection_scope(conn: sqlite3.Connection | None, path: str | None = None, immediate: bool = False):
    """Reuse the caller's connection when given, otherwise open (and commit) a new one."""
    if conn is not None:
        yield conn
        return
    with get_connection(path, immediate=immediate) as own:
        yield own
