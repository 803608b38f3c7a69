"""Claim repository: intake, compare-and-swap status updates, audit log and listing."""

import json
import sqlite3
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from claim_desk.db.constants import STATUS_PENDING
from claim_desk.db.database import connection_scope, get_connection
from claim_desk.exceptions import NotFound, StaleState
from claim_desk.models.claim import ClaimInput
from claim_desk.utils.clock import Clock, to_timestamp, utc_now


def _generate_claim_id(prefix: str = "CLM") -> str:
    """Generate a unique claim ID."""
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


def _row_to_claim(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    data["supporting_documents"] = json.loads(data.get("supporting_documents") or "[]")
    return data


class ClaimRepository:
    """Repository for claim persistence and audit logging.

    Status is only ever written through transition_status, which checks the
    caller's expected status in the same UPDATE statement.
    """

    def __init__(self, db_path: str | None = None, clock: Clock = utc_now):
        self._db_path = db_path
        self._clock = clock

    @property
    def db_path(self) -> str | None:
        return self._db_path

    @property
    def clock(self) -> Clock:
        return self._clock

    def now(self) -> str:
        return to_timestamp(self._clock())

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """One connection holding the write lock; commits or rolls back as a unit."""
        with get_connection(self._db_path, immediate=True) as conn:
            yield conn

    def create_claim(self, claim_input: ClaimInput) -> str:
        """Insert new claim, generate ID, log 'created' audit entry. Returns claim_id."""
        claim_id = _generate_claim_id()
        now = self.now()
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO claims (
                    id, claimant_name, claimant_id, email, phone, address,
                    claim_type, claim_amount, incident_date, incident_location,
                    description, supporting_documents, status, submitted_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    claim_id,
                    claim_input.claimant_name,
                    claim_input.claimant_id,
                    claim_input.email,
                    claim_input.phone,
                    claim_input.address,
                    claim_input.claim_type.value,
                    claim_input.claim_amount,
                    claim_input.incident_date,
                    claim_input.incident_location,
                    claim_input.description,
                    json.dumps(list(claim_input.supporting_documents)),
                    STATUS_PENDING,
                    now,
                    now,
                ),
            )
            conn.execute(
                """
                INSERT INTO claim_audit_log (claim_id, action, new_status, details, created_at)
                VALUES (?, 'created', ?, ?, ?)
                """,
                (claim_id, STATUS_PENDING, "Claim record created", now),
            )
        return claim_id

    def get_claim(
        self, claim_id: str, conn: sqlite3.Connection | None = None
    ) -> dict[str, Any] | None:
        """Fetch claim by ID."""
        with connection_scope(conn, self._db_path) as c:
            row = c.execute("SELECT * FROM claims WHERE id = ?", (claim_id,)).fetchone()
        if row is None:
            return None
        return _row_to_claim(row)

    def require_claim(
        self, claim_id: str, conn: sqlite3.Connection | None = None
    ) -> dict[str, Any]:
        claim = self.get_claim(claim_id, conn=conn)
        if claim is None:
            raise NotFound(f"Claim not found: {claim_id}", claim_id=claim_id)
        return claim

    def list_claims(self, status: str | None = None) -> list[dict[str, Any]]:
        """All claims, newest submission first, optionally restricted to one status."""
        with get_connection(self._db_path) as conn:
            if status:
                rows = conn.execute(
                    "SELECT * FROM claims WHERE status = ? ORDER BY submitted_at DESC, id",
                    (status,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM claims ORDER BY submitted_at DESC, id"
                ).fetchall()
        return [_row_to_claim(r) for r in rows]

    def transition_status(
        self,
        claim_id: str,
        expected_status: str,
        new_status: str,
        actor: str | None = None,
        details: str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, Any]:
        """Move claim from expected_status to new_status or raise StaleState.

        Only status and updated_at are written. Returns the updated claim.
        """
        with connection_scope(conn, self._db_path, immediate=True) as c:
            now = self.now()
            cur = c.execute(
                """
                UPDATE claims
                SET status = ?, updated_at = MAX(?, submitted_at)
                WHERE id = ? AND status = ?
                """,
                (new_status, now, claim_id, expected_status),
            )
            if cur.rowcount == 0:
                current = self.get_claim(claim_id, conn=c)
                if current is None:
                    raise NotFound(f"Claim not found: {claim_id}", claim_id=claim_id)
                raise StaleState(
                    f"Claim {claim_id} is {current['status']}, expected {expected_status}",
                    claim_id=claim_id,
                    expected_status=expected_status,
                    actual_status=current["status"],
                )
            c.execute(
                """
                INSERT INTO claim_audit_log
                    (claim_id, action, old_status, new_status, actor, details, created_at)
                VALUES (?, 'status_changed', ?, ?, ?, ?, ?)
                """,
                (claim_id, expected_status, new_status, actor, details or "", now),
            )
            return self.require_claim(claim_id, conn=c)

    def log_event(
        self,
        claim_id: str,
        action: str,
        actor: str | None = None,
        details: str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        """Append a non-status audit entry (e.g. code issued, verification failed)."""
        with connection_scope(conn, self._db_path) as c:
            c.execute(
                """
                INSERT INTO claim_audit_log (claim_id, action, actor, details, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (claim_id, action, actor, details or "", self.now()),
            )

    def get_claim_history(self, claim_id: str) -> list[dict[str, Any]]:
        """Get audit log entries for a claim."""
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT id, claim_id, action, old_status, new_status, actor, details, created_at
                FROM claim_audit_log
                WHERE claim_id = ?
                ORDER BY id ASC
                """,
                (claim_id,),
            ).fetchall()
        return [dict(r) for r in rows]
