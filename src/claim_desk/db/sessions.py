"""Staff bearer sessions. Tokens are stored hashed; the raw token is returned once."""

import hashlib
import secrets
from datetime import timedelta

from claim_desk.config.settings import SESSION_TTL_HOURS
from claim_desk.db.constants import STAFF_ROLES
from claim_desk.db.database import get_connection
from claim_desk.exceptions import AuthenticationRequired, ValidationFailed
from claim_desk.models.claim import Actor
from claim_desk.utils.clock import Clock, to_timestamp, utc_now


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class StaffSessionStore:
    """Issue, resolve and revoke staff sessions."""

    def __init__(
        self,
        db_path: str | None = None,
        ttl_hours: int | None = None,
        clock: Clock = utc_now,
    ):
        self._db_path = db_path
        self._ttl = timedelta(hours=ttl_hours if ttl_hours is not None else SESSION_TTL_HOURS)
        self._clock = clock

    def create_session(self, staff_id: str, role: str) -> str:
        """Create a session and return the raw bearer token."""
        role = (role or "").strip().lower()
        if role not in STAFF_ROLES:
            raise ValidationFailed(f"Unknown role: {role!r}. Expected one of {', '.join(STAFF_ROLES)}")
        if not staff_id or not staff_id.strip():
            raise ValidationFailed("staff_id is required")
        token = secrets.token_urlsafe(32)
        now = self._clock()
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO staff_sessions (token_hash, staff_id, role, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    _hash_token(token),
                    staff_id.strip(),
                    role,
                    to_timestamp(now),
                    to_timestamp(now + self._ttl),
                ),
            )
        return token

    def resolve(self, token: str | None) -> Actor:
        """Return the actor for a live token or raise AuthenticationRequired."""
        if not token:
            raise AuthenticationRequired("Authentication required")
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT staff_id, role, expires_at, revoked_at FROM staff_sessions WHERE token_hash = ?",
                (_hash_token(token),),
            ).fetchone()
        if row is None or row["revoked_at"] is not None:
            raise AuthenticationRequired("Invalid session")
        if row["expires_at"] <= to_timestamp(self._clock()):
            raise AuthenticationRequired("Session expired")
        return Actor(staff_id=row["staff_id"], role=row["role"])

    def revoke(self, token: str) -> bool:
        """Revoke a session. Returns False when the token was unknown or already revoked."""
        with get_connection(self._db_path) as conn:
            cur = conn.execute(
                "UPDATE staff_sessions SET revoked_at = ? WHERE token_hash = ? AND revoked_at IS NULL",
                (to_timestamp(self._clock()), _hash_token(token)),
            )
        return cur.rowcount > 0
