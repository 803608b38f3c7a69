"""One-time code challenges gating approval confirmation and payment.

Protocol:
- issue/resend: supersede any live challenge for (claim_id, purpose), store a
  new one (salted hash only), commit, then dispatch the code to the claimant.
  A failed dispatch is reported on the result; the challenge stays valid.
- verify: always checks the latest challenge for the pair, inside one
  BEGIN IMMEDIATE transaction. On success the challenge is consumed and the
  caller's on_success(conn) runs in the same transaction, so consumption and
  the paired status change commit or roll back together.

Failure precedence for verify: no challenge / locked -> NoActiveChallenge,
consumed -> AlreadyConsumed, past expiry or code of a superseded challenge ->
Expired, anything else -> CodeMismatch (counted; the cap locks the challenge).
"""

import hashlib
import hmac
import logging
import secrets
import sqlite3
import string
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Optional

from claim_desk.config.settings import get_otp_config
from claim_desk.db.constants import (
    CHALLENGE_CONSUMED,
    CHALLENGE_LIVE,
    CHALLENGE_LOCKED,
    CHALLENGE_SUPERSEDED,
    OTP_PURPOSES,
)
from claim_desk.db.database import get_connection
from claim_desk.db.repository import ClaimRepository
from claim_desk.exceptions import (
    AlreadyConsumed,
    CodeMismatch,
    Expired,
    InvalidTransition,
    NoActiveChallenge,
    NotificationDispatchFailed,
    OtpError,
    ValidationFailed,
)
from claim_desk.models.claim import OtpChallenge
from claim_desk.notifications import LogNotifier, Notifier
from claim_desk.observability import get_logger, get_metrics
from claim_desk.utils.clock import to_timestamp

logger = get_logger(__name__)

# How many superseded challenges are checked to tell "old code" from "wrong code"
SUPERSEDED_LOOKBACK = 10


def generate_numeric_code(length: int = 6) -> str:
    if length < 4 or length > 10:
        raise ValueError("OTP length must be between 4 and 10")
    return "".join(secrets.choice(string.digits) for _ in range(length))


def _hash_code(salt: str, code: str) -> str:
    return hashlib.sha256(f"{salt}:{code}".encode("utf-8")).hexdigest()


def _matches(row: sqlite3.Row, code: str) -> bool:
    return hmac.compare_digest(_hash_code(row["code_salt"], code), row["code_hash"])


def _to_challenge(row: sqlite3.Row) -> OtpChallenge:
    return OtpChallenge(
        id=row["id"],
        claim_id=row["claim_id"],
        purpose=row["purpose"],
        state=row["state"],
        expires_at=row["expires_at"],
        failed_attempts=row["failed_attempts"],
        created_at=row["created_at"],
        consumed_at=row["consumed_at"],
    )


@dataclass
class IssuedChallenge:
    """A freshly issued challenge. code is the raw secret; never log it."""

    challenge: OtpChallenge
    code: str
    delivered: bool = False
    warning: Optional[str] = None


class OtpChallengeManager:
    """Issues and verifies one-time code challenges per (claim_id, purpose)."""

    def __init__(
        self,
        repository: ClaimRepository,
        notifier: Notifier | None = None,
        ttl_minutes: int | None = None,
        code_length: int | None = None,
        max_attempts: int | None = None,
    ):
        config = get_otp_config()
        self._repo = repository
        self._notifier = notifier or LogNotifier()
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else config["ttl_minutes"])
        self.code_length = code_length if code_length is not None else config["length"]
        self.max_attempts = max_attempts if max_attempts is not None else config["max_attempts"]

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @staticmethod
    def _check_purpose(purpose: str) -> str:
        if purpose not in OTP_PURPOSES:
            raise ValidationFailed(
                f"Unknown code purpose: {purpose!r}. Expected one of {', '.join(OTP_PURPOSES)}"
            )
        return purpose

    def _latest(self, conn: sqlite3.Connection, claim_id: str, purpose: str) -> sqlite3.Row | None:
        return conn.execute(
            """
            SELECT * FROM otp_challenges
            WHERE claim_id = ? AND purpose = ?
            ORDER BY id DESC LIMIT 1
            """,
            (claim_id, purpose),
        ).fetchone()

    def create_challenge(
        self, conn: sqlite3.Connection, claim_id: str, purpose: str
    ) -> tuple[OtpChallenge, str]:
        """Supersede the live challenge for the pair and store a new one.

        Runs on the caller's connection so it can share a transaction with a
        status change. Does not dispatch.
        """
        self._check_purpose(purpose)
        now = self._repo.clock()
        code = generate_numeric_code(self.code_length)
        salt = secrets.token_hex(16)
        conn.execute(
            """
            UPDATE otp_challenges SET state = ?
            WHERE claim_id = ? AND purpose = ? AND state = ?
            """,
            (CHALLENGE_SUPERSEDED, claim_id, purpose, CHALLENGE_LIVE),
        )
        cur = conn.execute(
            """
            INSERT INTO otp_challenges
                (claim_id, purpose, code_salt, code_hash, state, expires_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                claim_id,
                purpose,
                salt,
                _hash_code(salt, code),
                CHALLENGE_LIVE,
                to_timestamp(now + self.ttl),
                to_timestamp(now),
            ),
        )
        row = conn.execute("SELECT * FROM otp_challenges WHERE id = ?", (cur.lastrowid,)).fetchone()
        self._repo.log_event(claim_id, f"{purpose}_code_issued", conn=conn)
        return _to_challenge(row), code

    def dispatch(self, claim: dict[str, Any], challenge: OtpChallenge, code: str) -> IssuedChallenge:
        """Send the code to the claimant. Failure is reported, not raised."""
        claim_logger = get_logger(__name__, claim_id=claim["id"])
        purpose = challenge.purpose.value
        issued = IssuedChallenge(challenge=challenge, code=code)
        try:
            self._notifier.send_otp(claim, purpose, code, challenge.expires_at)
        except NotificationDispatchFailed as e:
            get_metrics().record_dispatch_failure(claim["id"])
            claim_logger.log_event(
                "code_dispatch_failed", level=logging.WARNING, purpose=purpose, error=e.message
            )
            issued.warning = (
                f"The {purpose} code may not have reached the claimant: {e.message}. "
                "The code remains valid; resend or assist the claimant."
            )
            return issued
        issued.delivered = True
        claim_logger.log_event("code_dispatched", purpose=purpose, notifier=self._notifier.name)
        return issued

    def issue(
        self, claim_id: str, purpose: str, require_status: str | None = None
    ) -> IssuedChallenge:
        """Create a fresh challenge for the pair (invalidating the previous one) and dispatch it.

        With require_status, the claim must still be in that status when the
        challenge is written, or InvalidTransition is raised and nothing changes.
        """
        self._check_purpose(purpose)
        with self._repo.transaction() as conn:
            claim = self._repo.require_claim(claim_id, conn=conn)
            if require_status is not None and claim["status"] != require_status:
                raise InvalidTransition(
                    f"Claim is {claim['status']}; a {purpose} code can only be issued while it is {require_status}",
                    claim_id=claim_id,
                    current_status=claim["status"],
                )
            challenge, code = self.create_challenge(conn, claim_id, purpose)
        return self.dispatch(claim, challenge, code)

    def resend(
        self, claim_id: str, purpose: str, require_status: str | None = None
    ) -> IssuedChallenge:
        """Same as issue; explicitly re-triggers dispatch with a new code."""
        return self.issue(claim_id, purpose, require_status=require_status)

    def live_challenge(self, claim_id: str, purpose: str) -> OtpChallenge | None:
        """The current verifiable challenge for the pair, or None."""
        self._check_purpose(purpose)
        now = self._repo.now()
        with get_connection(self._repo.db_path) as conn:
            row = self._latest(conn, claim_id, purpose)
        if row is None or row["state"] != CHALLENGE_LIVE or row["expires_at"] <= now:
            return None
        return _to_challenge(row)

    def _matches_superseded(
        self, conn: sqlite3.Connection, claim_id: str, purpose: str, code: str
    ) -> bool:
        rows = conn.execute(
            """
            SELECT code_salt, code_hash FROM otp_challenges
            WHERE claim_id = ? AND purpose = ? AND state = ?
            ORDER BY id DESC LIMIT ?
            """,
            (claim_id, purpose, CHALLENGE_SUPERSEDED, SUPERSEDED_LOOKBACK),
        ).fetchall()
        return any(_matches(r, code) for r in rows)

    def verify(
        self,
        claim_id: str,
        purpose: str,
        submitted_code: str,
        on_success: Callable[[sqlite3.Connection], Any] | None = None,
    ) -> OtpChallenge:
        """Verify a submitted code against the latest challenge and consume it.

        Raises NoActiveChallenge, AlreadyConsumed, Expired or CodeMismatch.
        Exceptions raised by on_success roll back the consumption.
        """
        self._check_purpose(purpose)
        code = (submitted_code or "").strip()
        failure: OtpError | None = None
        with self._repo.transaction() as conn:
            now = self._repo.now()
            row = self._latest(conn, claim_id, purpose)
            if row is None:
                failure = NoActiveChallenge(
                    f"No {purpose} code has been issued for claim {claim_id}", claim_id=claim_id
                )
            elif row["state"] == CHALLENGE_CONSUMED:
                failure = AlreadyConsumed(
                    f"The {purpose} code for claim {claim_id} was already used", claim_id=claim_id
                )
            elif row["state"] != CHALLENGE_LIVE:
                failure = NoActiveChallenge(
                    f"The {purpose} code for claim {claim_id} is no longer valid; request a new one",
                    claim_id=claim_id,
                )
            elif row["expires_at"] <= now:
                failure = Expired(
                    f"The {purpose} code for claim {claim_id} has expired", claim_id=claim_id
                )
            elif code and _matches(row, code):
                conn.execute(
                    "UPDATE otp_challenges SET state = ?, consumed_at = ? WHERE id = ? AND state = ?",
                    (CHALLENGE_CONSUMED, now, row["id"], CHALLENGE_LIVE),
                )
                self._repo.log_event(claim_id, f"{purpose}_code_verified", conn=conn)
                if on_success is not None:
                    on_success(conn)
                consumed = conn.execute(
                    "SELECT * FROM otp_challenges WHERE id = ?", (row["id"],)
                ).fetchone()
                return _to_challenge(consumed)
            elif code and self._matches_superseded(conn, claim_id, purpose, code):
                failure = Expired(
                    f"That {purpose} code was replaced by a newer one", claim_id=claim_id
                )
            else:
                attempts = row["failed_attempts"] + 1
                locked = attempts >= self.max_attempts
                conn.execute(
                    "UPDATE otp_challenges SET failed_attempts = ?, state = ? WHERE id = ?",
                    (attempts, CHALLENGE_LOCKED if locked else CHALLENGE_LIVE, row["id"]),
                )
                self._repo.log_event(
                    claim_id,
                    f"{purpose}_code_rejected",
                    details=f"attempt {attempts}/{self.max_attempts}" + (", locked" if locked else ""),
                    conn=conn,
                )
                remaining = max(self.max_attempts - attempts, 0)
                failure = CodeMismatch(
                    f"Incorrect {purpose} code for claim {claim_id}"
                    + ("; too many attempts, request a new code" if locked else ""),
                    claim_id=claim_id,
                    attempts_remaining=remaining,
                )
        # Reached only on failure; the block above committed any attempt counter
        logger.info("Code verification failed for claim %s: %s", claim_id, failure.code)
        raise failure
