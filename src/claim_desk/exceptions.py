"""Domain errors raised by the claim workflow.

Each error carries a stable ``code`` so the REST layer can serialize it and the
HTTP client can rebuild the same exception on the other side.
"""

from typing import Any


class ClaimDeskError(Exception):
    """Base class for all claim workflow errors."""

    code = "claim_desk_error"

    def __init__(self, message: str, claim_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.claim_id = claim_id

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.claim_id:
            data["claim_id"] = self.claim_id
        return data


class NotFound(ClaimDeskError):
    code = "not_found"


class ValidationFailed(ClaimDeskError):
    code = "validation_failed"


class InvalidTransition(ClaimDeskError):
    """Requested status edge is not in the transition table."""

    code = "invalid_transition"

    def __init__(
        self,
        message: str,
        claim_id: str | None = None,
        current_status: str | None = None,
        requested_status: str | None = None,
    ):
        super().__init__(message, claim_id)
        self.current_status = current_status
        self.requested_status = requested_status


class StaleState(ClaimDeskError):
    """Claim status changed between the caller's read and its write."""

    code = "stale_state"

    def __init__(
        self,
        message: str,
        claim_id: str | None = None,
        expected_status: str | None = None,
        actual_status: str | None = None,
    ):
        super().__init__(message, claim_id)
        self.expected_status = expected_status
        self.actual_status = actual_status

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.actual_status:
            data["actual_status"] = self.actual_status
        return data


class AuthenticationRequired(ClaimDeskError):
    code = "authentication_required"


class AuthorizationDenied(ClaimDeskError):
    code = "authorization_denied"


class NotificationDispatchFailed(ClaimDeskError):
    """The code could not be delivered. The challenge itself stays valid."""

    code = "notification_dispatch_failed"


class OtpError(ClaimDeskError):
    """Base class for one-time code verification failures."""

    code = "otp_error"


class NoActiveChallenge(OtpError):
    code = "no_active_challenge"


class Expired(OtpError):
    code = "expired"


class CodeMismatch(OtpError):
    code = "code_mismatch"

    def __init__(
        self,
        message: str,
        claim_id: str | None = None,
        attempts_remaining: int | None = None,
    ):
        super().__init__(message, claim_id)
        self.attempts_remaining = attempts_remaining

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.attempts_remaining is not None:
            data["attempts_remaining"] = self.attempts_remaining
        return data


class AlreadyConsumed(OtpError):
    code = "already_consumed"


ERRORS_BY_CODE: dict[str, type[ClaimDeskError]] = {
    cls.code: cls
    for cls in (
        NotFound,
        ValidationFailed,
        InvalidTransition,
        StaleState,
        AuthenticationRequired,
        AuthorizationDenied,
        NotificationDispatchFailed,
        NoActiveChallenge,
        Expired,
        CodeMismatch,
        AlreadyConsumed,
    )
}


def error_from_payload(payload: dict[str, Any]) -> ClaimDeskError:
    """Rebuild a domain error from an API error body."""
    cls = ERRORS_BY_CODE.get(str(payload.get("error", "")), ClaimDeskError)
    message = str(payload.get("message") or payload.get("detail") or "Request failed")
    claim_id = payload.get("claim_id")
    if cls is StaleState:
        return StaleState(message, claim_id=claim_id, actual_status=payload.get("actual_status"))
    if cls is CodeMismatch:
        return CodeMismatch(
            message, claim_id=claim_id, attempts_remaining=payload.get("attempts_remaining")
        )
    return cls(message, claim_id=claim_id)
