"""Claim status transition table and validation.

Pure functions: nothing here reads or writes storage. The repository's
compare-and-swap and the orchestrator decide when a validated edge is applied.
"""

from dataclasses import dataclass
from typing import Optional

from claim_desk.db.constants import (
    CLAIM_STATUSES,
    PURPOSE_APPROVAL,
    PURPOSE_PAYMENT,
    STATUS_APPROVED,
    STATUS_CONFIRMED,
    STATUS_PAID,
    STATUS_PAYMENT_PENDING,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_REVIEWING,
    TERMINAL_STATUSES,
)
from claim_desk.exceptions import AuthorizationDenied, InvalidTransition
from claim_desk.models.claim import Actor

PERMISSION_REVIEW = "review"
PERMISSION_PAYMENT = "payment"

TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_REVIEWING, STATUS_REJECTED, STATUS_APPROVED}),
    STATUS_REVIEWING: frozenset({STATUS_PENDING, STATUS_REJECTED, STATUS_APPROVED}),
    STATUS_APPROVED: frozenset({STATUS_CONFIRMED}),
    STATUS_CONFIRMED: frozenset({STATUS_PAYMENT_PENDING}),
    STATUS_PAYMENT_PENDING: frozenset({STATUS_PAID}),
    STATUS_REJECTED: frozenset(),
    STATUS_PAID: frozenset(),
}

# Permission needed per edge
EDGE_PERMISSIONS: dict[tuple[str, str], str] = {
    (STATUS_PENDING, STATUS_REVIEWING): PERMISSION_REVIEW,
    (STATUS_PENDING, STATUS_REJECTED): PERMISSION_REVIEW,
    (STATUS_PENDING, STATUS_APPROVED): PERMISSION_REVIEW,
    (STATUS_REVIEWING, STATUS_PENDING): PERMISSION_REVIEW,
    (STATUS_REVIEWING, STATUS_REJECTED): PERMISSION_REVIEW,
    (STATUS_REVIEWING, STATUS_APPROVED): PERMISSION_REVIEW,
    (STATUS_APPROVED, STATUS_CONFIRMED): PERMISSION_REVIEW,
    (STATUS_CONFIRMED, STATUS_PAYMENT_PENDING): PERMISSION_PAYMENT,
    (STATUS_PAYMENT_PENDING, STATUS_PAID): PERMISSION_PAYMENT,
}

# Edges that can only be taken after a verified one-time code of this purpose
OTP_GATES: dict[tuple[str, str], str] = {
    (STATUS_APPROVED, STATUS_CONFIRMED): PURPOSE_APPROVAL,
    (STATUS_PAYMENT_PENDING, STATUS_PAID): PURPOSE_PAYMENT,
}

# Entering these statuses issues a challenge for the given purpose
ISSUES_CHALLENGE: dict[str, str] = {
    STATUS_APPROVED: PURPOSE_APPROVAL,
    STATUS_PAYMENT_PENDING: PURPOSE_PAYMENT,
}


@dataclass(frozen=True)
class TransitionCheck:
    """Result of checking one requested transition."""

    current: str
    requested: str
    allowed: bool
    noop: bool = False
    reason: Optional[str] = None
    denied_by_role: bool = False


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def allowed_targets(current: str) -> list[str]:
    """Statuses reachable from current in one step, in table order."""
    targets = TRANSITIONS.get(current, frozenset())
    return [s for s in CLAIM_STATUSES if s in targets]


def requires_otp(
    current: str, requested: str, payment_otp_required: bool = True
) -> Optional[str]:
    """Purpose of the code gating this edge, or None when no code is needed."""
    purpose = OTP_GATES.get((current, requested))
    if purpose == PURPOSE_PAYMENT and not payment_otp_required:
        return None
    return purpose


def _has_permission(actor: Actor, permission: str) -> bool:
    if permission == PERMISSION_REVIEW:
        return actor.can_review
    if permission == PERMISSION_PAYMENT:
        return actor.can_pay
    return False


def check_transition(
    current: str,
    requested: str,
    actor: Actor,
    otp_verified: bool = False,
    payment_otp_required: bool = True,
) -> TransitionCheck:
    """Decide whether actor may move a claim from current to requested.

    Order of checks: actor can write at all, same-status no-op, edge exists,
    edge permission, one-time code.
    """
    if not (actor.can_review or actor.can_pay):
        return TransitionCheck(
            current, requested, allowed=False, denied_by_role=True,
            reason=f"Role {actor.role.value} cannot change claim status",
        )
    if requested not in TRANSITIONS:
        return TransitionCheck(
            current, requested, allowed=False, reason=f"Unknown status: {requested!r}"
        )
    if current == requested:
        return TransitionCheck(current, requested, allowed=True, noop=True)
    if requested not in TRANSITIONS.get(current, frozenset()):
        if is_terminal(current):
            reason = f"Claim is {current}; no further transitions are allowed"
        else:
            valid = ", ".join(allowed_targets(current)) or "none"
            reason = f"Cannot move from {current} to {requested}. Valid: {valid}"
        return TransitionCheck(current, requested, allowed=False, reason=reason)
    permission = EDGE_PERMISSIONS[(current, requested)]
    if not _has_permission(actor, permission):
        return TransitionCheck(
            current, requested, allowed=False, denied_by_role=True,
            reason=f"Role {actor.role.value} lacks {permission} permission for {current} -> {requested}",
        )
    purpose = requires_otp(current, requested, payment_otp_required)
    if purpose and not otp_verified:
        return TransitionCheck(
            current, requested, allowed=False,
            reason=f"Moving from {current} to {requested} requires a verified {purpose} code",
        )
    return TransitionCheck(current, requested, allowed=True)


def validate_transition(
    current: str,
    requested: str,
    actor: Actor,
    otp_verified: bool = False,
    payment_otp_required: bool = True,
    claim_id: str | None = None,
) -> TransitionCheck:
    """check_transition, raising AuthorizationDenied or InvalidTransition on denial."""
    check = check_transition(current, requested, actor, otp_verified, payment_otp_required)
    if check.allowed:
        return check
    if check.denied_by_role:
        raise AuthorizationDenied(check.reason or "Not allowed", claim_id=claim_id)
    raise InvalidTransition(
        check.reason or "Invalid transition",
        claim_id=claim_id,
        current_status=current,
        requested_status=requested,
    )
