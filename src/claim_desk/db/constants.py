"""Claim status, OTP purpose and staff role constants.

rejected and paid are terminal: once a claim reaches either it is retained
but never moves again.
"""

STATUS_PENDING = "pending"
STATUS_REVIEWING = "reviewing"
STATUS_APPROVED = "approved"
STATUS_CONFIRMED = "confirmed"
STATUS_REJECTED = "rejected"
STATUS_PAYMENT_PENDING = "payment_pending"
STATUS_PAID = "paid"

# All allowed claim statuses (single source of truth for validation/docs)
CLAIM_STATUSES = (
    STATUS_PENDING,
    STATUS_REVIEWING,
    STATUS_APPROVED,
    STATUS_CONFIRMED,
    STATUS_REJECTED,
    STATUS_PAYMENT_PENDING,
    STATUS_PAID,
)

TERMINAL_STATUSES = frozenset({STATUS_REJECTED, STATUS_PAID})

PURPOSE_APPROVAL = "approval"
PURPOSE_PAYMENT = "payment"

OTP_PURPOSES = (PURPOSE_APPROVAL, PURPOSE_PAYMENT)

# Challenge row states. Only "live" rows can be verified.
CHALLENGE_LIVE = "live"
CHALLENGE_CONSUMED = "consumed"
CHALLENGE_SUPERSEDED = "superseded"
CHALLENGE_LOCKED = "locked"

ROLE_ADMIN = "admin"
ROLE_REVIEWER = "reviewer"
ROLE_FINANCE = "finance"
ROLE_VIEWER = "viewer"

STAFF_ROLES = (ROLE_ADMIN, ROLE_REVIEWER, ROLE_FINANCE, ROLE_VIEWER)
