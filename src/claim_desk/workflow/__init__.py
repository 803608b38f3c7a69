"""Claim status workflow: transition rules, one-time code challenges and actions."""

from claim_desk.workflow.orchestrator import ClaimWorkflow
from claim_desk.workflow.otp import IssuedChallenge, OtpChallengeManager
from claim_desk.workflow.summary import filter_claims, recent_activity, sort_claims, summarize
from claim_desk.workflow.transitions import (
    TRANSITIONS,
    allowed_targets,
    check_transition,
    is_terminal,
    requires_otp,
    validate_transition,
)

__all__ = [
    "ClaimWorkflow",
    "IssuedChallenge",
    "OtpChallengeManager",
    "TRANSITIONS",
    "allowed_targets",
    "check_transition",
    "filter_claims",
    "is_terminal",
    "recent_activity",
    "requires_otp",
    "sort_claims",
    "summarize",
    "validate_transition",
]
