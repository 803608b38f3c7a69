"""Pydantic models for claims."""

from claim_desk.models.claim import (
    ActionResult,
    Actor,
    Claim,
    ClaimInput,
    ClaimStatus,
    ClaimsSummary,
    ClaimType,
    OtpChallenge,
    OtpPurpose,
    StaffRole,
)

__all__ = [
    "ActionResult",
    "Actor",
    "Claim",
    "ClaimInput",
    "ClaimStatus",
    "ClaimsSummary",
    "ClaimType",
    "OtpChallenge",
    "OtpPurpose",
    "StaffRole",
]
