"""Pydantic models for claims, staff actors, challenges and action results."""

import json
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class ClaimType(str, Enum):
    """Kind of loss being claimed."""

    MEDICAL = "medical"
    PROPERTY = "property"
    VEHICLE = "vehicle"
    OTHER = "other"


class ClaimStatus(str, Enum):
    """Workflow state of a claim."""

    PENDING = "pending"
    REVIEWING = "reviewing"
    APPROVED = "approved"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"


class OtpPurpose(str, Enum):
    """Which transition a one-time code gates."""

    APPROVAL = "approval"
    PAYMENT = "payment"


class StaffRole(str, Enum):
    ADMIN = "admin"
    REVIEWER = "reviewer"
    FINANCE = "finance"
    VIEWER = "viewer"


# Roles allowed to move claims through review, and to initiate/complete payment
REVIEW_ROLES = frozenset({StaffRole.ADMIN, StaffRole.REVIEWER})
PAYMENT_ROLES = frozenset({StaffRole.ADMIN, StaffRole.FINANCE})


class ClaimInput(BaseModel):
    """Intake payload for a new claim."""

    claimant_name: str = Field(..., min_length=1, description="Full name of the claimant")
    claimant_id: str = Field(..., min_length=1, description="Member or policy holder ID")
    email: str = Field(..., min_length=3, description="Contact email; receives one-time codes")
    phone: str = Field(default="", description="Contact phone number")
    address: str = Field(default="", description="Postal address")
    claim_type: ClaimType = Field(..., description="medical, property, vehicle or other")
    claim_amount: float = Field(..., gt=0, description="Amount claimed")
    incident_date: str = Field(..., description="Date of incident (YYYY-MM-DD)")
    incident_location: str = Field(default="", description="Where the incident happened")
    description: str = Field(default="", description="Narrative of the incident")
    supporting_documents: list[str] = Field(
        default_factory=list, description="File references, in submission order"
    )

    @field_validator("email")
    @classmethod
    def _email_has_at(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value:
            raise ValueError("email must contain '@'")
        return value


class Claim(ClaimInput):
    """A stored claim as returned by the repository and the API."""

    id: str
    status: ClaimStatus
    submitted_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Claim":
        data = dict(row)
        docs = data.get("supporting_documents")
        if isinstance(docs, str):
            data["supporting_documents"] = json.loads(docs) if docs else []
        return cls.model_validate(data)


class Actor(BaseModel):
    """Staff member performing a workflow action."""

    staff_id: str
    role: StaffRole

    @property
    def can_review(self) -> bool:
        return self.role in REVIEW_ROLES

    @property
    def can_pay(self) -> bool:
        return self.role in PAYMENT_ROLES


class OtpChallenge(BaseModel):
    """One-time code challenge bound to a claim and purpose. Never holds the code."""

    id: int
    claim_id: str
    purpose: OtpPurpose
    state: str
    expires_at: str
    failed_attempts: int = 0
    created_at: str
    consumed_at: Optional[str] = None

    @property
    def consumed(self) -> bool:
        return self.consumed_at is not None


class ActionResult(BaseModel):
    """Outcome of one workflow action, reported after re-reading the claim."""

    action: str
    claim: Claim
    changed: bool = Field(..., description="False when the request was a same-status no-op")
    previous_status: Optional[ClaimStatus] = None
    warnings: list[str] = Field(default_factory=list)
    otp_purpose: Optional[OtpPurpose] = None
    otp_expires_at: Optional[str] = None
    otp_delivered: Optional[bool] = None
    otp_code: Optional[str] = Field(
        default=None, description="Only populated outside production when exposure is enabled"
    )


class ClaimsSummary(BaseModel):
    """Counts and amounts per status for the dashboard."""

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    amount_by_status: dict[str, float] = Field(default_factory=dict)
    total_amount: float = 0.0

    # Flat counters kept for dashboard clients that predate by_status
    @property
    def pending(self) -> int:
        return self.by_status.get(ClaimStatus.PENDING.value, 0)

    @property
    def approved(self) -> int:
        return self.by_status.get(ClaimStatus.APPROVED.value, 0)

    @property
    def rejected(self) -> int:
        return self.by_status.get(ClaimStatus.REJECTED.value, 0)
