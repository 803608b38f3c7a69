"""
REST endpoints for claims and staff sessions.

Every claims call needs a valid staff session. Reads are open to any role;
status changes are checked against the transition table here, server-side,
whatever the client already checked.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status
from pydantic import BaseModel

from claim_desk.api.deps import get_actor, get_sessions, get_workflow, request_token
from claim_desk.db.constants import PURPOSE_PAYMENT
from claim_desk.exceptions import AuthorizationDenied, ValidationFailed
from claim_desk.models.claim import ActionResult, Actor, Claim, ClaimStatus, OtpPurpose
from claim_desk.workflow.orchestrator import ClaimWorkflow
from claim_desk.workflow.summary import filter_claims, recent_activity, sort_claims, summarize

logger = logging.getLogger(__name__)

router = APIRouter()


class StatusUpdateRequest(BaseModel):
    """Body of PATCH /claims/{id}."""
    status: ClaimStatus
    expected_status: Optional[ClaimStatus] = None
    otp: Optional[str] = None


class GenerateOtpRequest(BaseModel):
    purpose: OtpPurpose = OtpPurpose.APPROVAL


class VerifyOtpRequest(BaseModel):
    otp: str
    purpose: OtpPurpose = OtpPurpose.APPROVAL
    expected_status: Optional[ClaimStatus] = None


def _claim_json(claim: Claim) -> Dict[str, Any]:
    return claim.model_dump(mode="json")


def _result_json(result: ActionResult) -> Dict[str, Any]:
    return result.model_dump(mode="json", exclude_none=True)


def _value(status_value: Optional[ClaimStatus]) -> Optional[str]:
    return status_value.value if status_value is not None else None


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------

@router.get("/claims", tags=["claims"])
def list_claims(
    status_filter: Optional[ClaimStatus] = Query(default=None, alias="status"),
    claim_type: Optional[str] = Query(default=None),
    q: Optional[str] = Query(default=None, description="Search id, claimant and description"),
    sort: str = Query(default="submitted_at"),
    desc: bool = Query(default=True),
    actor: Actor = Depends(get_actor),
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> Dict[str, List[Dict[str, Any]]]:
    """
    List claims, optionally filtered and sorted.
    """
    try:
        claims = sort_claims(
            filter_claims(workflow.list_claims(), _value(status_filter), claim_type, q),
            key=sort,
            descending=desc,
        )
    except ValueError as e:
        raise ValidationFailed(str(e)) from e
    return {"claims": [_claim_json(c) for c in claims]}


@router.post("/claims", status_code=status.HTTP_201_CREATED, tags=["claims"])
def create_claim(
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_actor),
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    """
    Submit a new claim. It starts in status pending.
    """
    if not (actor.can_review or actor.can_pay):
        raise AuthorizationDenied(f"Role {actor.role.value} cannot submit claims")
    claim = workflow.submit_claim(payload)
    logger.info("Claim %s submitted by %s", claim.id, actor.staff_id)
    return _claim_json(claim)


@router.get("/claims/stats", tags=["claims"])
def claims_stats(
    actor: Actor = Depends(get_actor),
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    """
    Counts and amounts per status.
    """
    summary = summarize(workflow.list_claims())
    data = summary.model_dump()
    data.update(pending=summary.pending, approved=summary.approved, rejected=summary.rejected)
    return data


@router.get("/claims/recent", tags=["claims"])
def claims_recent(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> List[Dict[str, Any]]:
    """
    Most recently updated claims.
    """
    return [_claim_json(c) for c in recent_activity(workflow.list_claims(), limit)]


@router.get("/claims/{claim_id}", tags=["claims"])
def get_claim(
    claim_id: str,
    actor: Actor = Depends(get_actor),
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    return _claim_json(workflow.get_claim(claim_id))


@router.get("/claims/{claim_id}/history", tags=["claims"])
def claim_history(
    claim_id: str,
    actor: Actor = Depends(get_actor),
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    """
    Audit trail of a claim, oldest first.
    """
    return {"claim_id": claim_id, "history": workflow.history(claim_id)}


@router.patch("/claims/{claim_id}", tags=["workflow"])
def update_claim_status(
    claim_id: str,
    request: StatusUpdateRequest,
    actor: Actor = Depends(get_actor),
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    """
    Request a status change.

    Send expected_status to have the change refused with stale_state when
    someone else moved the claim first.
    """
    result = workflow.transition_to(
        claim_id,
        request.status.value,
        actor,
        expected_status=_value(request.expected_status),
        code=request.otp,
    )
    return _result_json(result)


@router.post("/claims/{claim_id}/generate-otp", tags=["workflow"])
def generate_otp(
    claim_id: str,
    request: Optional[GenerateOtpRequest] = Body(default=None),
    actor: Actor = Depends(get_actor),
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    """
    Send a new code for the claim, replacing any earlier one. Defaults to approval.
    """
    purpose = (request or GenerateOtpRequest()).purpose
    return _result_json(workflow.resend_code(claim_id, purpose.value, actor))


@router.post("/claims/{claim_id}/verify-otp", tags=["workflow"])
def verify_otp(
    claim_id: str,
    request: VerifyOtpRequest,
    actor: Actor = Depends(get_actor),
    workflow: ClaimWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    """
    Verify a code and apply the transition it gates, atomically.

    approval: approved -> confirmed. payment: payment_pending -> paid.
    """
    expected = _value(request.expected_status)
    if request.purpose.value == PURPOSE_PAYMENT:
        result = workflow.mark_paid(claim_id, actor, code=request.otp, expected_status=expected)
    else:
        result = workflow.confirm_approval(claim_id, request.otp, actor, expected_status=expected)
    return _result_json(result)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@router.get("/auth/session", tags=["auth"])
def current_session(actor: Actor = Depends(get_actor)) -> Dict[str, Any]:
    """
    The staff member behind the presented token.
    """
    return {"session": {"user": {"id": actor.staff_id, "role": actor.role.value}}}


@router.post("/auth/signout", tags=["auth"])
def sign_out(
    request: Request,
    actor: Actor = Depends(get_actor),
    token: Optional[str] = Depends(request_token),
) -> Dict[str, str]:
    get_sessions(request).revoke(token or "")
    logger.info("Staff %s signed out", actor.staff_id)
    return {"message": "Signed out"}
