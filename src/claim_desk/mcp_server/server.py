"""MCP server exposing claim workflow tools via stdio transport.

Actions run as the actor configured by CLAIM_DESK_ACTOR_ID and
CLAIM_DESK_ACTOR_ROLE. Domain errors come back as {"error": code, "message": ...}.
"""

import json
from typing import Any, Callable

from mcp.server.fastmcp import FastMCP

from claim_desk.config.settings import get_actor_config
from claim_desk.exceptions import ClaimDeskError, ValidationFailed
from claim_desk.models.claim import Actor, StaffRole
from claim_desk.observability import get_logger, get_metrics
from claim_desk.workflow.orchestrator import ClaimWorkflow
from claim_desk.workflow.summary import filter_claims, summarize

mcp = FastMCP("claim-desk", json_response=True)


def _actor() -> Actor:
    config = get_actor_config()
    try:
        role = StaffRole(config["role"])
    except ValueError as e:
        raise ValidationFailed(f"Unknown actor role: {config['role']}") from e
    return Actor(staff_id=config["staff_id"], role=role)


def _run(call: Callable[[], Any]) -> str:
    try:
        data = call()
    except ClaimDeskError as e:
        return json.dumps(e.to_dict())
    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json", exclude_none=True)
    return json.dumps(data, default=str)


# ============================================================================
# READ TOOLS
# ============================================================================


@mcp.tool()
def list_claims(status: str | None = None, claim_type: str | None = None, search: str | None = None) -> str:
    """List claims newest first, optionally filtered by status, type or a search term."""
    def call():
        claims = filter_claims(ClaimWorkflow().list_claims(), status, claim_type, search)
        return [c.model_dump(mode="json") for c in claims]

    return _run(call)


@mcp.tool()
def get_claim(claim_id: str) -> str:
    """Get one claim with its current status."""
    return _run(lambda: ClaimWorkflow().get_claim(claim_id))


@mcp.tool()
def get_claim_history(claim_id: str) -> str:
    """Get the audit log of a claim, oldest first."""
    return _run(lambda: ClaimWorkflow().history(claim_id))


@mcp.tool()
def get_claims_summary() -> str:
    """Counts and claimed amounts per status."""
    return _run(lambda: summarize(ClaimWorkflow().list_claims()))


# ============================================================================
# WORKFLOW TOOLS
# ============================================================================


@mcp.tool()
def update_claim_status(claim_id: str, status: str, expected_status: str | None = None) -> str:
    """Move a claim to a new status.

    Approving sends the approval code and initiating payment sends the payment
    code; use confirm_approval and mark_paid to finish those steps.
    Pass expected_status to refuse the change if the claim moved meanwhile.
    """
    return _run(
        lambda: ClaimWorkflow().transition_to(claim_id, status, _actor(), expected_status=expected_status)
    )


@mcp.tool()
def confirm_approval(claim_id: str, code: str) -> str:
    """Verify the approval code and confirm an approved claim."""
    return _run(lambda: ClaimWorkflow().confirm_approval(claim_id, code, _actor()))


@mcp.tool()
def mark_paid(claim_id: str, code: str | None = None) -> str:
    """Mark a payment_pending claim paid, with the payment code when one is required."""
    return _run(lambda: ClaimWorkflow().mark_paid(claim_id, _actor(), code=code))


@mcp.tool()
def resend_code(claim_id: str, purpose: str = "approval") -> str:
    """Send a fresh approval or payment code; earlier codes stop working."""
    return _run(lambda: ClaimWorkflow().resend_code(claim_id, purpose, _actor()))


# ============================================================================
# OBSERVABILITY TOOLS
# ============================================================================


@mcp.tool()
def get_workflow_metrics(claim_id: str | None = None) -> str:
    """Get action metrics for this server process.

    Args:
        claim_id: Optional claim ID. If provided, returns activity for that claim.
                 If not provided, returns global metrics summary.

    Returns:
        JSON string with metrics data including:
        - total_actions: Number of workflow actions attempted
        - failed_actions: Actions that ended in an error
        - dispatch_failures: Codes that could not be delivered
        - actions: Per-action outcomes and latency
    """
    metrics = get_metrics()

    if claim_id:
        activity = metrics.get_claim_activity(claim_id)
        if activity is None:
            return json.dumps({"error": f"No metrics found for claim: {claim_id}"})
        return json.dumps(activity, default=str)
    return json.dumps({"global_stats": metrics.get_global_stats()}, default=str)


def main() -> None:
    """Run the MCP server over stdio."""
    get_logger("claim_desk")
    mcp.run()


if __name__ == "__main__":
    main()
