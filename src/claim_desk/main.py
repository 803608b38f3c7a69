"""CLI entry point for the claims desk.

Runs workflow actions directly against the claims database as the actor named
by CLAIM_DESK_ACTOR_ID / CLAIM_DESK_ACTOR_ROLE, issues staff API tokens, and
serves the REST API.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

# Ensure src is on path when run as script
if __name__ == "__main__" and str(Path(__file__).resolve().parent.parent) not in sys.path:
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from claim_desk.exceptions import ClaimDeskError  # noqa: E402

# Commands that act on a claim without further arguments
_DIRECT_ACTIONS = {
    "review": "request_review",
    "reject": "reject",
    "return": "return_to_pending",
    "approve": "approve",
    "pay": "initiate_payment",
}


def _setup_logging() -> None:
    """Configure logging for CLI usage."""
    from claim_desk.observability import get_logger

    get_logger("claim_desk")
    logging.getLogger("claim_desk").setLevel(
        logging.DEBUG if "--debug" in sys.argv else logging.INFO
    )


def _usage() -> str:
    return """Usage:
  claim-desk submit <claim.json>           Submit a new claim from a JSON file
  claim-desk list [status]                 List claims, newest first
  claim-desk status <claim_id>             Show a claim
  claim-desk history <claim_id>            Show a claim's audit log
  claim-desk stats                         Counts and amounts per status
  claim-desk review <claim_id>             pending -> reviewing
  claim-desk reject <claim_id>             pending|reviewing -> rejected
  claim-desk return <claim_id>             reviewing -> pending
  claim-desk approve <claim_id>            pending|reviewing -> approved (sends approval code)
  claim-desk confirm <claim_id> <code>     approved -> confirmed
  claim-desk pay <claim_id>                confirmed -> payment_pending (sends payment code)
  claim-desk paid <claim_id> [code]        payment_pending -> paid
  claim-desk resend <claim_id> [purpose]   Send a fresh code (approval or payment)
  claim-desk issue-token <staff_id> <role> Issue a staff API token
  claim-desk serve [host] [port]           Run the REST API
  claim-desk metrics [claim_id]            Show action metrics for this process

Options:
  --debug                                  Enable debug logging
  --json                                   Use JSON log format
"""


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _actor():
    from claim_desk.config.settings import get_actor_config
    from claim_desk.models.claim import Actor, StaffRole

    config = get_actor_config()
    try:
        return Actor(staff_id=config["staff_id"], role=StaffRole(config["role"]))
    except ValueError:
        _fail(f"Unknown actor role: {config['role']}")


def _workflow():
    from claim_desk.workflow.orchestrator import ClaimWorkflow

    return ClaimWorkflow()


def _print_result(result) -> None:
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    _print(result.model_dump(mode="json", exclude_none=True))


def cmd_submit(claim_path: Path) -> None:
    """Submit a claim from a JSON file."""
    if not claim_path.exists():
        _fail(f"File not found: {claim_path}")
    try:
        with open(claim_path, encoding="utf-8") as f:
            claim_data = json.load(f)
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON in {claim_path}: {e}")
    try:
        claim = _workflow().submit_claim(claim_data)
    except ValidationError as e:
        print("Error: Invalid claim data:", file=sys.stderr)
        print(e.json(), file=sys.stderr)
        sys.exit(1)
    except ClaimDeskError as e:
        _fail(e.message)
    _print(claim.model_dump(mode="json"))


def cmd_list(status: str | None = None) -> None:
    """Print claims, optionally only those in one status."""
    from claim_desk.db.constants import CLAIM_STATUSES

    if status is not None and status not in CLAIM_STATUSES:
        _fail(f"Unknown status: {status}")
    claims = _workflow().list_claims(status)
    _print([c.model_dump(mode="json") for c in claims])


def cmd_status(claim_id: str) -> None:
    """Print a claim."""
    try:
        claim = _workflow().get_claim(claim_id)
    except ClaimDeskError as e:
        _fail(e.message)
    _print(claim.model_dump(mode="json"))


def cmd_history(claim_id: str) -> None:
    """Print claim audit log."""
    try:
        history = _workflow().history(claim_id)
    except ClaimDeskError as e:
        _fail(e.message)
    _print(history)


def cmd_stats() -> None:
    """Print counts and amounts per status."""
    from claim_desk.workflow.summary import summarize

    _print(summarize(_workflow().list_claims()).model_dump())


def cmd_action(command: str, claim_id: str) -> None:
    """Run one of the direct status actions."""
    workflow = _workflow()
    action = getattr(workflow, _DIRECT_ACTIONS[command])
    try:
        result = action(claim_id, _actor())
    except ClaimDeskError as e:
        _fail(e.message)
    _print_result(result)


def cmd_confirm(claim_id: str, code: str) -> None:
    """Verify the approval code: approved -> confirmed."""
    try:
        result = _workflow().confirm_approval(claim_id, code, _actor())
    except ClaimDeskError as e:
        _fail(e.message)
    _print_result(result)


def cmd_paid(claim_id: str, code: str | None = None) -> None:
    """Mark a claim paid, with the payment code when one is required."""
    try:
        result = _workflow().mark_paid(claim_id, _actor(), code=code)
    except ClaimDeskError as e:
        _fail(e.message)
    _print_result(result)


def cmd_resend(claim_id: str, purpose: str = "approval") -> None:
    """Send a fresh code, replacing the previous one."""
    try:
        result = _workflow().resend_code(claim_id, purpose, _actor())
    except ClaimDeskError as e:
        _fail(e.message)
    _print_result(result)


def cmd_issue_token(staff_id: str, role: str) -> None:
    """Create a staff session and print its bearer token (shown once)."""
    from claim_desk.db.sessions import StaffSessionStore

    try:
        token = StaffSessionStore().create_session(staff_id, role)
    except ClaimDeskError as e:
        _fail(e.message)
    _print({"staff_id": staff_id, "role": role.lower(), "token": token})


def cmd_serve(host: str | None = None, port: str | None = None) -> None:
    """Run the REST API under uvicorn."""
    import uvicorn

    from claim_desk.api.app import create_app
    from claim_desk.config.settings import get_api_config

    config = get_api_config()
    try:
        bind_port = int(port) if port is not None else config["port"]
    except ValueError:
        _fail(f"Invalid port: {port}")
    uvicorn.run(create_app(), host=host or config["host"], port=bind_port)


def cmd_metrics(claim_id: str | None = None) -> None:
    """Display action metrics.

    Args:
        claim_id: Optional claim ID. If provided, shows activity for that claim.
                 Otherwise, shows global metrics summary.
    """
    from claim_desk.observability import get_metrics

    metrics = get_metrics()

    if claim_id:
        activity = metrics.get_claim_activity(claim_id)
        if activity is None:
            print(f"No metrics found for claim: {claim_id}", file=sys.stderr)
            print("Note: Metrics only cover actions taken in the current process.")
            sys.exit(1)
        _print(activity)
        return
    stats = metrics.get_global_stats()
    if stats["total_actions"] == 0:
        print("No actions have been recorded in the current process.")
        return
    print("Global Metrics Summary:")
    _print(stats)


def main() -> None:
    """Dispatch a claim-desk command."""
    import os

    # Handle global options
    argv = [arg for arg in sys.argv[1:] if not arg.startswith("--")]
    options = [arg for arg in sys.argv[1:] if arg.startswith("--")]

    if "--json" in options:
        os.environ["CLAIM_DESK_LOG_FORMAT"] = "json"
    if "--debug" in options:
        os.environ["CLAIM_DESK_LOG_LEVEL"] = "DEBUG"

    _setup_logging()

    if not argv:
        print(_usage(), file=sys.stderr)
        sys.exit(1)

    first = argv[0].lower()
    args = argv[1:]

    # Commands that require a claim_id argument
    if first in ("status", "history", "confirm", "paid", "resend") or first in _DIRECT_ACTIONS:
        if not args:
            print(f"Error: {first} requires <claim_id>", file=sys.stderr)
            print(_usage(), file=sys.stderr)
            sys.exit(1)
        claim_id = args[0]
        if first == "status":
            cmd_status(claim_id)
        elif first == "history":
            cmd_history(claim_id)
        elif first == "confirm":
            if len(args) < 2:
                _fail("confirm requires <claim_id> <code>")
            cmd_confirm(claim_id, args[1])
        elif first == "paid":
            cmd_paid(claim_id, args[1] if len(args) > 1 else None)
        elif first == "resend":
            cmd_resend(claim_id, args[1].lower() if len(args) > 1 else "approval")
        else:
            cmd_action(first, claim_id)
        return

    if first == "submit":
        if not args:
            print("Error: submit requires <claim.json>", file=sys.stderr)
            print(_usage(), file=sys.stderr)
            sys.exit(1)
        cmd_submit(Path(args[0]))
        return

    if first == "list":
        cmd_list(args[0].lower() if args else None)
        return

    if first == "stats":
        cmd_stats()
        return

    if first == "issue-token":
        if len(args) < 2:
            _fail("issue-token requires <staff_id> <role>")
        cmd_issue_token(args[0], args[1])
        return

    if first == "serve":
        cmd_serve(args[0] if args else None, args[1] if len(args) > 1 else None)
        return

    if first == "metrics":
        cmd_metrics(args[0] if args else None)
        return

    print(f"Error: Unknown command: {first}", file=sys.stderr)
    print(_usage(), file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
    main()
