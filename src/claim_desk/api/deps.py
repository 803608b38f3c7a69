"""Request dependencies: workflow access and bearer-session authentication."""

from fastapi import Header, Request

from claim_desk.db.sessions import StaffSessionStore
from claim_desk.models.claim import Actor
from claim_desk.workflow.orchestrator import ClaimWorkflow

SESSION_COOKIE = "claim_desk_session"


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_workflow(request: Request) -> ClaimWorkflow:
    return request.app.state.workflow


def get_sessions(request: Request) -> StaffSessionStore:
    return request.app.state.sessions


def request_token(request: Request, authorization: str | None = Header(default=None)) -> str | None:
    """Token from the Authorization header, falling back to the session cookie."""
    return bearer_token(authorization) or request.cookies.get(SESSION_COOKIE)


def get_actor(request: Request, authorization: str | None = Header(default=None)) -> Actor:
    """Resolve the calling staff member; AuthenticationRequired becomes a 401."""
    return get_sessions(request).resolve(request_token(request, authorization))
