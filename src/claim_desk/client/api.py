"""HTTP client for the claims desk REST API.

Error bodies are turned back into the same domain exceptions the server raised,
so callers handle StaleState or CodeMismatch the same way whether they talk to
the workflow directly or over HTTP.
"""

import logging
from typing import Any

import requests

from claim_desk.exceptions import (
    AuthenticationRequired,
    AuthorizationDenied,
    ClaimDeskError,
    NotFound,
    ValidationFailed,
    error_from_payload,
)
from claim_desk.models.claim import ActionResult, Claim, ClaimsSummary
from claim_desk.utils.retry import with_io_retry

logger = logging.getLogger(__name__)

API_PREFIX = "/api"
DEFAULT_TIMEOUT = 10.0

# Used when an error response carries no domain error code
_ERRORS_BY_STATUS: dict[int, type[ClaimDeskError]] = {
    401: AuthenticationRequired,
    403: AuthorizationDenied,
    404: NotFound,
    422: ValidationFailed,
}

_TRANSPORT_ERRORS = (requests.ConnectionError, requests.Timeout)


def _query(params: dict[str, Any]) -> dict[str, str]:
    """Drop unset parameters and spell booleans the way the API expects."""
    query = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        query[key] = str(value)
    return query


class ClaimsApiClient:
    """Thin wrapper over the REST API.

    `session` may be any object with a requests-style ``request`` method,
    e.g. a requests.Session or a test client.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        session: Any = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session = session if session is not None else requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{API_PREFIX}{path}"

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _error(self, response: Any) -> ClaimDeskError:
        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text or f"HTTP {response.status_code}"}
        if not isinstance(payload, dict):
            payload = {"message": str(payload)}
        if "error" not in payload and response.status_code in _ERRORS_BY_STATUS:
            cls = _ERRORS_BY_STATUS[response.status_code]
            detail = payload.get("detail", payload.get("message", "Request failed"))
            return cls(str(detail))
        return error_from_payload(payload)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._session.request(
            method,
            self._url(path),
            headers=self._headers(),
            timeout=self.timeout,
            **kwargs,
        )
        if response.status_code >= 400:
            error = self._error(response)
            logger.debug("%s %s -> %s (%s)", method, path, response.status_code, error.code)
            raise error
        return response.json()

    @with_io_retry(retry_on=_TRANSPORT_ERRORS)
    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self._request("GET", path, params=_query(params or {}))

    # Reads

    def list_claims(
        self,
        status: str | None = None,
        claim_type: str | None = None,
        search: str | None = None,
        sort: str | None = None,
        descending: bool | None = None,
    ) -> list[Claim]:
        data = self._get(
            "/claims",
            {"status": status, "claim_type": claim_type, "q": search, "sort": sort, "desc": descending},
        )
        return [Claim.model_validate(c) for c in data["claims"]]

    def get_claim(self, claim_id: str) -> Claim:
        return Claim.model_validate(self._get(f"/claims/{claim_id}"))

    def history(self, claim_id: str) -> list[dict[str, Any]]:
        return self._get(f"/claims/{claim_id}/history")["history"]

    def stats(self) -> ClaimsSummary:
        return ClaimsSummary.model_validate(self._get("/claims/stats"))

    def recent(self, limit: int | None = None) -> list[Claim]:
        return [Claim.model_validate(c) for c in self._get("/claims/recent", {"limit": limit})]

    def session(self) -> dict[str, Any]:
        """Current staff session; raises AuthenticationRequired once it has lapsed."""
        return self._get("/auth/session")["session"]

    # Mutations are never retried; callers re-read the claim instead.

    def create_claim(self, claim_data: dict[str, Any]) -> Claim:
        return Claim.model_validate(self._request("POST", "/claims", json=claim_data))

    def update_status(
        self,
        claim_id: str,
        status: str,
        expected_status: str | None = None,
        otp: str | None = None,
    ) -> ActionResult:
        body: dict[str, Any] = {"status": status}
        if expected_status is not None:
            body["expected_status"] = expected_status
        if otp is not None:
            body["otp"] = otp
        return ActionResult.model_validate(self._request("PATCH", f"/claims/{claim_id}", json=body))

    def generate_otp(self, claim_id: str, purpose: str = "approval") -> ActionResult:
        data = self._request("POST", f"/claims/{claim_id}/generate-otp", json={"purpose": purpose})
        return ActionResult.model_validate(data)

    def verify_otp(
        self,
        claim_id: str,
        otp: str,
        purpose: str = "approval",
        expected_status: str | None = None,
    ) -> ActionResult:
        body: dict[str, Any] = {"otp": otp, "purpose": purpose}
        if expected_status is not None:
            body["expected_status"] = expected_status
        data = self._request("POST", f"/claims/{claim_id}/verify-otp", json=body)
        return ActionResult.model_validate(data)

    def sign_out(self) -> None:
        self._request("POST", "/auth/signout")
