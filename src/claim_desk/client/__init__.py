"""Staff-side client for the claims desk REST API."""

from claim_desk.client.api import ClaimsApiClient
from claim_desk.client.cache import ClaimsCache
from claim_desk.client.desk import ClaimsDesk
from claim_desk.client.poller import SessionPoller

__all__ = ["ClaimsApiClient", "ClaimsCache", "ClaimsDesk", "SessionPoller"]
