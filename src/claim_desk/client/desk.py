"""Staff-side facade: API calls plus the cache, with re-read after every mutation."""

import logging
from typing import Any, Callable

from claim_desk.client.api import ClaimsApiClient
from claim_desk.client.cache import ClaimsCache
from claim_desk.db.constants import (
    PURPOSE_APPROVAL,
    PURPOSE_PAYMENT,
    STATUS_APPROVED,
    STATUS_PAID,
    STATUS_PAYMENT_PENDING,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_REVIEWING,
)
from claim_desk.models.claim import ActionResult, Claim, ClaimsSummary

logger = logging.getLogger(__name__)


class ClaimsDesk:
    """What a staff dashboard calls.

    Mutations invalidate the cache and then re-read the claim from the server,
    so the returned result always shows stored state, even when another staff
    member acted in between. A failed mutation still invalidates, and the next
    read goes to the server.
    """

    def __init__(self, client: ClaimsApiClient, cache: ClaimsCache | None = None):
        self.client = client
        self.cache = cache or ClaimsCache()

    # Reads

    def claims(self, refresh: bool = False) -> list[Claim]:
        if not refresh:
            cached = self.cache.listing()
            if cached is not None:
                return cached
        ticket = self.cache.ticket()
        claims = self.client.list_claims()
        if not self.cache.store_listing(ticket, claims):
            logger.debug("Discarded superseded claims listing (ticket %d)", ticket)
        return claims

    def claim(self, claim_id: str, refresh: bool = False) -> Claim:
        if not refresh:
            cached = self.cache.get(claim_id)
            if cached is not None:
                return cached
        ticket = self.cache.ticket()
        claim = self.client.get_claim(claim_id)
        if not self.cache.store_claim(ticket, claim):
            logger.debug("Discarded superseded read of %s (ticket %d)", claim_id, ticket)
        return claim

    def stats(self) -> ClaimsSummary:
        return self.client.stats()

    def history(self, claim_id: str) -> list[dict[str, Any]]:
        return self.client.history(claim_id)

    # Mutations

    def _mutate(self, claim_id: str, call: Callable[[], Any]) -> Any:
        try:
            result = call()
        finally:
            self.cache.invalidate()
        fresh = self.claim(claim_id, refresh=True)
        if isinstance(result, ActionResult):
            return result.model_copy(update={"claim": fresh})
        return fresh

    def submit(self, claim_data: dict[str, Any]) -> Claim:
        created = self.client.create_claim(claim_data)
        return self._mutate(created.id, lambda: created)

    def _set_status(self, claim_id: str, status: str, expected_status: str | None) -> ActionResult:
        return self._mutate(
            claim_id,
            lambda: self.client.update_status(claim_id, status, expected_status=expected_status),
        )

    def request_review(self, claim_id: str, expected_status: str | None = None) -> ActionResult:
        return self._set_status(claim_id, STATUS_REVIEWING, expected_status)

    def reject(self, claim_id: str, expected_status: str | None = None) -> ActionResult:
        return self._set_status(claim_id, STATUS_REJECTED, expected_status)

    def return_to_pending(self, claim_id: str, expected_status: str | None = None) -> ActionResult:
        return self._set_status(claim_id, STATUS_PENDING, expected_status)

    def approve(self, claim_id: str, expected_status: str | None = None) -> ActionResult:
        return self._set_status(claim_id, STATUS_APPROVED, expected_status)

    def initiate_payment(self, claim_id: str, expected_status: str | None = None) -> ActionResult:
        return self._set_status(claim_id, STATUS_PAYMENT_PENDING, expected_status)

    def confirm_approval(self, claim_id: str, code: str) -> ActionResult:
        return self._mutate(
            claim_id, lambda: self.client.verify_otp(claim_id, code, purpose=PURPOSE_APPROVAL)
        )

    def mark_paid(self, claim_id: str, code: str | None = None) -> ActionResult:
        if code is None:
            return self._set_status(claim_id, STATUS_PAID, None)
        return self._mutate(
            claim_id, lambda: self.client.verify_otp(claim_id, code, purpose=PURPOSE_PAYMENT)
        )

    def resend_code(self, claim_id: str, purpose: str = PURPOSE_APPROVAL) -> ActionResult:
        return self._mutate(claim_id, lambda: self.client.generate_otp(claim_id, purpose))

    def close(self) -> None:
        self.cache.close()
