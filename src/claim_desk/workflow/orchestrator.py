"""Claim workflow actions: one method per staff action.

Each action reads the claim under the write lock, validates the requested edge,
applies it with compare-and-swap, and (for approve / initiate_payment) creates
the paired one-time code challenge in the same transaction. Code dispatch
happens after commit; a failed dispatch becomes a warning on the result and
never undoes the status change. Results always carry the claim as re-read
after the action.
"""

import sqlite3
from typing import Any

from claim_desk.config.settings import get_otp_config
from claim_desk.db.constants import (
    PURPOSE_APPROVAL,
    PURPOSE_PAYMENT,
    STATUS_APPROVED,
    STATUS_CONFIRMED,
    STATUS_PAID,
    STATUS_PAYMENT_PENDING,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_REVIEWING,
)
from claim_desk.db.repository import ClaimRepository
from claim_desk.exceptions import (
    AuthorizationDenied,
    InvalidTransition,
    StaleState,
    ValidationFailed,
)
from claim_desk.models.claim import ActionResult, Actor, Claim, ClaimInput
from claim_desk.notifications import Notifier
from claim_desk.observability import claim_context, get_logger, log_claim_event, track_action
from claim_desk.utils.sanitization import sanitize_claim_data
from claim_desk.workflow.otp import IssuedChallenge, OtpChallengeManager
from claim_desk.workflow.transitions import ISSUES_CHALLENGE, validate_transition

logger = get_logger(__name__)

# Status a claim must be in while a code of this purpose is awaited
AWAITING_CODE = {
    PURPOSE_APPROVAL: STATUS_APPROVED,
    PURPOSE_PAYMENT: STATUS_PAYMENT_PENDING,
}


class ClaimWorkflow:
    """Applies staff actions to claims. Storage is the single source of truth."""

    def __init__(
        self,
        repository: ClaimRepository | None = None,
        otp_manager: OtpChallengeManager | None = None,
        notifier: Notifier | None = None,
        payment_otp_required: bool | None = None,
        expose_code: bool | None = None,
    ):
        config = get_otp_config()
        self.repository = repository or ClaimRepository()
        self.otp = otp_manager or OtpChallengeManager(self.repository, notifier)
        self.payment_otp_required = (
            config["payment_otp_required"] if payment_otp_required is None else payment_otp_required
        )
        self.expose_code = config["expose_code"] if expose_code is None else expose_code

    # ------------------------------------------------------------------
    # Intake and reads
    # ------------------------------------------------------------------

    def submit_claim(self, claim_data: ClaimInput | dict[str, Any]) -> Claim:
        """Validate and store a new claim in status pending."""
        if isinstance(claim_data, ClaimInput):
            claim_input = claim_data
        else:
            claim_input = ClaimInput.model_validate(sanitize_claim_data(claim_data))
        claim_id = self.repository.create_claim(claim_input)
        log_claim_event(
            logger, "claim_created", claim_id=claim_id,
            claim_type=claim_input.claim_type.value, amount=claim_input.claim_amount,
        )
        return self.get_claim(claim_id)

    def get_claim(self, claim_id: str) -> Claim:
        return Claim.from_row(self.repository.require_claim(claim_id))

    def list_claims(self, status: str | None = None) -> list[Claim]:
        return [Claim.from_row(row) for row in self.repository.list_claims(status)]

    def history(self, claim_id: str) -> list[dict[str, Any]]:
        self.repository.require_claim(claim_id)
        return self.repository.get_claim_history(claim_id)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def request_review(self, claim_id: str, actor: Actor, expected_status: str | None = None) -> ActionResult:
        return self._direct("request_review", claim_id, STATUS_REVIEWING, actor, expected_status)

    def reject(self, claim_id: str, actor: Actor, expected_status: str | None = None) -> ActionResult:
        return self._direct("reject", claim_id, STATUS_REJECTED, actor, expected_status)

    def return_to_pending(self, claim_id: str, actor: Actor, expected_status: str | None = None) -> ActionResult:
        return self._direct("return_to_pending", claim_id, STATUS_PENDING, actor, expected_status)

    def approve(self, claim_id: str, actor: Actor, expected_status: str | None = None) -> ActionResult:
        """pending|reviewing -> approved, issuing the approval code."""
        return self._direct("approve", claim_id, STATUS_APPROVED, actor, expected_status)

    def initiate_payment(self, claim_id: str, actor: Actor, expected_status: str | None = None) -> ActionResult:
        """confirmed -> payment_pending, issuing a payment code when payment needs one."""
        return self._direct("initiate_payment", claim_id, STATUS_PAYMENT_PENDING, actor, expected_status)

    def confirm_approval(
        self, claim_id: str, code: str, actor: Actor, expected_status: str | None = None
    ) -> ActionResult:
        """Verify the approval code and move approved -> confirmed atomically."""
        return self._verified(
            "confirm_approval", claim_id, code, PURPOSE_APPROVAL,
            STATUS_APPROVED, STATUS_CONFIRMED, actor, expected_status,
        )

    def mark_paid(
        self,
        claim_id: str,
        actor: Actor,
        code: str | None = None,
        expected_status: str | None = None,
    ) -> ActionResult:
        """payment_pending -> paid, gated by the payment code when configured."""
        if not self.payment_otp_required or not code:
            # Without a code the edge validation reports the missing payment code
            return self._direct("mark_paid", claim_id, STATUS_PAID, actor, expected_status)
        return self._verified(
            "mark_paid", claim_id, code, PURPOSE_PAYMENT,
            STATUS_PAYMENT_PENDING, STATUS_PAID, actor, expected_status,
        )

    def resend_code(self, claim_id: str, purpose: str, actor: Actor) -> ActionResult:
        """Issue a new code (superseding the old one) for a claim awaiting it."""
        action = f"resend_{purpose}_code"
        with claim_context(claim_id, action=action, actor=actor.staff_id), \
                track_action(action, claim_id):
            if purpose not in AWAITING_CODE:
                raise ValidationFailed(f"Unknown code purpose: {purpose!r}", claim_id=claim_id)
            allowed = actor.can_review if purpose == PURPOSE_APPROVAL else actor.can_pay
            if not allowed:
                raise AuthorizationDenied(
                    f"Role {actor.role.value} cannot request {purpose} codes", claim_id=claim_id
                )
            claim = self.repository.require_claim(claim_id)
            awaiting = AWAITING_CODE[purpose]
            if purpose == PURPOSE_PAYMENT and not self.payment_otp_required:
                raise InvalidTransition("Payment does not require a code", claim_id=claim_id)
            if claim["status"] != awaiting:
                raise InvalidTransition(
                    f"Claim is {claim['status']}; a {purpose} code is only sent while it is {awaiting}",
                    claim_id=claim_id,
                    current_status=claim["status"],
                )
            issued = self.otp.resend(claim_id, purpose, require_status=awaiting)
            log_claim_event(logger, "code_resent", claim_id=claim_id, purpose=purpose,
                            delivered=issued.delivered)
            return self._result(action, claim_id, claim["status"], changed=False, issued=issued)

    def transition_to(
        self,
        claim_id: str,
        status: str,
        actor: Actor,
        expected_status: str | None = None,
        code: str | None = None,
    ) -> ActionResult:
        """Route a requested target status to the matching action."""
        if status == STATUS_CONFIRMED and code:
            return self.confirm_approval(claim_id, code, actor, expected_status)
        if status == STATUS_PAID:
            return self.mark_paid(claim_id, actor, code=code, expected_status=expected_status)
        routes = {
            STATUS_REVIEWING: self.request_review,
            STATUS_PENDING: self.return_to_pending,
            STATUS_REJECTED: self.reject,
            STATUS_APPROVED: self.approve,
            STATUS_PAYMENT_PENDING: self.initiate_payment,
        }
        handler = routes.get(status)
        if handler is not None:
            return handler(claim_id, actor, expected_status)
        return self._direct("update_status", claim_id, status, actor, expected_status)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _check_expected(claim_id: str, current: str, expected_status: str | None) -> None:
        if expected_status is not None and expected_status != current:
            raise StaleState(
                f"Claim {claim_id} is {current}, expected {expected_status}; reload and retry",
                claim_id=claim_id,
                expected_status=expected_status,
                actual_status=current,
            )

    def _challenge_purpose_for(self, target: str) -> str | None:
        purpose = ISSUES_CHALLENGE.get(target)
        if purpose == PURPOSE_PAYMENT and not self.payment_otp_required:
            return None
        return purpose

    def _direct(
        self,
        action: str,
        claim_id: str,
        target: str,
        actor: Actor,
        expected_status: str | None,
    ) -> ActionResult:
        with claim_context(claim_id, action=action, actor=actor.staff_id), \
                track_action(action, claim_id) as tracked:
            pending_dispatch = None
            with self.repository.transaction() as conn:
                claim = self.repository.require_claim(claim_id, conn=conn)
                current = claim["status"]
                if current != target:
                    self._check_expected(claim_id, current, expected_status)
                check = validate_transition(
                    current, target, actor,
                    payment_otp_required=self.payment_otp_required, claim_id=claim_id,
                )
                if check.noop:
                    tracked.noop()
                    return self._result(action, claim_id, current, changed=False, conn=conn)
                self.repository.transition_status(
                    claim_id, current, target, actor=actor.staff_id, details=action, conn=conn
                )
                purpose = self._challenge_purpose_for(target)
                if purpose:
                    challenge, code = self.otp.create_challenge(conn, claim_id, purpose)
                    pending_dispatch = (claim, challenge, code)
            log_claim_event(logger, "status_changed", claim_id=claim_id, old=current, new=target)
            issued = self.otp.dispatch(*pending_dispatch) if pending_dispatch else None
            return self._result(action, claim_id, current, changed=True, issued=issued)

    def _verified(
        self,
        action: str,
        claim_id: str,
        code: str,
        purpose: str,
        source: str,
        target: str,
        actor: Actor,
        expected_status: str | None,
    ) -> ActionResult:
        with claim_context(claim_id, action=action, actor=actor.staff_id), \
                track_action(action, claim_id):
            claim = self.repository.require_claim(claim_id)
            current = claim["status"]
            if current != target:
                self._check_expected(claim_id, current, expected_status)
                # Role and edge checks before the code is looked at, so a
                # request that could never succeed does not burn an attempt.
                validate_transition(
                    current, target, actor, otp_verified=True,
                    payment_otp_required=self.payment_otp_required, claim_id=claim_id,
                )
            else:
                validate_transition(source, target, actor, otp_verified=True,
                                    payment_otp_required=self.payment_otp_required,
                                    claim_id=claim_id)

            def apply_transition(conn: sqlite3.Connection) -> None:
                self.repository.transition_status(
                    claim_id, source, target, actor=actor.staff_id, details=action, conn=conn
                )

            self.otp.verify(claim_id, purpose, code, on_success=apply_transition)
            log_claim_event(logger, "status_changed", claim_id=claim_id, old=source, new=target)
            return self._result(action, claim_id, source, changed=True)

    def _result(
        self,
        action: str,
        claim_id: str,
        previous_status: str,
        changed: bool,
        issued: IssuedChallenge | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> ActionResult:
        claim = Claim.from_row(self.repository.require_claim(claim_id, conn=conn))
        result = ActionResult(
            action=action,
            claim=claim,
            changed=changed,
            previous_status=previous_status,
        )
        if issued is not None:
            result.otp_purpose = issued.challenge.purpose
            result.otp_expires_at = issued.challenge.expires_at
            result.otp_delivered = issued.delivered
            if issued.warning:
                result.warnings.append(issued.warning)
            if self.expose_code:
                result.otp_code = issued.code
        return result
