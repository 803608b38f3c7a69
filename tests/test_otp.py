"""Tests for one-time code challenges."""

import logging

import pytest

from claim_desk.db.database import get_connection
from claim_desk.db.repository import ClaimRepository
from claim_desk.exceptions import (
    AlreadyConsumed,
    CodeMismatch,
    Expired,
    InvalidTransition,
    NoActiveChallenge,
    StaleState,
    ValidationFailed,
)
from claim_desk.observability import get_metrics
from claim_desk.workflow.otp import OtpChallengeManager, generate_numeric_code


@pytest.fixture
def clocked_repo(temp_db, clock):
    return ClaimRepository(db_path=temp_db, clock=clock)


@pytest.fixture
def manager(clocked_repo, notifier):
    return OtpChallengeManager(clocked_repo, notifier, ttl_minutes=10, code_length=6, max_attempts=5)


@pytest.fixture
def claim_id(clocked_repo, sample_claim_input):
    return clocked_repo.create_claim(sample_claim_input)


def _wrong(code: str) -> str:
    return "0" * len(code) if code != "0" * len(code) else "1" * len(code)


class TestGenerateCode:
    def test_numeric_and_length(self):
        code = generate_numeric_code(6)
        assert len(code) == 6
        assert code.isdigit()

    def test_length_bounds(self):
        with pytest.raises(ValueError):
            generate_numeric_code(3)
        with pytest.raises(ValueError):
            generate_numeric_code(11)


class TestIssue:
    """Issuing and resending challenges."""

    def test_issue_dispatches_code(self, manager, notifier, claim_id):
        issued = manager.issue(claim_id, "approval")
        assert issued.delivered
        assert issued.warning is None
        assert issued.challenge.state == "live"
        assert notifier.last_code(claim_id, "approval") == issued.code
        assert notifier.outbox[-1].recipient == "dana.whitfield@example.com"

    def test_code_is_not_stored_in_plain_text(self, temp_db, manager, claim_id):
        issued = manager.issue(claim_id, "approval")
        with get_connection(temp_db) as conn:
            row = conn.execute("SELECT code_salt, code_hash FROM otp_challenges").fetchone()
        assert issued.code not in (row["code_salt"], row["code_hash"])

    def test_expiry_is_ttl_after_issue(self, manager, claim_id):
        issued = manager.issue(claim_id, "approval")
        assert issued.challenge.created_at == "2025-03-01T09:00:00.000000Z"
        assert issued.challenge.expires_at == "2025-03-01T09:10:00.000000Z"

    def test_resend_supersedes_previous(self, manager, claim_id):
        first = manager.issue(claim_id, "approval")
        second = manager.resend(claim_id, "approval")
        assert second.challenge.id != first.challenge.id
        assert manager.live_challenge(claim_id, "approval").id == second.challenge.id

    def test_purposes_are_independent(self, manager, claim_id):
        approval = manager.issue(claim_id, "approval")
        payment = manager.issue(claim_id, "payment")
        assert manager.live_challenge(claim_id, "approval").id == approval.challenge.id
        assert manager.live_challenge(claim_id, "payment").id == payment.challenge.id

    def test_unknown_purpose(self, manager, claim_id):
        with pytest.raises(ValidationFailed):
            manager.issue(claim_id, "refund")

    def test_require_status(self, manager, claim_id):
        with pytest.raises(InvalidTransition):
            manager.issue(claim_id, "approval", require_status="approved")
        assert manager.live_challenge(claim_id, "approval") is None

    def test_dispatch_failure_is_a_warning(self, clocked_repo, failing_notifier, claim_id):
        manager = OtpChallengeManager(clocked_repo, failing_notifier, ttl_minutes=10)
        issued = manager.issue(claim_id, "approval")
        assert not issued.delivered
        assert "may not have reached the claimant" in issued.warning
        assert manager.live_challenge(claim_id, "approval") is not None
        assert get_metrics().get_global_stats()["dispatch_failures"] == 1

    def test_dispatch_events_carry_claim_id(self, caplog, clocked_repo, notifier, failing_notifier, claim_id):
        caplog.set_level(logging.INFO, logger="claim_desk.workflow.otp")
        sent = OtpChallengeManager(clocked_repo, notifier).issue(claim_id, "approval")
        failed = OtpChallengeManager(clocked_repo, failing_notifier).issue(claim_id, "approval")
        events = {r.extra_data["event"]: r for r in caplog.records if hasattr(r, "extra_data")}
        assert events["code_dispatched"].claim_id == claim_id
        assert events["code_dispatch_failed"].levelno == logging.WARNING
        for record in caplog.records:
            assert sent.code not in record.getMessage()
            assert failed.code not in record.getMessage()

    def test_issue_is_audited(self, clocked_repo, manager, claim_id):
        manager.issue(claim_id, "approval")
        actions = [e["action"] for e in clocked_repo.get_claim_history(claim_id)]
        assert "approval_code_issued" in actions


class TestVerify:
    """Verification outcomes and their precedence."""

    def test_correct_code_consumes(self, manager, claim_id):
        issued = manager.issue(claim_id, "approval")
        challenge = manager.verify(claim_id, "approval", issued.code)
        assert challenge.state == "consumed"
        assert challenge.consumed
        assert manager.live_challenge(claim_id, "approval") is None

    def test_surrounding_whitespace_ignored(self, manager, claim_id):
        issued = manager.issue(claim_id, "approval")
        manager.verify(claim_id, "approval", f"  {issued.code} ")

    def test_second_use_already_consumed(self, manager, claim_id):
        issued = manager.issue(claim_id, "approval")
        manager.verify(claim_id, "approval", issued.code)
        with pytest.raises(AlreadyConsumed):
            manager.verify(claim_id, "approval", issued.code)

    def test_no_challenge(self, manager, claim_id):
        with pytest.raises(NoActiveChallenge):
            manager.verify(claim_id, "approval", "123456")

    def test_expired(self, manager, clock, claim_id):
        issued = manager.issue(claim_id, "approval")
        clock.advance(minutes=10)
        with pytest.raises(Expired):
            manager.verify(claim_id, "approval", issued.code)

    def test_just_before_expiry_is_valid(self, manager, clock, claim_id):
        issued = manager.issue(claim_id, "approval")
        clock.advance(minutes=9, seconds=59)
        manager.verify(claim_id, "approval", issued.code)

    def test_mismatch_counts_attempts(self, temp_db, manager, claim_id):
        issued = manager.issue(claim_id, "approval")
        with pytest.raises(CodeMismatch) as exc_info:
            manager.verify(claim_id, "approval", _wrong(issued.code))
        assert exc_info.value.attempts_remaining == 4
        assert manager.live_challenge(claim_id, "approval").failed_attempts == 1

    def test_lock_after_max_attempts(self, manager, claim_id):
        issued = manager.issue(claim_id, "approval")
        for _ in range(4):
            with pytest.raises(CodeMismatch):
                manager.verify(claim_id, "approval", _wrong(issued.code))
        with pytest.raises(CodeMismatch) as exc_info:
            manager.verify(claim_id, "approval", _wrong(issued.code))
        assert exc_info.value.attempts_remaining == 0
        # Even the right code no longer works once locked
        with pytest.raises(NoActiveChallenge):
            manager.verify(claim_id, "approval", issued.code)

    def test_resend_unlocks(self, manager, claim_id):
        issued = manager.issue(claim_id, "approval")
        for _ in range(5):
            with pytest.raises(CodeMismatch):
                manager.verify(claim_id, "approval", _wrong(issued.code))
        fresh = manager.resend(claim_id, "approval")
        manager.verify(claim_id, "approval", fresh.code)

    def test_superseded_code_is_expired_not_mismatch(self, manager, claim_id):
        first = manager.issue(claim_id, "approval")
        second = manager.resend(claim_id, "approval")
        if first.code == second.code:
            pytest.skip("codes collided")
        with pytest.raises(Expired, match="replaced"):
            manager.verify(claim_id, "approval", first.code)
        # A stale code does not burn an attempt on the new challenge
        assert manager.live_challenge(claim_id, "approval").failed_attempts == 0
        manager.verify(claim_id, "approval", second.code)

    def test_on_success_runs_in_same_transaction(self, clocked_repo, manager, claim_id):
        clocked_repo.transition_status(claim_id, "pending", "approved")
        issued = manager.issue(claim_id, "approval")

        def apply(conn):
            clocked_repo.transition_status(claim_id, "approved", "confirmed", conn=conn)

        manager.verify(claim_id, "approval", issued.code, on_success=apply)
        assert clocked_repo.get_claim(claim_id)["status"] == "confirmed"

    def test_failed_on_success_keeps_challenge_live(self, clocked_repo, manager, claim_id):
        issued = manager.issue(claim_id, "approval")

        def apply(conn):
            clocked_repo.transition_status(claim_id, "approved", "confirmed", conn=conn)

        # Claim is still pending, so the paired CAS fails and consumption rolls back
        with pytest.raises(StaleState):
            manager.verify(claim_id, "approval", issued.code, on_success=apply)
        assert manager.live_challenge(claim_id, "approval") is not None
        assert clocked_repo.get_claim(claim_id)["status"] == "pending"
