"""Tests for the REST API."""

import pytest
from fastapi.testclient import TestClient

from claim_desk.api.app import create_app
from claim_desk.api.deps import bearer_token
from claim_desk.db.constants import STAFF_ROLES
from claim_desk.db.sessions import StaffSessionStore


@pytest.fixture
def app(temp_db, notifier):
    return create_app(db_path=temp_db, notifier=notifier)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def tokens(temp_db):
    store = StaffSessionStore(temp_db)
    return {role: store.create_session(f"{role}-1", role) for role in STAFF_ROLES}


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(tokens):
    return _auth(tokens["admin"])


@pytest.fixture
def created(client, admin_headers, sample_claim_data):
    response = client.post("/api/claims", json=sample_claim_data, headers=admin_headers)
    assert response.status_code == 201
    return response.json()


def _patch(client, claim_id, headers, **body):
    return client.patch(f"/api/claims/{claim_id}", json=body, headers=headers)


class TestAuth:
    """Bearer sessions."""

    def test_health_needs_no_session(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_missing_token_is_401(self, client):
        response = client.get("/api/claims")
        assert response.status_code == 401
        assert response.json()["error"] == "authentication_required"
        assert response.headers["www-authenticate"] == "Bearer"

    def test_bad_token_is_401(self, client):
        assert client.get("/api/claims", headers=_auth("nope")).status_code == 401

    def test_bearer_token_parsing(self):
        assert bearer_token("Bearer abc") == "abc"
        assert bearer_token("bearer  abc ") == "abc"
        assert bearer_token("Basic abc") is None
        assert bearer_token("Bearer ") is None
        assert bearer_token(None) is None

    def test_current_session(self, client, tokens):
        response = client.get("/api/auth/session", headers=_auth(tokens["finance"]))
        assert response.json() == {"session": {"user": {"id": "finance-1", "role": "finance"}}}

    def test_sign_out_revokes(self, client, tokens):
        headers = _auth(tokens["reviewer"])
        assert client.post("/api/auth/signout", headers=headers).status_code == 200
        assert client.get("/api/auth/session", headers=headers).status_code == 401


class TestClaims:
    """Intake and reads."""

    def test_create_claim(self, created):
        assert created["status"] == "pending"
        assert created["claim_type"] == "property"
        assert created["id"].startswith("CLM-")

    def test_viewer_cannot_create(self, client, tokens, sample_claim_data):
        response = client.post("/api/claims", json=sample_claim_data, headers=_auth(tokens["viewer"]))
        assert response.status_code == 403
        assert response.json()["error"] == "authorization_denied"

    def test_invalid_claim_is_422(self, client, admin_headers, sample_claim_data):
        response = client.post(
            "/api/claims", json={**sample_claim_data, "claim_amount": 0}, headers=admin_headers
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_failed"
        assert body["details"][0]["loc"] == ["claim_amount"]

    def test_list_and_filter(self, client, admin_headers, created, sample_claim_data):
        other = client.post(
            "/api/claims", json={**sample_claim_data, "claim_type": "medical"}, headers=admin_headers
        ).json()
        _patch(client, other["id"], admin_headers, status="rejected")

        all_claims = client.get("/api/claims", headers=admin_headers).json()["claims"]
        assert {c["id"] for c in all_claims} == {created["id"], other["id"]}

        pending = client.get("/api/claims", params={"status": "pending"}, headers=admin_headers).json()
        assert [c["id"] for c in pending["claims"]] == [created["id"]]

        medical = client.get("/api/claims", params={"claim_type": "medical"}, headers=admin_headers).json()
        assert [c["id"] for c in medical["claims"]] == [other["id"]]

    def test_bad_sort_is_422(self, client, admin_headers):
        response = client.get("/api/claims", params={"sort": "email"}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["error"] == "validation_failed"

    def test_viewer_can_read(self, client, tokens, created):
        response = client.get(f"/api/claims/{created['id']}", headers=_auth(tokens["viewer"]))
        assert response.status_code == 200
        assert response.json()["id"] == created["id"]

    def test_unknown_claim_is_404(self, client, admin_headers):
        response = client.get("/api/claims/CLM-NOPE0000", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_stats(self, client, admin_headers, created):
        stats = client.get("/api/claims/stats", headers=admin_headers).json()
        assert stats["total"] == 1
        assert stats["pending"] == 1
        assert stats["by_status"]["pending"] == 1
        assert stats["total_amount"] == 4200.5

    def test_recent(self, client, admin_headers, created):
        recent = client.get("/api/claims/recent", params={"limit": 1}, headers=admin_headers).json()
        assert [c["id"] for c in recent] == [created["id"]]

    def test_history(self, client, admin_headers, created):
        body = client.get(f"/api/claims/{created['id']}/history", headers=admin_headers).json()
        assert body["claim_id"] == created["id"]
        assert body["history"][0]["action"] == "created"


class TestWorkflowEndpoints:
    """Status changes and code verification over HTTP."""

    def test_happy_path(self, client, tokens, notifier, created):
        claim_id = created["id"]
        reviewer = _auth(tokens["reviewer"])
        finance = _auth(tokens["finance"])

        approved = _patch(client, claim_id, reviewer, status="approved", expected_status="pending")
        assert approved.status_code == 200
        assert approved.json()["claim"]["status"] == "approved"
        assert approved.json()["otp_purpose"] == "approval"
        assert "otp_code" not in approved.json()

        code = notifier.last_code(claim_id, "approval")
        confirmed = client.post(
            f"/api/claims/{claim_id}/verify-otp", json={"otp": code}, headers=reviewer
        )
        assert confirmed.status_code == 200
        assert confirmed.json()["claim"]["status"] == "confirmed"

        assert _patch(client, claim_id, finance, status="payment_pending").status_code == 200
        payment_code = notifier.last_code(claim_id, "payment")
        paid = client.post(
            f"/api/claims/{claim_id}/verify-otp",
            json={"otp": payment_code, "purpose": "payment"},
            headers=finance,
        )
        assert paid.json()["claim"]["status"] == "paid"

    def test_wrong_code(self, client, admin_headers, notifier, created):
        claim_id = created["id"]
        _patch(client, claim_id, admin_headers, status="approved")
        code = notifier.last_code(claim_id, "approval")
        wrong = "000000" if code != "000000" else "111111"
        response = client.post(
            f"/api/claims/{claim_id}/verify-otp", json={"otp": wrong}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["error"] == "code_mismatch"
        assert response.json()["attempts_remaining"] == 4
        assert client.get(f"/api/claims/{claim_id}", headers=admin_headers).json()["status"] == "approved"

    def test_patch_confirm_with_code(self, client, admin_headers, notifier, created):
        claim_id = created["id"]
        _patch(client, claim_id, admin_headers, status="approved")
        code = notifier.last_code(claim_id, "approval")
        response = _patch(client, claim_id, admin_headers, status="confirmed", otp=code)
        assert response.json()["claim"]["status"] == "confirmed"

    def test_stale_expected_status(self, client, admin_headers, created):
        claim_id = created["id"]
        _patch(client, claim_id, admin_headers, status="reviewing")
        response = _patch(client, claim_id, admin_headers, status="rejected", expected_status="pending")
        assert response.status_code == 409
        assert response.json()["error"] == "stale_state"
        assert response.json()["actual_status"] == "reviewing"

    def test_invalid_transition(self, client, admin_headers, created):
        response = _patch(client, created["id"], admin_headers, status="paid")
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"

    def test_unknown_status_is_422(self, client, admin_headers, created):
        response = _patch(client, created["id"], admin_headers, status="archived")
        assert response.status_code == 422

    def test_role_enforced_server_side(self, client, tokens, created):
        response = _patch(client, created["id"], _auth(tokens["viewer"]), status="reviewing")
        assert response.status_code == 403
        response = _patch(client, created["id"], _auth(tokens["finance"]), status="approved")
        assert response.status_code == 403

    def test_same_status_is_noop(self, client, admin_headers, created):
        response = _patch(client, created["id"], admin_headers, status="pending")
        assert response.status_code == 200
        assert response.json()["changed"] is False

    def test_generate_otp_supersedes(self, client, admin_headers, notifier, created):
        claim_id = created["id"]
        _patch(client, claim_id, admin_headers, status="approved")
        first = notifier.last_code(claim_id, "approval")
        response = client.post(f"/api/claims/{claim_id}/generate-otp", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["otp_purpose"] == "approval"
        second = notifier.last_code(claim_id, "approval")
        if first != second:
            stale = client.post(
                f"/api/claims/{claim_id}/verify-otp", json={"otp": first}, headers=admin_headers
            )
            assert stale.status_code == 410
            assert stale.json()["error"] == "expired"
        ok = client.post(f"/api/claims/{claim_id}/verify-otp", json={"otp": second}, headers=admin_headers)
        assert ok.status_code == 200

    def test_generate_otp_wrong_status(self, client, admin_headers, created):
        response = client.post(
            f"/api/claims/{created['id']}/generate-otp", json={"purpose": "approval"}, headers=admin_headers
        )
        assert response.status_code == 409

    def test_payment_code_on_approved_claim(self, client, admin_headers, created):
        claim_id = created["id"]
        _patch(client, claim_id, admin_headers, status="approved")
        _patch(client, claim_id, admin_headers, status="approved")
        response = client.post(
            f"/api/claims/{claim_id}/verify-otp",
            json={"otp": "123456", "purpose": "payment"},
            headers=admin_headers,
        )
        # payment code on an approved claim: the edge approved -> paid does not exist
        assert response.status_code == 409
