"""Tests for claim list and dashboard projections."""

import pytest

from claim_desk.db.constants import CLAIM_STATUSES
from claim_desk.models.claim import Claim
from claim_desk.workflow.summary import filter_claims, recent_activity, sort_claims, summarize


def _claim(claim_id, status="pending", amount=100.0, name="Dana", claim_type="medical",
           submitted="2025-01-01T00:00:00.000000Z", updated=None, description=""):
    return Claim(
        id=claim_id,
        claimant_name=name,
        claimant_id=f"MBR-{claim_id}",
        email="x@example.com",
        claim_type=claim_type,
        claim_amount=amount,
        incident_date="2024-12-30",
        description=description,
        status=status,
        submitted_at=submitted,
        updated_at=updated or submitted,
    )


@pytest.fixture
def claims():
    return [
        _claim("CLM-A", "pending", 100.0, "Zed", submitted="2025-01-01T00:00:00.000000Z"),
        _claim("CLM-B", "approved", 250.5, "amy", claim_type="vehicle",
               submitted="2025-01-02T00:00:00.000000Z", updated="2025-01-05T00:00:00.000000Z",
               description="Hail damage on bonnet"),
        _claim("CLM-C", "rejected", 75.25, "Bob", submitted="2025-01-03T00:00:00.000000Z"),
        _claim("CLM-D", "pending", 20.0, "Cat", submitted="2025-01-04T00:00:00.000000Z"),
    ]


class TestSummarize:
    def test_counts_and_amounts(self, claims):
        summary = summarize(claims)
        assert summary.total == 4
        assert summary.pending == 2
        assert summary.approved == 1
        assert summary.rejected == 1
        assert summary.amount_by_status["pending"] == 120.0
        assert summary.total_amount == 445.75

    def test_every_status_present(self):
        summary = summarize([])
        assert set(summary.by_status) == set(CLAIM_STATUSES)
        assert summary.total == 0
        assert summary.total_amount == 0.0


class TestFilter:
    def test_by_status(self, claims):
        assert [c.id for c in filter_claims(claims, status="pending")] == ["CLM-A", "CLM-D"]

    def test_by_type(self, claims):
        assert [c.id for c in filter_claims(claims, claim_type="vehicle")] == ["CLM-B"]

    def test_search_is_case_insensitive(self, claims):
        assert [c.id for c in filter_claims(claims, search="HAIL")] == ["CLM-B"]
        assert [c.id for c in filter_claims(claims, search="clm-c")] == ["CLM-C"]

    def test_no_filters_returns_all(self, claims):
        assert len(filter_claims(claims)) == 4


class TestSort:
    def test_default_newest_first(self, claims):
        assert [c.id for c in sort_claims(claims)] == ["CLM-D", "CLM-C", "CLM-B", "CLM-A"]

    def test_by_amount_ascending(self, claims):
        assert [c.id for c in sort_claims(claims, "claim_amount", descending=False)] == [
            "CLM-D", "CLM-C", "CLM-A", "CLM-B",
        ]

    def test_by_name_ignores_case(self, claims):
        assert [c.claimant_name for c in sort_claims(claims, "claimant_name", descending=False)] == [
            "amy", "Bob", "Cat", "Zed",
        ]

    def test_unknown_key(self, claims):
        with pytest.raises(ValueError):
            sort_claims(claims, "email")


def test_recent_activity(claims):
    recent = recent_activity(claims, limit=2)
    assert [c.id for c in recent] == ["CLM-B", "CLM-D"]
