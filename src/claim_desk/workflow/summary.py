"""Read-only projections over a set of claims for lists and the dashboard."""

from typing import Iterable

from claim_desk.config.settings import RECENT_ACTIVITY_LIMIT
from claim_desk.db.constants import CLAIM_STATUSES
from claim_desk.models.claim import Claim, ClaimsSummary

SORT_KEYS = ("submitted_at", "updated_at", "claim_amount", "claimant_name", "status", "incident_date")


def summarize(claims: Iterable[Claim]) -> ClaimsSummary:
    """Count claims and sum amounts per status. Every status appears, zero if unused."""
    by_status = {status: 0 for status in CLAIM_STATUSES}
    amount_by_status = {status: 0.0 for status in CLAIM_STATUSES}
    total = 0
    total_amount = 0.0
    for claim in claims:
        status = claim.status.value
        by_status[status] += 1
        amount_by_status[status] += claim.claim_amount
        total += 1
        total_amount += claim.claim_amount
    return ClaimsSummary(
        total=total,
        by_status=by_status,
        amount_by_status={k: round(v, 2) for k, v in amount_by_status.items()},
        total_amount=round(total_amount, 2),
    )


def filter_claims(
    claims: Iterable[Claim],
    status: str | None = None,
    claim_type: str | None = None,
    search: str | None = None,
) -> list[Claim]:
    """Filter by status, type and a case-insensitive search over id, claimant and description."""
    needle = (search or "").strip().lower()
    out = []
    for claim in claims:
        if status and claim.status.value != status:
            continue
        if claim_type and claim.claim_type.value != claim_type:
            continue
        if needle:
            haystack = " ".join(
                (claim.id, claim.claimant_name, claim.claimant_id, claim.email, claim.description)
            ).lower()
            if needle not in haystack:
                continue
        out.append(claim)
    return out


def sort_claims(claims: Iterable[Claim], key: str = "submitted_at", descending: bool = True) -> list[Claim]:
    if key not in SORT_KEYS:
        raise ValueError(f"Cannot sort by {key!r}. Expected one of {', '.join(SORT_KEYS)}")

    def sort_value(claim: Claim):
        value = getattr(claim, key)
        if key == "status":
            return value.value
        if isinstance(value, str):
            return value.lower()
        return value

    # id as tie-breaker keeps the order stable across calls
    ordered = sorted(claims, key=lambda c: c.id)
    return sorted(ordered, key=sort_value, reverse=descending)


def recent_activity(claims: Iterable[Claim], limit: int | None = None) -> list[Claim]:
    """Most recently updated claims first."""
    limit = RECENT_ACTIVITY_LIMIT if limit is None else limit
    return sort_claims(claims, key="updated_at", descending=True)[: max(limit, 0)]
