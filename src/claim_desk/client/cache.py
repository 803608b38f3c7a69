"""Client-side claims cache.

The cache is a convenience for display, never the source of truth. Every read
is stamped with the generation current when it started; a response is only
stored if no invalidation happened in the meantime, so a slow read that was
overtaken by a mutation (or by close()) is dropped instead of overwriting
fresher state.
"""

import threading

from claim_desk.models.claim import Claim


class ClaimsCache:
    """Generation-stamped cache of claims keyed by id, plus the last listing."""

    def __init__(self):
        self._lock = threading.Lock()
        self._generation = 0
        self._closed = False
        self._claims: dict[str, Claim] = {}
        self._listing: list[str] | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def closed(self) -> bool:
        return self._closed

    def ticket(self) -> int:
        """Generation to stamp on a read that is about to start."""
        with self._lock:
            return self._generation

    def is_current(self, ticket: int) -> bool:
        with self._lock:
            return not self._closed and ticket == self._generation

    def store_claim(self, ticket: int, claim: Claim) -> bool:
        """Store one claim read under `ticket`. Returns False if the read was superseded."""
        with self._lock:
            if self._closed or ticket != self._generation:
                return False
            self._claims[claim.id] = claim
            return True

    def store_listing(self, ticket: int, claims: list[Claim]) -> bool:
        """Store a full listing read under `ticket`. Returns False if the read was superseded."""
        with self._lock:
            if self._closed or ticket != self._generation:
                return False
            self._claims = {c.id: c for c in claims}
            self._listing = [c.id for c in claims]
            return True

    def get(self, claim_id: str) -> Claim | None:
        with self._lock:
            return self._claims.get(claim_id)

    def listing(self) -> list[Claim] | None:
        with self._lock:
            if self._listing is None:
                return None
            return [self._claims[cid] for cid in self._listing if cid in self._claims]

    def invalidate(self) -> None:
        """Drop everything and supersede reads still in flight."""
        with self._lock:
            self._generation += 1
            self._claims.clear()
            self._listing = None

    def close(self) -> None:
        """Invalidate and refuse further stores; used on sign-out or teardown."""
        with self._lock:
            self._closed = True
            self._generation += 1
            self._claims.clear()
            self._listing = None
