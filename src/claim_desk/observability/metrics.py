"""Workflow action metrics: outcome counts and latency per action and per claim.

This module provides:
- WorkflowMetrics: thread-safe in-process aggregation
- track_action: context manager recording one workflow action
- get_metrics / reset_metrics: process-wide singleton access
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator

logger = logging.getLogger(__name__)

OUTCOME_OK = "ok"
OUTCOME_NOOP = "noop"


@dataclass
class ActionStats:
    """Aggregated outcomes and latency for one action name."""

    action: str
    outcomes: dict[str, int] = field(default_factory=dict)
    total_latency_ms: float = 0.0
    latencies_ms: list[float] = field(default_factory=list)

    @property
    def count(self) -> int:
        return sum(self.outcomes.values())

    @property
    def avg_latency_ms(self) -> float:
        return self.total_latency_ms / self.count if self.count else 0.0

    def percentile(self, pct: float) -> float:
        if not self.latencies_ms:
            return 0.0
        ordered = sorted(self.latencies_ms)
        index = min(int(round(pct / 100.0 * (len(ordered) - 1))), len(ordered) - 1)
        return ordered[index]

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "count": self.count,
            "outcomes": dict(self.outcomes),
            "avg_latency_ms": round(self.avg_latency_ms, 3),
            "p95_latency_ms": round(self.percentile(95), 3),
        }


@dataclass
class ClaimActivity:
    """Actions recorded for one claim in this process."""

    claim_id: str
    first_seen: datetime
    last_seen: datetime
    actions: list[tuple[str, str]] = field(default_factory=list)
    dispatch_failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim_id": self.claim_id,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "actions": [{"action": a, "outcome": o} for a, o in self.actions],
            "dispatch_failures": self.dispatch_failures,
        }


class WorkflowMetrics:
    """Collects workflow action outcomes. Safe to use from several threads."""

    # Keep latency samples bounded per action
    MAX_SAMPLES = 1000

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._actions: dict[str, ActionStats] = {}
        self._claims: dict[str, ClaimActivity] = {}
        self._dispatch_failures = 0

    def _claim(self, claim_id: str) -> ClaimActivity:
        now = datetime.now(timezone.utc)
        activity = self._claims.get(claim_id)
        if activity is None:
            activity = ClaimActivity(claim_id=claim_id, first_seen=now, last_seen=now)
            self._claims[claim_id] = activity
        activity.last_seen = now
        return activity

    def record_action(
        self, action: str, outcome: str, latency_ms: float, claim_id: str | None = None
    ) -> None:
        with self._lock:
            stats = self._actions.setdefault(action, ActionStats(action=action))
            stats.outcomes[outcome] = stats.outcomes.get(outcome, 0) + 1
            stats.total_latency_ms += latency_ms
            stats.latencies_ms.append(latency_ms)
            if len(stats.latencies_ms) > self.MAX_SAMPLES:
                del stats.latencies_ms[: len(stats.latencies_ms) - self.MAX_SAMPLES]
            if claim_id:
                self._claim(claim_id).actions.append((action, outcome))

    def record_dispatch_failure(self, claim_id: str | None = None) -> None:
        with self._lock:
            self._dispatch_failures += 1
            if claim_id:
                self._claim(claim_id).dispatch_failures += 1

    def get_action_stats(self, action: str) -> ActionStats | None:
        with self._lock:
            return self._actions.get(action)

    def get_claim_activity(self, claim_id: str) -> dict[str, Any] | None:
        with self._lock:
            activity = self._claims.get(claim_id)
            return activity.to_dict() if activity else None

    def get_global_stats(self) -> dict[str, Any]:
        with self._lock:
            total = sum(s.count for s in self._actions.values())
            failures = sum(
                n
                for s in self._actions.values()
                for outcome, n in s.outcomes.items()
                if outcome not in (OUTCOME_OK, OUTCOME_NOOP)
            )
            return {
                "total_actions": total,
                "failed_actions": failures,
                "claims_touched": len(self._claims),
                "dispatch_failures": self._dispatch_failures,
                "actions": {name: s.to_dict() for name, s in sorted(self._actions.items())},
            }

    def reset(self) -> None:
        with self._lock:
            self._actions.clear()
            self._claims.clear()
            self._dispatch_failures = 0


_metrics: WorkflowMetrics | None = None
_metrics_lock = threading.Lock()


def get_metrics() -> WorkflowMetrics:
    """Return the process-wide metrics collector."""
    global _metrics
    with _metrics_lock:
        if _metrics is None:
            _metrics = WorkflowMetrics()
        return _metrics


def reset_metrics() -> None:
    """Reset the global collector (tests)."""
    get_metrics().reset()


class _ActionOutcome:
    """Mutable holder so the tracked block can mark a no-op."""

    def __init__(self) -> None:
        self.outcome = OUTCOME_OK

    def noop(self) -> None:
        self.outcome = OUTCOME_NOOP


@contextmanager
def track_action(action: str, claim_id: str | None = None) -> Iterator[_ActionOutcome]:
    """Record outcome and latency of one workflow action.

    Exceptions are recorded under their ``code`` attribute (or class name)
    and re-raised.
    """
    holder = _ActionOutcome()
    start = time.perf_counter()
    try:
        yield holder
    except Exception as e:
        outcome = getattr(e, "code", None) or type(e).__name__
        get_metrics().record_action(action, outcome, (time.perf_counter() - start) * 1000, claim_id)
        raise
    get_metrics().record_action(action, holder.outcome, (time.perf_counter() - start) * 1000, claim_id)
