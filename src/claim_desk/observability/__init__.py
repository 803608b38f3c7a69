"""Observability for the claim workflow.

This module provides:
- Structured logging with claim ID and actor context
- Per-action outcome and latency metrics
"""

from claim_desk.observability.logger import (
    ClaimLogger,
    claim_context,
    get_logger,
    log_claim_event,
)
from claim_desk.observability.metrics import (
    WorkflowMetrics,
    get_metrics,
    reset_metrics,
    track_action,
)

__all__ = [
    # Logger
    "ClaimLogger",
    "get_logger",
    "claim_context",
    "log_claim_event",
    # Metrics
    "WorkflowMetrics",
    "get_metrics",
    "reset_metrics",
    "track_action",
]
