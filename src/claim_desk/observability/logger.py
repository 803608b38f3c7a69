"""Structured logging with claim and actor context.

This module provides:
- ClaimLogger: A structured logger that attaches claim_id to all log messages
- claim_context: A context manager for setting claim/actor context on a block
- log_claim_event: Helper for logging claim-specific workflow events

One-time codes and session tokens must never be passed to these loggers.
"""

import json
import logging
import os
import sys
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

# Thread-local storage for claim context
_context = threading.local()


def _get_claim_context() -> dict[str, Any]:
    """Get the current claim context from thread-local storage."""
    return getattr(_context, "claim_data", {})


def _set_claim_context(data: dict[str, Any]) -> None:
    """Set the claim context in thread-local storage."""
    _context.claim_data = data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON with claim context."""
        log_data: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_data["timestamp"] = datetime.now(timezone.utc).isoformat()

        claim_ctx = _get_claim_context()
        if claim_ctx:
            log_data["claim_id"] = claim_ctx.get("claim_id")
            log_data["action"] = claim_ctx.get("action")
            log_data["actor"] = claim_ctx.get("actor")
            log_data["correlation_id"] = claim_ctx.get("correlation_id")

        if getattr(record, "claim_id", None):
            log_data["claim_id"] = record.claim_id
        if getattr(record, "extra_data", None):
            log_data["data"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data["source"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter with claim context prefix."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        ctx_parts = []
        claim_ctx = _get_claim_context()

        claim_id = getattr(record, "claim_id", None) or claim_ctx.get("claim_id")
        if claim_id:
            ctx_parts.append(f"claim={claim_id}")
        action = claim_ctx.get("action")
        if action:
            ctx_parts.append(f"action={action}")
        actor = claim_ctx.get("actor")
        if actor:
            ctx_parts.append(f"by={actor}")

        ctx_str = f" [{', '.join(ctx_parts)}]" if ctx_parts else ""

        message = record.getMessage()
        if getattr(record, "extra_data", None):
            message += f" | {record.extra_data}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return f"{timestamp} {record.levelname:8}{ctx_str} {record.name}: {message}"


class ClaimLogger(logging.LoggerAdapter):
    """Logger adapter that adds claim context to all log messages."""

    def __init__(self, logger: logging.Logger, claim_id: str | None = None):
        super().__init__(logger, {})
        self._claim_id = claim_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Add claim context to log kwargs."""
        extra = kwargs.get("extra", {})

        if self._claim_id and not extra.get("claim_id"):
            extra["claim_id"] = self._claim_id

        kwargs["extra"] = extra
        return msg, kwargs

    def log_event(
        self,
        event: str,
        level: int = logging.INFO,
        **data: Any,
    ) -> None:
        """Log a structured event with additional data."""
        log_claim_event(self, event, claim_id=self._claim_id, level=level, **data)


def get_logger(
    name: str,
    claim_id: str | None = None,
    structured: bool | None = None,
) -> ClaimLogger:
    """Get a ClaimLogger instance.

    Args:
        name: Logger name (typically __name__)
        claim_id: Optional claim ID to attach to all logs
        structured: If True, use JSON format. If False, use human-readable.
                   If None, use CLAIM_DESK_LOG_FORMAT env var (default: human)

    Returns:
        ClaimLogger instance
    """
    logger = logging.getLogger(name)

    # Only the package root gets a handler; children propagate to it
    if name.split(".")[0] == name and not logger.handlers:
        if structured is None:
            log_format = os.environ.get("CLAIM_DESK_LOG_FORMAT", "human").lower()
            structured = log_format == "json"

        handler = logging.StreamHandler(sys.stderr)
        if structured:
            handler.setFormatter(StructuredFormatter())
        else:
            handler.setFormatter(HumanReadableFormatter())

        logger.addHandler(handler)

        log_level = os.environ.get("CLAIM_DESK_LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, log_level, logging.INFO))

        # Prevent duplicate logs from propagating to parent handlers
        logger.propagate = False

    return ClaimLogger(logger, claim_id)


@contextmanager
def claim_context(
    claim_id: str,
    action: str | None = None,
    actor: str | None = None,
    **extra: Any,
):
    """Context manager for setting claim context on all logs within the block.

    Usage:
        with claim_context(claim_id="CLM-123", action="approve", actor="alice"):
            logger.info("Approving claim")  # Will include claim_id in output
    """
    old_context = _get_claim_context()
    new_context = {
        "claim_id": claim_id,
        "action": action,
        "actor": actor,
        "correlation_id": str(uuid.uuid4()),
        **extra,
    }
    _set_claim_context(new_context)
    try:
        yield
    finally:
        _set_claim_context(old_context)


def log_claim_event(
    logger: logging.Logger | ClaimLogger,
    event: str,
    claim_id: str | None = None,
    level: int = logging.INFO,
    **data: Any,
) -> None:
    """Log a claim event with structured data.

    Args:
        logger: Logger instance
        event: Event name (e.g., "claim_created", "status_changed")
        claim_id: Claim ID (optional if using claim_context)
        level: Log level
        **data: Additional event data
    """
    message = f"[{event}]"
    if data:
        details = ", ".join(f"{k}={v}" for k, v in data.items())
        message = f"{message} {details}"

    extra = {"claim_id": claim_id, "extra_data": {"event": event, **data}}
    logger.log(level, message, extra=extra)
