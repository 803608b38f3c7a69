"""Centralized configuration from environment variables with defaults."""

import os
from typing import Any

from dotenv import load_dotenv

load_dotenv()


def _float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


def _str(key: str, default: str) -> str:
    raw = os.environ.get(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

def get_environment() -> str:
    """Deployment environment name (default: development)."""
    return _str("CLAIM_DESK_ENV", "development").lower()


def is_production() -> bool:
    return get_environment() in ("production", "prod")


# ---------------------------------------------------------------------------
# One-time codes
# ---------------------------------------------------------------------------

def get_otp_config() -> dict[str, Any]:
    """One-time code policy for approval and payment confirmation.

    expose_code is forced off in production no matter what the environment
    says, so codes never leave the server there.
    """
    return {
        "ttl_minutes": _int("CLAIM_DESK_OTP_TTL_MINUTES", 10),
        "length": _int("CLAIM_DESK_OTP_LENGTH", 6),
        "max_attempts": _int("CLAIM_DESK_OTP_MAX_ATTEMPTS", 5),
        "payment_otp_required": _bool("CLAIM_DESK_PAYMENT_OTP_REQUIRED", True),
        "expose_code": _bool("CLAIM_DESK_EXPOSE_OTP", False) and not is_production(),
    }


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

def get_notification_config() -> dict[str, Any]:
    """Notifier backend and SMTP settings."""
    return {
        "backend": _str("CLAIM_DESK_NOTIFIER", "log").lower(),
        "smtp_host": _str("CLAIM_DESK_SMTP_HOST", "localhost"),
        "smtp_port": _int("CLAIM_DESK_SMTP_PORT", 587),
        "smtp_user": os.environ.get("CLAIM_DESK_SMTP_USER"),
        "smtp_password": os.environ.get("CLAIM_DESK_SMTP_PASSWORD"),
        "smtp_sender": _str("CLAIM_DESK_SMTP_SENDER", "claims@localhost"),
        "smtp_starttls": _bool("CLAIM_DESK_SMTP_STARTTLS", True),
        "smtp_timeout": _float("CLAIM_DESK_SMTP_TIMEOUT", 10.0),
    }


# ---------------------------------------------------------------------------
# Staff sessions
# ---------------------------------------------------------------------------

SESSION_TTL_HOURS = _int("CLAIM_DESK_SESSION_TTL_HOURS", 12)
SESSION_POLL_SECONDS = _float("CLAIM_DESK_SESSION_POLL_SECONDS", 300.0)


def get_actor_config() -> dict[str, str]:
    """Identity used by the CLI and MCP server when acting on claims."""
    return {
        "staff_id": _str("CLAIM_DESK_ACTOR_ID", "cli"),
        "role": _str("CLAIM_DESK_ACTOR_ROLE", "admin").lower(),
    }


# ---------------------------------------------------------------------------
# Dashboard projection
# ---------------------------------------------------------------------------

RECENT_ACTIVITY_LIMIT = _int("CLAIM_DESK_RECENT_LIMIT", 5)


# ---------------------------------------------------------------------------
# REST API
# ---------------------------------------------------------------------------

def get_api_config() -> dict[str, Any]:
    """Bind address and allowed browser origins for the REST API."""
    origins = _str("CLAIM_DESK_CORS_ORIGINS", "http://localhost:5173")
    return {
        "host": _str("CLAIM_DESK_HOST", "127.0.0.1"),
        "port": _int("CLAIM_DESK_PORT", 8000),
        "cors_origins": [o.strip() for o in origins.split(",") if o.strip()],
    }
