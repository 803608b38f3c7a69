"""Shared pytest fixtures for all test files."""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from claim_desk.db.database import init_db
from claim_desk.db.repository import ClaimRepository
from claim_desk.models.claim import Actor, ClaimInput, StaffRole
from claim_desk.notifications import LogNotifier, Notifier
from claim_desk.exceptions import NotificationDispatchFailed


@pytest.fixture(autouse=True)
def temp_db():
    """Use a temporary SQLite DB for tests."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    init_db(path)
    prev = os.environ.get("CLAIMS_DB_PATH")
    os.environ["CLAIMS_DB_PATH"] = path
    try:
        yield path
    finally:
        if prev is None:
            os.environ.pop("CLAIMS_DB_PATH", None)
        else:
            os.environ["CLAIMS_DB_PATH"] = prev
        try:
            os.unlink(path)
        except OSError:
            # Ignore errors when cleaning up the temporary DB file (e.g., if already removed).
            pass


@pytest.fixture(autouse=True)
def reset_global_metrics():
    """Reset the global WorkflowMetrics singleton before and after each test."""
    from claim_desk.observability.metrics import reset_metrics

    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop the package log handler so it never holds a captured stream from an earlier test."""
    import logging

    yield
    package_logger = logging.getLogger("claim_desk")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.propagate = True


class FakeClock:
    """Settable clock for expiry tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FailingNotifier(Notifier):
    """Notifier whose delivery always fails."""

    name = "failing"

    def __init__(self):
        self.attempts = 0

    def send_otp(self, claim, purpose, code, expires_at):
        self.attempts += 1
        raise NotificationDispatchFailed("SMTP relay unavailable", claim_id=claim["id"])


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return LogNotifier()


@pytest.fixture
def repo(temp_db):
    return ClaimRepository(db_path=temp_db)


@pytest.fixture
def sample_claim_data():
    return {
        "claimant_name": "Dana Whitfield",
        "claimant_id": "MBR-20931",
        "email": "dana.whitfield@example.com",
        "phone": "555-0142",
        "address": "12 Harbour Road, Portside",
        "claim_type": "property",
        "claim_amount": 4200.50,
        "incident_date": "2025-02-14",
        "incident_location": "Portside",
        "description": "Storm damage to roof and gutters.",
        "supporting_documents": ["roof-photo-1.jpg", "contractor-quote.pdf"],
    }


@pytest.fixture
def sample_claim_input(sample_claim_data):
    return ClaimInput.model_validate(sample_claim_data)


@pytest.fixture
def admin():
    return Actor(staff_id="alice", role=StaffRole.ADMIN)


@pytest.fixture
def reviewer():
    return Actor(staff_id="rory", role=StaffRole.REVIEWER)


@pytest.fixture
def finance():
    return Actor(staff_id="fin", role=StaffRole.FINANCE)


@pytest.fixture
def viewer():
    return Actor(staff_id="vic", role=StaffRole.VIEWER)


@pytest.fixture
def failing_notifier():
    return FailingNotifier()
