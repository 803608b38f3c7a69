"""Out-of-band delivery of one-time codes to claimants.

A notifier either delivers or raises NotificationDispatchFailed. Callers decide
what a failed delivery means; the challenge that produced the code is not
touched here.
"""

import logging
import smtplib
import threading
from collections import deque
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any

from claim_desk.config.settings import get_notification_config
from claim_desk.exceptions import NotificationDispatchFailed
from claim_desk.utils.retry import with_io_retry

logger = logging.getLogger(__name__)

# Messages kept by the log notifier; older ones are dropped
OUTBOX_LIMIT = 50

# Only connection-level SMTP failures are retried
SMTP_TRANSIENT_ERRORS = (
    ConnectionError,
    TimeoutError,
    smtplib.SMTPConnectError,
    smtplib.SMTPServerDisconnected,
)

_SUBJECTS = {
    "approval": "Your claim {claim_id} was approved: confirmation code",
    "payment": "Confirm payment for claim {claim_id}",
}


def render_otp_message(claim: dict[str, Any], purpose: str, code: str, expires_at: str) -> tuple[str, str]:
    """Subject and plain-text body for a code email."""
    subject = _SUBJECTS.get(purpose, "Claim {claim_id} verification code").format(
        claim_id=claim["id"]
    )
    body = f"""Hello {claim.get('claimant_name') or 'there'},

Your verification code for claim {claim['id']} ({purpose}) is:

    {code}

The code can be used once and expires at {expires_at} (UTC).

If you did not expect this message, contact our claims team.
"""
    return subject, body


class Notifier:
    """Base notifier. Subclasses implement send_otp."""

    name = "base"

    def send_otp(self, claim: dict[str, Any], purpose: str, code: str, expires_at: str) -> None:
        raise NotImplementedError


@dataclass
class SentMessage:
    claim_id: str
    recipient: str
    purpose: str
    subject: str
    body: str


class LogNotifier(Notifier):
    """Development notifier: logs the dispatch and keeps messages in memory."""

    name = "log"

    def __init__(self, limit: int = OUTBOX_LIMIT) -> None:
        self._lock = threading.Lock()
        self.outbox: deque[SentMessage] = deque(maxlen=limit)

    def send_otp(self, claim: dict[str, Any], purpose: str, code: str, expires_at: str) -> None:
        subject, body = render_otp_message(claim, purpose, code, expires_at)
        with self._lock:
            self.outbox.append(
                SentMessage(
                    claim_id=claim["id"],
                    recipient=claim.get("email") or "",
                    purpose=purpose,
                    subject=subject,
                    body=body,
                )
            )
        logger.info("Queued %s code for claim %s to %s", purpose, claim["id"], claim.get("email"))

    def last_code(self, claim_id: str, purpose: str) -> str | None:
        """Code from the most recent message for claim/purpose (tests and local demos)."""
        with self._lock:
            for message in reversed(self.outbox):
                if message.claim_id == claim_id and message.purpose == purpose:
                    for line in message.body.splitlines():
                        if line.startswith("    ") and line.strip().isdigit():
                            return line.strip()
        return None


class SmtpNotifier(Notifier):
    """Sends codes by email through an SMTP relay."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        sender: str = "claims@localhost",
        user: str | None = None,
        password: str | None = None,
        starttls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.user = user
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    @with_io_retry(max_attempts=3, retry_on=SMTP_TRANSIENT_ERRORS)
    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.starttls:
                smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password or "")
            smtp.send_message(message)

    def send_otp(self, claim: dict[str, Any], purpose: str, code: str, expires_at: str) -> None:
        recipient = claim.get("email")
        if not recipient:
            raise NotificationDispatchFailed(
                f"Claim {claim['id']} has no email address", claim_id=claim["id"]
            )
        subject, body = render_otp_message(claim, purpose, code, expires_at)
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = recipient
        message.set_content(body)
        try:
            self._deliver(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send %s code for claim %s: %s", purpose, claim["id"], e)
            raise NotificationDispatchFailed(
                f"Could not deliver {purpose} code to claimant: {e}", claim_id=claim["id"]
            ) from e
        logger.info("Sent %s code for claim %s", purpose, claim["id"])


def get_notifier() -> Notifier:
    """Build the notifier selected by CLAIM_DESK_NOTIFIER."""
    config = get_notification_config()
    backend = config["backend"]
    if backend == "smtp":
        return SmtpNotifier(
            host=config["smtp_host"],
            port=config["smtp_port"],
            sender=config["smtp_sender"],
            user=config["smtp_user"],
            password=config["smtp_password"],
            starttls=config["smtp_starttls"],
            timeout=config["smtp_timeout"],
        )
    if backend != "log":
        logger.warning("Unknown notifier backend %r; using log notifier", backend)
    return LogNotifier()
