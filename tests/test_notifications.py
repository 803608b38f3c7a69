"""Tests for code notifications."""

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from claim_desk.exceptions import NotificationDispatchFailed
from claim_desk.notifications import (
    OUTBOX_LIMIT,
    LogNotifier,
    SmtpNotifier,
    get_notifier,
    render_otp_message,
)

CLAIM = {"id": "CLM-1234ABCD", "claimant_name": "Dana Whitfield", "email": "dana@example.com"}


def test_render_otp_message():
    subject, body = render_otp_message(CLAIM, "approval", "482913", "2025-03-01T09:10:00.000000Z")
    assert "CLM-1234ABCD" in subject
    assert "Hello Dana Whitfield," in body
    assert "    482913" in body
    assert "2025-03-01T09:10:00.000000Z" in body


class TestLogNotifier:
    def test_keeps_outbox(self):
        notifier = LogNotifier()
        notifier.send_otp(CLAIM, "approval", "111111", "exp")
        notifier.send_otp(CLAIM, "payment", "222222", "exp")
        notifier.send_otp(CLAIM, "approval", "333333", "exp")
        assert len(notifier.outbox) == 3
        assert notifier.outbox[0].recipient == "dana@example.com"
        assert notifier.last_code("CLM-1234ABCD", "approval") == "333333"
        assert notifier.last_code("CLM-1234ABCD", "payment") == "222222"
        assert notifier.last_code("CLM-OTHER", "approval") is None

    def test_outbox_is_bounded(self):
        notifier = LogNotifier(limit=3)
        for i in range(10):
            notifier.send_otp(CLAIM, "approval", f"{100000 + i}", "exp")
        assert len(notifier.outbox) == 3
        assert notifier.last_code("CLM-1234ABCD", "approval") == "100009"
        assert all("100000" not in m.body for m in notifier.outbox)

    def test_default_limit(self):
        notifier = LogNotifier()
        for i in range(OUTBOX_LIMIT + 20):
            notifier.send_otp(CLAIM, "payment", f"{200000 + i}", "exp")
        assert len(notifier.outbox) == OUTBOX_LIMIT


class TestSmtpNotifier:
    def test_sends_email(self):
        smtp = MagicMock()
        with patch("claim_desk.notifications.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value = smtp
            SmtpNotifier("mail.test", 2525, sender="claims@test", user="u", password="p").send_otp(
                CLAIM, "approval", "482913", "exp"
            )
        smtp_cls.assert_called_once_with("mail.test", 2525, timeout=10.0)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("u", "p")
        message = smtp.send_message.call_args[0][0]
        assert message["To"] == "dana@example.com"
        assert message["From"] == "claims@test"
        assert "482913" in message.get_content()

    def test_missing_email_fails(self):
        with pytest.raises(NotificationDispatchFailed):
            SmtpNotifier("mail.test").send_otp({"id": "CLM-1", "email": ""}, "approval", "1", "exp")

    def test_relay_failure_is_dispatch_failure(self):
        with patch("claim_desk.notifications.smtplib.SMTP") as smtp_cls, \
                patch("tenacity.nap.time.sleep"):
            smtp_cls.side_effect = ConnectionRefusedError("refused")
            with pytest.raises(NotificationDispatchFailed):
                SmtpNotifier("mail.test", starttls=False).send_otp(CLAIM, "approval", "1", "exp")
        # Transient connection errors are retried before giving up
        assert smtp_cls.call_count == 3

    def test_smtp_protocol_error_is_dispatch_failure(self):
        smtp = MagicMock()
        smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({})
        with patch("claim_desk.notifications.smtplib.SMTP") as smtp_cls, \
                patch("tenacity.nap.time.sleep"):
            smtp_cls.return_value.__enter__.return_value = smtp
            with pytest.raises(NotificationDispatchFailed):
                SmtpNotifier("mail.test", starttls=False).send_otp(CLAIM, "approval", "1", "exp")
        assert smtp_cls.call_count == 1

    def test_permanent_smtp_error_is_not_retried(self):
        smtp = MagicMock()
        smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        with patch("claim_desk.notifications.smtplib.SMTP") as smtp_cls, \
                patch("tenacity.nap.time.sleep"):
            smtp_cls.return_value.__enter__.return_value = smtp
            with pytest.raises(NotificationDispatchFailed):
                SmtpNotifier("mail.test", user="u", password="p").send_otp(CLAIM, "approval", "1", "exp")
        assert smtp_cls.call_count == 1
        smtp.send_message.assert_not_called()

    def test_refused_recipient_sent_once(self):
        smtp = MagicMock()
        smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({"dana@example.com": (550, b"no")})
        with patch("claim_desk.notifications.smtplib.SMTP") as smtp_cls, \
                patch("tenacity.nap.time.sleep"):
            smtp_cls.return_value.__enter__.return_value = smtp
            with pytest.raises(NotificationDispatchFailed):
                SmtpNotifier("mail.test", starttls=False).send_otp(CLAIM, "approval", "1", "exp")
        assert smtp.send_message.call_count == 1

    def test_dropped_connection_is_retried(self):
        smtp = MagicMock()
        smtp.send_message.side_effect = [smtplib.SMTPServerDisconnected("gone"), None]
        with patch("claim_desk.notifications.smtplib.SMTP") as smtp_cls, \
                patch("tenacity.nap.time.sleep"):
            smtp_cls.return_value.__enter__.return_value = smtp
            SmtpNotifier("mail.test", starttls=False).send_otp(CLAIM, "approval", "1", "exp")
        assert smtp.send_message.call_count == 2


def test_get_notifier_backends(monkeypatch):
    monkeypatch.setenv("CLAIM_DESK_NOTIFIER", "log")
    assert isinstance(get_notifier(), LogNotifier)
    monkeypatch.setenv("CLAIM_DESK_NOTIFIER", "smtp")
    monkeypatch.setenv("CLAIM_DESK_SMTP_HOST", "mail.test")
    notifier = get_notifier()
    assert isinstance(notifier, SmtpNotifier)
    assert notifier.host == "mail.test"
    monkeypatch.setenv("CLAIM_DESK_NOTIFIER", "carrier-pigeon")
    assert isinstance(get_notifier(), LogNotifier)
