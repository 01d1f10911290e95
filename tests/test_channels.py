"""
test_channels.py — Email, WhatsApp/SMS and realtime delivery backends,
plus the message templates they carry.

Provider SDKs are patched at the module boundary; no network I/O happens.
"""

from __future__ import annotations

import logging
import smtplib
import time
from unittest.mock import MagicMock, patch

import pytest
from twilio.base.exceptions import TwilioRestException

from backend.app.alerts.channels.email_alert import EmailSender
from backend.app.alerts.channels.realtime import (
    HAZARD_REPORTED_EVENT,
    ConnectionManager,
    RealtimeBroadcaster,
)
from backend.app.alerts.channels.sms_gateway import SmsSender, normalize_phone
from backend.app.alerts.formatter import (
    build_authority_message,
    build_proximity_email,
    build_proximity_sms,
    map_link,
)
from backend.app.alerts.models import AlertMessage, HazardKind, severity_label
from backend.app.core.errors import ChannelNotConfiguredError

from conftest import FakeWebSocket, make_event, make_recipient, make_settings

MESSAGE = AlertMessage(subject="Ocean Hazard Alert", text="plain body", html="<p>html</p>")


# ═══════════════════════════════════════════════════════════════════════════
# Formatter
# ═══════════════════════════════════════════════════════════════════════════

class TestSeverityLabel:

    @pytest.mark.parametrize("severity,label", [
        (1, "Low"), (3, "Low"), (4, "Medium"), (6, "Medium"),
        (7, "High"), (8, "High"), (9, "Critical"), (10, "Critical"),
    ])
    def test_bands(self, severity, label):
        assert severity_label(severity) == label


class TestFormatter:

    def test_authority_subject_and_body(self):
        event = make_event(severity=9)
        msg = build_authority_message(event, "Gulf of Mannar")

        assert msg.subject == "New Ocean Hazard Report: Oil Spill - Critical Severity"
        assert "Critical (9/10)" in msg.text
        assert "Gulf of Mannar" in msg.text
        assert "10.0000°, 20.0000°" in msg.text
        assert "Reported By: Meera" in msg.text
        assert "Report ID: rep-1" in msg.text
        assert "https://www.google.com/maps?q=10.0,20.0" in msg.text
        assert msg.html and "Thick slick near the reef" in msg.html

    def test_authority_without_description(self):
        msg = build_authority_message(make_event(description=None), "Somewhere")
        assert "Description" not in msg.text
        assert "Description" not in msg.html

    def test_proximity_email_greets_recipient(self):
        event = make_event(kind=HazardKind.DEBRIS, severity=5)
        msg = build_proximity_email(event, make_recipient(name="Arun"), "Bay", 10_000)

        assert msg.subject == "Ocean Hazard Alert: Debris Reported Nearby"
        assert msg.text.startswith("Hello Arun,")
        assert "within 10.0 km" in msg.text
        assert "Medium (5/10)" in msg.text

    def test_html_escapes_user_text(self):
        event = make_event(description="<script>alert(1)</script>")
        msg = build_proximity_email(event, make_recipient(name="<b>Eve</b>"), "Bay", 10_000)
        assert "<script>" not in msg.html
        assert "&lt;b&gt;Eve&lt;/b&gt;" in msg.html

    def test_sms_is_plain_text(self):
        msg = build_proximity_sms(make_event(), make_recipient(name="Arun"), "Bay")
        assert msg.html is None
        assert "Hello Arun" in msg.text
        assert map_link(make_event()) in msg.text


# ═══════════════════════════════════════════════════════════════════════════
# Email
# ═══════════════════════════════════════════════════════════════════════════

class TestEmailSender:

    def test_configuration_problem_without_credentials(self):
        sender = EmailSender(make_settings(EMAIL_USER=None, EMAIL_PASSWORD=None))
        assert "EMAIL_USER" in sender.configuration_problem()
        with pytest.raises(ChannelNotConfiguredError):
            sender.require_configured()

    def test_configuration_problem_without_host(self):
        sender = EmailSender(make_settings(EMAIL_SERVICE=None, SMTP_HOST=None))
        assert "SMTP_HOST" in sender.configuration_problem()

    def test_gmail_shortcut_is_configured(self, settings):
        assert settings.smtp_host == "smtp.gmail.com"
        assert EmailSender(settings).is_configured

    async def test_unconfigured_send_makes_no_connection(self):
        sender = EmailSender(make_settings(EMAIL_PASSWORD=None))
        with patch("smtplib.SMTP") as smtp:
            assert await sender.send("a@example.com", MESSAGE) is False
        smtp.assert_not_called()

    async def test_starttls_send(self, settings):
        with patch("smtplib.SMTP") as smtp:
            ok = await EmailSender(settings).send("arun@example.com", MESSAGE)

        assert ok is True
        smtp.assert_called_once_with("smtp.gmail.com", 587, timeout=2.0)
        server = smtp.return_value
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("alerts@oceanguard.example", "app-password")
        sent = server.send_message.call_args.args[0]
        assert sent["To"] == "arun@example.com"
        assert sent["Subject"] == "Ocean Hazard Alert"
        assert "OceanGuard Alert System" in sent["From"]
        assert [p.get_content_type() for p in sent.get_payload()] == [
            "text/plain", "text/html",
        ]

    async def test_implicit_tls(self):
        settings = make_settings(SMTP_HOST="smtp.example.org", SMTP_PORT=465, SMTP_SECURE=True)
        with patch("smtplib.SMTP_SSL") as smtp_ssl, patch("smtplib.SMTP") as smtp:
            assert await EmailSender(settings).send("a@example.com", MESSAGE)
        smtp.assert_not_called()
        smtp_ssl.return_value.starttls.assert_not_called()
        smtp_ssl.return_value.send_message.assert_called_once()

    async def test_auth_failure_logs_hint_without_secret(self, settings, caplog):
        with patch("smtplib.SMTP") as smtp:
            smtp.return_value.login.side_effect = smtplib.SMTPAuthenticationError(
                535, b"5.7.8 Username and Password not accepted",
            )
            with caplog.at_level(logging.ERROR):
                ok = await EmailSender(settings).send("a@example.com", MESSAGE)

        assert ok is False
        assert "App Password" in caplog.text
        assert "app-password" not in caplog.text

    async def test_timeout_is_failure(self, settings):
        sender = EmailSender(settings, timeout_seconds=0.05)
        with patch("smtplib.SMTP", side_effect=lambda *a, **kw: time.sleep(0.2)):
            assert await sender.send("a@example.com", MESSAGE) is False

    async def test_empty_contact_is_failure(self, settings):
        with patch("smtplib.SMTP") as smtp:
            assert await EmailSender(settings).send("", MESSAGE) is False
        smtp.assert_not_called()


# ═══════════════════════════════════════════════════════════════════════════
# WhatsApp / SMS
# ═══════════════════════════════════════════════════════════════════════════

class TestSmsSender:

    def test_normalize_phone(self):
        assert normalize_phone("919876543210") == "+919876543210"
        assert normalize_phone("+1 555-0100") == "+15550100"
        assert normalize_phone("whatsapp:+4477") == "+4477"

    def test_configuration_problem(self):
        sender = SmsSender(make_settings(TWILIO_AUTH_TOKEN=None))
        assert "TWILIO_AUTH_TOKEN" in sender.configuration_problem()

        sender = SmsSender(make_settings(TWILIO_WHATSAPP_NUMBER=None))
        assert "TWILIO_WHATSAPP_NUMBER" in sender.configuration_problem()

        sender = SmsSender(make_settings(SMS_CHANNEL="sms"))
        assert "TWILIO_PHONE_NUMBER" in sender.configuration_problem()

    async def test_whatsapp_send(self, settings):
        with patch("backend.app.alerts.channels.sms_gateway.Client") as client_cls, \
                patch("backend.app.alerts.channels.sms_gateway.TwilioHttpClient") as http:
            client_cls.return_value.messages.create.return_value = MagicMock(sid="SM123")
            ok = await SmsSender(settings).send("919876543210", MESSAGE)

        assert ok is True
        http.assert_called_once_with(timeout=2.0)
        client_cls.assert_called_once_with("AC123", "token", http_client=http.return_value)
        client_cls.return_value.messages.create.assert_called_once_with(
            body="plain body",
            from_="whatsapp:+14155238886",
            to="whatsapp:+919876543210",
        )

    async def test_plain_sms_send(self):
        settings = make_settings(SMS_CHANNEL="sms", TWILIO_PHONE_NUMBER="+15550000")
        with patch("backend.app.alerts.channels.sms_gateway.Client") as client_cls, \
                patch("backend.app.alerts.channels.sms_gateway.TwilioHttpClient"):
            assert await SmsSender(settings).send("+919876543210", MESSAGE)

        client_cls.return_value.messages.create.assert_called_once_with(
            body="plain body", from_="+15550000", to="+919876543210",
        )

    async def test_whatsapp_sender_prefix_added(self):
        settings = make_settings(TWILIO_WHATSAPP_NUMBER="+14155238886")
        with patch("backend.app.alerts.channels.sms_gateway.Client") as client_cls, \
                patch("backend.app.alerts.channels.sms_gateway.TwilioHttpClient"):
            await SmsSender(settings).send("15550100", MESSAGE)

        kwargs = client_cls.return_value.messages.create.call_args.kwargs
        assert kwargs["from_"] == "whatsapp:+14155238886"
        assert kwargs["to"] == "whatsapp:+15550100"

    async def test_provider_error_is_failure(self, settings, caplog):
        with patch("backend.app.alerts.channels.sms_gateway.Client") as client_cls, \
                patch("backend.app.alerts.channels.sms_gateway.TwilioHttpClient"):
            client_cls.return_value.messages.create.side_effect = TwilioRestException(
                400, "/Messages", msg="Invalid 'To' number", code=21211,
            )
            with caplog.at_level(logging.ERROR):
                ok = await SmsSender(settings).send("919876543210", MESSAGE)

        assert ok is False
        assert "21211" in caplog.text
        assert "token" not in caplog.text

    async def test_unconfigured_makes_no_attempt(self):
        with patch("backend.app.alerts.channels.sms_gateway.Client") as client_cls:
            ok = await SmsSender(make_settings(TWILIO_ACCOUNT_SID=None)).send("1555", MESSAGE)
        assert ok is False
        client_cls.assert_not_called()


# ═══════════════════════════════════════════════════════════════════════════
# Realtime
# ═══════════════════════════════════════════════════════════════════════════

class TestRealtimeBroadcaster:

    async def test_broadcast_to_all_listeners(self, settings):
        manager = ConnectionManager()
        sockets = [FakeWebSocket(), FakeWebSocket()]
        for ws in sockets:
            await manager.connect(ws)

        ok = await RealtimeBroadcaster(manager, settings).broadcast(make_event())

        assert ok is True
        for ws in sockets:
            assert ws.accepted
            (msg,) = ws.sent
            assert msg["event"] == HAZARD_REPORTED_EVENT
            assert msg["data"]["id"] == "rep-1"
            assert msg["data"]["type"] == "Oil Spill"
            assert msg["data"]["location"] == {"lat": 10.0, "lng": 20.0}
            assert msg["data"]["imageUrl"] == "https://img.example/slick.jpg"

    async def test_dead_socket_dropped(self, settings):
        manager = ConnectionManager()
        alive, dead = FakeWebSocket(), FakeWebSocket(fail=True)
        await manager.connect(alive)
        await manager.connect(dead)

        ok = await RealtimeBroadcaster(manager, settings).broadcast(make_event())

        assert ok is True
        assert manager.listener_count == 1
        assert alive in manager.active

    async def test_no_listeners_is_success(self, settings):
        assert await RealtimeBroadcaster(ConnectionManager(), settings).broadcast(make_event())

    async def test_all_listeners_failing_is_failure(self, settings):
        manager = ConnectionManager()
        await manager.connect(FakeWebSocket(fail=True))

        assert await RealtimeBroadcaster(manager, settings).broadcast(make_event()) is False
        assert manager.listener_count == 0
