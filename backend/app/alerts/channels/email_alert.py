"""
email_alert.py — Email delivery over SMTP.

Transport selection:

    SMTP_SECURE=true or SMTP_PORT=465  →  smtplib.SMTP_SSL (implicit TLS)
    otherwise                          →  smtplib.SMTP + STARTTLS

    EMAIL_SERVICE=gmail without SMTP_HOST selects smtp.gmail.com.

The message is multipart/alternative (plain text + HTML when available).
smtplib is blocking, so each send runs in a worker thread under the
channel timeout.

═══════════════════════════════════════════════════════════════════════════
COMMON FAILURES
═══════════════════════════════════════════════════════════════════════════

    Symptom                        Remediation logged
    ─────────────────────────      ────────────────────────────────────────
    535 authentication failed      check EMAIL_USER / EMAIL_PASSWORD; Gmail
                                   needs an App Password
    connection refused / reset     check SMTP_HOST / SMTP_PORT and network
    timeout                        SMTP server slow or unreachable

Credentials are never logged.
"""

from __future__ import annotations

import logging
import smtplib
import socket
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

from backend.app.alerts.channels.base import ChannelSender
from backend.app.alerts.models import AlertChannel, AlertMessage

logger = logging.getLogger(__name__)

SENDER_DISPLAY_NAME = "OceanGuard Alert System"


class EmailSender(ChannelSender):
    """Sends AlertMessages to an email address via SMTP."""

    channel = AlertChannel.EMAIL

    def configuration_problem(self) -> Optional[str]:
        s = self.settings
        if not s.EMAIL_USER or not s.EMAIL_PASSWORD:
            return (
                "Set EMAIL_USER and EMAIL_PASSWORD in .env "
                "(for Gmail: EMAIL_SERVICE=gmail and an App Password)."
            )
        if not s.smtp_host:
            return "Set SMTP_HOST (or EMAIL_SERVICE=gmail) in .env."
        return None

    def _build_mime(self, to_address: str, message: AlertMessage) -> MIMEMultipart:
        from_address = self.settings.EMAIL_FROM or self.settings.EMAIL_USER
        mime = MIMEMultipart("alternative")
        mime["Subject"] = message.subject
        mime["From"] = formataddr((SENDER_DISPLAY_NAME, from_address))
        mime["To"] = to_address
        mime.attach(MIMEText(message.text, "plain", "utf-8"))
        if message.html:
            mime.attach(MIMEText(message.html, "html", "utf-8"))
        return mime

    def _deliver(self, contact: str, message: AlertMessage) -> None:
        s = self.settings
        host = s.smtp_host
        mime = self._build_mime(contact, message)
        timeout = self.timeout_seconds

        if s.SMTP_SECURE or s.SMTP_PORT == 465:
            server = smtplib.SMTP_SSL(host, s.SMTP_PORT, timeout=timeout)
        else:
            server = smtplib.SMTP(host, s.SMTP_PORT, timeout=timeout)

        with server:
            if not (s.SMTP_SECURE or s.SMTP_PORT == 465):
                server.starttls()
            server.login(s.EMAIL_USER, s.EMAIL_PASSWORD)
            server.send_message(mime)

        logger.info("[EMAIL] Sent '%s' to %s", message.subject, contact)

    def _describe_error(self, exc: Exception) -> str:
        if isinstance(exc, smtplib.SMTPAuthenticationError):
            hint = (
                "check EMAIL_USER and EMAIL_PASSWORD; for Gmail use an App Password"
            )
        elif isinstance(exc, (smtplib.SMTPConnectError, smtplib.SMTPServerDisconnected,
                              ConnectionError)):
            hint = "check SMTP_HOST / SMTP_PORT or the network connection"
        elif isinstance(exc, socket.timeout):
            hint = "SMTP server timeout, check the network or server status"
        else:
            hint = None
        detail = f"{type(exc).__name__}: {exc}"
        return f"{detail} (fix: {hint})" if hint else detail
