"""
sms_gateway.py — WhatsApp / SMS delivery via Twilio.

    SMS_CHANNEL=whatsapp (default)
        from: TWILIO_WHATSAPP_NUMBER     → "whatsapp:+14155238886"
        to:   recipient phone            → "whatsapp:+<digits>"

    SMS_CHANNEL=sms
        from: TWILIO_PHONE_NUMBER
        to:   recipient phone            → "+<digits>"

Stored phone numbers without a leading "+" get one. The Twilio SDK is
blocking, so each send runs in a worker thread; the SDK's own HTTP client
carries the same timeout as the channel.
"""

from __future__ import annotations

import logging
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from backend.app.alerts.channels.base import ChannelSender
from backend.app.alerts.models import AlertChannel, AlertMessage

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"


def normalize_phone(phone: str) -> str:
    """
    >>> normalize_phone("919876543210")
    '+919876543210'
    >>> normalize_phone(" +1 555 0100 ")
    '+15550100'
    """
    digits = phone.strip().replace(" ", "").replace("-", "")
    if digits.startswith(WHATSAPP_PREFIX):
        digits = digits[len(WHATSAPP_PREFIX):]
    return digits if digits.startswith("+") else f"+{digits}"


class SmsSender(ChannelSender):
    """Sends plain-text alerts over WhatsApp or SMS."""

    channel = AlertChannel.SMS

    @property
    def uses_whatsapp(self) -> bool:
        return self.settings.SMS_CHANNEL.lower() != "sms"

    def _from_number(self) -> Optional[str]:
        if self.uses_whatsapp:
            return self.settings.TWILIO_WHATSAPP_NUMBER
        return self.settings.TWILIO_PHONE_NUMBER

    def configuration_problem(self) -> Optional[str]:
        s = self.settings
        if not s.TWILIO_ACCOUNT_SID or not s.TWILIO_AUTH_TOKEN:
            return "Set TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN in .env."
        if not self._from_number():
            if self.uses_whatsapp:
                return "Set TWILIO_WHATSAPP_NUMBER (e.g. whatsapp:+14155238886) in .env."
            return "Set TWILIO_PHONE_NUMBER in .env."
        return None

    def _addresses(self, phone: str) -> tuple:
        from_number = self._from_number() or ""
        to_number = normalize_phone(phone)
        if self.uses_whatsapp:
            if not from_number.startswith(WHATSAPP_PREFIX):
                from_number = f"{WHATSAPP_PREFIX}{from_number}"
            to_number = f"{WHATSAPP_PREFIX}{to_number}"
        return from_number, to_number

    def _deliver(self, contact: str, message: AlertMessage) -> None:
        from_number, to_number = self._addresses(contact)
        client = Client(
            self.settings.TWILIO_ACCOUNT_SID,
            self.settings.TWILIO_AUTH_TOKEN,
            http_client=TwilioHttpClient(timeout=self.timeout_seconds),
        )
        sent = client.messages.create(body=message.text, from_=from_number, to=to_number)
        logger.info("[SMS] Message sent via %s: %s", "whatsapp" if self.uses_whatsapp else "sms", sent.sid)

    def _describe_error(self, exc: Exception) -> str:
        if isinstance(exc, TwilioRestException):
            return f"Twilio error {exc.code}: {exc.msg}"
        return f"{type(exc).__name__}: {exc}"
