"""
base.py — Common contract for delivery channels.

    configuration_problem() → Optional[str]
        None when the channel can send; otherwise a remediation line.
        Evaluated from the live Settings on every call, so rotating
        credentials takes effect without a restart.

    send(contact, message) → bool
        Exactly one provider attempt, bounded by timeout_seconds.
        Never raises: configuration gaps, provider errors and timeouts
        all come back as False.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from backend.app.alerts.models import AlertChannel, AlertMessage
from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.errors import ChannelNotConfiguredError

logger = logging.getLogger(__name__)


class ChannelSender(ABC):
    """A single-contact delivery channel (email, SMS/WhatsApp)."""

    channel: AlertChannel

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        timeout_seconds: Optional[float] = None,
    ):
        self.settings = settings or default_settings
        self._timeout_override = timeout_seconds

    @property
    def timeout_seconds(self) -> float:
        if self._timeout_override is not None:
            return self._timeout_override
        return self.settings.CHANNEL_TIMEOUT_SECONDS

    @abstractmethod
    def configuration_problem(self) -> Optional[str]:
        """Remediation text when the channel cannot send, else None."""

    @property
    def is_configured(self) -> bool:
        return self.configuration_problem() is None

    def require_configured(self) -> None:
        problem = self.configuration_problem()
        if problem is not None:
            raise ChannelNotConfiguredError(self.channel.value, problem)

    @abstractmethod
    def _deliver(self, contact: str, message: AlertMessage) -> None:
        """Blocking provider call; runs in a worker thread."""

    def _describe_error(self, exc: Exception) -> str:
        return str(exc)

    async def send(self, contact: str, message: AlertMessage) -> bool:
        if not contact:
            logger.debug("[%s] No contact address; skipping", self.channel.value)
            return False
        try:
            self.require_configured()
            await asyncio.wait_for(
                asyncio.to_thread(self._deliver, contact, message),
                timeout=self.timeout_seconds,
            )
        except ChannelNotConfiguredError:
            logger.debug("[%s] Not configured; skipping", self.channel.value)
            return False
        except asyncio.TimeoutError:
            logger.error(
                "[%s] Send timed out after %.1fs",
                self.channel.value, self.timeout_seconds,
                extra={"channel": self.channel.value},
            )
            return False
        except Exception as exc:
            logger.error(
                "[%s] Send failed: %s",
                self.channel.value, self._describe_error(exc),
                extra={"channel": self.channel.value},
            )
            return False
        return True
