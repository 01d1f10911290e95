"""
dispatcher.py — Fan-out of one new hazard to every notification channel.

═══════════════════════════════════════════════════════════════════════════
DISPATCH FLOW
═══════════════════════════════════════════════════════════════════════════

    HazardEvent
        │
        ├── invalid coordinates? ──► ERROR log, outcome.error, stop
        │
        ├──────────────► [A] realtime broadcast (own task, starts first)
        │
        ├── log each configuration gap once (WARNING + remediation)
        ├── resolve address once (any geocoder fault ⇒ coordinates)
        │
        ├──────────────► [B] authority branch
        │                     ledger.should_notify_authority
        │                        (ledger down ⇒ notify)
        │                     suppressed ──► authority_suppressed = True
        │                     else send to OCEAN_AUTHORITY_EMAIL
        │                     ledger.record_attempt(succeeded)   always
        │
        └──────────────► [C] proximity fan-out
                              index.find_within_radius(10 km)
                                 (index down ⇒ zero recipients)
                              per recipient: email if email, SMS if phone
                              every attempt concurrent (asyncio.gather)

    [A], [B], [C] run concurrently; the outcome is assembled only after all
    three have ended, even when one of them raised.

═══════════════════════════════════════════════════════════════════════════
FAILURE POLICY
═══════════════════════════════════════════════════════════════════════════

    • Each attempt is isolated: an exception or False on one recipient or
      channel never prevents any other attempt.
    • Exactly one attempt per (recipient, channel); no retries. A hazard
      may under-deliver, it never double-delivers.
    • Nothing propagates to the caller. An unexpected fault in one branch
      is logged at CRITICAL and returned in outcome.error; the other
      branches still run to completion.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, List, Optional, Tuple

from backend.app.alerts.channels.base import ChannelSender
from backend.app.alerts.channels.realtime import RealtimeBroadcaster
from backend.app.alerts.dedup_ledger import DuplicateSuppressionLedger
from backend.app.alerts.formatter import (
    build_authority_message,
    build_proximity_email,
    build_proximity_sms,
)
from backend.app.alerts.geocoding import ReverseGeocoder
from backend.app.alerts.models import (
    AlertChannel,
    AlertMessage,
    DispatchOutcome,
    HazardEvent,
    RecipientDeliveryRecord,
    RecipientProfile,
)
from backend.app.alerts.recipient_index import SQLRecipientIndex
from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.errors import LedgerUnavailableError, RecipientLookupError
from backend.app.spatial.radius_utils import format_coordinates

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Orchestrates realtime, authority and proximity notifications for a hazard.

    All collaborators are injected once at startup; the dispatcher keeps no
    per-hazard state between calls.
    """

    def __init__(
        self,
        *,
        index: SQLRecipientIndex,
        ledger: DuplicateSuppressionLedger,
        email_sender: ChannelSender,
        sms_sender: ChannelSender,
        broadcaster: RealtimeBroadcaster,
        geocoder: ReverseGeocoder,
        settings: Optional[Settings] = None,
    ):
        self.index = index
        self.ledger = ledger
        self.email_sender = email_sender
        self.sms_sender = sms_sender
        self.broadcaster = broadcaster
        self.geocoder = geocoder
        self.settings = settings or default_settings

    # ═══════════════════════════════════════════════════════════════════
    # Entry point
    # ═══════════════════════════════════════════════════════════════════

    async def dispatch_for_hazard(self, event: HazardEvent) -> DispatchOutcome:
        outcome = DispatchOutcome(hazard_id=event.report_id)
        log_extra = {"hazard_id": event.report_id, "hazard_kind": event.kind.value}

        if not event.location.is_valid:
            logger.error(
                "Hazard %s has invalid coordinates (%r, %r); no notifications sent",
                event.report_id, event.location.lat, event.location.lng,
                extra=log_extra,
            )
            outcome.error = "invalid coordinates"
            outcome.completed_at = datetime.now(timezone.utc)
            return outcome

        broadcast_task = asyncio.create_task(self._broadcast(event, outcome))
        self._log_configuration_problems(event)
        address = await self._resolve_address(event)

        results = await asyncio.gather(
            broadcast_task,
            self._notify_authority(event, address, outcome),
            self._notify_nearby(event, address, outcome),
            return_exceptions=True,
        )
        faults = [r for r in results if isinstance(r, BaseException)]
        for fault in faults:
            logger.critical(
                "Dispatch branch for hazard %s failed: %s", event.report_id, fault,
                exc_info=fault, extra=log_extra,
            )
        if faults:
            outcome.error = "; ".join(f"{type(f).__name__}: {f}" for f in faults)
        outcome.completed_at = datetime.now(timezone.utc)

        logger.info(
            "Hazard %s dispatched: recipients=%d realtime=%s authority=%s%s "
            "delivered=%d failed=%d",
            event.report_id,
            outcome.recipients_found,
            outcome.realtime_broadcast,
            outcome.authority_notified,
            " (suppressed)" if outcome.authority_suppressed else "",
            sum(outcome.channel_successes.values()),
            sum(outcome.channel_failures.values()),
            extra={
                **log_extra,
                "recipient_count": outcome.recipients_found,
                "duration_ms": outcome.duration_ms,
            },
        )
        return outcome

    # ═══════════════════════════════════════════════════════════════════
    # Configuration gaps
    # ═══════════════════════════════════════════════════════════════════

    def configuration_problems(self) -> List[Tuple[str, str]]:
        """(channel, remediation) for every channel that cannot send right now."""
        problems: List[Tuple[str, str]] = []
        for sender in (self.email_sender, self.sms_sender):
            problem = sender.configuration_problem()
            if problem:
                problems.append((sender.channel.value, problem))
        if not self.settings.OCEAN_AUTHORITY_EMAIL:
            problems.append((
                AlertChannel.AUTHORITY_EMAIL.value,
                "Set OCEAN_AUTHORITY_EMAIL=authority@example.org in .env.",
            ))
        return problems

    def _log_configuration_problems(self, event: HazardEvent) -> None:
        for channel, remediation in self.configuration_problems():
            logger.warning(
                "Channel '%s' is not configured; its alerts for hazard %s will "
                "not be delivered. %s",
                channel, event.report_id, remediation,
                extra={"hazard_id": event.report_id, "channel": channel},
            )

    # ═══════════════════════════════════════════════════════════════════
    # Branches
    # ═══════════════════════════════════════════════════════════════════

    async def _resolve_address(self, event: HazardEvent) -> str:
        try:
            return await self.geocoder.describe(event.location)
        except Exception as exc:
            logger.error(
                "Address lookup for hazard %s failed, using coordinates: %s",
                event.report_id, exc,
                extra={"hazard_id": event.report_id},
            )
            return format_coordinates(event.location)

    async def _broadcast(self, event: HazardEvent, outcome: DispatchOutcome) -> None:
        try:
            ok = await self.broadcaster.broadcast(event)
        except Exception as exc:
            logger.error(
                "Realtime broadcast for hazard %s failed: %s", event.report_id, exc,
                extra={"hazard_id": event.report_id, "channel": AlertChannel.REALTIME.value},
            )
            ok = False
        outcome.realtime_broadcast = ok
        outcome.record(AlertChannel.REALTIME, ok)

    async def _notify_authority(
        self,
        event: HazardEvent,
        address: str,
        outcome: DispatchOutcome,
    ) -> None:
        try:
            notify = await self.ledger.should_notify_authority(event.kind, event.location)
        except LedgerUnavailableError as exc:
            logger.error(
                "Ledger check failed for hazard %s, notifying authority anyway: %s",
                event.report_id, exc.message,
                extra={"hazard_id": event.report_id},
            )
            notify = True

        if not notify:
            outcome.authority_suppressed = True
            return

        authority_address = self.settings.OCEAN_AUTHORITY_EMAIL
        if authority_address:
            sent = await self._attempt(
                self.email_sender,
                authority_address,
                build_authority_message(event, address),
                event,
                AlertChannel.AUTHORITY_EMAIL,
            )
        else:
            sent = False

        outcome.authority_notified = sent
        outcome.record(AlertChannel.AUTHORITY_EMAIL, sent)

        try:
            await self.ledger.record_attempt(
                event.kind, event.location, event.report_id, sent,
            )
        except LedgerUnavailableError as exc:
            logger.error(
                "Could not record authority attempt for hazard %s: %s",
                event.report_id, exc.message,
                extra={"hazard_id": event.report_id},
            )

    async def _notify_nearby(
        self,
        event: HazardEvent,
        address: str,
        outcome: DispatchOutcome,
    ) -> None:
        radius_m = self.settings.NEARBY_RADIUS_METERS
        try:
            recipients = await self.index.find_within_radius(event.location, radius_m)
        except RecipientLookupError as exc:
            logger.error(
                "Recipient lookup failed for hazard %s; skipping proximity alerts: %s",
                event.report_id, exc.message,
                extra={"hazard_id": event.report_id},
            )
            recipients = []

        outcome.recipients_found = len(recipients)
        if not recipients:
            logger.info(
                "No recipients within %.0fm of hazard %s",
                radius_m, event.report_id,
                extra={"hazard_id": event.report_id},
            )
            return

        jobs: List[Tuple[RecipientDeliveryRecord, AlertChannel, Awaitable[bool]]] = []
        for recipient in recipients:
            record = RecipientDeliveryRecord(
                recipient_id=recipient.recipient_id,
                name=recipient.name,
                distance_m=recipient.distance_m,
            )
            outcome.delivery_records.append(record)
            jobs.extend(self._jobs_for(event, recipient, record, address, radius_m))

        results = await asyncio.gather(*(job for _, _, job in jobs))

        for (record, channel, _), delivered in zip(jobs, results):
            (record.channels_delivered if delivered else record.channels_failed).append(channel)
            outcome.record(channel, delivered)

    def _jobs_for(
        self,
        event: HazardEvent,
        recipient: RecipientProfile,
        record: RecipientDeliveryRecord,
        address: str,
        radius_m: float,
    ) -> List[Tuple[RecipientDeliveryRecord, AlertChannel, Awaitable[bool]]]:
        jobs = []
        if recipient.can_receive_email:
            record.channels_attempted.append(AlertChannel.EMAIL)
            jobs.append((record, AlertChannel.EMAIL, self._attempt(
                self.email_sender,
                recipient.email,
                build_proximity_email(event, recipient, address, radius_m),
                event,
                AlertChannel.EMAIL,
                recipient.recipient_id,
            )))
        if recipient.can_receive_sms:
            record.channels_attempted.append(AlertChannel.SMS)
            jobs.append((record, AlertChannel.SMS, self._attempt(
                self.sms_sender,
                recipient.phone,
                build_proximity_sms(event, recipient, address),
                event,
                AlertChannel.SMS,
                recipient.recipient_id,
            )))
        return jobs

    # ═══════════════════════════════════════════════════════════════════
    # Single attempt
    # ═══════════════════════════════════════════════════════════════════

    async def _attempt(
        self,
        sender: ChannelSender,
        contact: str,
        message: AlertMessage,
        event: HazardEvent,
        channel: AlertChannel,
        recipient_id: Optional[str] = None,
    ) -> bool:
        """One send; any exception becomes a counted failure."""
        try:
            delivered = await sender.send(contact, message)
        except Exception as exc:
            logger.error(
                "%s attempt for hazard %s (recipient %s) raised: %s",
                channel.value, event.report_id, recipient_id or "authority", exc,
                extra={
                    "hazard_id": event.report_id,
                    "channel": channel.value,
                    "recipient_id": recipient_id,
                },
            )
            return False
        if not delivered:
            logger.debug(
                "%s not delivered for hazard %s (recipient %s)",
                channel.value, event.report_id, recipient_id or "authority",
            )
        return bool(delivered)
