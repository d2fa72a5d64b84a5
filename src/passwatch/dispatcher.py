"""Notification dispatch: dedup check → render → send → record.

The ledger is consulted before sending and written only after the channel
reports success, so a failed send leaves nothing behind and the next round
retries the same pass.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum, auto
from typing import Optional

from .detector import PassWindow
from .errors import DispatchError, LedgerError
from .ledger import DedupLedger, LedgerPayload, RecordStatus
from .mailer import EmailChannel, render_pass_email
from .preferences import UserProfile

logger = logging.getLogger(__name__)


class DispatchStatus(Enum):
    SENT = auto()
    ALREADY_NOTIFIED = auto()
    FAILED = auto()
    UNRECORDED = auto()  # sent, but the ledger write failed


@dataclass
class DispatchOutcome:
    user_id: str
    event_id: str
    status: DispatchStatus
    message_id: Optional[str] = None
    subject: Optional[str] = None
    error: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.status in (DispatchStatus.SENT, DispatchStatus.UNRECORDED)


class Dispatcher:
    """Sends pass notifications and keeps the dedup ledger.

    Args:
        channel: Outbound email channel.
        ledger: Dedup ledger.
        satellite_name: Display name used in subject and body.
        event_prefix: Prefix of derived event ids (``iss`` → ``iss-2024-…``).
        event_type: Event type stored with each ledger record.
        frontend_url: Base URL for links in the email body.
    """

    def __init__(
        self,
        channel: EmailChannel,
        ledger: DedupLedger,
        satellite_name: str = "ISS",
        event_prefix: str = "iss",
        event_type: str = "iss_pass",
        frontend_url: str = "",
    ) -> None:
        self.channel = channel
        self.ledger = ledger
        self.satellite_name = satellite_name
        self.event_prefix = event_prefix
        self.event_type = event_type
        self.frontend_url = frontend_url

    def dispatch(
        self,
        user: UserProfile,
        window: PassWindow,
        now: Optional[datetime] = None,
    ) -> DispatchOutcome:
        """Notify ``user`` about ``window`` unless already notified.

        Raises:
            LedgerError: If the pre-send ledger lookup fails. Nothing has been
                sent at that point.
        """
        now = now or datetime.now(timezone.utc)
        event_id = window.event_id(self.event_prefix)

        if self.ledger.exists(user.user_id, event_id):
            logger.info("Already notified user %s for %s", user.username, event_id)
            return DispatchOutcome(user.user_id, event_id, DispatchStatus.ALREADY_NOTIFIED)

        email = render_pass_email(
            user,
            window,
            now=now,
            satellite_name=self.satellite_name,
            frontend_url=self.frontend_url,
        )

        logger.info("Sending %s notification to %s", self.satellite_name, user.username)
        try:
            message_id = self.channel.send(user.email, email.subject, email.html)
        except DispatchError as e:
            logger.error("Failed to notify user %s for %s: %s", user.username, event_id, e)
            return DispatchOutcome(
                user.user_id, event_id, DispatchStatus.FAILED,
                subject=email.subject, error=str(e),
            )

        payload = LedgerPayload(
            event_type=self.event_type,
            message_id=message_id,
            subject=email.subject,
            sent_at=now,
            status="sent",
            event_data=window.to_dict(now),
        )
        try:
            status = self.ledger.record(user.user_id, event_id, payload)
        except LedgerError as e:
            logger.error(
                "Sent %s to user %s but could not record it; "
                "it may be sent again next round: %s",
                event_id, user.username, e,
            )
            return DispatchOutcome(
                user.user_id, event_id, DispatchStatus.UNRECORDED,
                message_id=message_id, subject=email.subject, error=str(e),
            )

        if status is RecordStatus.ALREADY_EXISTS:
            logger.warning(
                "Concurrent dispatch already recorded %s for user %s; "
                "a duplicate email was sent",
                event_id, user.username,
            )
        else:
            logger.info("Sent %s notification to %s (%s)", self.satellite_name, user.username, event_id)

        return DispatchOutcome(
            user.user_id, event_id, DispatchStatus.SENT,
            message_id=message_id, subject=email.subject,
        )

    def send_test(
        self,
        user: UserProfile,
        now: Optional[datetime] = None,
    ) -> DispatchOutcome:
        """Send a synthetic pass to one user to check the channel.

        Bypasses detection and the ledger: nothing is recorded, so a real
        pass at the same minute is still notified.
        """
        now = now or datetime.now(timezone.utc)
        window = synthetic_window(now)
        event_id = window.event_id("test")
        email = render_pass_email(
            user,
            window,
            now=now,
            satellite_name=self.satellite_name,
            frontend_url=self.frontend_url,
        )
        try:
            message_id = self.channel.send(user.email, email.subject, email.html)
        except DispatchError as e:
            logger.error("Test notification to %s failed: %s", user.email, e)
            return DispatchOutcome(
                user.user_id, event_id, DispatchStatus.FAILED,
                subject=email.subject, error=str(e),
            )

        logger.info("Test notification sent to %s", user.email)
        return DispatchOutcome(
            user.user_id, event_id, DispatchStatus.SENT,
            message_id=message_id, subject=email.subject,
        )


def synthetic_window(
    now: datetime,
    hours_ahead: float = 2.0,
    peak_elevation: float = 45.0,
    duration_minutes: int = 6,
) -> PassWindow:
    """A plausible SW → NE pass, for channel checks and demos."""
    start = (now + timedelta(hours=hours_ahead)).replace(second=0, microsecond=0)
    end = start + timedelta(minutes=duration_minutes)
    return PassWindow(
        start=start,
        end=end,
        peak_elevation=peak_elevation,
        peak_time=start + (end - start) / 2,
        start_azimuth=225.0,
        end_azimuth=45.0,
        computed_at=now,
    )
