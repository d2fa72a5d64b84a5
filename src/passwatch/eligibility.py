"""Per-user eligibility filtering of detected pass windows.

A window is worth a notification when it is high enough for the user's
comfort threshold and starts within the actionable lead-time band: not so
soon the user cannot get outside, not so far ahead the alert is forgotten.
Rejections are an expected outcome, not an error.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from .detector import PassWindow
from .preferences import NotificationPreference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeadTimeBand:
    """Acceptable range of hours between notification and pass start.

    Both bounds are exclusive.
    """
    min_hours: float = 1.0
    max_hours: float = 6.0

    def __post_init__(self) -> None:
        if self.min_hours >= self.max_hours:
            raise ValueError(
                f"Empty lead-time band: {self.min_hours} >= {self.max_hours}"
            )

    def contains(self, hours: float) -> bool:
        return self.min_hours < hours < self.max_hours


def is_eligible(
    window: PassWindow,
    preference: NotificationPreference,
    band: LeadTimeBand = LeadTimeBand(),
    now: Optional[datetime] = None,
) -> bool:
    """Whether a single window passes the elevation and lead-time tests."""
    if window.peak_elevation < preference.min_elevation:
        logger.debug(
            "Dropping %s: peak %.1f° below %.1f°",
            window.summary(),
            window.peak_elevation,
            preference.min_elevation,
        )
        return False

    hours = window.hours_until(now)
    if not band.contains(hours):
        logger.debug(
            "Dropping %s: starts in %.2f h, outside %.1f–%.1f h",
            window.summary(),
            hours,
            band.min_hours,
            band.max_hours,
        )
        return False

    return True


def filter_windows(
    windows: Iterable[PassWindow],
    preference: NotificationPreference,
    band: LeadTimeBand = LeadTimeBand(),
    now: Optional[datetime] = None,
) -> list[PassWindow]:
    """Keep the windows a user should be notified about.

    Args:
        windows: Detected windows.
        preference: The user's notification preference.
        band: Lead-time band (default: more than 1 h, less than 6 h).
        now: Reference instant for lead time (default: each window's
            ``computed_at``).

    Returns:
        Eligible windows, in input order.
    """
    return [w for w in windows if is_eligible(w, preference, band, now)]
