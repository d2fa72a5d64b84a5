"""User notification preferences (read-only).

Preferences are owned by the user profile and edited elsewhere; this module
only reads them. ``JsonPreferenceStore`` loads a JSON array of user
documents in the profile shape::

    {
      "id": "u1", "username": "ada", "email": "ada@example.com",
      "notificationSettings": {
        "isSubscribed": true,
        "preferences": {"issPass": {"enabled": true, "minElevation": 30}},
        "location": {"latitude": 37.7, "longitude": -122.4, "city": "SF"}
      }
    }
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .topocentric import Observer

logger = logging.getLogger(__name__)

DEFAULT_MIN_ELEVATION = 30.0


@dataclass(frozen=True)
class Location:
    """Observer location attached to a user's notification settings."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: str = ""
    height: float = 0.0
    timezone: Optional[str] = None

    @property
    def is_known(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_observer(self) -> Observer:
        if not self.is_known:
            raise ValueError("Location has no coordinates")
        return Observer(self.latitude, self.longitude, self.height)


@dataclass(frozen=True)
class NotificationPreference:
    """Per-user pass notification settings.

    Attributes:
        enabled: Pass notifications switched on.
        min_elevation: Minimum peak elevation worth notifying (degrees).
        subscribed: Global email subscription flag.
        location: Where the user watches from.
    """
    enabled: bool = True
    min_elevation: float = DEFAULT_MIN_ELEVATION
    subscribed: bool = True
    location: Location = field(default_factory=Location)

    @property
    def is_active(self) -> bool:
        return self.subscribed and self.enabled and self.location.is_known


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    username: str
    email: str
    preference: NotificationPreference = field(default_factory=NotificationPreference)

    @property
    def display_location(self) -> str:
        return self.preference.location.city or "your location"

    @classmethod
    def from_document(cls, doc: dict) -> UserProfile:
        """Build a profile from a stored user document.

        Missing settings fall back to the profile defaults (subscribed,
        enabled, 30° minimum elevation, unknown location).
        """
        settings = doc.get("notificationSettings") or {}
        iss_pass = (settings.get("preferences") or {}).get("issPass") or {}
        loc = settings.get("location") or {}

        min_elevation = iss_pass.get("minElevation")
        location = Location(
            latitude=_optional_float(loc.get("latitude")),
            longitude=_optional_float(loc.get("longitude")),
            city=loc.get("city") or "",
            height=float(loc.get("height") or 0.0),
            timezone=loc.get("timezone") or None,
        )
        preference = NotificationPreference(
            enabled=bool(iss_pass.get("enabled", True)),
            min_elevation=float(min_elevation) if min_elevation else DEFAULT_MIN_ELEVATION,
            subscribed=bool(settings.get("isSubscribed", True)),
            location=location,
        )
        return cls(
            user_id=str(doc.get("id") or doc.get("_id")),
            username=doc.get("username", ""),
            email=doc["email"],
            preference=preference,
        )


class JsonPreferenceStore:
    """Read-only preference store backed by a JSON file.

    The file is re-read on every call so edits made by the settings UI are
    picked up on the next scheduler round.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def users(self) -> list[UserProfile]:
        if not self.path.exists():
            logger.warning("Preference file %s not found", self.path)
            return []

        docs = json.loads(self.path.read_text())
        profiles: list[UserProfile] = []
        for doc in docs:
            try:
                profiles.append(UserProfile.from_document(doc))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed user document %r: %s", doc.get("id"), e)
        return profiles

    def get(self, user_id: str) -> Optional[UserProfile]:
        for user in self.users():
            if user.user_id == user_id:
                return user
        return None

    def eligible_users(self) -> list[UserProfile]:
        """Users subscribed, with pass notifications enabled and a known location."""
        return [u for u in self.users() if u.preference.is_active]


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)
