from datetime import datetime, timedelta, timezone

import pytest

from passwatch.detector import PassDetector, PassWindow
from passwatch.errors import DispatchError
from passwatch.ledger import DedupLedger
from passwatch.preferences import Location, NotificationPreference, UserProfile
from passwatch.tle_parser import TLE
from passwatch.topocentric import LookAngle

ISS_LINE1 = "1 25544U 98067A   24001.50000000  .00016717  00000-0  10270-3 0  9009"
ISS_LINE2 = "2 25544  51.6400 208.5000 0007417  68.0000 292.1000 15.49560000400004"

NOW = datetime(2024, 1, 3, 18, 0, tzinfo=timezone.utc)


class FakeChannel:
    """Records sends instead of delivering them."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, to, subject, html_body):
        if to in self.fail_for:
            raise DispatchError(f"mailbox unavailable: {to}")
        self.sent.append((to, subject, html_body))
        return f"<{len(self.sent)}@test>"


class ScriptedDetector(PassDetector):
    """Sweeps a fixed elevation profile instead of propagating elements.

    ``passes`` maps absolute peak times to peak elevations; each pass rises
    and sets at 8°/min around its peak.
    """

    def __init__(self, passes, config=None):
        super().__init__(config)
        self.passes = passes

    def detect(self, tle, observer, start=None, max_windows=None):
        return self.sweep(self._sample, start, max_windows)

    def _sample(self, t):
        for peak_time, peak in self.passes.items():
            minutes = abs((t - peak_time).total_seconds()) / 60.0
            if minutes <= 10:
                az = 225.0 if t < peak_time else 45.0
                return LookAngle(t, az, peak - 8.0 * minutes, 1000.0)
        return LookAngle(t, 0.0, -30.0, 8000.0)


def make_user(user_id="u1", lat=37.7, lon=-122.4, min_elevation=30.0, city="San Francisco", **kw):
    return UserProfile(
        user_id=user_id,
        username=kw.pop("username", f"user-{user_id}"),
        email=kw.pop("email", f"{user_id}@example.com"),
        preference=NotificationPreference(
            min_elevation=min_elevation,
            location=Location(latitude=lat, longitude=lon, city=city),
            **kw,
        ),
    )


def make_window(hours_ahead=3.0, peak=45.0, now=NOW, minutes=6):
    start = (now + timedelta(hours=hours_ahead)).replace(second=0, microsecond=0)
    return PassWindow(
        start=start,
        end=start + timedelta(minutes=minutes),
        peak_elevation=peak,
        peak_time=start + timedelta(minutes=minutes / 2),
        start_azimuth=225.0,
        end_azimuth=45.0,
        computed_at=now,
    )


@pytest.fixture
def iss_tle():
    return TLE.parse(ISS_LINE1, ISS_LINE2, name="ISS (ZARYA)")


@pytest.fixture
def ledger(tmp_path):
    return DedupLedger(f"sqlite:///{tmp_path / 'ledger.db'}")


@pytest.fixture
def channel():
    return FakeChannel()
