"""
Example: One notification round against a scripted pass, fully offline.

This example doesn't require network access or SMTP credentials. It
replaces the sky with a synthetic pass three hours out, prints the email
that would be sent instead of sending it, and keeps the dedup ledger in
memory. Run it twice within the round and only the first run notifies.
"""

import sys
sys.path.insert(0, "src")

from datetime import datetime, timedelta, timezone

from passwatch.celestrak import StaticElementSource
from passwatch.detector import PassDetector
from passwatch.dispatcher import Dispatcher
from passwatch.ledger import DedupLedger
from passwatch.notifier import PassNotifier
from passwatch.preferences import UserProfile
from passwatch.tle_parser import TLE
from passwatch.topocentric import LookAngle

ISS_LINE1 = "1 25544U 98067A   24001.50000000  .00016717  00000-0  10270-3 0  9009"
ISS_LINE2 = "2 25544  51.6400 208.5000 0007417  68.0000 292.1000 15.49560000400004"

USER = {
    "id": "u1",
    "username": "ada",
    "email": "ada@example.com",
    "notificationSettings": {
        "isSubscribed": True,
        "preferences": {"issPass": {"enabled": True, "minElevation": 30}},
        "location": {"latitude": 37.7, "longitude": -122.4, "city": "San Francisco"},
    },
}


class PrintChannel:
    """Prints emails instead of sending them."""

    def send(self, to, subject, html_body):
        print(f"  To:      {to}")
        print(f"  Subject: {subject}")
        print(f"  Body:    {len(html_body)} bytes of HTML")
        return f"<demo-{to}>"


class ScriptedPass(PassDetector):
    """A single 52° pass peaking at ``peak_time``."""

    def __init__(self, peak_time):
        super().__init__()
        self.peak_time = peak_time

    def detect(self, tle, observer, start=None, max_windows=None):
        return self.sweep(self._sample, start, max_windows)

    def _sample(self, t):
        minutes = abs((t - self.peak_time).total_seconds()) / 60.0
        az = 225.0 if t < self.peak_time else 45.0
        return LookAngle(t, az, 52.0 - 9.0 * minutes, 900.0)


def main():
    print("=" * 65)
    print("  PASSWATCH — Offline Notification Demo")
    print("=" * 65)

    now = datetime.now(timezone.utc).replace(second=0, microsecond=0)
    user = UserProfile.from_document(USER)
    ledger = DedupLedger("sqlite:///:memory:")

    notifier = PassNotifier(
        source=StaticElementSource([TLE.parse(ISS_LINE1, ISS_LINE2)]),
        detector=ScriptedPass(now + timedelta(hours=3)),
        dispatcher=Dispatcher(PrintChannel(), ledger),
    )

    for attempt, offset in enumerate((0, 30), start=1):
        print(f"\nRound {attempt} (T+{offset} min):")
        summary = notifier.run_round([user], now + timedelta(minutes=offset))
        for result in summary.results:
            for outcome in result.outcomes:
                print(f"  {outcome.event_id}: {outcome.status.name}")
        print(f"  {summary.summary()}")

    print(f"\nLedger records: {ledger.count()}")


if __name__ == "__main__":
    main()
