"""PASSWATCH — satellite pass prediction and visibility notifications.

Predict when a tracked satellite (by default the ISS) rises over a user's
location and email them ahead of each good pass, exactly once per pass.

Modules:
    tle_parser:   Parse Two-Line Element sets.
    celestrak:    CelesTrak element source with a TTL disk cache.
    propagator:   SGP4 state propagation.
    topocentric:  TEME → observer look angles (azimuth, elevation, range).
    detector:     Time-sweep pass window detector.
    eligibility:  Per-user elevation and lead-time filtering.
    ledger:       Dedup ledger (one notification per user per pass).
    mailer:       Email rendering and SMTP channel.
    dispatcher:   Dedup check → send → record.
    notifier:     Per-user pipeline and notification rounds.
    scheduler:    Recurring round trigger.
    viz:          Sky-track and pass timeline plots.
    cli:          Command-line interface.

Example:
    >>> from passwatch.tle_parser import TLE
    >>> from passwatch.detector import PassDetector
    >>> from passwatch.topocentric import Observer
    >>>
    >>> tle = TLE.parse(line1, line2)
    >>> for window in PassDetector().detect(tle, Observer(37.7, -122.4)):
    ...     print(window.summary())
"""

__version__ = "0.1.0"
