"""Two-Line Element set parsing.

Decodes NORAD TLEs into an immutable element set that keeps the decoded
fields (for display and staleness checks) alongside the raw lines, which
are what the SGP4 propagator is built from.

References:
    - Kelso, T.S. "CelesTrak TLE Format Documentation"
      https://celestrak.org/columns/v04n03/
    - Vallado, D. (2013). Fundamentals of Astrodynamics and Applications.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)

MU_EARTH = 398600.4418
"""Earth gravitational parameter (km³/s²)."""

R_EARTH = 6378.137
"""Earth equatorial radius (km)."""

SOLAR_DAY = 86400.0
"""Seconds in a solar day."""

# Two-digit epoch years from 57 on are 19xx (Sputnik launched in 1957)
_EPOCH_PIVOT = 57


@dataclass(frozen=True, slots=True)
class TLE:
    """A parsed Two-Line Element set.

    Element sets are replaced wholesale when refreshed; nothing in the
    pipeline mutates one after parsing.

    Attributes:
        name: Spacecraft name from line 0 (if present).
        norad_id: NORAD catalog number.
        intl_designator: International designator (launch year/number/piece).
        classification: Security classification (U/C/S).
        epoch_year: Full 4-digit epoch year.
        epoch_day: Fractional day of year at epoch.
        epoch_dt: Epoch as a timezone-aware UTC datetime.
        mean_motion_dot: First derivative of mean motion / 2 (rev/day²).
        mean_motion_ddot: Second derivative of mean motion / 6 (rev/day³).
        bstar: B* drag term (1/Earth radii).
        inclination: Orbital inclination (degrees).
        raan: Right ascension of ascending node (degrees).
        eccentricity: Orbital eccentricity (dimensionless).
        arg_perigee: Argument of perigee (degrees).
        mean_anomaly: Mean anomaly (degrees).
        mean_motion: Mean motion (revolutions per day).
        rev_number: Revolution number at epoch.
        line1: Raw TLE line 1.
        line2: Raw TLE line 2.
    """

    name: Optional[str]
    norad_id: int
    intl_designator: str
    classification: str
    epoch_year: int
    epoch_day: float
    epoch_dt: datetime
    mean_motion_dot: float
    mean_motion_ddot: float
    bstar: float
    inclination: float
    raan: float
    eccentricity: float
    arg_perigee: float
    mean_anomaly: float
    mean_motion: float
    rev_number: int
    line1: str = ""
    line2: str = ""

    @property
    def period(self) -> float:
        """Orbital period (seconds)."""
        return SOLAR_DAY / self.mean_motion

    @property
    def altitude(self) -> float:
        """Mean altitude above the equatorial radius (km)."""
        n = self.mean_motion * math.tau / SOLAR_DAY
        return (MU_EARTH / n**2) ** (1.0 / 3.0) - R_EARTH

    @staticmethod
    def parse(line1: str, line2: str, name: Optional[str] = None) -> TLE:
        """Parse a TLE from its two element lines.

        A checksum mismatch is logged, not raised: SGP4 still accepts the
        line and real-world sources differ in minor formatting.

        Raises:
            ValueError: A line is misnumbered, a field does not decode, the
                catalog numbers disagree or the mean motion is not positive.
        """
        l1 = line1.rstrip().ljust(69)
        l2 = line2.rstrip().ljust(69)
        for number, line in ((1, l1), (2, l2)):
            if line[0] != str(number):
                raise ValueError(f"Line {number} must start with '{number}', got '{line[0]}'")
            expected = line[68]
            if expected.isdigit() and checksum(line) != int(expected):
                logger.warning(
                    "Checksum mismatch on line %d: expected %s, computed %d",
                    number, expected, checksum(line),
                )

        norad_id = _field(l1, 2, 7, int, "catalog number")
        if _field(l2, 2, 7, int, "line 2 catalog number") != norad_id:
            raise ValueError(f"NORAD ID mismatch: {l1[2:7]} vs {l2[2:7]}")

        two_digit_year = _field(l1, 18, 20, int, "epoch year")
        epoch_year = two_digit_year + (1900 if two_digit_year >= _EPOCH_PIVOT else 2000)
        epoch_day = _field(l1, 20, 32, float, "epoch day")

        mean_motion = _field(l2, 52, 63, float, "mean motion")
        if mean_motion <= 0:
            raise ValueError(f"Mean motion must be positive, got {mean_motion}")

        return TLE(
            name=name.strip() if name else None,
            norad_id=norad_id,
            intl_designator=l1[9:17].strip(),
            classification=l1[7],
            epoch_year=epoch_year,
            epoch_day=epoch_day,
            epoch_dt=datetime(epoch_year, 1, 1, tzinfo=timezone.utc)
            + timedelta(days=epoch_day - 1.0),
            mean_motion_dot=_field(l1, 33, 43, float, "mean motion derivative"),
            mean_motion_ddot=_field(l1, 44, 52, _implied_decimal, "mean motion second derivative"),
            bstar=_field(l1, 53, 61, _implied_decimal, "B* drag"),
            inclination=_field(l2, 8, 16, float, "inclination"),
            raan=_field(l2, 17, 25, float, "right ascension"),
            eccentricity=_field(l2, 26, 33, lambda s: float(f"0.{s}"), "eccentricity"),
            arg_perigee=_field(l2, 34, 42, float, "argument of perigee"),
            mean_anomaly=_field(l2, 43, 51, float, "mean anomaly"),
            mean_motion=mean_motion,
            rev_number=_field(l2, 63, 68, lambda s: int(s or 0), "revolution number"),
            line1=line1.strip(),
            line2=line2.strip(),
        )

    @staticmethod
    def parse_batch(text: str) -> list[TLE]:
        """Parse every element set in a 2-line or 3-line (named) listing.

        Sets that fail to parse are skipped with a warning.
        """
        tles: list[TLE] = []
        for name, line1, line2 in _element_groups(text):
            try:
                tles.append(TLE.parse(line1, line2, name=name))
            except ValueError as e:
                logger.warning("Skipping malformed TLE %s: %s", name or line1[:20], e)
        return tles

    def age_days(self, now: Optional[datetime] = None) -> float:
        """Days elapsed between the epoch and ``now`` (negative if in the future)."""
        now = now or datetime.now(timezone.utc)
        return (now - self.epoch_dt).total_seconds() / SOLAR_DAY


def checksum(line: str) -> int:
    """Modulo-10 checksum of a TLE line: digits count their value, '-' counts 1."""
    total = sum(int(ch) if ch.isdigit() else ch == "-" for ch in line[:68])
    return total % 10


def _element_groups(text: str) -> Iterator[tuple[Optional[str], str, str]]:
    lines = [line.rstrip() for line in text.splitlines() if line.strip()]
    i = 0
    while i < len(lines):
        rest = lines[i:i + 3]
        if len(rest) >= 2 and rest[0].startswith("1") and rest[1].startswith("2"):
            yield None, rest[0], rest[1]
            i += 2
        elif len(rest) == 3 and rest[1].startswith("1") and rest[2].startswith("2"):
            yield rest[0].strip(), rest[1], rest[2]
            i += 3
        else:
            i += 1


def _field(line: str, start: int, end: int, cast: Callable[[str], object], label: str):
    raw = line[start:end].strip()
    try:
        return cast(raw)
    except ValueError as e:
        raise ValueError(f"Bad {label} field {raw!r}") from e


def _implied_decimal(s: str) -> float:
    """Decode ``NNNNN±E`` notation: mantissa ``0.NNNNN``, base-10 exponent ``±E``.

    ``16538-4`` is ``0.16538e-4``; a leading sign applies to the mantissa.
    """
    if not s:
        return 0.0
    sign = "-" if s[0] == "-" else ""
    body = s.lstrip("+-")
    exp_at = max(body.rfind("+"), body.rfind("-"))
    if exp_at <= 0:
        return float(f"{sign}0.{body}")
    return float(f"{sign}0.{body[:exp_at].strip()}e{body[exp_at:]}")
