"""SGP4 state propagation for a single element set.

Wraps ``sgp4.api.Satrec`` so the rest of the pipeline deals in
``datetime`` objects and ``SatelliteState`` records instead of split
Julian dates and error codes. Positions and velocities are returned in
the TEME frame (True Equator, Mean Equinox) that SGP4 natively produces;
the TEME/J2000 difference is a few arc-seconds, negligible for naked-eye
visibility work.

A propagation failure never aborts a sweep: callers catch
``PropagationError`` per sample and carry on.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone

import numpy as np
from sgp4.api import SGP4_ERRORS, Satrec, jday

from .errors import PropagationError
from .tle_parser import TLE

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi

DEFAULT_MAX_EPOCH_AGE_DAYS = 14.0
"""Beyond this distance from epoch, SGP4 output is too poor for pass alerts."""


@dataclass(frozen=True)
class SatelliteState:
    """Position and velocity of the satellite at one instant.

    Attributes:
        time: UTC instant of the state.
        position: TEME position vector (km).
        velocity: TEME velocity vector (km/s).
    """
    time: datetime
    position: np.ndarray
    velocity: np.ndarray

    @property
    def radius_km(self) -> float:
        return float(np.linalg.norm(self.position))


class Propagator:
    """SGP4 propagator bound to one orbital element set.

    Args:
        tle: Element set to propagate. Must carry its raw lines.
        max_epoch_age_days: Reject target times further than this from
            the element epoch, in either direction.

    Raises:
        PropagationError: If sgp4 cannot initialise from the element set.

    Example:
        >>> prop = Propagator(tle)
        >>> state = prop.state_at(datetime.now(timezone.utc))
        >>> state.radius_km
        6790.1...
    """

    def __init__(
        self,
        tle: TLE,
        max_epoch_age_days: float = DEFAULT_MAX_EPOCH_AGE_DAYS,
    ) -> None:
        self.tle = tle
        self.max_epoch_age_days = max_epoch_age_days
        try:
            self._satrec = Satrec.twoline2rv(tle.line1, tle.line2)
        except (ValueError, IndexError) as e:
            raise PropagationError(
                f"Malformed element set for NORAD {tle.norad_id}: {e}"
            ) from e
        if self._satrec.error:
            raise PropagationError(
                f"SGP4 initialisation failed for NORAD {tle.norad_id}: "
                f"{SGP4_ERRORS.get(self._satrec.error, 'unknown error')}",
                code=self._satrec.error,
            )

    def state_at(self, when: datetime) -> SatelliteState:
        """Propagate to ``when``.

        Args:
            when: Target instant. Naive datetimes are taken as UTC.

        Returns:
            Satellite state at ``when``.

        Raises:
            PropagationError: If ``when`` is outside the validity window or
                SGP4 reports an error (e.g. decayed orbit).
        """
        when = as_utc(when)
        age = self.tle.age_days(when)
        if abs(age) > self.max_epoch_age_days:
            raise PropagationError(
                f"{when:%Y-%m-%d %H:%M} is {age:+.1f} days from epoch "
                f"(limit ±{self.max_epoch_age_days:.0f})"
            )

        jd, fr = julian_date(when)
        code, r, v = self._satrec.sgp4(jd, fr)
        if code != 0:
            raise PropagationError(
                f"SGP4 error {code} at {when:%Y-%m-%d %H:%M:%S}: "
                f"{SGP4_ERRORS.get(code, 'unknown error')}",
                code=code,
            )

        return SatelliteState(
            time=when,
            position=np.asarray(r, dtype=float),
            velocity=np.asarray(v, dtype=float),
        )


def julian_date(when: datetime) -> tuple[float, float]:
    """Split Julian date (whole, fraction) for a UTC datetime."""
    when = as_utc(when)
    seconds = when.second + when.microsecond / 1e6
    return jday(when.year, when.month, when.day, when.hour, when.minute, seconds)


def gmst(when: datetime) -> float:
    """Greenwich mean sidereal time (IAU-82) in radians, in [0, 2π)."""
    jd, fr = julian_date(when)
    tut1 = ((jd - 2451545.0) + fr) / 36525.0
    seconds = (
        -6.2e-6 * tut1**3
        + 0.093104 * tut1**2
        + (876600.0 * 3600.0 + 8640184.812866) * tut1
        + 67310.54841
    )
    theta = math.radians(seconds / 240.0) % TWO_PI
    return theta + TWO_PI if theta < 0 else theta


def as_utc(when: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)
