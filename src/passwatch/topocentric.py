"""Topocentric look angles: TEME state + ground observer → az/el/range.

TEME → ECEF by a GMST rotation about the z-axis (polar motion ignored),
then ECEF → local East-North-Up at the observer on the WGS-84 ellipsoid.
Atmospheric refraction is not modelled.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

import numpy as np

from .propagator import SatelliteState, gmst

# WGS-84
WGS84_A = 6378.137
WGS84_F = 1.0 / 298.257223563
WGS84_E2 = 2.0 * WGS84_F - WGS84_F**2

COMPASS_POINTS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


@dataclass(frozen=True)
class Observer:
    """A ground observer.

    Attributes:
        latitude: Geodetic latitude (degrees, north positive).
        longitude: Longitude (degrees, east positive).
        height: Height above the ellipsoid (km).
    """
    latitude: float
    longitude: float
    height: float = 0.0

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 360.0:
            raise ValueError(f"Longitude out of range: {self.longitude}")


@dataclass(frozen=True)
class LookAngle:
    """Satellite direction as seen by an observer at one instant.

    Attributes:
        time: UTC instant.
        azimuth: Degrees clockwise from true north, [0, 360).
        elevation: Degrees above the local horizontal, [-90, 90].
        range_km: Slant range (km).
    """
    time: datetime
    azimuth: float
    elevation: float
    range_km: float


def geodetic_to_ecef(observer: Observer) -> np.ndarray:
    """Observer position in ECEF (km)."""
    lat = math.radians(observer.latitude)
    lon = math.radians(observer.longitude)
    n = WGS84_A / math.sqrt(1.0 - WGS84_E2 * math.sin(lat) ** 2)
    return np.array([
        (n + observer.height) * math.cos(lat) * math.cos(lon),
        (n + observer.height) * math.cos(lat) * math.sin(lon),
        (n * (1.0 - WGS84_E2) + observer.height) * math.sin(lat),
    ])


def teme_to_ecef(position: np.ndarray, when: datetime) -> np.ndarray:
    """Rotate a TEME position vector into ECEF."""
    theta = gmst(when)
    cos_t, sin_t = math.cos(theta), math.sin(theta)
    x, y, z = position
    return np.array([
        x * cos_t + y * sin_t,
        -x * sin_t + y * cos_t,
        z,
    ])


def look_angle(state: SatelliteState, observer: Observer) -> LookAngle:
    """Compute azimuth, elevation and range of ``state`` from ``observer``."""
    sat_ecef = teme_to_ecef(state.position, state.time)
    dx, dy, dz = sat_ecef - geodetic_to_ecef(observer)
    slant = math.sqrt(dx * dx + dy * dy + dz * dz)

    lat = math.radians(observer.latitude)
    lon = math.radians(observer.longitude)
    sin_lat, cos_lat = math.sin(lat), math.cos(lat)
    sin_lon, cos_lon = math.sin(lon), math.cos(lon)

    east = -sin_lon * dx + cos_lon * dy
    north = -sin_lat * cos_lon * dx - sin_lat * sin_lon * dy + cos_lat * dz
    up = cos_lat * cos_lon * dx + cos_lat * sin_lon * dy + sin_lat * dz

    elevation = math.degrees(math.asin(max(-1.0, min(1.0, up / slant))))
    azimuth = math.degrees(math.atan2(east, north)) % 360.0

    return LookAngle(
        time=state.time,
        azimuth=azimuth,
        elevation=elevation,
        range_km=slant,
    )


def compass_point(azimuth: float) -> str:
    """Nearest of the eight principal compass points for an azimuth."""
    return COMPASS_POINTS[int((azimuth % 360.0) / 45.0 + 0.5) % 8]


def compass_direction(start_azimuth: float, end_azimuth: float) -> str:
    """Direction of travel across the sky, e.g. ``"SW → NE"``."""
    return f"{compass_point(start_azimuth)} → {compass_point(end_azimuth)}"
