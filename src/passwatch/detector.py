#!/usr/bin/env python3
"""Pass window detection engine.

Walks time forward from a start instant in fixed steps, computing the
satellite's look angle at each step, and reports every contiguous run of
samples above a visibility threshold as a ``PassWindow``.

Sweep rules:
    1. A not-visible → visible transition opens a window (start time and
       azimuth recorded).
    2. While visible, the peak elevation and its time are tracked.
    3. A visible → not-visible transition closes the window at that sample
       and emits it.
    4. If the very first sample is already visible, the pass is in progress:
       its true rise is unknown, so the window starts at the first sample and
       is flagged ``start_truncated``.
    5. If the horizon runs out while visible, the window is emitted with
       ``end=None``.
    6. A sample whose propagation fails is skipped; it neither opens nor
       closes a window.

Samples sit on a fixed grid of whole steps since the Unix epoch (whole
minutes at the default 60 s step), not on offsets from the start instant.
Two sweeps started seconds apart therefore see the same rise sample, and
the event id derived from it is the same in every scheduler round.

The detector's threshold is a low "technically above the horizon" knob.
Per-user comfort thresholds are applied later by the eligibility filter.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pandas as pd

from .errors import PropagationError
from .propagator import DEFAULT_MAX_EPOCH_AGE_DAYS, Propagator, as_utc
from .tle_parser import TLE
from .topocentric import LookAngle, Observer, compass_direction, look_angle

logger = logging.getLogger(__name__)

Sampler = Callable[[datetime], LookAngle]


# Configuration
@dataclass
class DetectorConfig:
    """Sweep parameters for pass detection.

    Attributes:
        horizon_hours: How far ahead of the start instant to sweep.
        step_seconds: Sample spacing. Rise/set times are accurate to
            within one step.
        visibility_threshold_deg: Elevation a sample must exceed to count
            as visible.
        max_windows: Stop after emitting this many windows (``None`` sweeps
            the whole horizon, ``1`` answers "next pass").
        max_epoch_age_days: Propagation validity window around the epoch.
    """
    horizon_hours: float = 24.0
    step_seconds: float = 60.0
    visibility_threshold_deg: float = 10.0
    max_windows: Optional[int] = None
    max_epoch_age_days: float = DEFAULT_MAX_EPOCH_AGE_DAYS

    def __post_init__(self) -> None:
        if self.horizon_hours <= 0:
            raise ValueError(f"horizon_hours must be positive, got {self.horizon_hours}")
        if self.step_seconds <= 0:
            raise ValueError(f"step_seconds must be positive, got {self.step_seconds}")
        if self.max_windows is not None and self.max_windows < 1:
            raise ValueError(f"max_windows must be >= 1, got {self.max_windows}")

    @classmethod
    def next_pass(cls) -> DetectorConfig:
        """Stop at the first window found."""
        return cls(max_windows=1)

    @classmethod
    def upcoming(cls) -> DetectorConfig:
        """Two-day look-ahead, five passes; the sky-watcher listing."""
        return cls(horizon_hours=48.0, max_windows=5)


# Pass window
@dataclass
class PassWindow:
    """A contiguous interval with the satellite above the sweep threshold.

    Attributes:
        start: First visible sample (the first grid sample if
            ``start_truncated``).
        end: First non-visible sample after the pass; ``None`` if the
            sweep horizon ran out while still visible.
        peak_elevation: Highest sampled elevation (degrees).
        peak_time: Time of the highest sampled elevation.
        start_azimuth: Azimuth at ``start`` (degrees).
        end_azimuth: Azimuth at ``end``, or at the last visible sample when
            the window is still open.
        computed_at: Instant the sweep was run; "hours until" is relative
            to this unless another reference is given.
        start_truncated: The pass was already in progress at sweep start.
    """
    start: datetime
    end: Optional[datetime]
    peak_elevation: float
    peak_time: datetime
    start_azimuth: float
    end_azimuth: float
    computed_at: datetime
    start_truncated: bool = False

    @property
    def is_open(self) -> bool:
        return self.end is None

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end is None:
            return None
        return self.end - self.start

    @property
    def duration_minutes(self) -> Optional[int]:
        duration = self.duration
        if duration is None:
            return None
        return round(duration.total_seconds() / 60.0)

    @property
    def direction(self) -> str:
        return compass_direction(self.start_azimuth, self.end_azimuth)

    def hours_until(self, now: Optional[datetime] = None) -> float:
        """Hours from ``now`` (default: ``computed_at``) to the window start."""
        reference = now or self.computed_at
        return (self.start - reference).total_seconds() / 3600.0

    def event_id(self, prefix: str = "iss") -> str:
        """Deterministic id for the physical pass, e.g. ``iss-2024-05-12-1430``.

        Derived from the UTC start time truncated to the minute, so repeated
        sweeps that land on the same start minute share an id.
        """
        start = self.start.astimezone(timezone.utc)
        return f"{prefix}-{start:%Y-%m-%d-%H%M}"

    def to_dict(self, now: Optional[datetime] = None) -> dict:
        """Serialize to a flat, JSON-friendly dictionary."""
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "peak_time": self.peak_time.isoformat(),
            "peak_elevation_deg": round(self.peak_elevation, 1),
            "start_azimuth_deg": round(self.start_azimuth, 1),
            "end_azimuth_deg": round(self.end_azimuth, 1),
            "duration_min": self.duration_minutes,
            "direction": self.direction,
            "hours_until": round(self.hours_until(now), 2),
            "start_truncated": self.start_truncated,
        }

    def summary(self) -> str:
        """Return a one-line human-readable summary of the window."""
        end = f"{self.end:%H:%M}" if self.end else "open"
        return (
            f"[{self.start:%Y-%m-%d %H:%M}–{end} UTC] "
            f"peak {self.peak_elevation:.0f}° at {self.peak_time:%H:%M}, "
            f"{self.direction}"
        )


@dataclass
class _OpenWindow:
    start: LookAngle
    peak: LookAngle
    truncated: bool
    last: LookAngle = field(init=False)

    def __post_init__(self) -> None:
        self.last = self.start

    def update(self, angle: LookAngle) -> None:
        if angle.elevation > self.peak.elevation:
            self.peak = angle
        self.last = angle

    def close(self, end: Optional[LookAngle], computed_at: datetime) -> PassWindow:
        return PassWindow(
            start=self.start.time,
            end=end.time if end else None,
            peak_elevation=self.peak.elevation,
            peak_time=self.peak.time,
            start_azimuth=self.start.azimuth,
            end_azimuth=(end or self.last).azimuth,
            computed_at=computed_at,
            start_truncated=self.truncated,
        )


# Detection engine
class PassDetector:
    """Time-sweep visibility window detector.

    Args:
        config: Sweep parameters. Defaults to a 24-hour horizon, 60-second
            steps and a 10° threshold.

    Example:
        >>> detector = PassDetector(DetectorConfig.next_pass())
        >>> windows = detector.detect(tle, Observer(37.7, -122.4))
        >>> for window in windows:
        ...     print(window.summary())
    """
    def __init__(self, config: Optional[DetectorConfig] = None) -> None:
        self.config = config or DetectorConfig()

    def detect(
        self,
        tle: TLE,
        observer: Observer,
        start: Optional[datetime] = None,
        max_windows: Optional[int] = None,
    ) -> list[PassWindow]:
        """Find pass windows for an element set and observer.

        Args:
            tle: Element set to propagate.
            observer: Ground observer.
            start: Sweep start (default: now, UTC).
            max_windows: Overrides ``config.max_windows`` for this call.

        Returns:
            Windows in chronological order.

        Raises:
            PropagationError: If the element set cannot be loaded at all.
        """
        propagator = Propagator(tle, self.config.max_epoch_age_days)

        def sample(when: datetime) -> LookAngle:
            return look_angle(propagator.state_at(when), observer)

        return self.sweep(sample, start or datetime.now(timezone.utc), max_windows)

    def sweep(
        self,
        sampler: Sampler,
        start: datetime,
        max_windows: Optional[int] = None,
    ) -> list[PassWindow]:
        """Run the sweep over any look-angle source.

        Args:
            sampler: Returns the look angle at a given instant, or raises
                ``PropagationError`` for an unusable sample.
            start: Sweep start. Sampling begins at the grid instant at or
                before it; windows carry ``start`` itself as ``computed_at``.
            max_windows: Overrides ``config.max_windows`` for this call.

        Returns:
            Windows in chronological order.
        """
        cfg = self.config
        limit = max_windows if max_windows is not None else cfg.max_windows
        computed_at = as_utc(start)
        step = timedelta(seconds=cfg.step_seconds)
        start = align_to_grid(computed_at, step)
        horizon_end = computed_at + timedelta(hours=cfg.horizon_hours)

        windows: list[PassWindow] = []
        current: Optional[_OpenWindow] = None
        skipped = 0
        t = start

        while t <= horizon_end:
            try:
                angle = sampler(t)
            except PropagationError as e:
                skipped += 1
                logger.debug("Skipping sample at %s: %s", t.isoformat(), e)
                t += step
                continue

            visible = angle.elevation > cfg.visibility_threshold_deg
            if visible and current is None:
                current = _OpenWindow(start=angle, peak=angle, truncated=t == start)
            elif visible:
                current.update(angle)
            elif current is not None:
                windows.append(current.close(angle, computed_at))
                current = None
                if limit is not None and len(windows) >= limit:
                    break

            t += step

        if current is not None:
            windows.append(current.close(None, computed_at))

        if skipped:
            logger.warning(
                "Sweep from %s skipped %d unpropagatable samples",
                start.isoformat(),
                skipped,
            )
        logger.debug("Sweep from %s found %d window(s)", start.isoformat(), len(windows))
        return windows

    def track(
        self,
        tle: TLE,
        observer: Observer,
        window: PassWindow,
        step_seconds: Optional[float] = None,
    ) -> list[LookAngle]:
        """Sample look angles across a window (for sky-track plots).

        Open windows are sampled up to the configured horizon from their
        start. Unpropagatable samples are left out.
        """
        propagator = Propagator(tle, self.config.max_epoch_age_days)
        step = timedelta(seconds=step_seconds or self.config.step_seconds / 6.0)
        stop = window.end or window.start + timedelta(hours=self.config.horizon_hours)

        samples: list[LookAngle] = []
        t = window.start
        while t <= stop:
            try:
                samples.append(look_angle(propagator.state_at(t), observer))
            except PropagationError as e:
                logger.debug("Track sample at %s skipped: %s", t.isoformat(), e)
            t += step
        return samples


# Sample grid
_GRID_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def align_to_grid(when: datetime, step: timedelta) -> datetime:
    """Latest whole-step instant (counted from the Unix epoch) at or before ``when``."""
    when = as_utc(when)
    return when - (when - _GRID_EPOCH) % step


# Batch utils
def passes_to_frame(
    windows: list[PassWindow],
    now: Optional[datetime] = None,
) -> pd.DataFrame:
    """Convert pass windows to a DataFrame, one row per window, sorted by start.

    Args:
        windows: Detected windows.
        now: Reference for the ``hours_until`` column.

    Returns:
        DataFrame (empty if there are no windows).
    """
    if not windows:
        return pd.DataFrame()

    df = pd.DataFrame([w.to_dict(now) for w in windows])
    return df.sort_values("start").reset_index(drop=True)


