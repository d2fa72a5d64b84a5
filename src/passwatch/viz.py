#!/usr/bin/env python3
"""Visualization tools for predicted passes.

Sky-track plots (what the observer sees, zenith at the centre) and a
timeline of upcoming passes. Figures are returned for interactive use and
optionally saved as PNGs.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import matplotlib.dates as mdates
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .detector import PassWindow
from .topocentric import LookAngle

plt.rcParams.update({
    "figure.facecolor": "white",
    "axes.facecolor": "#fafafa",
    "axes.grid": True,
    "grid.alpha": 0.3,
    "font.family": "sans-serif",
    "font.size": 10,
})

TRACK_COLOR = "#2c3e50"
RISE_COLOR = "#2ecc71"
PEAK_COLOR = "#f39c12"
SET_COLOR = "#e74c3c"


def plot_sky_track(
    samples: list[LookAngle],
    window: Optional[PassWindow] = None,
    threshold_deg: float = 10.0,
    title: Optional[str] = None,
    save_path: Optional[str | Path] = None,
    figsize: tuple = (7, 7),
) -> plt.Figure:
    """Polar sky plot of a pass: azimuth around, elevation inward.

    Args:
        samples: Look angles across the pass (from ``PassDetector.track``).
        window: The pass, for the title and peak marker.
        threshold_deg: Draw the sweep threshold as a dashed ring.
        title: Plot title.
        save_path: Path to save figure (optional).

    Returns:
        matplotlib Figure
    """
    fig = plt.figure(figsize=figsize)
    ax = fig.add_subplot(projection="polar")
    ax.set_theta_zero_location("N")
    ax.set_theta_direction(-1)
    ax.set_rlim(0, 90)
    ax.set_rticks([0, 30, 60, 90])
    ax.set_yticklabels(["90°", "60°", "30°", "0°"])

    visible = [s for s in samples if s.elevation >= 0]
    if not visible:
        ax.set_title(title or "Pass below horizon")
        return fig

    theta = np.radians([s.azimuth for s in visible])
    r = 90.0 - np.array([s.elevation for s in visible])

    ax.plot(theta, r, linewidth=2, color=TRACK_COLOR)
    ax.scatter(theta[0], r[0], color=RISE_COLOR, s=60, zorder=3, label="Rise")
    ax.scatter(theta[-1], r[-1], color=SET_COLOR, s=60, zorder=3, label="Set")

    if window is not None:
        ax.scatter(
            np.radians(_azimuth_at(visible, window)),
            90.0 - window.peak_elevation,
            color=PEAK_COLOR, s=80, marker="*", zorder=4,
            label=f"Peak {window.peak_elevation:.0f}°",
        )

    ring = np.linspace(0, 2 * np.pi, 181)
    ax.plot(ring, np.full_like(ring, 90.0 - threshold_deg),
            linestyle="--", linewidth=0.8, color="#95a5a6")

    if title is None and window is not None:
        title = f"{window.start:%Y-%m-%d %H:%M} UTC — {window.direction}"
    ax.set_title(title or "Sky track", pad=20)
    ax.legend(loc="lower left", bbox_to_anchor=(-0.1, -0.1), fontsize=8)

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")

    return fig


def plot_pass_timeline(
    pass_df: pd.DataFrame,
    min_elevation: Optional[float] = None,
    title: str = "Upcoming Passes",
    save_path: Optional[str | Path] = None,
    figsize: tuple = (12, 4),
) -> plt.Figure:
    """Peak elevation of each upcoming pass against its start time.

    Args:
        pass_df: DataFrame from ``passes_to_frame()``.
        min_elevation: Draw a user's minimum elevation as a reference line.
    """
    fig, ax = plt.subplots(figsize=figsize)
    ax.set_title(title)
    if pass_df.empty:
        ax.text(0.5, 0.5, "No passes in horizon", transform=ax.transAxes,
                ha="center", va="center", fontsize=14, color="#95a5a6")
    else:
        starts = pd.to_datetime(pass_df["start"])
        ax.bar(starts, pass_df["peak_elevation_deg"], width=0.01, color=TRACK_COLOR)
        if min_elevation is not None:
            ax.axhline(min_elevation, color=SET_COLOR, linestyle="--", linewidth=1,
                       label=f"Min elevation {min_elevation:.0f}°")
            ax.legend(loc="upper right", fontsize=8)
        ax.set_ylim(0, 90)
        ax.set_ylabel("Peak elevation (°)")
        ax.xaxis.set_major_formatter(mdates.DateFormatter("%m-%d %H:%M"))
        fig.autofmt_xdate(rotation=30)
        plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")

    return fig


def _azimuth_at(samples: list[LookAngle], window: PassWindow) -> float:
    nearest = min(samples, key=lambda s: abs((s.time - window.peak_time).total_seconds()))
    return nearest.azimuth
