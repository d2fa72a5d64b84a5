#!/usr/bin/env python3
"""PASSWATCH command-line interface.

Usage::

    passwatch passes --lat 37.7 --lon -122.4 --hours 48 --plot passes.png
    passwatch check
    passwatch run
    passwatch test-notify u1
    passwatch history --user u1
"""
from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import Optional

import click
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .celestrak import CelesTrakClient, StaticElementSource, load_tle_file
from .config import Settings
from .detector import DetectorConfig, PassDetector, PassWindow, passes_to_frame
from .dispatcher import Dispatcher, DispatchStatus
from .eligibility import LeadTimeBand
from .errors import DispatchError, PassWatchError
from .ledger import DedupLedger
from .mailer import SmtpChannel
from .notifier import PassNotifier, RoundSummary
from .preferences import JsonPreferenceStore
from .scheduler import NotificationScheduler
from .tle_parser import TLE
from .topocentric import Observer

console = Console()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--env-file", type=click.Path(exists=True, dir_okay=False), help="Load settings from this .env file")
@click.pass_context
def main(ctx: click.Context, verbose: bool, env_file: Optional[str]):
    """PASSWATCH — satellite pass prediction and visibility notifications."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(name)s — %(message)s")
    try:
        ctx.obj = Settings.from_env(env_file)
    except ValidationError as e:
        console.print(f"[red]Invalid settings: {escape(str(e))}[/red]")
        sys.exit(1)


@main.command()
@click.option("--lat", type=float, required=True, help="Observer latitude (degrees)")
@click.option("--lon", type=float, required=True, help="Observer longitude (degrees)")
@click.option("--height", type=float, default=0.0, help="Observer height above ellipsoid (km)")
@click.option("--hours", "-h", default=48.0, help="Look-ahead horizon (hours)")
@click.option("--max", "max_windows", default=5, help="Stop after this many passes (0 = all)")
@click.option("--threshold", "-t", default=10.0, help="Visibility threshold (degrees)")
@click.option("--tle-file", "-f", type=click.Path(exists=True), help="Use a local TLE file")
@click.option("--output", "-o", type=click.Path(), help="Save passes to CSV")
@click.option("--plot", "plot_path", type=click.Path(), help="Save a peak-elevation timeline PNG")
@click.pass_obj
def passes(
    settings: Settings,
    lat: float,
    lon: float,
    height: float,
    hours: float,
    max_windows: int,
    threshold: float,
    tle_file: Optional[str],
    output: Optional[str],
    plot_path: Optional[str],
):
    """List upcoming passes over a location."""
    tle = _load_elements(settings, tle_file)
    observer = Observer(lat, lon, height)
    detector = _build_detector(settings, hours, max_windows or None, threshold)

    now = datetime.now(timezone.utc)
    windows = detector.detect(tle, observer, start=now)
    _display_passes(tle, observer, windows, hours, now)

    frame = passes_to_frame(windows, now)
    if output:
        frame.to_csv(output, index=False)
        console.print(f"\nResults saved to {output}")
    if plot_path:
        from .viz import plot_pass_timeline

        plot_pass_timeline(
            frame,
            title=f"{tle.name or tle.norad_id} passes, next {hours:g} h",
            save_path=plot_path,
        )
        console.print(f"Timeline saved to {plot_path}")


@main.command()
@click.option("--lat", type=float, required=True, help="Observer latitude (degrees)")
@click.option("--lon", type=float, required=True, help="Observer longitude (degrees)")
@click.option("--hours", "-h", default=24.0, help="Look-ahead horizon (hours)")
@click.option("--tle-file", "-f", type=click.Path(exists=True), help="Use a local TLE file")
@click.option("--output", "-o", type=click.Path(), default="sky_track.png", help="PNG path")
@click.pass_obj
def plot(
    settings: Settings,
    lat: float,
    lon: float,
    hours: float,
    tle_file: Optional[str],
    output: str,
):
    """Plot the sky track of the next pass."""
    from .viz import plot_sky_track

    tle = _load_elements(settings, tle_file)
    observer = Observer(lat, lon)
    detector = _build_detector(settings, hours, max_windows=1)
    windows = detector.detect(tle, observer)
    if not windows:
        console.print(f"[yellow]No pass in the next {hours:g} hours.[/yellow]")
        return

    window = windows[0]
    samples = detector.track(tle, observer, window)
    plot_sky_track(samples, window, settings.visibility_threshold, save_path=output)
    console.print(f"{window.summary()}\nSky track saved to {output}")


@main.command()
@click.pass_obj
def check(settings: Settings):
    """Run one notification round now."""
    notifier, store, _ = _build_pipeline(settings)
    users = store.eligible_users()
    console.print(f"Checking passes for {len(users)} users...")
    summary = notifier.run_round(users, max_workers=settings.max_workers)
    _display_round(summary)


@main.command()
@click.pass_obj
def run(settings: Settings):
    """Start the notification scheduler (runs until interrupted)."""
    notifier, store, _ = _build_pipeline(settings)
    scheduler = NotificationScheduler(
        notifier,
        store,
        interval_minutes=settings.interval_minutes,
        startup_delay=settings.startup_delay,
        max_workers=settings.max_workers,
    )
    console.print(
        Panel(
            f"Tracking [bold]{settings.satellite_name}[/bold] (NORAD {settings.catalog_id})\n"
            f"Users file: {settings.users_file}\n"
            f"Ledger: {settings.database_url}\n"
            f"Interval: every {settings.interval_minutes:g} minutes",
            title="Scheduler",
            box=box.ROUNDED,
        )
    )
    scheduler.run_forever()


@main.command("test-notify")
@click.argument("user_id")
@click.pass_obj
def test_notify(settings: Settings, user_id: str):
    """Send a synthetic pass notification to one user."""
    _, store, dispatcher = _build_pipeline(settings)
    user = store.get(user_id)
    if user is None:
        console.print(f"[red]Error: no user with id {user_id}[/red]")
        sys.exit(1)

    outcome = dispatcher.send_test(user)
    if outcome.status is DispatchStatus.SENT:
        console.print(f"[green]Test notification sent to {user.email}[/green] ({outcome.message_id})")
    else:
        console.print(f"[red]Test notification failed: {outcome.error}[/red]")
        sys.exit(1)


@main.command("verify-email")
@click.pass_obj
def verify_email(settings: Settings):
    """Check SMTP connectivity and credentials without sending."""
    channel = _build_channel(settings)
    console.print(f"Verifying SMTP connection to {settings.email_host}:{settings.email_port}...")
    try:
        channel.verify()
    except DispatchError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print("[green]SMTP connection successful[/green]")


@main.command()
@click.option("--user", "-u", "user_id", help="Only this user's records")
@click.option("--limit", "-n", default=50, help="Maximum records to show")
@click.pass_obj
def history(settings: Settings, user_id: Optional[str], limit: int):
    """Show dispatched notifications from the ledger."""
    settings.ensure_dirs()
    ledger = DedupLedger(settings.database_url)
    records = ledger.history(user_id, limit)
    if not records:
        console.print("[yellow]No notifications recorded.[/yellow]")
        return

    table = Table(box=box.SIMPLE_HEAVY)
    table.add_column("Sent", style="cyan")
    table.add_column("User")
    table.add_column("Event", style="bold")
    table.add_column("Subject")
    table.add_column("Status", justify="right")
    for rec in records:
        table.add_row(
            f"{rec.sent_at:%Y-%m-%d %H:%M}" if rec.sent_at else "",
            rec.user_id,
            rec.event_id,
            rec.subject or "",
            rec.status,
        )
    console.print(table)


def _load_elements(settings: Settings, tle_file: Optional[str]) -> TLE:
    try:
        if tle_file:
            source = StaticElementSource(load_tle_file(tle_file))
        else:
            settings.ensure_dirs()
            source = CelesTrakClient(
                url=settings.tle_url,
                timeout=settings.tle_timeout,
                cache_dir=settings.tle_cache_dir,
                ttl_hours=settings.tle_ttl_hours,
            )
        return source.get_elements(settings.catalog_id)
    except PassWatchError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _build_detector(
    settings: Settings,
    horizon_hours: float,
    max_windows: Optional[int] = None,
    threshold: Optional[float] = None,
) -> PassDetector:
    return PassDetector(DetectorConfig(
        horizon_hours=horizon_hours,
        step_seconds=settings.step_seconds,
        visibility_threshold_deg=settings.visibility_threshold if threshold is None else threshold,
        max_windows=max_windows,
    ))


def _build_channel(settings: Settings) -> SmtpChannel:
    return SmtpChannel(
        host=settings.email_host,
        port=settings.email_port,
        username=settings.email_user,
        password=settings.email_pass,
        from_name=settings.email_from_name,
    )


def _build_pipeline(settings: Settings) -> tuple[PassNotifier, JsonPreferenceStore, Dispatcher]:
    settings.ensure_dirs()
    source = CelesTrakClient(
        url=settings.tle_url,
        timeout=settings.tle_timeout,
        cache_dir=settings.tle_cache_dir,
        ttl_hours=settings.tle_ttl_hours,
    )
    detector = _build_detector(settings, settings.horizon_hours)
    dispatcher = Dispatcher(
        _build_channel(settings),
        DedupLedger(settings.database_url),
        satellite_name=settings.satellite_name,
        event_prefix=settings.event_prefix,
        event_type=settings.event_type,
        frontend_url=settings.frontend_url,
    )
    notifier = PassNotifier(
        source,
        detector,
        dispatcher,
        catalog_id=settings.catalog_id,
        band=LeadTimeBand(settings.min_lead_hours, settings.max_lead_hours),
    )
    return notifier, JsonPreferenceStore(settings.users_file), dispatcher


def _display_passes(
    tle: TLE,
    observer: Observer,
    windows: list[PassWindow],
    hours: float,
    now: datetime,
):
    """Display predicted passes with rich formatting."""
    age = tle.age_days(now)
    age_style = "red" if age > 3 else "green"
    console.print(
        Panel(
            f"[bold]{tle.name or 'UNKNOWN'}[/bold] (NORAD {tle.norad_id})\n"
            f"Observer: {observer.latitude:.4f}°, {observer.longitude:.4f}°\n"
            f"Element epoch: {tle.epoch_dt:%Y-%m-%d %H:%M} UTC "
            f"([{age_style}]{age:.1f} days old[/{age_style}])\n"
            f"Altitude: {tle.altitude:.1f} km, period {tle.period / 60.0:.1f} min\n"
            f"Passes in next {hours:g} h: [bold green]{len(windows)}[/bold green]",
            title="Pass Prediction",
            box=box.ROUNDED,
        )
    )

    if not windows:
        return

    table = Table(title="Upcoming Passes", box=box.SIMPLE_HEAVY, show_lines=True)
    table.add_column("Rise (UTC)", style="cyan")
    table.add_column("In", justify="right")
    table.add_column("Max El", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Direction", style="bold")

    for w in windows:
        el_color = "green" if w.peak_elevation >= 30 else "yellow"
        rise = f"{w.start:%Y-%m-%d %H:%M}" + (" (in progress)" if w.start_truncated else "")
        duration = f"{w.duration_minutes} min" if w.duration_minutes is not None else "open"
        table.add_row(
            rise,
            f"{w.hours_until(now):.1f} h",
            f"[{el_color}]{w.peak_elevation:.0f}°[/{el_color}]",
            duration,
            w.direction,
        )

    console.print(table)


def _display_round(summary: RoundSummary):
    """Display a round summary as a panel plus a per-user table."""
    console.print(
        Panel(
            f"Users checked: {summary.users_checked}\n"
            f"Emails sent: [bold green]{summary.emails_sent}[/bold green]\n"
            f"Failures: [bold red]{summary.users_failed}[/bold red]",
            title="Notification Round",
            box=box.ROUNDED,
        )
    )
    if not summary.results:
        return

    table = Table(box=box.SIMPLE_HEAVY)
    table.add_column("User")
    table.add_column("Passes", justify="right")
    table.add_column("Eligible", justify="right")
    table.add_column("Sent", justify="right")
    table.add_column("Note")
    for r in summary.results:
        note = r.error or ", ".join(
            f"{o.event_id}: {o.status.name.lower()}" for o in r.outcomes
        )
        table.add_row(r.username, str(r.windows_found), str(r.eligible), str(r.emails_sent), note)
    console.print(table)


if __name__ == "__main__":
    main()
