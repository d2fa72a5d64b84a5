"""Pass notification emails: rendering and the SMTP channel.

Set credentials via environment variables::

    export EMAIL_USER="you@gmail.com"
    export EMAIL_PASS="abcd efgh ijkl mnop"   # app password, spaces are stripped

Or pass them directly to the ``SmtpChannel`` constructor.
"""
from __future__ import annotations

import html
import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from string import Template
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .detector import PassWindow
from .errors import DispatchError
from .preferences import UserProfile

logger = logging.getLogger(__name__)

SMTP_TIMEOUT = 30  # seconds

_PASS_TEMPLATE = Template("""\
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <style>
    body { font-family: Arial, sans-serif; background: #000; color: #fff; margin: 0; padding: 20px; }
    .container { max-width: 600px; margin: 0 auto; background: #16213e; border-radius: 12px; padding: 30px; }
    .title { font-size: 24px; color: #00d4ff; margin: 0; text-align: center; }
    .details { background: rgba(255,255,255,0.05); border-radius: 8px; padding: 20px; margin: 20px 0; }
    .row { display: flex; justify-content: space-between; padding: 12px; border-bottom: 1px solid rgba(255,255,255,0.1); }
    .label { color: #888; }
    .value { color: #00d4ff; font-weight: bold; }
    .button { background: #00d4ff; color: #000; padding: 15px 40px; text-decoration: none; border-radius: 8px; font-weight: bold; }
    .footer { text-align: center; color: #666; font-size: 12px; margin-top: 30px; }
  </style>
</head>
<body>
  <div class="container">
    <h1 class="title">🛰️ $satellite Passes Over $place Soon!</h1>
    <p>Hi $username,</p>
    <p>The $satellite will be visible from your location soon!</p>
    <div class="details">
      <div class="row"><span class="label">Rise Time</span><span class="value">$rise_time</span></div>
      <div class="row"><span class="label">Max Elevation</span><span class="value">$max_elevation° above horizon</span></div>
      <div class="row"><span class="label">Duration</span><span class="value">$duration minutes</span></div>
      <div class="row"><span class="label">Direction</span><span class="value">$direction</span></div>
    </div>
    <p><strong>Viewing Tips:</strong></p>
    <ul>
      <li>Look for a bright moving "star" - no telescope needed!</li>
      <li>It moves fast - it will cross the sky in $duration minutes</li>
      <li>Best viewed away from city lights</li>
    </ul>
    $tracker_link
    <div class="footer">
      <p>You're receiving this because you enabled pass notifications.</p>
      $settings_link
    </div>
  </div>
</body>
</html>
""")


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str


class EmailChannel(Protocol):
    """Outbound email transport. Returns the provider message id."""

    def send(self, to: str, subject: str, html_body: str) -> str: ...


def render_pass_email(
    user: UserProfile,
    window: PassWindow,
    now: Optional[datetime] = None,
    satellite_name: str = "ISS",
    frontend_url: str = "",
) -> RenderedEmail:
    """Render the notification for one user and one pass.

    Args:
        user: Recipient.
        window: The eligible pass.
        now: Reference instant for the "visible in N hours" subject.
        satellite_name: Display name of the tracked object.
        frontend_url: Base URL for tracker/settings links (omitted if empty).

    Returns:
        Subject line and HTML body.
    """
    hours = round(window.hours_until(now))
    duration = window.duration_minutes
    base = frontend_url.rstrip("/")

    body = _PASS_TEMPLATE.substitute(
        satellite=html.escape(satellite_name),
        place=html.escape(user.preference.location.city or "Your Location"),
        username=html.escape(user.username or "there"),
        rise_time=html.escape(format_rise_time(window.start, user.preference.location.timezone)),
        max_elevation=int(round(window.peak_elevation)),
        duration=duration if duration is not None else "several",
        direction=html.escape(window.direction),
        tracker_link=(
            f'<p style="text-align:center"><a class="button" href="{html.escape(base)}/iss-tracker">'
            f"Track Live</a></p>"
            if base else ""
        ),
        settings_link=(
            f'<p><a href="{html.escape(base)}/settings" style="color: #00d4ff;">'
            f"Manage notification preferences</a></p>"
            if base else ""
        ),
    )
    subject = f"🛰️ {satellite_name} visible in {hours} hours!"
    return RenderedEmail(subject=subject, html=body)


def format_rise_time(when: datetime, tz_name: Optional[str] = None) -> str:
    """Rise time in the user's time zone when known, otherwise UTC."""
    if tz_name:
        try:
            local = when.astimezone(ZoneInfo(tz_name))
            return f"{local:%a %d %b %Y, %H:%M} {local.tzname()}"
        except ZoneInfoNotFoundError:
            logger.warning("Unknown time zone %r, falling back to UTC", tz_name)
    return f"{when:%a %d %b %Y, %H:%M} UTC"


class SmtpChannel:
    """SMTP email channel (implicit TLS on 465, STARTTLS otherwise)."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_name: str = "SpaceScope",
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        # App passwords are often pasted with their display spaces
        self.password = "".join(password.split())
        self.from_name = from_name

    def _connect(self) -> smtplib.SMTP:
        if not self.username or not self.password:
            raise DispatchError(
                "SMTP credentials required. Set EMAIL_USER and EMAIL_PASS "
                "environment variables, or pass to constructor."
            )
        context = ssl.create_default_context()
        if self.port == 465:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=SMTP_TIMEOUT, context=context)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT)
            server.starttls(context=context)
        try:
            server.login(self.username, self.password)
        except smtplib.SMTPException:
            server.close()
            raise
        return server

    def send(self, to: str, subject: str, html_body: str) -> str:
        """Send one HTML email.

        Returns:
            The Message-ID header of the sent message.

        Raises:
            DispatchError: On connection, authentication or send failure.
        """
        msg = EmailMessage()
        msg["From"] = formataddr((self.from_name, self.username))
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain=self.username.partition("@")[2] or None)
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html_body, subtype="html")

        try:
            with self._connect() as server:
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DispatchError(f"Failed to send to {to}: {e}") from e

        logger.info("Message sent: %s", msg["Message-ID"])
        return msg["Message-ID"]

    def verify(self) -> None:
        """Check connection and login without sending anything.

        Raises:
            DispatchError: If the server cannot be reached or rejects login.
        """
        try:
            with self._connect():
                pass
        except (smtplib.SMTPException, OSError) as e:
            raise DispatchError(f"SMTP verification failed for {self.host}:{self.port}: {e}") from e
        logger.info("SMTP connection to %s:%d verified", self.host, self.port)
