"""Runtime settings, read from the environment (and a ``.env`` file).

Only the CLI builds ``Settings``; library classes take explicit arguments.
"""
from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .celestrak import GP_URL


def _plain_env(name: str) -> AliasChoices:
    # Mail and frontend variables are shared with the web app, so no prefix
    return AliasChoices(name, name.lower())


class Settings(BaseSettings):
    """Everything tunable, as ``PASSWATCH_<FIELD>`` variables.

    The mail settings and ``FRONTEND_URL`` keep their unprefixed names.
    Environment variables win over the ``.env`` file; a value that does not
    parse raises ``pydantic.ValidationError`` naming the field.
    """

    model_config = SettingsConfigDict(
        env_prefix="PASSWATCH_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Tracked object
    catalog_id: int = 25544
    satellite_name: str = "ISS"
    event_prefix: str = "iss"
    event_type: str = "iss_pass"

    # Element source
    tle_url: str = GP_URL
    tle_timeout: float = Field(10.0, gt=0)
    tle_cache_dir: Path = Path("data/cache")
    tle_ttl_hours: float = Field(2.0, ge=0)

    # Storage
    database_url: str = "sqlite:///data/passwatch.db"
    users_file: Path = Path("data/users.json")

    # Scheduler
    interval_minutes: float = Field(30.0, gt=0)
    startup_delay: float = Field(5.0, ge=0)
    max_workers: int = Field(1, ge=1)

    # Detector
    horizon_hours: float = Field(24.0, gt=0)
    step_seconds: float = Field(60.0, gt=0)
    visibility_threshold: float = 10.0

    # Eligibility
    min_lead_hours: float = 1.0
    max_lead_hours: float = 6.0

    # Email
    email_host: str = Field("smtp.gmail.com", validation_alias=_plain_env("EMAIL_HOST"))
    email_port: int = Field(465, validation_alias=_plain_env("EMAIL_PORT"))
    email_user: str = Field("", validation_alias=_plain_env("EMAIL_USER"))
    email_pass: str = Field("", validation_alias=_plain_env("EMAIL_PASS"))
    email_from_name: str = Field("SpaceScope", validation_alias=_plain_env("EMAIL_FROM_NAME"))
    frontend_url: str = Field("", validation_alias=_plain_env("FRONTEND_URL"))

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> Settings:
        """Build settings from the environment.

        Args:
            env_file: Explicit ``.env`` path; by default ``.env`` in the
                working directory is read if present.
        """
        if env_file is not None:
            return cls(_env_file=env_file)
        return cls()

    def ensure_dirs(self) -> None:
        """Create local directories the SQLite ledger and cache need."""
        self.tle_cache_dir.mkdir(parents=True, exist_ok=True)
        prefix = "sqlite:///"
        if self.database_url.startswith(prefix) and ":memory:" not in self.database_url:
            Path(self.database_url[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)
