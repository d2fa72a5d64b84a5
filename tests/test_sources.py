#!/usr/bin/env python3
"""
Tests for element sources, runtime settings, plots and the CLI.
"""
import os
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import pytest
import requests
from click.testing import CliRunner
from pydantic import ValidationError

from conftest import ISS_LINE1, ISS_LINE2, NOW, make_window
from passwatch.celestrak import CelesTrakClient, StaticElementSource, load_tle_file
from passwatch.cli import _build_detector, main
from passwatch.config import Settings
from passwatch.detector import passes_to_frame
from passwatch.errors import ElementSourceError
from passwatch.ledger import DedupLedger, LedgerPayload
from passwatch.topocentric import LookAngle

ISS_TEXT = f"ISS (ZARYA)\n{ISS_LINE1}\n{ISS_LINE2}\n"


class FakeResponse:
    def __init__(self, text, status_code=200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


# CELESTRAK TESTS
class TestCelesTrakClient:
    def test_fetch_and_cache(self, tmp_path):
        session = FakeSession(FakeResponse(ISS_TEXT))
        client = CelesTrakClient(cache_dir=tmp_path, session=session)

        tle = client.get_elements(25544)
        assert tle.norad_id == 25544
        assert tle.name == "ISS (ZARYA)"
        assert session.requests[0][1] == {"CATNR": 25544, "FORMAT": "tle"}
        assert (tmp_path / "gp_25544.tle").exists()

        again = client.get_elements(25544)
        assert again.epoch_dt == tle.epoch_dt
        assert len(session.requests) == 1

    def test_expired_cache_refetches(self, tmp_path):
        session = FakeSession(FakeResponse(ISS_TEXT), FakeResponse(ISS_TEXT))
        client = CelesTrakClient(cache_dir=tmp_path, ttl_hours=0.0, session=session)
        client.get_elements(25544)
        client.get_elements(25544)
        assert len(session.requests) == 2

    def test_bypass_cache(self, tmp_path):
        session = FakeSession(FakeResponse(ISS_TEXT), FakeResponse(ISS_TEXT))
        client = CelesTrakClient(cache_dir=tmp_path, session=session)
        client.get_elements(25544)
        client.get_elements(25544, use_cache=False)
        assert len(session.requests) == 2

    def test_network_failure(self, tmp_path):
        session = FakeSession(requests.ConnectionError("connection refused"))
        client = CelesTrakClient(cache_dir=tmp_path, session=session)
        with pytest.raises(ElementSourceError, match="25544"):
            client.get_elements(25544)
        assert not (tmp_path / "gp_25544.tle").exists()

    def test_http_error(self, tmp_path):
        client = CelesTrakClient(cache_dir=tmp_path, session=FakeSession(FakeResponse("", 503)))
        with pytest.raises(ElementSourceError):
            client.get_elements(25544)

    def test_response_without_elements(self, tmp_path):
        session = FakeSession(FakeResponse("No GP data found"))
        client = CelesTrakClient(cache_dir=tmp_path, session=session)
        with pytest.raises(ElementSourceError):
            client.get_elements(25544)
        assert not (tmp_path / "gp_25544.tle").exists()

    def test_failed_refresh_keeps_cache(self, tmp_path):
        session = FakeSession(FakeResponse(ISS_TEXT), FakeResponse("garbage"))
        client = CelesTrakClient(cache_dir=tmp_path, session=session)
        client.get_elements(25544)
        with pytest.raises(ElementSourceError):
            client.get_elements(25544, use_cache=False)
        assert (tmp_path / "gp_25544.tle").read_text() == ISS_TEXT

    def test_latest_epoch_wins(self, tmp_path):
        newer = ISS_LINE1.replace("24001.50000000", "24002.50000000")
        text = f"{ISS_LINE1}\n{ISS_LINE2}\n{newer}\n{ISS_LINE2}\n"
        client = CelesTrakClient(cache_dir=tmp_path, session=FakeSession(FakeResponse(text)))
        assert client.get_elements(25544).epoch_day == pytest.approx(2.5)


class TestStaticSource:
    def test_serves_by_catalog_id(self, tmp_path):
        path = tmp_path / "iss.tle"
        path.write_text(ISS_TEXT)
        source = StaticElementSource(load_tle_file(path))
        assert source.get_elements(25544).name == "ISS (ZARYA)"
        with pytest.raises(ElementSourceError):
            source.get_elements(20580)


# SETTINGS TESTS
class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.catalog_id == 25544
        assert settings.min_lead_hours == 1.0
        assert settings.max_lead_hours == 6.0
        assert settings.interval_minutes == 30.0
        assert settings.email_port == 465

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PASSWATCH_CATALOG_ID", "20580")
        monkeypatch.setenv("PASSWATCH_SATELLITE_NAME", "Hubble")
        monkeypatch.setenv("PASSWATCH_INTERVAL_MINUTES", "15")
        monkeypatch.setenv("EMAIL_PORT", "587")
        monkeypatch.setenv("FRONTEND_URL", "https://spacescope.example")
        settings = Settings.from_env()
        assert settings.catalog_id == 20580
        assert settings.satellite_name == "Hubble"
        assert settings.interval_minutes == 15.0
        assert settings.email_port == 587
        assert settings.frontend_url == "https://spacescope.example"

    def test_malformed_value_names_the_field(self, monkeypatch):
        monkeypatch.setenv("PASSWATCH_MAX_WORKERS", "four")
        with pytest.raises(ValidationError, match="max_workers"):
            Settings.from_env()

    def test_out_of_range_value(self):
        with pytest.raises(ValidationError, match="step_seconds"):
            Settings(step_seconds=0)

    def test_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PASSWATCH_SATELLITE_NAME", raising=False)
        monkeypatch.delenv("EMAIL_HOST", raising=False)
        env_file = tmp_path / "passwatch.env"
        env_file.write_text("PASSWATCH_SATELLITE_NAME=FromFile\nEMAIL_HOST=mail.example.org\n")
        settings = Settings.from_env(env_file)
        assert settings.satellite_name == "FromFile"
        assert settings.email_host == "mail.example.org"
        assert "PASSWATCH_SATELLITE_NAME" not in os.environ

    def test_environment_wins_over_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("PASSWATCH_SATELLITE_NAME=FromFile\n")
        monkeypatch.setenv("PASSWATCH_SATELLITE_NAME", "FromEnv")
        assert Settings.from_env(env_file).satellite_name == "FromEnv"

    def test_ensure_dirs(self, tmp_path):
        settings = Settings(
            tle_cache_dir=tmp_path / "cache",
            database_url=f"sqlite:///{tmp_path / 'db' / 'ledger.db'}",
        )
        settings.ensure_dirs()
        assert (tmp_path / "cache").is_dir()
        assert (tmp_path / "db").is_dir()


# VIZ TESTS
class TestViz:
    def test_sky_track(self, tmp_path):
        from passwatch.viz import plot_sky_track

        window = make_window()
        samples = [
            LookAngle(window.start, 225.0, 12.0, 1500.0),
            LookAngle(window.peak_time, 135.0, 45.0, 600.0),
            LookAngle(window.end, 45.0, 11.0, 1500.0),
        ]
        out = tmp_path / "track.png"
        fig = plot_sky_track(samples, window, save_path=out)
        assert fig is not None
        assert out.exists()

    def test_timeline(self, tmp_path):
        from passwatch.viz import plot_pass_timeline

        df = passes_to_frame([make_window(2.0, 35.0), make_window(5.0, 60.0)], NOW)
        out = tmp_path / "timeline.png"
        plot_pass_timeline(df, min_elevation=30.0, save_path=out)
        assert out.exists()

    def test_empty_timeline_is_saved(self, tmp_path):
        from passwatch.viz import plot_pass_timeline

        out = tmp_path / "empty.png"
        assert plot_pass_timeline(passes_to_frame([]), save_path=out) is not None
        assert out.exists()


# CLI TESTS
@pytest.fixture
def cli_env(tmp_path):
    return {
        "PASSWATCH_DATABASE_URL": f"sqlite:///{tmp_path / 'ledger.db'}",
        "PASSWATCH_TLE_CACHE_DIR": str(tmp_path / "cache"),
        "PASSWATCH_USERS_FILE": str(tmp_path / "users.json"),
    }


class TestCli:
    def test_history_empty(self, cli_env):
        result = CliRunner().invoke(main, ["history"], env=cli_env)
        assert result.exit_code == 0
        assert "No notifications recorded" in result.output

    def test_history(self, cli_env):
        ledger = DedupLedger(cli_env["PASSWATCH_DATABASE_URL"])
        ledger.record("u1", "iss-2024-01-03-2057", LedgerPayload(
            event_type="iss_pass", message_id="<1@test>", subject="hi", sent_at=NOW,
        ))
        result = CliRunner().invoke(main, ["history", "--user", "u1"], env=cli_env)
        assert result.exit_code == 0
        assert "No notifications recorded" not in result.output

    def test_test_notify_unknown_user(self, cli_env):
        result = CliRunner().invoke(main, ["test-notify", "ghost"], env=cli_env)
        assert result.exit_code == 1
        assert "no user" in result.output

    def test_passes_from_file(self, cli_env, tmp_path):
        path = tmp_path / "iss.tle"
        path.write_text(ISS_TEXT)
        result = CliRunner().invoke(
            main,
            ["passes", "--lat", "37.7", "--lon", "-122.4", "--tle-file", str(path)],
            env=cli_env,
        )
        assert result.exit_code == 0
        assert "Pass Prediction" in result.output

    def test_passes_plot(self, cli_env, tmp_path):
        path = tmp_path / "iss.tle"
        path.write_text(ISS_TEXT)
        out = tmp_path / "timeline.png"
        result = CliRunner().invoke(
            main,
            ["passes", "--lat", "37.7", "--lon", "-122.4", "--tle-file", str(path),
             "--plot", str(out)],
            env=cli_env,
        )
        assert result.exit_code == 0
        assert out.exists()

    def test_invalid_setting_exits(self, cli_env):
        env = dict(cli_env, PASSWATCH_MAX_WORKERS="four")
        result = CliRunner().invoke(main, ["history"], env=env)
        assert result.exit_code == 1
        assert "Invalid settings" in result.output

    def test_detectors_use_configured_step(self):
        settings = Settings(step_seconds=30.0, visibility_threshold=15.0)
        detector = _build_detector(settings, 24.0, max_windows=1)
        assert detector.config.step_seconds == 30.0
        assert detector.config.visibility_threshold_deg == 15.0
        assert _build_detector(settings, 48.0, threshold=5.0).config.visibility_threshold_deg == 5.0
