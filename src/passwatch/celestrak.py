"""CelesTrak client for fetching current orbital element sets.

Fetches the latest TLE for a catalog number from CelesTrak's public GP
endpoint (no account needed). Responses are cached on disk for a short
TTL so a scheduler round serving many users fetches at most once, and
CelesTrak's request-rate guidance is respected.

Elements go stale: a warning is logged when the served set is more than
``STALE_WARN_DAYS`` old. Propagation itself refuses times too far from
epoch (see ``passwatch.propagator``).
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Optional, Protocol

import requests

from .errors import ElementSourceError
from .tle_parser import TLE

logger = logging.getLogger(__name__)

GP_URL = "https://celestrak.org/NORAD/elements/gp.php"

DEFAULT_TIMEOUT = 10.0  # seconds
DEFAULT_TTL_HOURS = 2.0
STALE_WARN_DAYS = 3.0


class ElementSource(Protocol):
    """Anything that can supply a fresh element set by catalog id."""

    def get_elements(self, catalog_id: int) -> TLE: ...


class CelesTrakClient:
    """Read-through cached client for the CelesTrak GP API."""

    def __init__(
        self,
        url: str = GP_URL,
        timeout: float = DEFAULT_TIMEOUT,
        cache_dir: Optional[Path] = None,
        ttl_hours: float = DEFAULT_TTL_HOURS,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.cache_dir = Path(cache_dir) if cache_dir else Path("data/cache")
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.ttl_hours = ttl_hours
        self.session = session or requests.Session()
        self._lock = threading.Lock()

    def _cache_file(self, catalog_id: int) -> Path:
        return self.cache_dir / f"gp_{catalog_id}.tle"

    def _read_cache(self, catalog_id: int) -> Optional[str]:
        cache_file = self._cache_file(catalog_id)
        if not cache_file.exists():
            return None
        age_hours = (time.time() - cache_file.stat().st_mtime) / 3600
        if age_hours >= self.ttl_hours:
            return None
        logger.debug("Cache hit: %s (%.1f h old)", cache_file.name, age_hours)
        return cache_file.read_text()

    def _write_cache(self, catalog_id: int, text: str) -> None:
        cache_file = self._cache_file(catalog_id)
        tmp = cache_file.with_suffix(".tmp")
        tmp.write_text(text)
        tmp.replace(cache_file)

    def _fetch(self, catalog_id: int) -> str:
        """Execute one GP query. Raises ElementSourceError on any failure."""
        logger.info("Querying %s for NORAD %d", self.url, catalog_id)
        try:
            resp = self.session.get(
                self.url,
                params={"CATNR": catalog_id, "FORMAT": "tle"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise ElementSourceError(
                f"Failed to fetch elements for NORAD {catalog_id}: {e}"
            ) from e
        return resp.text

    def get_elements(self, catalog_id: int, use_cache: bool = True) -> TLE:
        """Fetch the current element set for a satellite.

        Args:
            catalog_id: NORAD catalog number.
            use_cache: Serve from the disk cache when fresh.

        Returns:
            The element set.

        Raises:
            ElementSourceError: Network failure, timeout, HTTP error, or a
                response without an element set for ``catalog_id``. The
                cache is left untouched.
        """
        with self._lock:
            raw = self._read_cache(catalog_id) if use_cache else None
            from_cache = raw is not None
            if raw is None:
                raw = self._fetch(catalog_id)

            tle = _select(TLE.parse_batch(raw), catalog_id)
            if tle is None:
                raise ElementSourceError(
                    f"No element set for NORAD {catalog_id} in response"
                )
            if not from_cache:
                self._write_cache(catalog_id, raw)

        age = tle.age_days()
        if age > STALE_WARN_DAYS:
            logger.warning(
                "Elements for NORAD %d are %.1f days old; predictions degrade",
                catalog_id,
                age,
            )
        return tle


class StaticElementSource:
    """Serves fixed element sets (offline use and tests)."""

    def __init__(self, tles: list[TLE]):
        self._tles = {tle.norad_id: tle for tle in tles}

    def get_elements(self, catalog_id: int) -> TLE:
        try:
            return self._tles[catalog_id]
        except KeyError:
            raise ElementSourceError(f"No element set for NORAD {catalog_id}") from None


def load_tle_file(filepath: str | Path) -> list[TLE]:
    """Load TLEs from a local file (2-line or 3-line format)."""
    text = Path(filepath).read_text()
    return TLE.parse_batch(text)


def _select(tles: list[TLE], catalog_id: int) -> Optional[TLE]:
    matches = [t for t in tles if t.norad_id == catalog_id]
    if not matches:
        return None
    return max(matches, key=lambda t: t.epoch_dt)
