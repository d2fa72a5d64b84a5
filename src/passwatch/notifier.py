"""Per-user notification pipeline and round orchestration.

For each user: fetch elements → detect windows → filter → dispatch. Every
failure is caught at the user boundary and reported in that user's result;
no error in one user's pipeline can stop another's.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from .celestrak import ElementSource
from .detector import PassDetector
from .dispatcher import Dispatcher, DispatchOutcome, DispatchStatus
from .eligibility import LeadTimeBand, filter_windows
from .errors import PassWatchError
from .preferences import UserProfile

logger = logging.getLogger(__name__)

ISS_CATALOG_ID = 25544


@dataclass
class UserResult:
    """What happened for one user in one round."""
    user_id: str
    username: str
    windows_found: int = 0
    eligible: int = 0
    outcomes: list[DispatchOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def emails_sent(self) -> int:
        return sum(1 for o in self.outcomes if o.sent)

    @property
    def failed(self) -> bool:
        return self.error is not None or any(
            o.status is DispatchStatus.FAILED for o in self.outcomes
        )


@dataclass
class RoundSummary:
    started_at: datetime
    finished_at: datetime
    results: list[UserResult]

    @property
    def users_checked(self) -> int:
        return len(self.results)

    @property
    def emails_sent(self) -> int:
        return sum(r.emails_sent for r in self.results)

    @property
    def users_failed(self) -> int:
        return sum(1 for r in self.results if r.failed)

    def summary(self) -> str:
        seconds = (self.finished_at - self.started_at).total_seconds()
        return (
            f"Round complete: {self.users_checked} users checked, "
            f"{self.emails_sent} emails sent, "
            f"{self.users_failed} failures ({seconds:.1f}s)"
        )


class PassNotifier:
    """Runs the detection → filter → dispatch pipeline for users.

    Args:
        source: Orbital element source (typically cached).
        detector: Pass detector; its config decides horizon, step and the
            sweep threshold.
        dispatcher: Sends notifications and keeps the ledger.
        catalog_id: NORAD id of the tracked satellite.
        band: Lead-time band for eligibility.
    """

    def __init__(
        self,
        source: ElementSource,
        detector: PassDetector,
        dispatcher: Dispatcher,
        catalog_id: int = ISS_CATALOG_ID,
        band: LeadTimeBand = LeadTimeBand(),
    ) -> None:
        self.source = source
        self.detector = detector
        self.dispatcher = dispatcher
        self.catalog_id = catalog_id
        self.band = band

    def process_user(
        self,
        user: UserProfile,
        now: Optional[datetime] = None,
    ) -> UserResult:
        """Run the full pipeline for one user. Never raises."""
        now = now or datetime.now(timezone.utc)
        result = UserResult(user.user_id, user.username)

        try:
            observer = user.preference.location.to_observer()
            tle = self.source.get_elements(self.catalog_id)
            windows = self.detector.detect(tle, observer, start=now)
            result.windows_found = len(windows)

            eligible = filter_windows(windows, user.preference, self.band, now)
            result.eligible = len(eligible)
            if not eligible:
                logger.debug("No eligible passes for user %s", user.username)

            for window in eligible:
                result.outcomes.append(self.dispatcher.dispatch(user, window, now))
        except PassWatchError as e:
            logger.warning("Skipping user %s this round: %s", user.username, e)
            result.error = str(e)
        except Exception as e:
            logger.exception("Error processing user %s", user.username)
            result.error = f"{type(e).__name__}: {e}"

        return result

    def run_round(
        self,
        users: Sequence[UserProfile],
        now: Optional[datetime] = None,
        max_workers: int = 1,
    ) -> RoundSummary:
        """Process every user once.

        Args:
            users: Users to check (already filtered for eligibility).
            now: Reference instant shared by every user in the round.
            max_workers: ``1`` runs users sequentially; more runs them on a
                thread pool.

        Returns:
            Per-user results and totals.
        """
        started = datetime.now(timezone.utc)
        now = now or started

        if max_workers <= 1 or len(users) <= 1:
            results = [self.process_user(user, now) for user in users]
        else:
            with ThreadPoolExecutor(
                max_workers=max_workers,
                thread_name_prefix="passwatch-user",
            ) as pool:
                results = list(pool.map(lambda u: self.process_user(u, now), users))

        return RoundSummary(
            started_at=started,
            finished_at=datetime.now(timezone.utc),
            results=results,
        )
