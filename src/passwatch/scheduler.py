"""Recurring trigger for notification rounds.

Two states, idle and running. A tick that arrives while a round is still
running is skipped rather than queued, and a failed tick is never retried:
the next tick starts from scratch, with only the dedup ledger carrying
state between rounds.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum, auto
from typing import Optional

from .notifier import PassNotifier, RoundSummary
from .preferences import JsonPreferenceStore

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = auto()
    RUNNING = auto()


class NotificationScheduler:
    """Runs a round shortly after start and then every ``interval_minutes``.

    Args:
        notifier: Pipeline to run each round.
        store: Preference store to enumerate users from.
        interval_minutes: Period between rounds.
        startup_delay: Seconds to wait before the first round.
        max_workers: Per-round user concurrency.
    """

    def __init__(
        self,
        notifier: PassNotifier,
        store: JsonPreferenceStore,
        interval_minutes: float = 30.0,
        startup_delay: float = 5.0,
        max_workers: int = 1,
    ) -> None:
        self.notifier = notifier
        self.store = store
        self.interval_minutes = interval_minutes
        self.startup_delay = startup_delay
        self.max_workers = max_workers
        self.last_summary: Optional[RoundSummary] = None

        self._state = SchedulerState.IDLE
        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    def tick(self, now: Optional[datetime] = None) -> Optional[RoundSummary]:
        """Run one round, unless one is already running.

        Returns:
            The round summary, or ``None`` if the tick was skipped or the
            round could not start.
        """
        with self._state_lock:
            if self._state is SchedulerState.RUNNING:
                logger.warning("Previous round still running; skipping tick")
                return None
            self._state = SchedulerState.RUNNING

        try:
            users = self.store.eligible_users()
            logger.info("Checking passes for %d users", len(users))
            summary = self.notifier.run_round(users, now, self.max_workers)
            logger.info(summary.summary())
            self.last_summary = summary
            return summary
        except Exception:
            logger.exception("Notification round failed")
            return None
        finally:
            with self._state_lock:
                self._state = SchedulerState.IDLE

    def _loop(self) -> None:
        if self._stop.wait(self.startup_delay):
            return
        logger.info("Running initial pass check")
        while not self._stop.is_set():
            self.tick()
            if self._stop.wait(self.interval_minutes * 60.0):
                break

    def start(self) -> None:
        """Start the background timer thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop,
            name="passwatch-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Scheduler started - checking passes every %g minutes",
            self.interval_minutes,
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop scheduling. An in-flight round runs to completion."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Scheduler stopped")

    def run_forever(self) -> None:
        """Block until interrupted (Ctrl-C)."""
        self.start()
        try:
            while self._thread is not None and self._thread.is_alive():
                self._thread.join(1.0)
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self.stop()
