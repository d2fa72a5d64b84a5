"""Exception hierarchy for the pass notification pipeline.

Each class maps to one failure kind the pipeline knows how to isolate:
element-source failures degrade to "no passes this round", propagation
failures skip a single sample, ledger failures after a successful send are
logged as a possible duplicate, and dispatch failures leave no ledger record
so the next round retries.
"""
from __future__ import annotations

from typing import Optional


class PassWatchError(Exception):
    """Base class for all passwatch errors."""


class ElementSourceError(PassWatchError):
    """The orbital element source could not supply a usable element set."""


class PropagationError(PassWatchError):
    """SGP4 could not produce a state for the requested time.

    Attributes:
        code: sgp4 error code (1-6), or None for validity-window rejections.
    """

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class LedgerError(PassWatchError):
    """The dedup ledger failed for a reason other than a duplicate key."""


class DispatchError(PassWatchError):
    """The outbound email channel failed to send a message."""
