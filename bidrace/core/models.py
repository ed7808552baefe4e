"""Bidrace core domain models.

Defines the state carried by a race session: the lifecycle of each
:class:`Attempt`, the terminal :class:`RaceOutcome`, and the
:class:`RaceStats` summary produced once a session resolves.

These are mutable state bags owned by a single
:class:`~bidrace.race.scheduler.RaceSession`; they are never shared between
sessions.

Typical usage::

    from bidrace.core.models import Attempt, AttemptState

    attempt = Attempt(index=0, price=20_000_000_000, offset=0.0)
    attempt.advance(AttemptState.IN_FLIGHT)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from bidrace.core.exceptions import RaceStateError

__all__ = [
    "AttemptState",
    "RaceOutcome",
    "Attempt",
    "RaceStats",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class AttemptState(StrEnum):
    """Lifecycle of one attempt.  Transitions only move forward."""

    PENDING = "pending"
    """Start timer scheduled; submission not begun."""

    IN_FLIGHT = "in_flight"
    """Submission callback awaited."""

    SUCCEEDED = "succeeded"
    """Submission returned a result."""

    FAILED = "failed"
    """Submission raised."""


class RaceOutcome(StrEnum):
    """The single terminal outcome of a race session."""

    SUCCEEDED = "succeeded"
    FAILED_FATAL = "failed_fatal"
    FAILED_EXHAUSTED = "failed_exhausted"
    TIMED_OUT = "timed_out"


#: Allowed forward transitions of :class:`AttemptState`.
_TRANSITIONS: Final[dict[AttemptState, frozenset[AttemptState]]] = {
    AttemptState.PENDING: frozenset({AttemptState.IN_FLIGHT}),
    AttemptState.IN_FLIGHT: frozenset({AttemptState.SUCCEEDED, AttemptState.FAILED}),
    AttemptState.SUCCEEDED: frozenset(),
    AttemptState.FAILED: frozenset(),
}


# ---------------------------------------------------------------------------
# State bags
# ---------------------------------------------------------------------------


@dataclass
class Attempt:
    """One staggered, independently priced submission.

    Attributes:
        index: Position of the attempt in the price sequence.
        price: Price submitted with, in native units.
        offset: Seconds after session start at which the attempt starts
            (already clamped to the timer ceiling).
        state: Current :class:`AttemptState`.
        error: Exception raised by the submission, once ``FAILED``.
        fatal: Classification of :attr:`error`; ``None`` until classified.
    """

    index: int
    price: int
    offset: float
    state: AttemptState = AttemptState.PENDING
    error: BaseException | None = None
    fatal: bool | None = None

    def can_advance(self, new_state: AttemptState) -> bool:
        """Return ``True`` if moving to *new_state* is a forward transition."""
        return new_state in _TRANSITIONS[self.state]

    def advance(self, new_state: AttemptState) -> None:
        """Move to *new_state*.

        Raises:
            RaceStateError: If the transition is not allowed.
        """
        if not self.can_advance(new_state):
            raise RaceStateError(
                f"Attempt #{self.index} cannot move from {self.state} to {new_state}."
            )
        self.state = new_state


@dataclass
class RaceStats:
    """Summary of a resolved race session.

    Attributes:
        outcome: The terminal outcome, or ``None`` if the session was
            abandoned (caller cancelled) before resolving.
        scheduled: Number of attempts in the price sequence.
        started: Attempts whose start timer fired.
        failed: Attempts that failed transiently.
        winner_index: Index of the successful attempt, if any.
        winner_price: Price of the successful attempt, if any.
        elapsed_s: Seconds from session start to resolution.
    """

    outcome: RaceOutcome | None
    scheduled: int
    started: int = 0
    failed: int = 0
    winner_index: int | None = None
    winner_price: int | None = None
    elapsed_s: float = 0.0

    def format_report(self) -> str:
        """Render a one-line, human-readable summary for log output."""
        outcome = self.outcome.value if self.outcome else "unresolved"
        winner = (
            f"#{self.winner_index} @ {self.winner_price}"
            if self.winner_index is not None
            else "none"
        )
        return (
            f"outcome={outcome} scheduled={self.scheduled} started={self.started} "
            f"failed={self.failed} winner={winner} elapsed={self.elapsed_s:.3f}s"
        )
