"""Bidrace exception taxonomy.

Every custom exception inherits from :class:`BidraceError`.  Exceptions are
organised by the stage of a race that raises them so callers can catch at the
right granularity:

    Hierarchy
    ---------
    BidraceError
    ├── ValidationError
    │   └── PriceSequenceError
    ├── RaceStateError
    ├── SubmissionError
    │   ├── FatalSubmissionError
    │   └── TransientSubmissionError
    ├── ExhaustionError
    └── RaceTimeoutError          (also a builtin ``TimeoutError``)

:class:`ConfigurationWarning` is deliberately *not* part of the hierarchy: it
is a :class:`UserWarning` handed to a diagnostic sink and never raised.

Usage:

    from bidrace.core.exceptions import FatalSubmissionError

    try:
        receipt = await run_race(prices, submit, interval=15.0)
    except FatalSubmissionError as exc:
        logger.error("Rejected at price %d: %s", exc.price, exc.cause)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

__all__ = [
    "BidraceError",
    # Validation
    "ValidationError",
    "PriceSequenceError",
    # Session misuse
    "RaceStateError",
    # Attempt failures
    "SubmissionError",
    "FatalSubmissionError",
    "TransientSubmissionError",
    # Terminal race failures
    "ExhaustionError",
    "RaceTimeoutError",
    # Diagnostics
    "ConfigurationWarning",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class BidraceError(Exception):
    """Root exception for all Bidrace errors.

    Catch this to handle any rejection of a race uniformly.  Prefer catching
    the specific subclasses wherever the caller reacts differently (e.g.
    retrying later on a timeout but not on a fatal rejection).
    """


# ---------------------------------------------------------------------------
# Validation (raised synchronously, before any attempt is scheduled)
# ---------------------------------------------------------------------------


class ValidationError(BidraceError):
    """Raised when the caller's input cannot produce a valid race.

    Examples:
        - Required transaction fields are missing.
        - Price bounds are negative or inverted.
        - No nonce and no way of obtaining one.

    Args:
        message: Human-readable error description.
        missing: Names of every missing field, when the error is about
            absent fields.  Empty otherwise.
    """

    def __init__(self, message: str, missing: Iterable[str] = ()) -> None:
        self.missing: tuple[str, ...] = tuple(missing)
        super().__init__(message)


class PriceSequenceError(ValidationError):
    """Raised when a scaling function cannot produce a usable price sequence.

    A scaling function that does not strictly increase the price would make
    the sequence infinite; a caller misconfiguration, not a runtime fault.
    """


# ---------------------------------------------------------------------------
# Session misuse
# ---------------------------------------------------------------------------


class RaceStateError(BidraceError):
    """Raised when a race session is driven incorrectly.

    Examples:
        - ``run()`` called a second time on the same session.
        - An attempt asked to move backwards through its lifecycle.
    """


# ---------------------------------------------------------------------------
# Attempt failures
# ---------------------------------------------------------------------------


class SubmissionError(BidraceError):
    """Base class for a failure of one submission attempt.

    Args:
        index: Position of the attempt in the price sequence.
        price: Price the attempt was submitted with.
        cause: The exception raised by the caller's submission callback.
    """

    def __init__(self, index: int, price: int, cause: BaseException) -> None:
        self.index = index
        self.price = price
        self.cause = cause
        super().__init__(f"Attempt #{index} at price {price} failed: {cause}")


class FatalSubmissionError(SubmissionError):
    """An attempt failed in a way that will recur at every price.

    Ends the race immediately; remaining attempts are never started.
    """


class TransientSubmissionError(SubmissionError):
    """An attempt failed but a later, pricier attempt may still succeed.

    Counted by the session; never surfaced on its own.
    """


# ---------------------------------------------------------------------------
# Terminal race failures
# ---------------------------------------------------------------------------


class ExhaustionError(BidraceError):
    """Raised when every scheduled attempt failed transiently.

    Carries the last observed failure (the highest price tried) as
    :attr:`last_error`, and every transient failure in :attr:`failures` in the
    order they were observed.

    Args:
        failures: Transient failures of all attempts, in observation order.
    """

    def __init__(self, failures: Sequence[TransientSubmissionError]) -> None:
        if not failures:
            raise ValueError("ExhaustionError requires at least one failure.")
        self.failures: tuple[TransientSubmissionError, ...] = tuple(failures)
        self.last_error: BaseException = self.failures[-1].cause
        super().__init__(
            f"All {len(self.failures)} attempt(s) failed; last error: {self.last_error}"
        )


class RaceTimeoutError(BidraceError, TimeoutError):
    """Raised when the session deadline elapses before any terminal outcome.

    Subclasses the builtin :class:`TimeoutError` so generic timeout handling
    keeps working.

    Args:
        deadline: Seconds after session start at which the deadline fired.
        attempts: Number of attempts that were scheduled.
    """

    def __init__(self, deadline: float, attempts: int) -> None:
        self.deadline = deadline
        self.attempts = attempts
        super().__init__(
            f"Race timed out after {deadline:.3f} s with {attempts} attempt(s) scheduled."
        )


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class ConfigurationWarning(UserWarning):
    """Non-fatal diagnostic about a race configuration.

    Handed to a diagnostic sink; never raised by Bidrace itself.

    Args:
        code: Short machine-readable code (``"slow-scaling"``,
            ``"timer-clamped"``).
        message: Human-readable description.
    """

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")
