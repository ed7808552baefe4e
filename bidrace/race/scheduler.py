"""Staggered-attempt race scheduler.

Submits the same logical operation at a sequence of increasing prices, one
attempt every ``interval`` seconds, and resolves with whichever attempt the
network acknowledges first.

Session lifecycle
~~~~~~~~~~~~~~~~~
::

    run() ──▶ schedule start timers (i × interval) + deadline timer
                 │
                 ├─ attempt succeeds ─────────────▶ SUCCEEDED        (return value)
                 ├─ attempt fails, fatal ─────────▶ FAILED_FATAL     (FatalSubmissionError)
                 ├─ every attempt fails ──────────▶ FAILED_EXHAUSTED (ExhaustionError)
                 └─ deadline fires ───────────────▶ TIMED_OUT        (RaceTimeoutError)

The first terminal transition wins.  Every completion path tests the
session's terminal flag before touching shared state, so a late success
after a timeout, or a second success after the first, is ignored.

Cancellation is best effort
~~~~~~~~~~~~~~~~~~~~~~~~~~~
Resolving the session cancels every start timer that has not fired yet, so
those attempts never begin.  Attempts already in flight are **not**
cancelled: the external submission may already be on the network and cannot
be recalled.  The session simply stops listening to them.  An ignored
in-flight attempt can therefore still produce an externally visible side
effect (e.g. a second accepted submission); :attr:`RaceSession.attempts`
records its final state and :meth:`RaceSession.wait_in_flight` lets callers
wait for such stragglers.

Timer ceiling
~~~~~~~~~~~~~
Delays above ``max_timer_delay`` (default :data:`MAX_TIMER_DELAY_S`, the
common 2³¹−1 ms host timer limit) are clamped to the ceiling and reported
through the diagnostic sink instead of being handed to the event loop as-is.

Concurrency
~~~~~~~~~~~
Everything runs on one asyncio event loop.  Handlers are interleaved, never
parallel; the session is **not** thread-safe.

Typical usage::

    from bidrace.pricing.scaling import linear, to_native_units
    from bidrace.pricing.sequence import generate_prices
    from bidrace.race.scheduler import run_race

    prices = generate_prices(to_native_units(20), to_native_units(50), linear(5))
    receipt = await run_race(prices, lambda price: wallet.send(tx, price), interval=30.0)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Final, Generic, TypeVar

from bidrace.core import events
from bidrace.core.diagnostics import TIMER_CLAMPED, DiagnosticSink, emit
from bidrace.core.exceptions import (
    ExhaustionError,
    FatalSubmissionError,
    RaceStateError,
    RaceTimeoutError,
    TransientSubmissionError,
    ValidationError,
)
from bidrace.core.logging_config import RACE_ID_CTX
from bidrace.core.models import Attempt, AttemptState, RaceOutcome, RaceStats
from bidrace.race.classifier import Classifier, is_fatal_error

__all__ = [
    "DEFAULT_TIMEOUT_PADDING",
    "MAX_TIMER_DELAY_S",
    "RaceSession",
    "Submit",
    "clamp_delay",
    "plan_attempts",
    "race_deadline",
    "run_race",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

Submit = Callable[[int], Awaitable[T] | T]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Largest timer delay handed to the event loop (2**31 - 1 ms, in seconds).
MAX_TIMER_DELAY_S: Final[float] = (2**31 - 1) / 1000

#: Extra intervals allowed after the last attempt starts before timing out.
DEFAULT_TIMEOUT_PADDING: Final[float] = 1

#: Strong references to attempt tasks until they finish, including ignored
#: stragglers whose session has already been discarded.
_LIVE_TASKS: set[asyncio.Task[None]] = set()


# ---------------------------------------------------------------------------
# Timing helpers (pure)
# ---------------------------------------------------------------------------


def race_deadline(
    attempts: int,
    interval: float,
    padding: float = DEFAULT_TIMEOUT_PADDING,
) -> float:
    """Return the session deadline: ``(attempts + padding) × interval``.

    >>> race_deadline(3, 1000, 1)
    4000
    """
    return (attempts + padding) * interval


def clamp_delay(
    delay: float,
    ceiling: float = MAX_TIMER_DELAY_S,
    *,
    diagnostics: DiagnosticSink | None = None,
    label: str = "timer",
) -> float:
    """Return *delay* capped at *ceiling*, reporting any clamp to the sink."""
    if delay <= ceiling:
        return delay
    emit(
        diagnostics,
        TIMER_CLAMPED,
        f"{label} delay of {delay:.3f} s exceeds the {ceiling:.3f} s timer ceiling; "
        "clamped to the ceiling.",
    )
    return ceiling


def plan_attempts(
    prices: Sequence[int],
    interval: float,
    *,
    max_timer_delay: float = MAX_TIMER_DELAY_S,
    diagnostics: DiagnosticSink | None = None,
) -> list[Attempt]:
    """Build the pending attempts for *prices*, one every *interval* seconds.

    Offsets above *max_timer_delay* are clamped; a single diagnostic reports
    how many were affected.
    """
    attempts = [
        Attempt(index=i, price=price, offset=min(i * interval, max_timer_delay))
        for i, price in enumerate(prices)
    ]
    clamped = sum(1 for i in range(len(prices)) if i * interval > max_timer_delay)
    if clamped:
        emit(
            diagnostics,
            TIMER_CLAMPED,
            f"{clamped} attempt start offset(s) exceed the {max_timer_delay:.3f} s timer "
            "ceiling; clamped to the ceiling.",
        )
    return attempts


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class RaceSession(Generic[T]):
    """One race: staggered submissions resolved exactly once.

    A session is single-use: create it, ``await session.run()`` once, then
    inspect :attr:`outcome`, :attr:`attempts` and :attr:`stats`.

    Args:
        prices: Prices to try, cheapest first.  Must not be empty.
        submit: Callback ``price -> result``; may return an awaitable.  Any
            exception it raises counts as a failed attempt.
        interval: Seconds between consecutive attempt starts.  Must be > 0.
        is_fatal: Classifier deciding whether a failure ends the race.
            Defaults to :func:`~bidrace.race.classifier.is_fatal_error`.
        timeout_padding: Extra intervals after the last start before the
            deadline fires.  Must be >= 0.
        max_timer_delay: Ceiling applied to every timer delay.
        diagnostics: Sink for configuration warnings; logs when ``None``.

    Raises:
        ValidationError: If any argument is out of range.
    """

    def __init__(
        self,
        prices: Sequence[int],
        submit: Submit[T],
        interval: float,
        *,
        is_fatal: Classifier | None = None,
        timeout_padding: float = DEFAULT_TIMEOUT_PADDING,
        max_timer_delay: float = MAX_TIMER_DELAY_S,
        diagnostics: DiagnosticSink | None = None,
    ) -> None:
        if not prices:
            raise ValidationError("Price sequence is empty; nothing to submit.")
        if interval <= 0:
            raise ValidationError(f"interval must be > 0, got {interval!r}.")
        if timeout_padding < 0:
            raise ValidationError(f"timeout_padding must be >= 0, got {timeout_padding!r}.")
        if max_timer_delay <= 0:
            raise ValidationError(f"max_timer_delay must be > 0, got {max_timer_delay!r}.")

        self._submit = submit
        self._interval = interval
        self._is_fatal = is_fatal or is_fatal_error
        self._attempts = plan_attempts(
            prices, interval, max_timer_delay=max_timer_delay, diagnostics=diagnostics
        )
        self._deadline = clamp_delay(
            race_deadline(len(self._attempts), interval, timeout_padding),
            max_timer_delay,
            diagnostics=diagnostics,
            label="Deadline",
        )

        self._outcome: RaceOutcome | None = None
        self._abandoned = False
        self._started = False
        self._winner: Attempt | None = None
        self._failures: list[TransientSubmissionError] = []
        self._timers: dict[int, asyncio.TimerHandle] = {}
        self._deadline_timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._result: asyncio.Future[Any] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._started_at = 0.0
        self._resolved_at: float | None = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def attempts(self) -> tuple[Attempt, ...]:
        """All attempts in price order.  Treat as read-only."""
        return tuple(self._attempts)

    @property
    def deadline(self) -> float:
        """Seconds after start at which the session times out (clamped)."""
        return self._deadline

    @property
    def outcome(self) -> RaceOutcome | None:
        """The terminal outcome, or ``None`` while unresolved."""
        return self._outcome

    @property
    def failed_count(self) -> int:
        """Number of attempts that failed transiently."""
        return len(self._failures)

    @property
    def pending_timers(self) -> int:
        """Start timers scheduled but neither fired nor cancelled."""
        return len(self._timers)

    @property
    def stats(self) -> RaceStats:
        """Snapshot summary of the session."""
        if self._resolved_at is not None:
            elapsed = self._resolved_at - self._started_at
        elif self._loop is not None:
            elapsed = self._loop.time() - self._started_at
        else:
            elapsed = 0.0
        return RaceStats(
            outcome=self._outcome,
            scheduled=len(self._attempts),
            started=sum(1 for a in self._attempts if a.state is not AttemptState.PENDING),
            failed=len(self._failures),
            winner_index=self._winner.index if self._winner else None,
            winner_price=self._winner.price if self._winner else None,
            elapsed_s=elapsed,
        )

    @property
    def _terminal(self) -> bool:
        return self._outcome is not None or self._abandoned

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self) -> T:
        """Run the race and return the first successful submission result.

        Raises:
            FatalSubmissionError: An attempt failure was classified fatal.
            ExhaustionError: Every attempt failed transiently.
            RaceTimeoutError: The deadline fired first.
            RaceStateError: The session was already run.
            asyncio.CancelledError: The caller was cancelled; pending timers
                are cancelled and the session stays unresolved.
        """
        if self._started:
            raise RaceStateError("RaceSession.run() may only be called once.")
        self._started = True

        loop = asyncio.get_running_loop()
        self._loop = loop
        self._result = loop.create_future()

        # Set before scheduling so timer callbacks and attempt tasks inherit it.
        token = RACE_ID_CTX.set(uuid.uuid4().hex[:8])
        try:
            self._schedule(loop)
            try:
                return await asyncio.shield(self._result)
            except asyncio.CancelledError:
                if not self._result.done():
                    self._abandoned = True
                    self._cancel_timers()
                    logger.info(
                        "Race cancelled by caller — %d attempt(s) left unobserved.",
                        len(self._tasks),
                        extra={"event": events.RACE_CANCELLED},
                    )
                raise
            finally:
                logger.info("Race summary: %s", self.stats.format_report())
        finally:
            RACE_ID_CTX.reset(token)

    async def wait_in_flight(self, timeout: float | None = None) -> None:
        """Wait until every started attempt has finished, or *timeout* elapses.

        Results of attempts that finish after the session resolved are still
        ignored; this only lets callers observe their final states.
        """
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _schedule(self, loop: asyncio.AbstractEventLoop) -> None:
        self._started_at = loop.time()
        logger.info(
            "Race started — %d attempt(s) from %d to %d, interval %.3f s, deadline %.3f s.",
            len(self._attempts),
            self._attempts[0].price,
            self._attempts[-1].price,
            self._interval,
            self._deadline,
            extra={"event": events.RACE_START},
        )
        self._deadline_timer = loop.call_later(self._deadline, self._on_deadline)
        for attempt in self._attempts:
            self._timers[attempt.index] = loop.call_later(
                attempt.offset, self._start_attempt, attempt
            )

    def _cancel_timers(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        if self._timers:
            logger.debug("Cancelled %d pending start timer(s).", len(self._timers))
        self._timers.clear()
        if self._deadline_timer is not None:
            self._deadline_timer.cancel()
            self._deadline_timer = None

    def _start_attempt(self, attempt: Attempt) -> None:
        self._timers.pop(attempt.index, None)
        if self._terminal or self._loop is None:
            return
        attempt.advance(AttemptState.IN_FLIGHT)
        logger.info(
            "Attempt #%d started at price %d.",
            attempt.index,
            attempt.price,
            extra={"event": events.ATTEMPT_START},
        )
        task = self._loop.create_task(
            self._run_attempt(attempt), name=f"bidrace-attempt-{attempt.index}"
        )
        self._tasks.add(task)
        _LIVE_TASKS.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_LIVE_TASKS.discard)

    async def _run_attempt(self, attempt: Attempt) -> None:
        try:
            result = self._submit(attempt.price)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:  # noqa: BLE001
            self._on_failure(attempt, exc)
        except asyncio.CancelledError as exc:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                # The attempt task itself is being cancelled; let it unwind.
                raise
            # Cancellation raised by the submission, not aimed at this task.
            self._on_failure(attempt, exc)
        else:
            self._on_success(attempt, result)

    # ------------------------------------------------------------------
    # Completion handlers
    # ------------------------------------------------------------------

    def _on_success(self, attempt: Attempt, value: Any) -> None:
        if not attempt.can_advance(AttemptState.SUCCEEDED):
            logger.debug(
                "Duplicate completion for attempt #%d (%s) ignored.", attempt.index, attempt.state
            )
            return
        attempt.advance(AttemptState.SUCCEEDED)

        if self._terminal:
            logger.info(
                "Attempt #%d succeeded after the race resolved — result ignored.",
                attempt.index,
                extra={"event": events.ATTEMPT_IGNORED},
            )
            return

        logger.info(
            "Attempt #%d succeeded at price %d.",
            attempt.index,
            attempt.price,
            extra={"event": events.ATTEMPT_OK},
        )
        self._winner = attempt
        self._settle(RaceOutcome.SUCCEEDED, value=value)

    def _on_failure(self, attempt: Attempt, exc: BaseException) -> None:
        if not attempt.can_advance(AttemptState.FAILED):
            logger.debug(
                "Duplicate completion for attempt #%d (%s) ignored.", attempt.index, attempt.state
            )
            return
        attempt.advance(AttemptState.FAILED)
        attempt.error = exc

        if self._terminal:
            logger.debug(
                "Attempt #%d failed after the race resolved — ignored: %s",
                attempt.index,
                exc,
                extra={"event": events.ATTEMPT_IGNORED},
            )
            return

        attempt.fatal = self._classify(exc)
        if attempt.fatal:
            error = FatalSubmissionError(attempt.index, attempt.price, exc)
            error.__cause__ = exc
            self._settle(RaceOutcome.FAILED_FATAL, error=error)
            return

        self._failures.append(TransientSubmissionError(attempt.index, attempt.price, exc))
        logger.warning(
            "Attempt #%d at price %d failed (%d/%d): %s",
            attempt.index,
            attempt.price,
            len(self._failures),
            len(self._attempts),
            exc,
            extra={"event": events.ATTEMPT_FAILED},
        )
        if len(self._failures) == len(self._attempts):
            exhausted = ExhaustionError(self._failures)
            exhausted.__cause__ = exhausted.last_error
            self._settle(RaceOutcome.FAILED_EXHAUSTED, error=exhausted)

    def _on_deadline(self) -> None:
        self._deadline_timer = None
        if self._terminal:
            return
        self._settle(
            RaceOutcome.TIMED_OUT,
            error=RaceTimeoutError(self._deadline, len(self._attempts)),
        )

    def _classify(self, exc: BaseException) -> bool:
        try:
            return bool(self._is_fatal(exc))
        except Exception:  # noqa: BLE001
            logger.exception("Failure classifier raised — treating the failure as transient.")
            return False

    def _settle(
        self,
        outcome: RaceOutcome,
        *,
        value: Any = None,
        error: BaseException | None = None,
    ) -> bool:
        """Record *outcome* if the session is still open.

        Returns ``True`` if this call resolved the session, ``False`` if an
        earlier terminal transition already won.
        """
        if self._terminal:
            return False
        self._outcome = outcome
        self._cancel_timers()
        if self._loop is not None:
            self._resolved_at = self._loop.time()

        if outcome is RaceOutcome.SUCCEEDED:
            logger.info(
                "Race succeeded with attempt #%d.",
                self._winner.index if self._winner else -1,
                extra={"event": events.RACE_SUCCEEDED},
            )
        elif outcome is RaceOutcome.FAILED_FATAL:
            logger.error(
                "Race aborted on fatal failure: %s", error, extra={"event": events.RACE_FATAL}
            )
        elif outcome is RaceOutcome.FAILED_EXHAUSTED:
            logger.error(
                "Race exhausted all %d attempt(s): %s",
                len(self._attempts),
                error,
                extra={"event": events.RACE_EXHAUSTED},
            )
        else:
            logger.warning(
                "Race timed out after %.3f s with %d attempt(s) still in flight.",
                self._deadline,
                len(self._tasks),
                extra={"event": events.RACE_TIMEOUT},
            )

        if self._result is not None and not self._result.done():
            if error is None:
                self._result.set_result(value)
            else:
                self._result.set_exception(error)
        return True


async def run_race(
    prices: Sequence[int],
    submit: Submit[T],
    interval: float,
    *,
    is_fatal: Classifier | None = None,
    timeout_padding: float = DEFAULT_TIMEOUT_PADDING,
    max_timer_delay: float = MAX_TIMER_DELAY_S,
    diagnostics: DiagnosticSink | None = None,
) -> T:
    """Create a :class:`RaceSession` and run it.  See the class for details."""
    session: RaceSession[T] = RaceSession(
        prices,
        submit,
        interval,
        is_fatal=is_fatal,
        timeout_padding=timeout_padding,
        max_timer_delay=max_timer_delay,
        diagnostics=diagnostics,
    )
    return await session.run()
