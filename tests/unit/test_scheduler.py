"""Unit tests for the staggered-attempt race scheduler.

Covers:
- Pure timing helpers: :func:`race_deadline`, :func:`clamp_delay`,
  :func:`plan_attempts`.
- :class:`~bidrace.race.scheduler.RaceSession` terminal outcomes: success,
  fatal failure, exhaustion, timeout, caller cancellation.
- First-terminal-wins behaviour: late and duplicate completions are ignored.
- Attempt state bookkeeping and race-id log correlation.

Sessions run with real, short intervals (tens of milliseconds).  Submissions
that must stay in flight block on an :class:`asyncio.Event` which the test
releases at the end, so no task is left pending.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from bidrace.core import events
from bidrace.core.diagnostics import TIMER_CLAMPED
from bidrace.core.exceptions import (
    ConfigurationWarning,
    ExhaustionError,
    FatalSubmissionError,
    RaceStateError,
    RaceTimeoutError,
    ValidationError,
)
from bidrace.core.logging_config import RACE_ID_CTX
from bidrace.core.models import Attempt, AttemptState, RaceOutcome, RaceStats
from bidrace.race.scheduler import (
    RaceSession,
    clamp_delay,
    plan_attempts,
    race_deadline,
    run_race,
)

logger = logging.getLogger(__name__)

PRICES = [10, 20, 30, 40]


# ---------------------------------------------------------------------------
# Factories / helpers
# ---------------------------------------------------------------------------


class _Recorder:
    """Submission callback recording every call.

    Prices listed in *block* wait on :attr:`gate` and then succeed; prices in
    *fail* raise ``RuntimeError(fail[price])``; anything else succeeds
    immediately with ``"ok-<price>"``.
    """

    def __init__(
        self,
        *,
        block: set[int] | None = None,
        fail: dict[int, str] | None = None,
    ) -> None:
        self.block = block or set()
        self.fail = fail or {}
        self.calls: list[int] = []
        self.gate = asyncio.Event()

    async def __call__(self, price: int) -> str:
        self.calls.append(price)
        if price in self.block:
            await self.gate.wait()
        if price in self.fail:
            raise RuntimeError(self.fail[price])
        return f"ok-{price}"


async def _release(session: RaceSession[str], recorder: _Recorder) -> None:
    recorder.gate.set()
    await session.wait_in_flight(timeout=1.0)


# ---------------------------------------------------------------------------
# Timing helpers
# ---------------------------------------------------------------------------


class TestTimingHelpers:
    def test_deadline_includes_padding(self) -> None:
        assert race_deadline(3, 1000, 1) == 4000

    def test_deadline_without_padding(self) -> None:
        assert race_deadline(3, 1000, 0) == 3000

    def test_clamp_delay_passes_small_delays(
        self, diagnostics: list[ConfigurationWarning]
    ) -> None:
        assert clamp_delay(5.0, 10.0, diagnostics=diagnostics.append) == 5.0
        assert diagnostics == []

    def test_clamp_delay_caps_and_reports(
        self, diagnostics: list[ConfigurationWarning]
    ) -> None:
        assert clamp_delay(50.0, 10.0, diagnostics=diagnostics.append) == 10.0
        assert [w.code for w in diagnostics] == [TIMER_CLAMPED]

    def test_plan_attempts_offsets(self) -> None:
        attempts = plan_attempts([1, 2, 3], 15.0)
        assert [a.offset for a in attempts] == [0.0, 15.0, 30.0]
        assert [a.price for a in attempts] == [1, 2, 3]
        assert all(a.state is AttemptState.PENDING for a in attempts)

    def test_plan_attempts_clamps_once(
        self, diagnostics: list[ConfigurationWarning]
    ) -> None:
        attempts = plan_attempts(
            [1, 2, 3, 4], 10.0, max_timer_delay=15.0, diagnostics=diagnostics.append
        )
        assert [a.offset for a in attempts] == [0.0, 10.0, 15.0, 15.0]
        assert len(diagnostics) == 1
        assert "2 attempt start offset(s)" in diagnostics[0].message


# ---------------------------------------------------------------------------
# Attempt model
# ---------------------------------------------------------------------------


class TestAttemptModel:
    def test_forward_transitions(self) -> None:
        attempt = Attempt(index=0, price=10, offset=0.0)
        attempt.advance(AttemptState.IN_FLIGHT)
        attempt.advance(AttemptState.FAILED)
        assert attempt.state is AttemptState.FAILED

    def test_backward_transition_rejected(self) -> None:
        attempt = Attempt(index=1, price=10, offset=0.0, state=AttemptState.SUCCEEDED)
        with pytest.raises(RaceStateError, match="cannot move"):
            attempt.advance(AttemptState.FAILED)

    def test_pending_cannot_complete(self) -> None:
        attempt = Attempt(index=0, price=10, offset=0.0)
        assert not attempt.can_advance(AttemptState.SUCCEEDED)

    def test_stats_report(self) -> None:
        stats = RaceStats(
            outcome=RaceOutcome.SUCCEEDED,
            scheduled=3,
            started=2,
            failed=1,
            winner_index=1,
            winner_price=123,
            elapsed_s=0.1,
        )
        assert stats.format_report() == (
            "outcome=succeeded scheduled=3 started=2 failed=1 winner=#1 @ 123 elapsed=0.100s"
        )

    def test_stats_report_unresolved(self) -> None:
        report = RaceStats(outcome=None, scheduled=2).format_report()
        assert "outcome=unresolved" in report
        assert "winner=none" in report


# ---------------------------------------------------------------------------
# Session construction
# ---------------------------------------------------------------------------


class TestSessionConstruction:
    def test_empty_prices_rejected(self) -> None:
        with pytest.raises(ValidationError, match="empty"):
            RaceSession([], _Recorder(), 1.0)

    @pytest.mark.parametrize("interval", [0, -1.0])
    def test_non_positive_interval_rejected(self, interval: float) -> None:
        with pytest.raises(ValidationError, match="interval"):
            RaceSession(PRICES, _Recorder(), interval)

    def test_negative_padding_rejected(self) -> None:
        with pytest.raises(ValidationError, match="timeout_padding"):
            RaceSession(PRICES, _Recorder(), 1.0, timeout_padding=-1)

    def test_deadline_property(self) -> None:
        session = RaceSession([1, 2, 3], _Recorder(), 1000.0)
        assert session.deadline == 4000.0
        assert session.outcome is None

    def test_clamped_deadline_and_offsets_reported(
        self, diagnostics: list[ConfigurationWarning]
    ) -> None:
        session = RaceSession(
            PRICES,
            _Recorder(),
            0.03,
            max_timer_delay=0.05,
            diagnostics=diagnostics.append,
        )
        assert session.deadline == 0.05
        assert [a.offset for a in session.attempts][-2:] == [0.05, 0.05]
        assert [w.code for w in diagnostics] == [TIMER_CLAMPED, TIMER_CLAMPED]


# ---------------------------------------------------------------------------
# Terminal outcomes
# ---------------------------------------------------------------------------


class TestRaceSuccess:
    async def test_first_success_wins_and_cancels_later_timers(self) -> None:
        """Attempts #0 and #1 hang, #2 lands: #3 never starts."""
        recorder = _Recorder(block={10, 20})
        session: RaceSession[str] = RaceSession(PRICES, recorder, 0.03)

        result = await session.run()

        assert result == "ok-30"
        assert session.outcome is RaceOutcome.SUCCEEDED
        assert session.pending_timers == 0
        assert recorder.calls == [10, 20, 30]
        states = [a.state for a in session.attempts]
        assert states == [
            AttemptState.IN_FLIGHT,
            AttemptState.IN_FLIGHT,
            AttemptState.SUCCEEDED,
            AttemptState.PENDING,
        ]
        stats = session.stats
        assert stats.winner_index == 2
        assert stats.winner_price == 30
        assert stats.started == 3

        await asyncio.sleep(0.05)
        assert recorder.calls == [10, 20, 30]
        await _release(session, recorder)

    async def test_late_success_is_ignored(self) -> None:
        recorder = _Recorder(block={10})
        session: RaceSession[str] = RaceSession([10, 20], recorder, 0.02)

        assert await session.run() == "ok-20"
        await _release(session, recorder)

        # The straggler's side effect is visible, the result is unchanged.
        assert session.attempts[0].state is AttemptState.SUCCEEDED
        assert session.outcome is RaceOutcome.SUCCEEDED
        assert session.stats.winner_index == 1

    async def test_sync_submit_callback(self) -> None:
        result = await run_race([7, 8], lambda price: price * 2, 0.02)
        assert result == 14

    async def test_duplicate_completion_is_idempotent(self) -> None:
        recorder = _Recorder()
        session: RaceSession[str] = RaceSession([10, 20], recorder, 0.05)
        assert await session.run() == "ok-10"

        winner = session.attempts[0]
        session._on_success(winner, "again")  # noqa: SLF001
        session._on_failure(winner, RuntimeError("execution reverted"))  # noqa: SLF001
        assert session._settle(RaceOutcome.TIMED_OUT) is False  # noqa: SLF001

        assert session.outcome is RaceOutcome.SUCCEEDED
        assert winner.state is AttemptState.SUCCEEDED
        assert winner.error is None

    async def test_run_twice_rejected(self) -> None:
        session: RaceSession[str] = RaceSession([10], _Recorder(), 0.05)
        await session.run()
        with pytest.raises(RaceStateError, match="only be called once"):
            await session.run()

    async def test_success_logs_event(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="bidrace"):
            await run_race([10], _Recorder(), 0.05)
        recorded = {getattr(r, "event", None) for r in caplog.records}
        assert events.RACE_START in recorded
        assert events.ATTEMPT_START in recorded
        assert events.RACE_SUCCEEDED in recorded
        assert any("Race summary" in r.getMessage() for r in caplog.records)


class TestRaceFatal:
    async def test_fatal_first_attempt_aborts_race(self) -> None:
        recorder = _Recorder(fail={10: "execution reverted"})
        session: RaceSession[str] = RaceSession(PRICES, recorder, 0.05)

        with pytest.raises(FatalSubmissionError) as exc_info:
            await session.run()

        exc = exc_info.value
        assert exc.index == 0
        assert exc.price == 10
        assert isinstance(exc.__cause__, RuntimeError)
        assert session.outcome is RaceOutcome.FAILED_FATAL
        assert session.pending_timers == 0
        assert session.attempts[0].fatal is True

        await asyncio.sleep(0.12)
        assert recorder.calls == [10]

    async def test_custom_classifier(self) -> None:
        recorder = _Recorder(fail={10: "insufficient funds"})
        session: RaceSession[str] = RaceSession(
            PRICES, recorder, 0.05, is_fatal=lambda exc: "funds" in str(exc)
        )
        with pytest.raises(FatalSubmissionError, match="insufficient funds"):
            await session.run()


class TestRaceExhaustion:
    async def test_exhaustion_only_after_every_attempt_failed(self) -> None:
        recorder = _Recorder(
            fail={10: "underpriced 10", 20: "underpriced 20", 30: "underpriced 30"}
        )
        session: RaceSession[str] = RaceSession([10, 20, 30], recorder, 0.05)
        task = asyncio.create_task(session.run())

        await asyncio.sleep(0.075)
        assert session.failed_count == 2
        assert session.outcome is None
        assert not task.done()

        with pytest.raises(ExhaustionError) as exc_info:
            await task

        exc = exc_info.value
        assert str(exc.last_error) == "underpriced 30"
        assert exc.__cause__ is exc.last_error
        assert [f.price for f in exc.failures] == [10, 20, 30]
        assert session.outcome is RaceOutcome.FAILED_EXHAUSTED
        assert session.failed_count == 3

    async def test_cancellation_raised_by_submit_counts_as_failure(self) -> None:
        async def _submit(price: int) -> str:
            raise asyncio.CancelledError(f"dropped {price}")

        session: RaceSession[str] = RaceSession([10, 20], _submit, 0.02)

        with pytest.raises(ExhaustionError) as exc_info:
            await session.run()

        assert isinstance(exc_info.value.last_error, asyncio.CancelledError)
        assert session.outcome is RaceOutcome.FAILED_EXHAUSTED
        assert [a.state for a in session.attempts] == [AttemptState.FAILED] * 2

    async def test_raising_classifier_counts_as_transient(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        def _broken(exc: BaseException) -> bool:
            raise KeyError("boom")

        recorder = _Recorder(fail={10: "execution reverted", 20: "execution reverted"})
        session: RaceSession[str] = RaceSession([10, 20], recorder, 0.02, is_fatal=_broken)

        with pytest.raises(ExhaustionError):
            await session.run()

        assert [a.fatal for a in session.attempts] == [False, False]
        assert any("classifier raised" in r.getMessage() for r in caplog.records)


class TestRaceTimeout:
    async def test_timeout_fires_after_padding_interval(self) -> None:
        recorder = _Recorder(block={10, 20, 30})
        session: RaceSession[str] = RaceSession([10, 20, 30], recorder, 0.02)
        assert session.deadline == pytest.approx(0.08)

        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(RaceTimeoutError) as exc_info:
            await session.run()
        elapsed = loop.time() - started

        assert elapsed >= 0.07
        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.attempts == 3
        assert session.outcome is RaceOutcome.TIMED_OUT
        assert recorder.calls == [10, 20, 30]

        # Successes arriving after the deadline do not change the outcome.
        await _release(session, recorder)
        assert all(a.state is AttemptState.SUCCEEDED for a in session.attempts)
        assert session.outcome is RaceOutcome.TIMED_OUT
        assert session.stats.winner_index is None


# ---------------------------------------------------------------------------
# Cancellation and context
# ---------------------------------------------------------------------------


class TestRaceCancellation:
    async def test_caller_cancellation_stops_pending_attempts(self) -> None:
        recorder = _Recorder(block={10})
        session: RaceSession[str] = RaceSession(PRICES, recorder, 0.05)
        task = asyncio.create_task(session.run())

        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.outcome is None
        assert session.pending_timers == 0

        await asyncio.sleep(0.1)
        assert recorder.calls == [10]

        await _release(session, recorder)
        assert session.outcome is None
        assert session.stats.outcome is None


class TestRaceContext:
    async def test_attempts_run_under_race_id(self) -> None:
        seen: list[str] = []

        async def _submit(price: int) -> int:
            seen.append(RACE_ID_CTX.get())
            return price

        await run_race([1], _submit, 0.05)
        await run_race([1], _submit, 0.05)

        assert len(seen) == 2
        assert all(len(race_id) == 8 for race_id in seen)
        assert seen[0] != seen[1]
        assert RACE_ID_CTX.get() == "-"
