"""Structured log event name constants for race sessions.

Every key transition of a :class:`~bidrace.race.scheduler.RaceSession` emits
a log record with an ``event`` field (passed via
``extra={"event": events.X}``).  In ``LOG_FORMAT=json`` mode the value
surfaces under ``extra.event``; in text mode the message is self-describing.

Usage example::

    import logging
    from bidrace.core import events

    logger = logging.getLogger(__name__)

    logger.info("Race started", extra={"event": events.RACE_START})
"""

from __future__ import annotations

__all__ = [
    # Race lifecycle
    "RACE_START",
    "RACE_SUCCEEDED",
    "RACE_FATAL",
    "RACE_EXHAUSTED",
    "RACE_TIMEOUT",
    "RACE_CANCELLED",
    # Attempt lifecycle
    "ATTEMPT_START",
    "ATTEMPT_OK",
    "ATTEMPT_FAILED",
    "ATTEMPT_IGNORED",
    # Configuration diagnostics
    "CONFIG_SLOW_SCALING",
    "CONFIG_TIMER_CLAMPED",
    # Nonce resolution
    "NONCE_RETRY",
]

# ---------------------------------------------------------------------------
# Race lifecycle
# ---------------------------------------------------------------------------

#: Emitted once when :meth:`RaceSession.run` schedules its attempts.
RACE_START: str = "RACE_START"

#: The first successful attempt resolved the session.
RACE_SUCCEEDED: str = "RACE_SUCCEEDED"

#: An attempt failure was classified fatal and ended the session.
RACE_FATAL: str = "RACE_FATAL"

#: Every attempt failed transiently.
RACE_EXHAUSTED: str = "RACE_EXHAUSTED"

#: The session deadline fired before any other terminal outcome.
RACE_TIMEOUT: str = "RACE_TIMEOUT"

#: The caller awaiting the session was cancelled.
RACE_CANCELLED: str = "RACE_CANCELLED"

# ---------------------------------------------------------------------------
# Attempt lifecycle
# ---------------------------------------------------------------------------

#: An attempt's start timer fired and its submission began.
ATTEMPT_START: str = "ATTEMPT_START"

#: An attempt's submission returned a result.
ATTEMPT_OK: str = "ATTEMPT_OK"

#: An attempt's submission raised.
ATTEMPT_FAILED: str = "ATTEMPT_FAILED"

#: An attempt finished after the session was already resolved.
ATTEMPT_IGNORED: str = "ATTEMPT_IGNORED"

# ---------------------------------------------------------------------------
# Configuration diagnostics
# ---------------------------------------------------------------------------

#: The first price increment is tiny relative to the starting price.
CONFIG_SLOW_SCALING: str = "CONFIG_SLOW_SCALING"

#: A timer delay exceeded the ceiling and was clamped.
CONFIG_TIMER_CLAMPED: str = "CONFIG_TIMER_CLAMPED"

# ---------------------------------------------------------------------------
# Nonce resolution
# ---------------------------------------------------------------------------

#: Fetching the nonce failed and will be retried.
NONCE_RETRY: str = "NONCE_RETRY"
