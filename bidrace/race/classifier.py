"""Failure classification for race attempts.

A classifier decides whether an attempt failure is *fatal* for the whole race
or merely counts as one failed attempt.  A fatal failure is one that would
recur identically at every price (e.g. the network deterministically
rejects the operation), so continuing the race only wastes the remaining
schedule.

Classifiers must be pure and must not raise.  The scheduler still guards
against a misbehaving custom classifier by treating an exception as
"not fatal".

Typical usage::

    from bidrace.race.classifier import fatal_on_markers

    is_fatal = fatal_on_markers(["revert", "insufficient funds"])
    is_fatal(RuntimeError("execution reverted"))   # True
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Final

__all__ = [
    "Classifier",
    "DEFAULT_FATAL_MARKERS",
    "describe_error",
    "fatal_on_markers",
    "is_fatal_error",
]

logger = logging.getLogger(__name__)

Classifier = Callable[[BaseException], bool]

#: Markers that identify a deterministic, permanent rejection.
DEFAULT_FATAL_MARKERS: Final[tuple[str, ...]] = ("revert",)


def describe_error(error: BaseException) -> str:
    """Return the lowercased text of *error*, never raising.

    Falls back to the exception type name when ``str()`` itself fails.
    """
    try:
        text = str(error)
    except Exception:  # noqa: BLE001
        text = type(error).__name__
    return text.lower()


def fatal_on_markers(markers: Iterable[str]) -> Classifier:
    """Return a classifier flagging errors whose text contains any marker.

    Matching is case-insensitive.  An empty marker collection yields a
    classifier that never reports a failure as fatal.

    Args:
        markers: Substrings indicating a permanent rejection.
    """
    needles = tuple(m.strip().lower() for m in markers if m and m.strip())

    def _is_fatal(error: BaseException) -> bool:
        text = describe_error(error)
        return any(needle in text for needle in needles)

    return _is_fatal


def is_fatal_error(error: BaseException) -> bool:
    """Default classifier: fatal when the error mentions a revert."""
    text = describe_error(error)
    return any(marker in text for marker in DEFAULT_FATAL_MARKERS)
