"""Price scaling functions.

A *scaling function* maps ``(base, attempt)`` to the price of the attempt at
position ``attempt`` in the escalation sequence, where ``base`` is the
starting (minimum) price.  Every function here is pure and deterministic, and
its output is non-decreasing in ``attempt`` for valid parameters.

Two built-in families are provided:

* :func:`linear` — ``base + slope × attempt × unit_scale``
* :func:`exponential` — ``base + multiplier^attempt × unit_scale``

``unit_scale`` converts a caller-friendly increment into the network's native
smallest price unit (``10**9``, i.e. one gwei expressed in wei).  Pass
``native_units=False`` to work in raw units instead.

Any other callable with the same signature can be used wherever a scaling
function is expected; Bidrace only observes whether it terminates (see
:func:`~bidrace.pricing.sequence.generate_prices`).

Typical usage::

    from bidrace.pricing.scaling import linear, to_native_units

    scale = linear(5)
    scale(to_native_units(20), 1)    # 25 gwei, in wei
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Final

from bidrace.core.exceptions import ValidationError

__all__ = [
    "NATIVE_UNIT_SCALE",
    "ScalingFunction",
    "ScalingKind",
    "DEFAULT_SLOPE",
    "DEFAULT_MULTIPLIER",
    "to_native_units",
    "linear",
    "exponential",
    "resolve_scaling",
]

logger = logging.getLogger(__name__)

ScalingFunction = Callable[[int, int], int]

#: Native units per caller-friendly unit (1 gwei = 10**9 wei).
NATIVE_UNIT_SCALE: Final[int] = 10**9

#: Default slope of :func:`linear` when none is configured.
DEFAULT_SLOPE: Final[float] = 5

#: Default multiplier of :func:`exponential` when none is configured.
DEFAULT_MULTIPLIER: Final[float] = 2


class ScalingKind(StrEnum):
    """Named built-in scaling families."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


def to_native_units(amount: float) -> int:
    """Convert a caller-friendly *amount* (e.g. gwei) into native units."""
    return round(amount * NATIVE_UNIT_SCALE)


def _unit_scale(native_units: bool) -> int:
    return NATIVE_UNIT_SCALE if native_units else 1


def linear(slope: float = DEFAULT_SLOPE, *, native_units: bool = True) -> ScalingFunction:
    """Return a scaling function adding ``slope`` units per attempt.

    Args:
        slope: Increment per attempt, in caller-friendly units.  Must be
            non-negative.
        native_units: Multiply the increment by :data:`NATIVE_UNIT_SCALE`.

    Raises:
        ValidationError: If *slope* is negative.
    """
    if slope < 0:
        raise ValidationError(f"Linear scaling slope must be >= 0, got {slope!r}.")
    scale = _unit_scale(native_units)

    def _linear(base: int, attempt: int = 0) -> int:
        return base + round(slope * attempt * scale)

    return _linear


def exponential(
    multiplier: float = DEFAULT_MULTIPLIER, *, native_units: bool = True
) -> ScalingFunction:
    """Return a scaling function adding ``multiplier^attempt`` units.

    Args:
        multiplier: Growth factor per attempt.  Must be at least 1.
        native_units: Multiply the increment by :data:`NATIVE_UNIT_SCALE`.

    Raises:
        ValidationError: If *multiplier* is below 1.
    """
    if multiplier < 1:
        raise ValidationError(
            f"Exponential scaling multiplier must be >= 1, got {multiplier!r}."
        )
    scale = _unit_scale(native_units)

    def _exponential(base: int, attempt: int = 0) -> int:
        return base + round(multiplier**attempt * scale)

    return _exponential


def resolve_scaling(
    kind: ScalingKind | str,
    parameter: float | None = None,
    *,
    native_units: bool = True,
) -> ScalingFunction:
    """Build one of the named built-in scaling functions.

    Args:
        kind: ``"linear"`` or ``"exponential"`` (case-insensitive).
        parameter: Slope (linear) or multiplier (exponential).  ``None``
            selects the family default.
        native_units: Forwarded to the family constructor.

    Raises:
        ValidationError: If *kind* is unknown or *parameter* is out of range.
    """
    try:
        resolved = ScalingKind(str(kind).lower())
    except ValueError as exc:
        allowed = ", ".join(k.value for k in ScalingKind)
        raise ValidationError(f"Unknown scaling {kind!r}; expected one of: {allowed}.") from exc

    if resolved is ScalingKind.LINEAR:
        return linear(DEFAULT_SLOPE if parameter is None else parameter, native_units=native_units)
    return exponential(
        DEFAULT_MULTIPLIER if parameter is None else parameter, native_units=native_units
    )
