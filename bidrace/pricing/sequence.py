"""Price sequence generation.

Turns price bounds and a scaling function into the bounded, strictly
increasing list of prices a race will try, cheapest first.

Generation rules
~~~~~~~~~~~~~~~~
* The first price is ``min_price``.
* The price of attempt ``i ≥ 1`` is ``scaling(min_price, i)``.
* Generation stops at the first computed price above ``max_price``; that
  price is excluded.
* A computed price equal to its predecessor is skipped (rounding a
  fractional increment to whole units repeats prices); generation moves on
  to the next attempt index.  A function that stalls for ``max_attempts``
  consecutive indices, or that lowers the price, would never reach the
  bound and raises :class:`~bidrace.core.exceptions.PriceSequenceError`.
  So does a sequence longer than ``max_attempts``.
* If the first increment is below one part in a million of ``min_price``, a
  ``slow-scaling`` :class:`~bidrace.core.exceptions.ConfigurationWarning` is
  sent to the diagnostic sink: the configuration works but will take a very
  long time to reach useful prices.

Typical usage::

    from bidrace.pricing.scaling import linear
    from bidrace.pricing.sequence import generate_prices

    generate_prices(1_000_000_000, 2_000_000_000, linear(1))
    # [1000000000, 2000000000]
"""

from __future__ import annotations

import logging
from typing import Final, SupportsInt

from bidrace.core.diagnostics import SLOW_SCALING, DiagnosticSink, emit
from bidrace.core.exceptions import PriceSequenceError, ValidationError
from bidrace.pricing.scaling import ScalingFunction, linear

__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "SLOW_SCALING_THRESHOLD",
    "coerce_price",
    "resolve_bounds",
    "generate_prices",
]

logger = logging.getLogger(__name__)

#: Hard ceiling on the number of prices in one sequence.
DEFAULT_MAX_ATTEMPTS: Final[int] = 1000

#: Relative first increment below which a slow-scaling warning is emitted.
SLOW_SCALING_THRESHOLD: Final[float] = 1e-6


def coerce_price(value: SupportsInt | str, name: str) -> int:
    """Convert *value* to a non-negative integer price.

    Accepts ints and numeric strings (``"20000000000"``); floats are
    truncated like ``int()`` does.

    Raises:
        ValidationError: If *value* is not numeric or is negative.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer, got {value!r}.")
    try:
        price = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be an integer, got {value!r}.") from exc
    if price < 0:
        raise ValidationError(f"{name} must be >= 0, got {price}.")
    return price


def resolve_bounds(
    min_price: SupportsInt | str,
    max_price: SupportsInt | str | None = None,
) -> tuple[int, int]:
    """Validate the price bounds, defaulting the maximum to twice the minimum.

    Raises:
        ValidationError: If either bound is invalid or ``max < min``.
    """
    low = coerce_price(min_price, "min_price")
    high = 2 * low if max_price is None else coerce_price(max_price, "max_price")
    if high < low:
        raise ValidationError(f"max_price ({high}) must be >= min_price ({low}).")
    return low, high


def generate_prices(
    min_price: SupportsInt | str,
    max_price: SupportsInt | str | None = None,
    scaling: ScalingFunction | None = None,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    diagnostics: DiagnosticSink | None = None,
) -> list[int]:
    """Return the ordered prices to try, cheapest first.

    Args:
        min_price: First price of the sequence, in native units.
        max_price: Inclusive upper bound.  Defaults to ``2 × min_price``.
        scaling: Scaling function ``(base, attempt) -> price``.  Defaults to
            :func:`~bidrace.pricing.scaling.linear` with its default slope.
        max_attempts: Maximum sequence length accepted.
        diagnostics: Sink for the slow-scaling warning; logs when ``None``.

    Returns:
        A non-empty, strictly increasing list of integer prices.

    Raises:
        ValidationError: If the bounds are invalid.
        PriceSequenceError: If *scaling* lowers the price, stalls for
            *max_attempts* consecutive attempts, returns a non-integer, or the
            sequence exceeds *max_attempts*.
    """
    low, high = resolve_bounds(min_price, max_price)
    if max_attempts < 1:
        raise ValidationError(f"max_attempts must be >= 1, got {max_attempts!r}.")
    scale = scaling or linear()

    first_delta = _next_price(scale, low, 1) - low
    if first_delta < SLOW_SCALING_THRESHOLD * low:
        emit(
            diagnostics,
            SLOW_SCALING,
            f"Price is scaling very slowly (first increment {first_delta} on a base of "
            f"{low}); the race may take a long time to reach useful prices. Check the "
            "scaling function, and convert custom increments to native units.",
        )

    prices = [low]
    attempt = 1
    stalled = 0
    while True:
        price = _next_price(scale, low, attempt)
        attempt += 1
        if price > high:
            break
        if price < prices[-1]:
            raise PriceSequenceError(
                f"Scaling function decreased the price at attempt {attempt - 1} "
                f"({prices[-1]} -> {price}); prices must never go down."
            )
        if price == prices[-1]:
            # Rounding a fractional increment can repeat a price; skip it.
            stalled += 1
            if stalled >= max_attempts:
                raise PriceSequenceError(
                    f"Scaling function did not increase the price from {price} in "
                    f"{stalled} consecutive attempts; the sequence would never reach {high}."
                )
            continue
        stalled = 0
        if len(prices) >= max_attempts:
            raise PriceSequenceError(
                f"Price sequence from {low} to {high} exceeds {max_attempts} attempts; "
                "use a steeper scaling function or a narrower range."
            )
        prices.append(price)

    logger.debug(
        "Generated %d price(s) from %d to %d (bound %d).",
        len(prices),
        prices[0],
        prices[-1],
        high,
    )
    return prices


def _next_price(scale: ScalingFunction, base: int, attempt: int) -> int:
    """Call *scale* and insist on an integral result."""
    price = scale(base, attempt)
    if isinstance(price, float) and price.is_integer():
        return int(price)
    if isinstance(price, bool) or not isinstance(price, int):
        raise PriceSequenceError(
            f"Scaling function returned {price!r} for attempt {attempt}; prices must be integers."
        )
    return price
