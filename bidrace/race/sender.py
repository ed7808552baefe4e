"""Transaction-level entry point: validate, resolve the nonce, race.

:func:`send` wraps the generic :class:`~bidrace.race.scheduler.RaceSession`
for the common case of replacing one transaction at escalating prices while
keeping the same nonce:

1. **Validate** — every required transaction field must be present
   (:func:`~bidrace.race.validation.validate_fields`).
2. **Plan** — build the price sequence from the configuration.
3. **Nonce** — use ``transaction["nonce"]`` when set, otherwise await the
   caller's ``get_nonce()``; transient failures of ``get_nonce`` are retried
   with exponential back-off and jitter via :mod:`tenacity`.
4. **Race** — submit ``{**transaction, "nonce": nonce, price_field: price}``
   for every price, staggered by the configured interval.

Every payload shares the nonce, so at most one of them can be mined; the
others are replaced or dropped by the network.  Signing and broadcasting are
entirely up to the caller's ``submit`` callback.

Typical usage::

    from bidrace.pricing.scaling import to_native_units
    from bidrace.race.sender import send

    receipt = await send(
        {"from": sender, "to": recipient, "value": 0, "data": "0x"},
        submit=lambda tx: wallet.send_transaction(tx),
        get_nonce=lambda: provider.get_transaction_count(sender),
        min_price=to_native_units(20),
        interval=30.0,
    )
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, Final, SupportsInt, TypeVar

from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)
from tenacity.wait import wait_base

from bidrace.core import events
from bidrace.core.diagnostics import DiagnosticSink
from bidrace.core.exceptions import BidraceError, ValidationError
from bidrace.pricing.scaling import ScalingFunction
from bidrace.pricing.sequence import generate_prices
from bidrace.race.classifier import Classifier
from bidrace.race.config import DEFAULT_NONCE_ATTEMPTS, RaceConfig
from bidrace.race.scheduler import RaceSession
from bidrace.race.validation import REQUIRED_FIELDS, validate_fields

__all__ = ["DEFAULT_NONCE_ATTEMPTS", "DEFAULT_PRICE_FIELD", "resolve_nonce", "send"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Transaction key that receives each attempt's price.
DEFAULT_PRICE_FIELD: Final[str] = "gasPrice"

#: Exponential back-off (0.5 s, 1 s, 2 s, ... capped at 5 s) plus up to 0.5 s jitter.
_NONCE_WAIT: Final[wait_base] = wait_exponential(multiplier=0.5, max=5.0) + wait_random(0, 0.5)


def _is_retryable(exc: BaseException) -> bool:
    """Retry ordinary failures, never our own errors or cancellation."""
    return isinstance(exc, Exception) and not isinstance(exc, BidraceError)


async def resolve_nonce(
    transaction: Mapping[str, Any],
    get_nonce: Callable[[], Awaitable[Any]] | None = None,
    *,
    attempts: int = DEFAULT_NONCE_ATTEMPTS,
    wait: wait_base = _NONCE_WAIT,
) -> Any:
    """Return the transaction's nonce, fetching it when absent.

    Args:
        transaction: Transaction fields; ``transaction["nonce"]`` wins when
            not ``None``.
        get_nonce: Coroutine function returning the latest nonce.
        attempts: Total calls to *get_nonce* before the last error is
            re-raised.
        wait: Tenacity wait strategy between calls.

    Raises:
        ValidationError: If neither a nonce nor *get_nonce* is available.
        Exception: Whatever *get_nonce* raised on its final attempt.
    """
    nonce = transaction.get("nonce")
    if nonce is not None:
        return nonce
    if get_nonce is None:
        raise ValidationError(
            "transaction nonce and get_nonce are both empty; supply at least one.",
            missing=("nonce",),
        )

    def _before_sleep(rs: RetryCallState) -> None:
        exc = rs.outcome.exception() if rs.outcome else None
        logger.warning(
            "Fetching nonce — attempt %d/%d failed (%s). Retrying…",
            rs.attempt_number,
            attempts,
            type(exc).__name__ if exc else "?",
            extra={"event": events.NONCE_RETRY},
        )

    async for attempt in AsyncRetrying(
        wait=wait,
        stop=stop_after_attempt(attempts),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
        before_sleep=_before_sleep,
    ):
        with attempt:
            nonce = await get_nonce()

    logger.debug("Resolved nonce %r.", nonce)
    return nonce


def _build_config(
    config: RaceConfig | None,
    min_price: SupportsInt | str | None,
    max_price: SupportsInt | str | None,
    interval: float | None,
    timeout_padding: float | None,
) -> RaceConfig:
    """Merge explicit keyword overrides onto *config* and validate the result."""
    overrides: dict[str, Any] = {
        key: value
        for key, value in (
            ("min_price", min_price),
            ("max_price", max_price),
            ("interval", interval),
            ("timeout_padding", timeout_padding),
        )
        if value is not None
    }
    if config is None and "min_price" not in overrides:
        raise ValidationError("min_price is required when no config is given.", missing=("min_price",))

    base = config.model_dump() if config is not None else {}
    try:
        return RaceConfig.model_validate({**base, **overrides})
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationError(f"Invalid race configuration: {problems}") from exc


async def send(
    transaction: Mapping[str, Any],
    submit: Callable[[dict[str, Any]], Awaitable[T]],
    *,
    get_nonce: Callable[[], Awaitable[Any]] | None = None,
    config: RaceConfig | None = None,
    min_price: SupportsInt | str | None = None,
    max_price: SupportsInt | str | None = None,
    scaling: ScalingFunction | None = None,
    interval: float | None = None,
    timeout_padding: float | None = None,
    is_fatal: Classifier | None = None,
    price_field: str = DEFAULT_PRICE_FIELD,
    required_fields: Sequence[str] = REQUIRED_FIELDS,
    nonce_attempts: int | None = None,
    diagnostics: DiagnosticSink | None = None,
) -> T:
    """Send *transaction* at escalating prices and return the first result.

    Keyword arguments override the matching :class:`RaceConfig` fields;
    when *config* is omitted, *min_price* is required and every other field
    takes its default (linear scaling with slope 5, 60 s interval,
    ``max_price = 2 × min_price``).

    Args:
        transaction: Transaction fields (``from``, ``to``, payload…).
        submit: Coroutine function sending one priced transaction.
        get_nonce: Coroutine function returning the latest nonce; only
            called when ``transaction["nonce"]`` is unset.
        config: Base race configuration.
        min_price: Override of :attr:`RaceConfig.min_price`.
        max_price: Override of :attr:`RaceConfig.max_price`.
        scaling: Custom scaling function; replaces the configured family.
        interval: Override of :attr:`RaceConfig.interval`.
        timeout_padding: Override of :attr:`RaceConfig.timeout_padding`.
        is_fatal: Custom classifier; replaces the configured markers.
        price_field: Transaction key receiving each attempt's price.
        required_fields: Fields that must be present in *transaction*.
        nonce_attempts: Total ``get_nonce`` calls before giving up;
            defaults to :attr:`RaceConfig.nonce_attempts`.
        diagnostics: Sink for configuration warnings; logs when ``None``.

    Raises:
        ValidationError: Invalid transaction, configuration or nonce source.
        FatalSubmissionError: An attempt failure was classified fatal.
        ExhaustionError: Every attempt failed transiently.
        RaceTimeoutError: No attempt succeeded before the deadline.
    """
    fields = validate_fields(transaction, required_fields)
    race_config = _build_config(config, min_price, max_price, interval, timeout_padding)

    if scaling is None:
        prices = race_config.prices(diagnostics)
    else:
        prices = generate_prices(
            race_config.min_price,
            race_config.resolved_max_price,
            scaling,
            max_attempts=race_config.max_attempts,
            diagnostics=diagnostics,
        )

    attempts = race_config.nonce_attempts if nonce_attempts is None else nonce_attempts
    nonce = await resolve_nonce(fields, get_nonce, attempts=attempts)
    logger.info(
        "Sending transaction from %s with nonce %r at %d price(s).",
        fields.get("from"),
        nonce,
        len(prices),
    )

    async def _submit_priced(price: int) -> T:
        return await submit({**fields, "nonce": nonce, price_field: price})

    session: RaceSession[T] = RaceSession(
        prices,
        _submit_priced,
        race_config.interval,
        is_fatal=is_fatal or race_config.classifier(),
        timeout_padding=race_config.timeout_padding,
        max_timer_delay=race_config.max_timer_delay,
        diagnostics=diagnostics,
    )
    return await session.run()
