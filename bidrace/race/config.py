"""Race configuration model.

:class:`RaceConfig` is the single, immutable description of *how* a race is
run: price bounds, scaling, timing and failure classification.  It is built
once (directly, or from :class:`~bidrace.core.settings.Settings`) and handed
to :func:`~bidrace.race.sender.send`; it is never mutated at runtime.

Typical usage::

    from bidrace.race.config import RaceConfig

    config = RaceConfig(min_price=20_000_000_000, scaling="exponential", interval=15)
    prices = config.prices()
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field, model_validator

from bidrace.core.diagnostics import DiagnosticSink
from bidrace.pricing.scaling import ScalingFunction, ScalingKind, resolve_scaling
from bidrace.pricing.sequence import DEFAULT_MAX_ATTEMPTS, generate_prices
from bidrace.race.classifier import DEFAULT_FATAL_MARKERS, Classifier, fatal_on_markers
from bidrace.race.scheduler import DEFAULT_TIMEOUT_PADDING, MAX_TIMER_DELAY_S

__all__ = ["DEFAULT_INTERVAL_S", "DEFAULT_NONCE_ATTEMPTS", "RaceConfig"]

logger = logging.getLogger(__name__)

#: Seconds between attempts when nothing else is configured.
DEFAULT_INTERVAL_S: float = 60.0

#: Total nonce fetches before giving up (1 initial + 2 retries).
DEFAULT_NONCE_ATTEMPTS: int = 3


class RaceConfig(BaseModel):
    """Immutable parameters of a race.

    Attributes:
        min_price: First price tried, in native units.
        max_price: Highest price allowed.  ``None`` means ``2 × min_price``.
        scaling: Named built-in scaling family.
        scaling_parameter: Slope (linear) or multiplier (exponential);
            ``None`` selects the family default.
        native_units: Whether scaling increments are expressed in
            caller-friendly units and converted to native units.
        interval: Seconds between consecutive attempt starts.
        timeout_padding: Extra intervals after the last start before the
            race times out.
        max_timer_delay: Ceiling applied to every timer delay.
        max_attempts: Longest price sequence accepted.
        fatal_markers: Error-text markers that end the race immediately.
        nonce_attempts: Total nonce fetches before the last error is
            re-raised.
    """

    model_config = ConfigDict(frozen=True)

    min_price: int = Field(..., ge=0, description="First price, native units.")
    max_price: int | None = Field(None, ge=0, description="Upper price bound; None = 2x min.")
    scaling: ScalingKind = Field(ScalingKind.LINEAR, description="Scaling family.")
    scaling_parameter: float | None = Field(
        None, ge=0, description="Slope or multiplier; None = family default."
    )
    native_units: bool = Field(True, description="Scale increments to native units.")
    interval: float = Field(DEFAULT_INTERVAL_S, gt=0, description="Seconds between attempts.")
    timeout_padding: float = Field(
        DEFAULT_TIMEOUT_PADDING, ge=0, description="Extra intervals before timeout."
    )
    max_timer_delay: float = Field(MAX_TIMER_DELAY_S, gt=0, description="Timer ceiling, s.")
    max_attempts: int = Field(DEFAULT_MAX_ATTEMPTS, ge=1, description="Longest sequence.")
    fatal_markers: tuple[str, ...] = Field(
        DEFAULT_FATAL_MARKERS, description="Error markers that end the race."
    )
    nonce_attempts: int = Field(
        DEFAULT_NONCE_ATTEMPTS, ge=1, description="Total nonce fetches before giving up."
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> RaceConfig:
        """Ensure the price range is not inverted."""
        if self.max_price is not None and self.max_price < self.min_price:
            raise ValueError(
                f"max_price ({self.max_price}) must be >= min_price ({self.min_price})"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def resolved_max_price(self) -> int:
        """Upper bound with the ``2 × min_price`` default applied."""
        return 2 * self.min_price if self.max_price is None else self.max_price

    def scaling_function(self) -> ScalingFunction:
        """Build the configured scaling function."""
        return resolve_scaling(
            self.scaling, self.scaling_parameter, native_units=self.native_units
        )

    def classifier(self) -> Classifier:
        """Build a classifier from :attr:`fatal_markers`."""
        return fatal_on_markers(self.fatal_markers)

    def prices(self, diagnostics: DiagnosticSink | None = None) -> list[int]:
        """Generate the price sequence described by this configuration."""
        return generate_prices(
            self.min_price,
            self.resolved_max_price,
            self.scaling_function(),
            max_attempts=self.max_attempts,
            diagnostics=diagnostics,
        )
