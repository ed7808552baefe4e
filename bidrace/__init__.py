"""Bidrace: staggered price-escalation races.

Submit the same operation at a sequence of increasing prices, one attempt
every *interval* seconds, and resolve with whichever attempt lands first.

Public API
----------
* :func:`~bidrace.race.sender.send` — transaction facade: validates fields,
  resolves the nonce, races one payload per price.
* :func:`~bidrace.race.scheduler.run_race` /
  :class:`~bidrace.race.scheduler.RaceSession` — the generic race engine.
* :func:`~bidrace.pricing.sequence.generate_prices` plus the
  :func:`~bidrace.pricing.scaling.linear` and
  :func:`~bidrace.pricing.scaling.exponential` scaling families.
* :class:`~bidrace.race.config.RaceConfig` — immutable race parameters.
"""

from bidrace.core.exceptions import (
    BidraceError,
    ConfigurationWarning,
    ExhaustionError,
    FatalSubmissionError,
    PriceSequenceError,
    RaceStateError,
    RaceTimeoutError,
    SubmissionError,
    TransientSubmissionError,
    ValidationError,
)
from bidrace.pricing.scaling import exponential, linear, to_native_units
from bidrace.pricing.sequence import generate_prices
from bidrace.race.classifier import fatal_on_markers, is_fatal_error
from bidrace.race.config import RaceConfig
from bidrace.race.scheduler import RaceSession, run_race
from bidrace.race.sender import send
from bidrace.race.validation import validate_fields

__all__ = [
    # Entry points
    "send",
    "run_race",
    "RaceSession",
    "RaceConfig",
    # Pricing
    "generate_prices",
    "linear",
    "exponential",
    "to_native_units",
    # Classification / validation
    "is_fatal_error",
    "fatal_on_markers",
    "validate_fields",
    # Exceptions
    "BidraceError",
    "ValidationError",
    "PriceSequenceError",
    "RaceStateError",
    "SubmissionError",
    "FatalSubmissionError",
    "TransientSubmissionError",
    "ExhaustionError",
    "RaceTimeoutError",
    "ConfigurationWarning",
]
