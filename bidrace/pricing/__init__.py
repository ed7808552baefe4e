"""Price scaling functions and price sequence generation."""

from bidrace.pricing.scaling import (
    ScalingFunction,
    ScalingKind,
    exponential,
    linear,
    resolve_scaling,
    to_native_units,
)
from bidrace.pricing.sequence import generate_prices, resolve_bounds

__all__ = [
    "ScalingFunction",
    "ScalingKind",
    "linear",
    "exponential",
    "resolve_scaling",
    "to_native_units",
    "generate_prices",
    "resolve_bounds",
]
