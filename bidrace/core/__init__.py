"""Core domain models, exceptions, logging configuration, and diagnostics."""

from bidrace.core.diagnostics import DiagnosticSink, emit, log_diagnostic
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
from bidrace.core.logging_config import JsonFormatter, configure_logging
from bidrace.core.models import Attempt, AttemptState, RaceOutcome, RaceStats

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Diagnostics
    "DiagnosticSink",
    "emit",
    "log_diagnostic",
    # Domain models
    "Attempt",
    "AttemptState",
    "RaceOutcome",
    "RaceStats",
    # Exceptions: base
    "BidraceError",
    # Exceptions: validation
    "ValidationError",
    "PriceSequenceError",
    # Exceptions: session
    "RaceStateError",
    # Exceptions: attempts
    "SubmissionError",
    "FatalSubmissionError",
    "TransientSubmissionError",
    # Exceptions: terminal
    "ExhaustionError",
    "RaceTimeoutError",
    # Warnings
    "ConfigurationWarning",
]
