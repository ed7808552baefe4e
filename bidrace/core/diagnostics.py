"""Diagnostic sink for non-fatal configuration warnings.

Pricing and scheduling code never prints or raises for questionable but
workable configurations.  It builds a
:class:`~bidrace.core.exceptions.ConfigurationWarning` and hands it to a
*sink*: any callable accepting the warning.  Callers inject their own sink
(tests typically pass ``list.append``); when none is given,
:func:`log_diagnostic` routes the warning to the logging system.

Typical usage::

    from bidrace.core.diagnostics import emit

    emit(diagnostics, "slow-scaling", "Price is scaling very slowly.")
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Final

from bidrace.core import events
from bidrace.core.exceptions import ConfigurationWarning

__all__ = ["DiagnosticSink", "SLOW_SCALING", "TIMER_CLAMPED", "emit", "log_diagnostic"]

logger = logging.getLogger(__name__)

DiagnosticSink = Callable[[ConfigurationWarning], None]

#: Warning code for a first price increment below the slow-scaling threshold.
SLOW_SCALING: Final[str] = "slow-scaling"

#: Warning code for a timer delay clamped to the host ceiling.
TIMER_CLAMPED: Final[str] = "timer-clamped"

_EVENTS: Final[dict[str, str]] = {
    SLOW_SCALING: events.CONFIG_SLOW_SCALING,
    TIMER_CLAMPED: events.CONFIG_TIMER_CLAMPED,
}


def log_diagnostic(warning: ConfigurationWarning) -> None:
    """Default sink: log *warning* at WARNING level with its event name."""
    logger.warning(
        "Configuration warning %s: %s",
        warning.code,
        warning.message,
        extra={"event": _EVENTS.get(warning.code, warning.code)},
    )


def emit(sink: DiagnosticSink | None, code: str, message: str) -> ConfigurationWarning:
    """Build a :class:`ConfigurationWarning` and deliver it to *sink*.

    Args:
        sink: Destination callable, or ``None`` for :func:`log_diagnostic`.
        code: Short machine-readable warning code.
        message: Human-readable description.

    Returns:
        The warning that was delivered.
    """
    warning = ConfigurationWarning(code, message)
    (sink or log_diagnostic)(warning)
    return warning
