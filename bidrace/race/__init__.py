"""Race scheduling, failure classification, validation, and the send facade.

Public API
----------
* :class:`~bidrace.race.scheduler.RaceSession` /
  :func:`~bidrace.race.scheduler.run_race` — staggered attempts resolved
  exactly once.
* :func:`~bidrace.race.scheduler.race_deadline` /
  :func:`~bidrace.race.scheduler.plan_attempts` — pure timing helpers,
  exposed for planning and testing.
* :func:`~bidrace.race.sender.send` — transaction-level facade.
* :class:`~bidrace.race.config.RaceConfig` — immutable race parameters.
"""

from bidrace.race.classifier import Classifier, fatal_on_markers, is_fatal_error
from bidrace.race.config import RaceConfig
from bidrace.race.scheduler import RaceSession, plan_attempts, race_deadline, run_race
from bidrace.race.sender import resolve_nonce, send
from bidrace.race.validation import REQUIRED_FIELDS, validate_fields

__all__ = [
    "Classifier",
    "fatal_on_markers",
    "is_fatal_error",
    "RaceConfig",
    "RaceSession",
    "plan_attempts",
    "race_deadline",
    "run_race",
    "resolve_nonce",
    "send",
    "REQUIRED_FIELDS",
    "validate_fields",
]
