"""Bidrace process entry-point.

Usage:
    python -m bidrace [--min-price N] [--max-price N] [--scaling KIND]
                      [--parameter X] [--interval S] [--raw-units]
                      [--log-level LEVEL] [--log-format FORMAT]

Prints the race a configuration would run (every attempt's start offset and
price, and the session deadline) without submitting anything.  Defaults come
from the environment via :class:`~bidrace.core.settings.Settings`; command
line flags override them.
"""

from __future__ import annotations

import argparse
import logging
import sys

from pydantic import ValidationError as PydanticValidationError

from bidrace.core import configure_logging
from bidrace.core.exceptions import ValidationError
from bidrace.core.models import Attempt
from bidrace.core.settings import Settings
from bidrace.race.config import RaceConfig
from bidrace.race.scheduler import plan_attempts, race_deadline


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bidrace",
        description="Plan a staggered price-escalation race and print its schedule.",
    )
    parser.add_argument(
        "--min-price",
        type=int,
        default=None,
        metavar="N",
        help="Override RACE_MIN_PRICE (first price, native units).",
    )
    parser.add_argument(
        "--max-price",
        type=int,
        default=None,
        metavar="N",
        help="Override RACE_MAX_PRICE (upper bound, native units; default 2x min).",
    )
    parser.add_argument(
        "--scaling",
        default=None,
        metavar="KIND",
        help="Override RACE_SCALING (linear|exponential).",
    )
    parser.add_argument(
        "--parameter",
        type=float,
        default=None,
        metavar="X",
        help="Slope (linear) or multiplier (exponential).",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        metavar="S",
        help="Override RACE_INTERVAL (seconds between attempts).",
    )
    parser.add_argument(
        "--raw-units",
        action="store_true",
        help="Treat the scaling parameter as native units instead of gwei.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    return parser


def _resolve_config(args: argparse.Namespace, settings: Settings) -> RaceConfig:
    """Layer the command line flags over the environment-derived config."""
    base = settings.to_race_config().model_dump()
    if args.scaling is not None and args.parameter is None:
        # A new family must not inherit the other family's parameter.
        base["scaling_parameter"] = None
    overrides = {
        key: value
        for key, value in (
            ("min_price", args.min_price),
            ("max_price", args.max_price),
            ("scaling", args.scaling.lower() if args.scaling else None),
            ("scaling_parameter", args.parameter),
            ("interval", args.interval),
        )
        if value is not None
    }
    if args.raw_units:
        overrides["native_units"] = False
    return RaceConfig.model_validate({**base, **overrides})


def _render_schedule(config: RaceConfig, attempts: list[Attempt], deadline: float) -> str:
    lines = [
        f"Race plan: {len(attempts)} attempt(s), {config.scaling.value} scaling, "
        f"interval {config.interval:g} s",
        f"{'#':>4}  {'offset (s)':>12}  {'price':>24}",
    ]
    lines.extend(f"{a.index:>4}  {a.offset:>12.3f}  {a.price:>24}" for a in attempts)
    lines.append(f"Deadline: {deadline:.3f} s after start")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _build_parser().parse_args(argv)

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"bidrace: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)

    try:
        settings = Settings()
        config = _resolve_config(args, settings)
        prices = config.prices()
        attempts = plan_attempts(
            prices, config.interval, max_timer_delay=config.max_timer_delay
        )
        deadline = min(
            race_deadline(len(attempts), config.interval, config.timeout_padding),
            config.max_timer_delay,
        )
    except (ValidationError, PydanticValidationError) as exc:
        logger.critical("Configuration error: %s", exc)
        print(f"bidrace: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    print(_render_schedule(config, attempts, deadline))  # noqa: T201


if __name__ == "__main__":
    main()
