"""Bidrace settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  The field name is the
**lowercase** version of the env-var name (e.g. ``RACE_MIN_PRICE`` →
``race_min_price``).

Typical usage::

    from bidrace.core.settings import Settings

    settings = Settings()                     # loads from env + .env
    config = settings.to_race_config()        # build RaceConfig
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

if TYPE_CHECKING:
    from bidrace.race.config import RaceConfig

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _csv_to_list(value: str) -> list[str]:
    """Split a comma-separated string into a list of non-empty, stripped items."""
    if not value or not value.strip():
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Price range
    # ------------------------------------------------------------------
    race_min_price: int = Field(
        default=20_000_000_000,
        ge=0,
        description="First price tried, in native units (default 20 gwei).",
    )
    race_max_price: int = Field(
        default=0,
        ge=0,
        description="Highest price allowed, native units (0 = twice the minimum).",
    )

    # ------------------------------------------------------------------
    # Scaling
    # ------------------------------------------------------------------
    race_scaling: str = Field(
        default="linear",
        description="Scaling family: 'linear' or 'exponential'.",
    )
    race_slope: float = Field(
        default=5,
        ge=0,
        description="Linear increment per attempt (in gwei when native units are on).",
    )
    race_multiplier: float = Field(
        default=2,
        ge=1,
        description="Exponential growth factor per attempt.",
    )
    race_native_units: bool = Field(
        default=True,
        description="Convert scaling increments from gwei to wei.",
    )

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------
    race_interval: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between consecutive attempts.",
    )
    race_timeout_padding: float = Field(
        default=1,
        ge=0,
        description="Extra intervals after the last attempt before timing out.",
    )
    race_max_timer_delay: float = Field(
        default=(2**31 - 1) / 1000,
        gt=0,
        description="Ceiling for any single timer delay, in seconds.",
    )
    race_max_attempts: int = Field(
        default=1000,
        ge=1,
        description="Longest price sequence accepted.",
    )

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------
    race_fatal_markers: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["revert"],
        description="Error markers that end the race (comma-separated in env).",
    )
    nonce_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Total attempts when fetching the nonce.",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("race_fatal_markers", mode="before")
    @classmethod
    def _parse_csv_markers(cls, v: str | list[str]) -> list[str]:
        """Accept a comma-separated string **or** an already-parsed list."""
        if isinstance(v, str):
            return _csv_to_list(v)
        return v

    @field_validator("race_scaling")
    @classmethod
    def _validate_scaling(cls, v: str) -> str:
        allowed = {"linear", "exponential"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"race_scaling must be one of {allowed}, got {v!r}")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Model validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def _validate_price_range(self) -> Settings:
        """Ensure min ≤ max when an explicit maximum is configured."""
        if self.race_max_price and self.race_max_price < self.race_min_price:
            raise ValueError(
                f"race_max_price ({self.race_max_price}) "
                f"< race_min_price ({self.race_min_price})"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def scaling_parameter(self) -> float:
        """Slope or multiplier, whichever the configured family uses."""
        return self.race_slope if self.race_scaling == "linear" else self.race_multiplier

    def to_race_config(self) -> RaceConfig:
        """Build a :class:`~bidrace.race.config.RaceConfig` from these settings.

        Convention: ``race_max_price = 0`` means *"twice the minimum"* and is
        converted to ``None`` in the config model.
        """
        from bidrace.race.config import RaceConfig  # noqa: PLC0415

        return RaceConfig(
            min_price=self.race_min_price,
            max_price=self.race_max_price or None,
            scaling=self.race_scaling,
            scaling_parameter=self.scaling_parameter,
            native_units=self.race_native_units,
            interval=self.race_interval,
            timeout_padding=self.race_timeout_padding,
            max_timer_delay=self.race_max_timer_delay,
            max_attempts=self.race_max_attempts,
            fatal_markers=tuple(self.race_fatal_markers),
            nonce_attempts=self.nonce_retry_attempts,
        )
