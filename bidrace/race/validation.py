"""Presence validation for the fields of an operation.

Checks that every mandatory addressing field is present before any attempt
is scheduled.  All missing fields are reported in one
:class:`~bidrace.core.exceptions.ValidationError` so the caller can fix
every problem in a single pass.

Presence is checked with a pydantic model built for the requested field
names: a field is *missing* when it is absent, ``None``, or a blank string.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Annotated, Any, Final

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, create_model
from pydantic import ValidationError as PydanticValidationError

from bidrace.core.exceptions import ValidationError

__all__ = ["REQUIRED_FIELDS", "validate_fields"]

logger = logging.getLogger(__name__)

#: Fields every transaction must carry.
REQUIRED_FIELDS: Final[tuple[str, ...]] = ("from", "to")


def _require_value(value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError("value is empty")
    return value


_Required = Annotated[Any, AfterValidator(_require_value)]


class _PresenceBase(BaseModel):
    """Base for generated presence models; unknown fields pass through."""

    model_config = ConfigDict(extra="allow")


@lru_cache(maxsize=32)
def _presence_model(required: tuple[str, ...]) -> type[BaseModel]:
    # Names such as "from" are Python keywords, so each field gets a safe
    # attribute name and is bound to the real key through its alias.
    definitions: dict[str, Any] = {
        f"field_{i}": (_Required, Field(alias=name)) for i, name in enumerate(required)
    }
    return create_model("OperationFields", __base__=_PresenceBase, **definitions)


def validate_fields(
    fields: Mapping[str, Any],
    required: Sequence[str] = REQUIRED_FIELDS,
) -> dict[str, Any]:
    """Return a copy of *fields* after checking every required field is set.

    Args:
        fields: The operation's fields (e.g. ``{"from": ..., "to": ...}``).
        required: Names of the mandatory fields, in reporting order.

    Returns:
        A shallow ``dict`` copy of *fields*.

    Raises:
        ValidationError: With every missing field name in ``missing``.
    """
    names = tuple(required)
    try:
        _presence_model(names).model_validate(dict(fields))
    except PydanticValidationError as exc:
        reported = {str(err["loc"][0]) for err in exc.errors() if err["loc"]}
        missing = [name for name in names if name in reported]
        details = ", ".join(f"missing `{name}`" for name in missing)
        logger.debug("Rejected operation fields: %s", details)
        raise ValidationError(f"Invalid transaction object: {details}.", missing=missing) from exc

    return dict(fields)
