"""Base schema utilities and common types."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class Severity(StrEnum):
    """Severity shared by validation issues and run errors."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _ensure_aware(value: datetime | str | None) -> datetime | str | None:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# Dates as sources send them: parsed when possible, kept verbatim otherwise so
# the validator can report the bad value instead of the mapper crashing.
LenientDatetime = Annotated[
    datetime | str | None,
    Field(union_mode="left_to_right"),
    AfterValidator(_ensure_aware),
]


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)
