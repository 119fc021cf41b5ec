"""Shared Pydantic base model and timestamp helpers."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict


class StrictBaseModel(BaseModel):
    """Base model that is immutable and rejects unknown fields."""

    model_config = ConfigDict(frozen=True, extra="forbid")


def as_utc(value: datetime) -> datetime:
    """Convert a timestamp to aware UTC.

    Naive values are taken to already be in UTC.

    Args:
        value: Timestamp to convert.

    Returns:
        The same instant with ``tzinfo=UTC``.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
