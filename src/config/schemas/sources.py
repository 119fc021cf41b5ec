"""Source configuration schema."""

from typing import Annotated

from pydantic import Field, field_validator

from src.config.constants import VALID_URL_SCHEMES
from src.config.schemas.base import SourceMethod
from src.data_model import StrictBaseModel


class SourceConfig(StrictBaseModel):
    """Configuration for a single source.

    Attributes:
        id: Unique identifier for the source.
        name: Human-readable name.
        url: Feed URL.
        method: Ingestion method.
        trust: Source trust weight used by the importance scorer.
        timeout_seconds: Per-source pull timeout.
        max_items: Maximum items taken per pull.
        enabled: Whether the source is enabled.
        headers: Optional custom headers for requests.
    """

    id: Annotated[str, Field(min_length=1, max_length=100, pattern=r"^[a-z0-9_-]+$")]
    name: Annotated[str, Field(min_length=1, max_length=200)]
    url: Annotated[str, Field(min_length=1)]
    method: SourceMethod = SourceMethod.RSS_ATOM
    trust: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5
    timeout_seconds: float | None = Field(default=None, gt=0.0, le=300.0)
    max_items: Annotated[int, Field(ge=0, le=1000)] = 100
    enabled: bool = True
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL starts with http:// or https://."""
        if not v.startswith(VALID_URL_SCHEMES):
            msg = "URL must start with http:// or https://"
            raise ValueError(msg)
        return v

    @field_validator("headers")
    @classmethod
    def validate_no_auth_headers(cls, v: dict[str, str]) -> dict[str, str]:
        """Ensure no Authorization headers are stored in config."""
        forbidden = {"authorization", "cookie", "x-api-key"}
        for key in v:
            if key.lower() in forbidden:
                msg = f"Header '{key}' must not be stored in config; use environment variables"
                raise ValueError(msg)
        return v
