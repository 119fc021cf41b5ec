"""Error types for the collector framework."""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class CollectorErrorClass(str, Enum):
    """Classification of collector errors.

    - UNREACHABLE: Network failure or non-2xx response
    - MALFORMED: Response body could not be parsed
    - RATE_LIMITED: Source answered HTTP 429
    - TIMEOUT: Source exceeded its collection deadline
    """

    UNREACHABLE = "UNREACHABLE"
    MALFORMED = "MALFORMED"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"


class CollectionError(Exception):
    """Base exception for collector errors.

    Provides structured error information for logging and watermark records.
    """

    def __init__(
        self,
        error_class: CollectorErrorClass,
        message: str,
        source_id: str | None = None,
        details: dict[str, str | int | float | bool | None] | None = None,
    ) -> None:
        """Initialize the collection error.

        Args:
            error_class: Classification of the error.
            message: Human-readable error message.
            source_id: Identifier of the source that failed.
            details: Additional structured error details.
        """
        super().__init__(message)
        self.error_class = error_class
        self.message = message
        self.source_id = source_id
        self.details = details or {}

    def to_dict(self) -> dict[str, object]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_class": self.error_class.value,
            "message": self.message,
            "source_id": self.source_id,
            "details": self.details,
        }


class SourceUnreachableError(CollectionError):
    """Raised on connection failures and non-2xx responses."""

    def __init__(
        self,
        message: str,
        source_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            source_id: Identifier of the source that failed.
            status_code: HTTP status code, if a response was received.
        """
        super().__init__(
            error_class=CollectorErrorClass.UNREACHABLE,
            message=message,
            source_id=source_id,
            details={"status_code": status_code} if status_code is not None else None,
        )
        self.status_code = status_code


class MalformedPayloadError(CollectionError):
    """Raised when a feed body cannot be parsed."""

    def __init__(
        self,
        message: str,
        source_id: str | None = None,
        context: str | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            source_id: Identifier of the source that failed.
            context: Snippet of content around the error.
        """
        super().__init__(
            error_class=CollectorErrorClass.MALFORMED,
            message=message,
            source_id=source_id,
            details={"context": context} if context is not None else None,
        )
        self.context = context


class RateLimitedError(CollectionError):
    """Raised when a source responds with HTTP 429."""

    def __init__(
        self,
        source_id: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            source_id: Identifier of the source that failed.
            retry_after: Seconds the source asked us to wait.
        """
        super().__init__(
            error_class=CollectorErrorClass.RATE_LIMITED,
            message="Rate limited (429 Too Many Requests)",
            source_id=source_id,
            details={"retry_after": retry_after},
        )
        self.retry_after = retry_after


class CollectionTimeoutError(CollectionError):
    """Raised when a source exceeds its collection deadline."""

    def __init__(self, source_id: str | None, timeout_seconds: float) -> None:
        """Initialize the error.

        Args:
            source_id: Identifier of the source that timed out.
            timeout_seconds: The deadline that was exceeded.
        """
        super().__init__(
            error_class=CollectorErrorClass.TIMEOUT,
            message=f"Collection exceeded {timeout_seconds:g}s deadline",
            source_id=source_id,
            details={"timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class ErrorRecord(BaseModel):
    """Serializable error record for cycle results and watermarks."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: CollectorErrorClass = Field(description="Error classification")
    message: Annotated[str, Field(min_length=1, description="Error message")]
    source_id: str | None = Field(default=None, description="Source identifier")
    details: dict[str, str | int | float | bool | None] = Field(
        default_factory=dict, description="Additional error details"
    )

    @classmethod
    def from_exception(cls, error: CollectionError) -> "ErrorRecord":
        """Create an ErrorRecord from a CollectionError exception.

        Args:
            error: The exception to convert.

        Returns:
            ErrorRecord instance.
        """
        return cls(
            error_class=error.error_class,
            message=error.message,
            source_id=error.source_id,
            details=error.details,
        )

    def summary(self) -> str:
        """One-line description stored on the source watermark."""
        return f"{self.error_class.value}: {self.message}"
