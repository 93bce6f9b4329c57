"""Error kinds raised while reading and validating safetensors headers.

Every failure before analysis starts is terminal and surfaces as one of the
exceptions below. Past the header stage nothing raises: irregular metadata
is left unset and truncation is reported as a warning.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-readable error categories."""

    INVALID_FORMAT = "INVALID_FORMAT"
    HEADER_TOO_LARGE = "HEADER_TOO_LARGE"
    INVALID_JSON = "INVALID_JSON"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    NETWORK_ERROR = "NETWORK_ERROR"
    PARSE_ERROR = "PARSE_ERROR"


class SafelensError(Exception):
    """Base class for all header-stage failures."""

    kind: ErrorKind = ErrorKind.PARSE_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidFormatError(SafelensError):
    """Buffer is truncated or too small to hold a header."""

    kind = ErrorKind.INVALID_FORMAT


class HeaderTooLargeError(SafelensError):
    """Declared header length exceeds the allowed ceiling."""

    kind = ErrorKind.HEADER_TOO_LARGE

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Header size {size} exceeds maximum allowed size {limit}",
            {"size": size, "limit": limit},
        )
        self.size = size
        self.limit = limit


class InvalidJsonError(SafelensError):
    """Header text is not valid JSON."""

    kind = ErrorKind.INVALID_JSON


class HeaderValidationError(SafelensError):
    """Header JSON parsed but does not match the tensor/metadata schema."""

    kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, key: str | None, message: str):
        where = f"'{key}'" if key is not None else "header"
        super().__init__(f"Invalid header structure at {where}: {message}", {"key": key})
        self.key = key


class ModelFileNotFoundError(SafelensError):
    """Local model file does not exist."""

    kind = ErrorKind.FILE_NOT_FOUND


class NetworkError(SafelensError):
    """A remote byte-range source failed to deliver data."""

    kind = ErrorKind.NETWORK_ERROR


@dataclass(frozen=True)
class ErrorResult:
    """Value form of a failed analysis, for callers that avoid exceptions."""

    error: ErrorKind
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict:
        """Convert error result to dictionary."""
        return {
            "error": self.error.value,
            "message": self.message,
            "details": self.details,
        }


def create_error_result(error: SafelensError) -> ErrorResult:
    """Build an ErrorResult from a raised error.

    Args:
        error: Any safelens error

    Returns:
        ErrorResult carrying the error kind, message and details
    """
    return ErrorResult(error=error.kind, message=error.message, details=error.details or None)
