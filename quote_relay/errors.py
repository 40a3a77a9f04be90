"""
Error taxonomy for the quote pipeline.

Every failure the handler can hit is one of three kinds. The kinds stay
distinct internally (logs, span attributes) even though the external
response envelope is the same for all of them.
"""
from enum import Enum
from typing import Optional, Sequence


class ErrorKind(str, Enum):
    """Classification of pipeline failures for monitoring."""

    CONFIGURATION = "configuration"  # Required setting missing
    TRANSPORT = "transport"  # Network failure or non-success status
    VALIDATION = "validation"  # Payload does not match the Quote shape


class QuoteRelayError(Exception):
    """Base exception for quote pipeline errors."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize pipeline error.

        Args:
            message: Error message
            kind: Classification of error
            original_error: Underlying exception, if any
        """
        super().__init__(message)
        self.kind = kind
        self.original_error = original_error


class ConfigurationError(QuoteRelayError):
    """A required setting is missing or unusable."""

    def __init__(self, message: str):
        super().__init__(message, ErrorKind.CONFIGURATION)


class TransportError(QuoteRelayError):
    """An outbound call failed at the network level or returned a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, ErrorKind.TRANSPORT, original_error)
        self.status_code = status_code


class QuoteValidationError(QuoteRelayError):
    """The fetched payload does not have the Quote shape."""

    def __init__(self, problems: Sequence[str], original_error: Optional[Exception] = None):
        self.problems = tuple(problems)
        super().__init__(
            f"Invalid quote data received: {'; '.join(self.problems)}",
            ErrorKind.VALIDATION,
            original_error,
        )


def error_kind(exc: BaseException) -> str:
    """Return the monitoring label for an exception (``unexpected`` for foreign errors)."""
    if isinstance(exc, QuoteRelayError):
        return exc.kind.value
    return "unexpected"
