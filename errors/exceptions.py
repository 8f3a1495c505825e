"""
Exception classes for the FoundationDB session store.

This module provides the SessionStoreError hierarchy and convenience factory
functions for creating store exceptions with proper error codes. Every
failure a store operation can surface is one of these, so callers can tell
a transaction conflict apart from a payload that no longer decodes.
"""

from typing import Any, Optional

from errors.codes import ErrorCode, get_default_status_code


class SessionStoreError(Exception):
    """
    Base exception class for all session store errors.

    This exception provides structured error information including:
    - error_code: A standardized error code from the ErrorCode enum
    - message: A human-readable error message
    - status_code: The HTTP status code an embedding web app should return
    - details: Optional additional context (e.g., the operation name)

    Example:
        raise SessionStoreError(
            error_code=ErrorCode.TRANSACTION_FAILED,
            message="Transaction aborted",
            details={"operation": "set", "fdb_code": 1020}
        )
    """

    default_error_code = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize a SessionStoreError.

        Args:
            message: A human-readable error message
            error_code: The error code (defaults to the class default)
            status_code: The HTTP status code (defaults to the error code's default)
            details: Optional dictionary with additional error context
        """
        self.error_code = error_code or self.default_error_code
        self.message = message
        self.status_code = status_code or get_default_status_code(self.error_code)
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for JSON serialization.

        Returns:
            Dictionary containing error_code, message, and details
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"details={self.details!r})"
        )


class StoreConnectionError(SessionStoreError):
    """
    The cluster could not be opened or the namespace directory could not
    be created-or-opened. Fatal for the store instance that raised it.
    """

    default_error_code = ErrorCode.SESSION_STORE_UNAVAILABLE


class TransactionError(SessionStoreError):
    """A single store transaction failed (conflict, timeout, storage fault)."""

    default_error_code = ErrorCode.TRANSACTION_FAILED


class SerializationError(SessionStoreError):
    """A session payload or record envelope could not be encoded or decoded."""

    default_error_code = ErrorCode.SERIALIZATION_FAILED


class InvalidConfigurationError(SessionStoreError):
    """The store was constructed with an unsupported option value."""

    default_error_code = ErrorCode.INVALID_CONFIGURATION


# Convenience factory functions for common error types

def session_store_unavailable(
    message: str = "Session store unavailable",
    details: Optional[dict[str, Any]] = None
) -> StoreConnectionError:
    """Create a connection handshake error."""
    return StoreConnectionError(message, details=details)


def store_not_connected(
    message: str = "Session store is not connected",
    details: Optional[dict[str, Any]] = None
) -> StoreConnectionError:
    """Create an error for operations issued against an unusable store."""
    return StoreConnectionError(
        message,
        error_code=ErrorCode.STORE_NOT_CONNECTED,
        details=details
    )


def transaction_failed(
    message: str = "Session store transaction failed",
    details: Optional[dict[str, Any]] = None
) -> TransactionError:
    """Create a transaction failure exception."""
    return TransactionError(message, details=details)


def serialization_failed(
    message: str = "Unable to serialize session",
    details: Optional[dict[str, Any]] = None
) -> SerializationError:
    """Create a serialization failure exception."""
    return SerializationError(message, details=details)


def invalid_configuration(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> InvalidConfigurationError:
    """Create an invalid configuration exception."""
    return InvalidConfigurationError(message, details=details)
