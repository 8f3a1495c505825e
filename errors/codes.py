"""
Error code catalog for the FoundationDB session store.

This module defines the error codes raised by the session store, covering
connection handshake failures, transaction failures, payload encoding
failures and invalid configuration.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used by the session store.

    Each error code maps to the HTTP status code a web framework embedding
    the store should answer with when the error escapes a request handler:
    - Availability errors (5xx): the underlying store cannot be reached
    - Operational errors (5xx): a single operation failed
    - Configuration errors (5xx): the store was built with bad options
    """

    # Availability errors (5xx)
    SESSION_STORE_UNAVAILABLE = "SESSION_STORE_UNAVAILABLE"
    """Cluster or namespace handshake failed (HTTP 503)"""

    STORE_NOT_CONNECTED = "STORE_NOT_CONNECTED"
    """Operation issued against a disconnected or closed store (HTTP 503)"""

    # Operational errors (5xx)
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    """Transaction conflict, timeout or storage fault (HTTP 503)"""

    SERIALIZATION_FAILED = "SERIALIZATION_FAILED"
    """Session payload could not be encoded or decoded (HTTP 500)"""

    # Configuration errors (5xx)
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    """Unsupported option value, e.g. an unknown hash algorithm (HTTP 500)"""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected store error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.SESSION_STORE_UNAVAILABLE: 503,
    ErrorCode.STORE_NOT_CONNECTED: 503,
    ErrorCode.TRANSACTION_FAILED: 503,
    ErrorCode.SERIALIZATION_FAILED: 500,
    ErrorCode.INVALID_CONFIGURATION: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
