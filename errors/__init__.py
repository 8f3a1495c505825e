"""
Error handling module for the FoundationDB session store.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- SessionStoreError hierarchy separating connection, transaction and
  serialization failures
"""

from errors.codes import ErrorCode
from errors.exceptions import (
    InvalidConfigurationError,
    SerializationError,
    SessionStoreError,
    StoreConnectionError,
    TransactionError,
)

__all__ = [
    "ErrorCode",
    "SessionStoreError",
    "StoreConnectionError",
    "TransactionError",
    "SerializationError",
    "InvalidConfigurationError",
]
