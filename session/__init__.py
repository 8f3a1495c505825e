"""
Session management module backed by FoundationDB.

This module provides the session store contract and its FoundationDB
implementation, together with the pieces it is built from: record key
derivation, payload serialization, expiration policy and the live record
counter.
"""

from session.store import SessionStore
from session.foundationdb_store import (
    DEFAULT_DIRECTORY,
    FoundationDBSessionStore,
)
from session.expiration import DEFAULT_EXPIRATION_MS
from session.key_codec import HashConfig, KeyCodec
from session.serializer import SerializationStrategy, Serializer
from session.state import StoreState

__all__ = [
    "SessionStore",
    "FoundationDBSessionStore",
    "DEFAULT_DIRECTORY",
    "DEFAULT_EXPIRATION_MS",
    "HashConfig",
    "KeyCodec",
    "SerializationStrategy",
    "Serializer",
    "StoreState",
]
