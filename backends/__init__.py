"""
Transactional key-value backends for the session store.

- TransactionalBackend: abstract contract the store runs against
- FoundationDBBackend: production backend on the `fdb` binding
- InMemoryBackend: in-process backend for development and tests
"""

from backends.base import TransactionalBackend, resolve_path, value_bytes
from backends.foundationdb import DEFAULT_API_VERSION, FoundationDBBackend
from backends.memory import InMemoryBackend

__all__ = [
    "TransactionalBackend",
    "FoundationDBBackend",
    "InMemoryBackend",
    "DEFAULT_API_VERSION",
    "resolve_path",
    "value_bytes",
]
