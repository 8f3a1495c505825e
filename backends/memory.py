"""
In-memory transactional backend for development and testing.

Provides an in-process implementation of the TransactionalBackend contract:
- Serializable transactions (one transaction at a time under a lock)
- Read-your-writes inside a transaction, nothing visible before commit
- FoundationDB-compatible little-endian atomic add
- Ordered key space with range reads and range clears

Data lives only as long as the backend instance. Two stores sharing one
InMemoryBackend observe each other's records, the same way two processes
sharing a FoundationDB cluster would.
"""

import asyncio
import bisect
import logging
import threading
from collections import namedtuple
from typing import Any, Dict, List, Optional, Tuple

from backends.base import Namespace, TransactionalBackend, UnitOfWork
from errors.exceptions import store_not_connected

logger = logging.getLogger(__name__)

KeyValue = namedtuple("KeyValue", ["key", "value"])

# Type codes borrowed from the FoundationDB tuple layer so packed keys sort
# the same way they would in a real cluster.
_BYTES_CODE = b"\x01"
_STRING_CODE = b"\x02"
_DIRECTORY_PREFIX = b"\x15"


def pack_tuple(items: Tuple) -> bytes:
    """
    Encode a tuple of str/bytes elements into an order-preserving key.

    Null bytes inside an element are escaped as \\x00\\xff and every element
    is terminated by \\x00, so no packed tuple is a byte prefix of a
    different element value.
    """
    encoded = []
    for item in items:
        if isinstance(item, str):
            code, raw = _STRING_CODE, item.encode("utf-8")
        elif isinstance(item, (bytes, bytearray)):
            code, raw = _BYTES_CODE, bytes(item)
        else:
            raise TypeError(f"Unsupported key element type: {type(item).__name__}")
        encoded.append(code + raw.replace(b"\x00", b"\x00\xff") + b"\x00")
    return b"".join(encoded)


def add_little_endian(existing: Optional[bytes], param: bytes) -> bytes:
    """
    Atomic add semantics: treat both operands as unsigned little-endian
    integers of len(param) bytes, absent values as zero, wrap on overflow.
    """
    width = len(param)
    current = (existing or b"")[:width].ljust(width, b"\x00")
    total = int.from_bytes(current, "little") + int.from_bytes(param, "little")
    return (total % (1 << (8 * width))).to_bytes(width, "little")


class MemoryNamespace:
    """Key prefix handed out by InMemoryBackend.create_or_open()."""

    def __init__(self, path: Tuple[str, ...], prefix: bytes):
        self.path = path
        self.prefix = prefix

    def pack(self, key: Tuple = ()) -> bytes:
        return self.prefix + pack_tuple(key)

    def range(self, key: Tuple = ()) -> slice:
        packed = self.pack(key)
        return slice(packed + b"\x00", packed + b"\xff")

    def __repr__(self) -> str:
        return f"MemoryNamespace(path={self.path!r})"


class _MemoryValue:
    __slots__ = ("_value",)

    def __init__(self, value: Optional[bytes]):
        self._value = value

    def present(self) -> bool:
        return self._value is not None

    def __bytes__(self) -> bytes:
        if self._value is None:
            raise KeyError("value not present")
        return self._value


class _MemoryTransaction:
    """
    Buffered transaction over an InMemoryBackend.

    Mutations are recorded as an ordered operation log and replayed onto
    the backend at commit. Reads replay the log over committed data so a
    transaction always observes its own writes.
    """

    def __init__(self, backend: "InMemoryBackend"):
        self._backend = backend
        self._ops: List[Tuple[str, Any, Any]] = []
        self.snapshot = _SnapshotView(self)

    def _resolve(self, key: bytes) -> Optional[bytes]:
        value = self._backend._data.get(key)
        for op, first, second in self._ops:
            if op == "set" and first == key:
                value = second
            elif op == "clear" and first == key:
                value = None
            elif op == "clear_range" and first <= key < second:
                value = None
            elif op == "add" and first == key:
                value = add_little_endian(value, second)
        return value

    def get(self, key: bytes) -> _MemoryValue:
        return _MemoryValue(self._resolve(bytes(key)))

    def get_range(self, begin: bytes, end: bytes) -> List[KeyValue]:
        keys = set(self._backend._keys_in_range(begin, end))
        for op, first, _ in self._ops:
            if op in ("set", "add") and begin <= first < end:
                keys.add(first)
        results = []
        for key in sorted(keys):
            value = self._resolve(key)
            if value is not None:
                results.append(KeyValue(key, value))
        return results

    def set(self, key: bytes, value: bytes) -> None:
        self._ops.append(("set", bytes(key), bytes(value)))

    def clear(self, key: bytes) -> None:
        self._ops.append(("clear", bytes(key), None))

    def clear_range(self, begin: bytes, end: bytes) -> None:
        self._ops.append(("clear_range", bytes(begin), bytes(end)))

    def add(self, key: bytes, param: bytes) -> None:
        self._ops.append(("add", bytes(key), bytes(param)))

    def commit(self) -> None:
        backend = self._backend
        for op, first, second in self._ops:
            if op == "set":
                backend._put(first, second)
            elif op == "clear":
                backend._delete(first)
            elif op == "clear_range":
                for key in list(backend._keys_in_range(first, second)):
                    backend._delete(key)
            elif op == "add":
                backend._put(first, add_little_endian(backend._data.get(first), second))
        self._ops = []


class _SnapshotView:
    """Snapshot reads. Without conflict tracking they equal ordinary reads."""

    def __init__(self, transaction: _MemoryTransaction):
        self._transaction = transaction

    def get(self, key: bytes) -> _MemoryValue:
        return self._transaction.get(key)

    def get_range(self, begin: bytes, end: bytes) -> List[KeyValue]:
        return self._transaction.get_range(begin, end)


class InMemoryBackend(TransactionalBackend):
    """
    In-process serializable key-value backend.

    Example:
        backend = InMemoryBackend()
        store = FoundationDBSessionStore(backend=backend)
        await store.connect()
    """

    def __init__(self):
        self._data: Dict[bytes, bytes] = {}
        self._sorted_keys: List[bytes] = []
        self._directories: Dict[Tuple[str, ...], MemoryNamespace] = {}
        self._lock = threading.Lock()
        self._opened = False

    def open(self) -> None:
        self._opened = True
        logger.debug("In-memory backend opened")

    def close(self) -> None:
        self._opened = False

    async def create_or_open(self, path: Tuple[str, ...]) -> MemoryNamespace:
        if not self._opened:
            raise store_not_connected("In-memory backend is not open")
        with self._lock:
            namespace = self._directories.get(path)
            if namespace is None:
                namespace = MemoryNamespace(path, _DIRECTORY_PREFIX + pack_tuple(path))
                self._directories[path] = namespace
        return namespace

    async def run(self, unit_of_work: UnitOfWork) -> Any:
        if not self._opened:
            raise store_not_connected("In-memory backend is not open")
        # Yield once so callers observe the same suspension point as a
        # backend that commits over the network.
        await asyncio.sleep(0)
        with self._lock:
            transaction = _MemoryTransaction(self)
            result = unit_of_work(transaction)
            transaction.commit()
        return result

    # Committed key space helpers

    def _put(self, key: bytes, value: bytes) -> None:
        if key not in self._data:
            bisect.insort(self._sorted_keys, key)
        self._data[key] = value

    def _delete(self, key: bytes) -> None:
        if key in self._data:
            del self._data[key]
            index = bisect.bisect_left(self._sorted_keys, key)
            del self._sorted_keys[index]

    def _keys_in_range(self, begin: bytes, end: bytes) -> List[bytes]:
        lo = bisect.bisect_left(self._sorted_keys, begin)
        hi = bisect.bisect_left(self._sorted_keys, end)
        return self._sorted_keys[lo:hi]

    def __len__(self) -> int:
        return len(self._data)
