"""
Transactional key-value backend abstraction.

The session store never talks to a storage engine directly. It hands
units of work (plain functions taking a transaction handle) to a
TransactionalBackend, which runs them inside the engine's own
retry-capable transaction driver and commits the result.

The surface mirrors what the FoundationDB Python binding offers, so the
FoundationDB adapter is a thin shim and the in-memory backend behaves
the same way for development and tests.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional, Protocol, Tuple, TypeVar

from errors.exceptions import invalid_configuration

T = TypeVar("T")


class Value(Protocol):
    """Result of a point read. Absent keys report present() == False."""

    def present(self) -> bool:
        ...

    def __bytes__(self) -> bytes:
        ...


class ReadView(Protocol):
    """Read operations shared by a transaction and its snapshot view."""

    def get(self, key: bytes) -> Value:
        ...

    def get_range(self, begin: bytes, end: bytes) -> Iterable[Any]:
        ...


class Transaction(ReadView, Protocol):
    """
    Transaction handle passed to units of work.

    Writes are buffered until the backend commits; nothing is visible to
    other transactions if the unit of work raises.
    """

    snapshot: ReadView

    def set(self, key: bytes, value: bytes) -> None:
        ...

    def clear(self, key: bytes) -> None:
        ...

    def clear_range(self, begin: bytes, end: bytes) -> None:
        ...

    def add(self, key: bytes, param: bytes) -> None:
        ...


class Namespace(Protocol):
    """
    Hierarchical key prefix isolating the store's keys.

    Matches the subset of a FoundationDB DirectorySubspace the store uses.
    """

    def pack(self, key: Tuple = ()) -> bytes:
        ...

    def range(self, key: Tuple = ()) -> slice:
        ...


UnitOfWork = Callable[[Transaction], T]


class TransactionalBackend(ABC):
    """
    Abstract base class for transactional key-value backends.

    Implementations must provide serializable transactions, range clears
    and little-endian atomic add. `open()` is synchronous and only
    acquires a handle; the namespace handshake is asynchronous.
    """

    @abstractmethod
    def open(self) -> None:
        """
        Open a handle to the underlying cluster or instance.

        Raises:
            StoreConnectionError: If the handle cannot be opened.
        """
        pass

    @abstractmethod
    async def create_or_open(self, path: Tuple[str, ...]) -> Namespace:
        """
        Create the namespace directory at `path`, or open it if it exists.

        Args:
            path: Directory path components, e.g. ("sessions",)

        Returns:
            The namespace used to build every key of the store.

        Raises:
            StoreConnectionError: If the handshake fails.
        """
        pass

    @abstractmethod
    async def run(self, unit_of_work: UnitOfWork) -> Any:
        """
        Execute `unit_of_work` inside one committed transaction.

        Conflicts are retried by the backend's own driver. Failures that
        the driver gives up on are raised as TransactionError; any other
        exception raised by the unit of work aborts the transaction and
        propagates unchanged.

        Args:
            unit_of_work: Function receiving the transaction handle.

        Returns:
            Whatever the unit of work returns.
        """
        pass

    def close(self) -> None:
        """Release the handle. Optional for backends without resources."""
        pass

    @property
    def name(self) -> str:
        return type(self).__name__


def resolve_path(directory: Any) -> Tuple[str, ...]:
    """
    Normalize a directory option to a tuple path.

    Accepts "sessions", "app/sessions" or ("app", "sessions").
    """
    if isinstance(directory, str):
        parts = tuple(part for part in directory.split("/") if part)
    else:
        parts = tuple(str(part) for part in directory)
    if not parts:
        raise invalid_configuration(
            "directory path must not be empty",
            details={"directory": directory}
        )
    return parts


def value_bytes(value: Value) -> Optional[bytes]:
    """Materialize a point read, returning None for absent keys."""
    if not value.present():
        return None
    return bytes(value)
