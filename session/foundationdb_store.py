"""
FoundationDB-based session store implementation.

Sessions live under a directory namespace (default "sessions"):

    <directory> + ("data", <effective id>)  ->  JSON record envelope
    <directory> + ("count",)                ->  live record counter (int32 LE)

Every operation is a single backend transaction. Mutations that change
whether a record exists update the counter in that same transaction, so
`length()` is a single key read rather than a range scan.

Expired records are reconciled lazily: `get` notices the stale expiry,
destroys the record in a second transaction and reports the session as
absent. A concurrent `set` between those two transactions can be undone
by the destroy; that window is accepted.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Callable, Mapping, Optional, Tuple, Union

from backends.base import TransactionalBackend, resolve_path, value_bytes
from backends.foundationdb import FoundationDBBackend
from backends.memory import InMemoryBackend
from errors.exceptions import (
    SessionStoreError,
    invalid_configuration,
    serialization_failed,
    session_store_unavailable,
    store_not_connected,
    transaction_failed,
)
from session.counter import CounterMaintainer
from session.expiration import (
    DEFAULT_EXPIRATION_MS,
    compute_expiry,
    is_expired,
    now_ms,
    ttl_to_millis,
)
from session.key_codec import DATA_PREFIX, HashConfig, KeyCodec
from session.record import SessionRecord
from session.serializer import Serializer
from session.state import StateMachine, StateObserver, StoreState
from session.store import SessionStore
from telemetry.service import external_service_span

logger = logging.getLogger(__name__)


DEFAULT_DIRECTORY = "sessions"

# Seconds
DEFAULT_HEALTH_CHECK_TIMEOUT = 5.0


class FoundationDBSessionStore(SessionStore):
    """
    Session store persisting sessions in a FoundationDB directory.

    The constructor opens the backend handle and leaves the store in the
    CONNECTING state; `connect()` performs the directory handshake. Any
    operation awaited before the handshake completes waits for it, and
    fails with StoreConnectionError if the handshake fails.

    Example:
        store = FoundationDBSessionStore(cluster_file="/etc/foundationdb/fdb.cluster")
        await store.connect()
        await store.set("sid", {"user": 42})
        session = await store.get("sid")

    Attributes:
        backend: Transactional backend running the store's transactions
        path: Directory path of the store namespace
        key_codec: Session id to record key derivation
        serializer: Session payload serializer
        default_expiration_time: Lifetime in millis for sessions without
            an explicit cookie expiry
        snapshot_reads: Whether `get`/`length` use snapshot reads
    """

    def __init__(
        self,
        backend: Optional[TransactionalBackend] = None,
        *,
        cluster_file: Optional[str] = None,
        directory: Union[str, Tuple[str, ...]] = DEFAULT_DIRECTORY,
        default_expiration_time: Union[int, timedelta] = DEFAULT_EXPIRATION_MS,
        hash_options: Union[None, bool, HashConfig, Mapping[str, Any]] = None,
        stringify: Optional[bool] = None,
        serialize: Optional[Callable[[Any], Any]] = None,
        unserialize: Optional[Callable[[Any], Any]] = None,
        snapshot_reads: bool = False,
        health_check_timeout: float = DEFAULT_HEALTH_CHECK_TIMEOUT
    ):
        """
        Initialize the store and open the backend handle.

        Args:
            backend: An already-constructed backend. Defaults to a
                FoundationDBBackend on `cluster_file`.
            cluster_file: FoundationDB cluster file, used when no backend
                is given.
            directory: Namespace path, "sessions" by default.
            default_expiration_time: Session lifetime when the cookie has
                no expiry, in millis or as a timedelta. Defaults to 14 days.
            hash_options: Enables session id hashing; True for the default
                salt and algorithm, or a mapping/HashConfig overriding them.
            stringify: Store sessions as JSON text.
            serialize: Custom session serializer.
            unserialize: Custom session deserializer.
            snapshot_reads: Use snapshot reads for `get` and `length`,
                trading strict serializability for fewer conflicts.
            health_check_timeout: Seconds before health_check() gives up.

        Raises:
            InvalidConfigurationError: On unsupported option values.
            StoreConnectionError: If the backend handle cannot be opened.
        """
        self.path = resolve_path(directory)
        self.key_codec = KeyCodec(HashConfig.from_option(hash_options))
        self.serializer = Serializer.select(stringify, serialize, unserialize)

        if isinstance(default_expiration_time, timedelta):
            default_expiration_time = ttl_to_millis(default_expiration_time)
        if not default_expiration_time or default_expiration_time <= 0:
            raise invalid_configuration(
                "default_expiration_time must be a positive number of milliseconds",
                details={"default_expiration_time": default_expiration_time}
            )
        self.default_expiration_time = int(default_expiration_time)
        self.snapshot_reads = snapshot_reads is True
        self.health_check_timeout = health_check_timeout

        self.namespace = None
        self.counter: Optional[CounterMaintainer] = None
        self._connect_lock: Optional[asyncio.Lock] = None
        self._connect_lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self._machine = StateMachine(name="/".join(self.path))

        if backend is None:
            backend = FoundationDBBackend(cluster_file=cluster_file)
        self.backend = backend
        self._machine.transition(StoreState.CONNECTING)
        try:
            self.backend.open()
        except SessionStoreError:
            self._machine.transition(StoreState.DISCONNECTED)
            raise

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> "FoundationDBSessionStore":
        """
        Build a store from SessionStoreSettings.

        Keyword overrides are passed to the constructor as-is, e.g. custom
        serialize/unserialize callables that cannot come from the environment.
        """
        if settings.backend == "memory":
            backend = InMemoryBackend()
        else:
            backend = FoundationDBBackend(cluster_file=settings.cluster_file)

        options = {
            "directory": settings.directory,
            "default_expiration_time": settings.default_expiration_ms,
            "hash_options": (
                HashConfig(salt=settings.hash_salt, algorithm=settings.hash_algorithm)
                if settings.hash_enabled else None
            ),
            "stringify": settings.stringify,
            "snapshot_reads": settings.snapshot_reads,
            "health_check_timeout": settings.health_check_timeout,
        }
        options.update(overrides)
        return cls(backend, **options)

    # Lifecycle

    @property
    def state(self) -> StoreState:
        return self._machine.state

    def on_state_change(self, observer: StateObserver) -> Callable[[], None]:
        """
        Register an observer called with (old_state, new_state).

        Returns:
            A callable that unregisters the observer.
        """
        return self._machine.subscribe(observer)

    def _handshake_lock(self) -> asyncio.Lock:
        # asyncio locks belong to the loop they were first used on
        loop = asyncio.get_running_loop()
        if self._connect_lock is None or self._connect_lock_loop is not loop:
            self._connect_lock = asyncio.Lock()
            self._connect_lock_loop = loop
        return self._connect_lock

    async def connect(self) -> None:
        """
        Create or open the namespace directory.

        Idempotent; concurrent callers share a single handshake.

        Raises:
            StoreConnectionError: If the handshake fails. The store is then
                DISCONNECTED for good.
        """
        async with self._handshake_lock():
            if self.state == StoreState.CONNECTED:
                return
            if self.state != StoreState.CONNECTING:
                raise store_not_connected(
                    "Session store is disconnected",
                    details={"state": self.state.value}
                )
            try:
                namespace = await self.backend.create_or_open(self.path)
            except Exception as e:
                logger.error(
                    "Not able to connect to the session directory",
                    extra={"extra_data": {
                        "directory": "/".join(self.path),
                        "backend": self.backend.name,
                        "error": str(e),
                    }}
                )
                self._machine.transition(StoreState.DISCONNECTED)
                if isinstance(e, SessionStoreError):
                    raise
                raise session_store_unavailable(
                    "Not able to connect to the session directory",
                    details={"directory": "/".join(self.path), "error": str(e)}
                ) from e
            self.namespace = namespace
            self.counter = CounterMaintainer(namespace)
            self._machine.transition(StoreState.CONNECTED)

    async def close(self) -> None:
        """Release the backend handle. The store cannot be used afterwards."""
        self.backend.close()
        self._machine.transition(StoreState.DISCONNECTED)

    async def _ensure_connected(self) -> None:
        if self.state == StoreState.CONNECTED:
            return
        if self.state == StoreState.CONNECTING:
            await self.connect()
            return
        raise store_not_connected(
            "Session store is not connected",
            details={"state": self.state.value}
        )

    async def _transact(self, operation: str, unit_of_work: Callable[[Any], Any]) -> Any:
        with external_service_span("foundationdb", operation, {"directory": "/".join(self.path)}):
            try:
                return await self.backend.run(unit_of_work)
            except SessionStoreError as e:
                logger.warning(
                    "Session store operation failed",
                    extra={"extra_data": {
                        "operation": operation,
                        "error_code": e.error_code.value,
                        "error": e.message,
                    }}
                )
                raise
            except Exception as e:
                logger.error(
                    "Unexpected session store failure",
                    exc_info=True,
                    extra={"extra_data": {"operation": operation, "error": str(e)}}
                )
                raise transaction_failed(
                    f"Session store {operation} failed",
                    details={"operation": operation, "error": str(e)}
                ) from e

    def _reader(self, tr: Any) -> Any:
        return tr.snapshot if self.snapshot_reads else tr

    def _record_key(self, sid: str) -> Tuple[bytes, str]:
        key = self.key_codec.derive_key(sid)
        return self.namespace.pack(key), key[1]

    def _build_record(self, effective_id: str, session: Any) -> SessionRecord:
        payload = self.serializer.serialize(session)
        try:
            expires_at = compute_expiry(session, self.default_expiration_time)
        except ValueError as e:
            raise serialization_failed(
                "Session cookie has an invalid expiry",
                details={"error": str(e)}
            ) from e
        return SessionRecord(id=effective_id, payload=payload, expires_at=expires_at)

    # SessionStore operations

    async def get(self, sid: str) -> Optional[dict[str, Any]]:
        await self._ensure_connected()
        key, effective_id = self._record_key(sid)

        def read(tr):
            return value_bytes(self._reader(tr).get(key))

        raw = await self._transact("get", read)
        if raw is None:
            logger.debug(
                "Not able to find session",
                extra={"extra_data": {"session_id": effective_id}}
            )
            return None

        record = SessionRecord.from_envelope(raw)
        if is_expired(record.expires_at):
            logger.debug(
                "Session expired, destroying",
                extra={"extra_data": {"session_id": effective_id, "expires": record.expires_at}}
            )
            await self._destroy_key(key)
            return None
        return self.serializer.deserialize(record.payload)

    async def set(self, sid: str, session: dict[str, Any]) -> None:
        await self._ensure_connected()
        key, effective_id = self._record_key(sid)
        envelope = self._build_record(effective_id, session).to_envelope()

        def write(tr):
            created = not tr.get(key).present()
            if created:
                self.counter.on_record_created(tr)
            tr.set(key, envelope)
            return created

        created = await self._transact("set", write)
        logger.debug(
            "Session stored",
            extra={"extra_data": {"session_id": effective_id, "created": created}}
        )

    async def destroy(self, sid: str) -> None:
        await self._ensure_connected()
        key, effective_id = self._record_key(sid)
        existed = await self._destroy_key(key)
        logger.debug(
            "Session destroyed",
            extra={"extra_data": {"session_id": effective_id, "existed": existed}}
        )

    async def _destroy_key(self, key: bytes) -> bool:
        def remove(tr):
            existed = tr.get(key).present()
            if existed:
                self.counter.on_record_removed(tr)
            tr.clear(key)
            return existed

        return await self._transact("destroy", remove)

    async def length(self) -> int:
        await self._ensure_connected()
        return await self._transact(
            "length",
            lambda tr: self.counter.read_count(self._reader(tr))
        )

    async def clear(self) -> None:
        await self._ensure_connected()
        data_range = self.namespace.range((DATA_PREFIX,))

        def wipe(tr):
            tr.clear_range(data_range.start, data_range.stop)
            self.counter.reset(tr)

        await self._transact("clear", wipe)
        logger.info(
            "Cleared session directory",
            extra={"extra_data": {"directory": "/".join(self.path)}}
        )

    async def touch(self, sid: str, session: dict[str, Any]) -> None:
        """
        Refresh the expiry of an existing session without rewriting it.

        The stored payload is kept; only its expiry is recomputed from
        `session`. Absent sessions stay absent and the counter is untouched.
        """
        await self._ensure_connected()
        key, effective_id = self._record_key(sid)
        try:
            expires_at = compute_expiry(session, self.default_expiration_time)
        except ValueError as e:
            raise serialization_failed(
                "Session cookie has an invalid expiry",
                details={"error": str(e)}
            ) from e

        def refresh(tr):
            raw = value_bytes(tr.get(key))
            if raw is None:
                return False
            record = SessionRecord.from_envelope(raw)
            record.expires_at = expires_at
            tr.set(key, record.to_envelope())
            return True

        touched = await self._transact("touch", refresh)
        logger.debug(
            "Session touched",
            extra={"extra_data": {"session_id": effective_id, "found": touched}}
        )

    async def all(self) -> dict[str, dict[str, Any]]:
        """
        Every live session, keyed by effective session id.

        Expired records are skipped but not removed; `get` remains the only
        operation that reconciles expiry.
        """
        await self._ensure_connected()
        data_range = self.namespace.range((DATA_PREFIX,))

        def scan(tr):
            return [
                bytes(kv.value)
                for kv in self._reader(tr).get_range(data_range.start, data_range.stop)
            ]

        raw_records = await self._transact("all", scan)
        now = now_ms()
        sessions = {}
        for raw in raw_records:
            record = SessionRecord.from_envelope(raw)
            if is_expired(record.expires_at, now):
                continue
            sessions[record.id] = self.serializer.deserialize(record.payload)
        return sessions

    async def health_check(self) -> bool:
        try:
            await asyncio.wait_for(self.length(), timeout=self.health_check_timeout)
            return True
        except Exception as e:
            logger.warning(
                "Session store health check failed",
                extra={"extra_data": {"error": str(e), "state": self.state.value}}
            )
            return False

    def __repr__(self) -> str:
        return (
            f"FoundationDBSessionStore(directory={'/'.join(self.path)!r}, "
            f"state={self.state.value!r}, backend={self.backend.name!r})"
        )
