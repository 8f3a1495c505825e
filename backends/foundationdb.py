"""
FoundationDB backend for the session store.

This module adapts the `fdb` Python binding to the TransactionalBackend
contract. The binding is blocking, so every call that waits on the
cluster (directory handshake, transactions) runs in a worker thread and
the event loop is never blocked.

Transactions run under `@fdb.transactional`, the binding's own retry loop:
retryable conflicts are retried there, and whatever it gives up on is
surfaced as TransactionError. The session store adds no retries of its own.
"""

import asyncio
import logging
from typing import Any, Optional, Tuple

from backends.base import Namespace, TransactionalBackend, UnitOfWork
from errors.exceptions import (
    session_store_unavailable,
    store_not_connected,
    transaction_failed,
)

logger = logging.getLogger(__name__)


# API version selected when the binding is first loaded. Every client in a
# process must agree on it, so it is only set if nobody chose one before us.
DEFAULT_API_VERSION = 630


class FoundationDBBackend(TransactionalBackend):
    """
    FoundationDB-backed transactional backend.

    Attributes:
        cluster_file: Path to the fdb.cluster file, or None for the default
        api_version: FoundationDB API version to select
        db: Database handle (set by open(), or supplied by the caller)
    """

    def __init__(
        self,
        cluster_file: Optional[str] = None,
        api_version: int = DEFAULT_API_VERSION,
        database: Optional[Any] = None
    ):
        """
        Initialize the FoundationDB backend.

        Args:
            cluster_file: Path to the cluster file. None uses the binding's
                default lookup (FDB_CLUSTER_FILE, then the platform default).
            api_version: API version passed to fdb.api_version().
            database: An already-open fdb Database handle. When given,
                open() reuses it instead of opening a new one.
        """
        self.cluster_file = cluster_file
        self.api_version = api_version
        self.db = database
        self._fdb = None

    def _binding(self):
        if self._fdb is None:
            import fdb
            if not fdb.is_api_version_selected():
                fdb.api_version(self.api_version)
            self._fdb = fdb
        return self._fdb

    def open(self) -> None:
        """
        Open the database handle.

        Raises:
            StoreConnectionError: If the binding cannot be loaded or the
                cluster file cannot be used.
        """
        try:
            fdb = self._binding()
            if self.db is None:
                self.db = fdb.open(self.cluster_file)
        except Exception as e:
            logger.error(
                "Unable to open FoundationDB database",
                extra={"extra_data": {
                    "cluster_file": self.cluster_file,
                    "error": str(e),
                }}
            )
            raise session_store_unavailable(
                "Unable to open FoundationDB database",
                details={"cluster_file": self.cluster_file, "error": str(e)}
            ) from e
        logger.debug(
            "FoundationDB database opened",
            extra={"extra_data": {"cluster_file": self.cluster_file}}
        )

    def close(self) -> None:
        # The binding keeps one network thread per process; dropping our
        # reference is all a client can do.
        self.db = None

    async def create_or_open(self, path: Tuple[str, ...]) -> Namespace:
        if self.db is None:
            raise store_not_connected("FoundationDB database is not open")
        fdb = self._binding()
        try:
            return await asyncio.to_thread(fdb.directory.create_or_open, self.db, path)
        except (fdb.FDBError, ValueError) as e:
            # The directory layer raises ValueError on layer/version mismatch
            raise session_store_unavailable(
                "Unable to create or open session directory",
                details={
                    "directory": "/".join(path),
                    "fdb_code": getattr(e, "code", None),
                    "error": str(e),
                }
            ) from e

    async def run(self, unit_of_work: UnitOfWork) -> Any:
        if self.db is None:
            raise store_not_connected("FoundationDB database is not open")
        fdb = self._binding()

        @fdb.transactional
        def _apply(tr):
            return unit_of_work(tr)

        try:
            return await asyncio.to_thread(_apply, self.db)
        except fdb.FDBError as e:
            raise transaction_failed(
                f"FoundationDB transaction failed: {e.description}",
                details={"fdb_code": e.code}
            ) from e
