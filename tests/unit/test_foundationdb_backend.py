"""
Unit tests for the FoundationDB backend adapter.

The `fdb` binding needs a client library and a running cluster, so these
tests replace the module with a mock and check how the adapter drives it.
"""

import sys
from unittest.mock import MagicMock, patch

import pytest

from backends.foundationdb import DEFAULT_API_VERSION, FoundationDBBackend
from errors.codes import ErrorCode
from errors.exceptions import StoreConnectionError, TransactionError
from session.foundationdb_store import FoundationDBSessionStore
from session.state import StoreState


class FakeFDBError(Exception):
    """Stand-in for fdb.FDBError carrying a numeric code."""

    def __init__(self, code: int):
        self.code = code
        self.description = f"fdb error {code}"
        super().__init__(self.description)


@pytest.fixture
def mock_fdb():
    """Mock `fdb` module whose transactional decorator calls straight through."""
    fdb = MagicMock()
    fdb.FDBError = FakeFDBError
    fdb.is_api_version_selected.return_value = False
    fdb.transactional = lambda func: func
    with patch.dict(sys.modules, {"fdb": fdb}):
        yield fdb


class TestOpen:
    """Tests for FoundationDBBackend.open()."""

    def test_selects_api_version_and_opens(self, mock_fdb):
        backend = FoundationDBBackend(cluster_file="/etc/foundationdb/fdb.cluster")

        backend.open()

        mock_fdb.api_version.assert_called_once_with(DEFAULT_API_VERSION)
        mock_fdb.open.assert_called_once_with("/etc/foundationdb/fdb.cluster")
        assert backend.db is mock_fdb.open.return_value

    def test_keeps_existing_api_version(self, mock_fdb):
        mock_fdb.is_api_version_selected.return_value = True

        FoundationDBBackend().open()

        mock_fdb.api_version.assert_not_called()

    def test_reuses_open_database(self, mock_fdb):
        database = MagicMock()
        backend = FoundationDBBackend(database=database)

        backend.open()

        mock_fdb.open.assert_not_called()
        assert backend.db is database

    def test_open_failure(self, mock_fdb):
        mock_fdb.open.side_effect = FakeFDBError(2104)

        with pytest.raises(StoreConnectionError) as exc_info:
            FoundationDBBackend(cluster_file="missing.cluster").open()

        assert exc_info.value.error_code == ErrorCode.SESSION_STORE_UNAVAILABLE
        assert exc_info.value.details["cluster_file"] == "missing.cluster"


class TestDirectoryAndTransactions:
    """Tests for create_or_open() and run()."""

    @pytest.mark.asyncio
    async def test_create_or_open(self, mock_fdb):
        backend = FoundationDBBackend()
        backend.open()

        namespace = await backend.create_or_open(("sessions",))

        mock_fdb.directory.create_or_open.assert_called_once_with(backend.db, ("sessions",))
        assert namespace is mock_fdb.directory.create_or_open.return_value

    @pytest.mark.asyncio
    async def test_create_or_open_failure(self, mock_fdb):
        mock_fdb.directory.create_or_open.side_effect = FakeFDBError(1031)
        backend = FoundationDBBackend()
        backend.open()

        with pytest.raises(StoreConnectionError) as exc_info:
            await backend.create_or_open(("sessions",))

        assert exc_info.value.details["fdb_code"] == 1031

    @pytest.mark.asyncio
    async def test_run_passes_database_to_transactional(self, mock_fdb):
        backend = FoundationDBBackend()
        backend.open()
        received = []

        result = await backend.run(lambda tr: received.append(tr) or "done")

        assert result == "done"
        assert received == [backend.db]

    @pytest.mark.asyncio
    async def test_run_failure_becomes_transaction_error(self, mock_fdb):
        backend = FoundationDBBackend()
        backend.open()

        def conflict(tr):
            raise FakeFDBError(1020)

        with pytest.raises(TransactionError) as exc_info:
            await backend.run(conflict)

        assert exc_info.value.details == {"fdb_code": 1020}

    @pytest.mark.asyncio
    async def test_run_requires_open(self, mock_fdb):
        with pytest.raises(StoreConnectionError):
            await FoundationDBBackend().run(lambda tr: None)

    def test_close_drops_handle(self, mock_fdb):
        backend = FoundationDBBackend()
        backend.open()

        backend.close()

        assert backend.db is None


class TestStoreOnFoundationDB:
    """The store builds a FoundationDB backend when none is given."""

    @pytest.mark.asyncio
    async def test_default_backend(self, mock_fdb):
        store = FoundationDBSessionStore(cluster_file="fdb.cluster")

        assert isinstance(store.backend, FoundationDBBackend)
        assert store.state == StoreState.CONNECTING
        mock_fdb.open.assert_called_once_with("fdb.cluster")

        await store.connect()

        mock_fdb.directory.create_or_open.assert_called_once_with(
            mock_fdb.open.return_value, ("sessions",)
        )
        assert store.state == StoreState.CONNECTED

    def test_unloadable_binding_disconnects(self, mock_fdb):
        mock_fdb.api_version.side_effect = RuntimeError("libfdb_c not found")

        with pytest.raises(StoreConnectionError) as exc_info:
            FoundationDBSessionStore()

        assert "libfdb_c not found" in exc_info.value.details["error"]
