"""
Session store abstraction.

This module defines the contract a session middleware calls into: fetch,
persist, destroy, count and clear sessions keyed by session id, plus
expiry refresh and a health probe. Implementations keep session state in
an external store so web processes stay stateless.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class SessionStore(ABC):
    """
    Abstract base class for session storage implementations.

    All methods are async to support non-blocking I/O with external
    storage systems. Errors are raised from the awaited call; nothing is
    swallowed by the store itself.
    """

    @abstractmethod
    async def get(self, sid: str) -> Optional[dict[str, Any]]:
        """
        Retrieve a session by session ID.

        Args:
            sid: Session identifier issued by the middleware.

        Returns:
            The session if found and not expired, None otherwise.

        Raises:
            SessionStoreError: If the read fails or the stored record
                cannot be decoded.
        """
        pass

    @abstractmethod
    async def set(self, sid: str, session: dict[str, Any]) -> None:
        """
        Create or overwrite the session stored under `sid`.

        Args:
            sid: Session identifier issued by the middleware.
            session: Session data to store.

        Raises:
            SessionStoreError: If the session cannot be serialized or the
                write fails.
        """
        pass

    @abstractmethod
    async def destroy(self, sid: str) -> None:
        """
        Delete a session by session ID.

        This operation is idempotent - destroying a non-existent
        session does not raise an error.

        Args:
            sid: Session identifier issued by the middleware.
        """
        pass

    @abstractmethod
    async def length(self) -> int:
        """
        Number of sessions currently stored.

        Returns:
            The session count, 0 for an empty store.
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Delete every session of this store."""
        pass

    async def touch(self, sid: str, session: dict[str, Any]) -> None:
        """
        Refresh the expiry of an existing session.

        Stores that do not track expiry themselves may rely on this
        default, which rewrites the whole session.
        """
        await self.set(sid, session)

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check connectivity and health of the session store.

        Returns:
            True if the store is healthy and accessible, False otherwise.

        Note:
            This method should not raise exceptions - connectivity issues
            should be caught and result in a False return value.
        """
        pass
