"""
Durable storage for the single session credential.

TokenStore is the only owner of the credential. It persists exactly one
opaque string under a fixed key through a ``KeyValueStorage`` medium and has
no network access. Other components borrow the credential for the duration
of one request via SessionController.
"""

import hashlib
from typing import Protocol

import structlog

from additiya.domain.errors import PersistenceError

logger = structlog.get_logger(__name__)

DEFAULT_TOKEN_KEY = "user_auth_token"


class KeyValueStorage(Protocol):
    """
    Storage medium for string values.

    Implementations raise ``OSError`` when the medium itself is unavailable.
    A missing key is not an error: ``get`` returns None and ``delete`` is a
    no-op.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


def credential_fingerprint(credential: str) -> str:
    """Short, non-reversible identifier that is safe to log."""
    return hashlib.sha256(credential.encode("utf-8")).hexdigest()[:8]


class TokenStore:
    """Persists, reads and clears the credential under a single key."""

    def __init__(self, storage: KeyValueStorage, key: str = DEFAULT_TOKEN_KEY) -> None:
        self._storage = storage
        self.key = key
        self.logger = logger.bind(component="token_store", key=key)

    async def store(self, credential: str) -> None:
        """
        Persist the credential, replacing any prior value.

        Raises:
            ValueError: credential is empty.
            PersistenceError: the storage medium is unavailable.
        """
        if not credential or not credential.strip():
            raise ValueError("credential must be a non-empty string")
        try:
            await self._storage.set(self.key, credential)
        except OSError as e:
            self.logger.error("credential_store_failed", error=str(e))
            raise PersistenceError() from e
        self.logger.info("credential_stored", fingerprint=credential_fingerprint(credential))

    async def read(self) -> str | None:
        """Return the credential, or None when absent."""
        try:
            value = await self._storage.get(self.key)
        except OSError as e:
            self.logger.error("credential_read_failed", error=str(e))
            raise PersistenceError() from e
        return value or None

    async def clear(self) -> None:
        """Remove the credential. Clearing an absent credential succeeds."""
        try:
            await self._storage.delete(self.key)
        except OSError as e:
            self.logger.error("credential_clear_failed", error=str(e))
            raise PersistenceError() from e
        self.logger.info("credential_cleared")

    async def is_present(self) -> bool:
        return await self.read() is not None
