"""
Key-value storage media for TokenStore.

Both implementations follow the ``KeyValueStorage`` contract: a missing key
reads as None, deleting a missing key is a no-op, and an unavailable medium
raises ``OSError``.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


class InMemoryStorage:
    """Process-local storage. ``available = False`` simulates a locked keystore."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self.available = True

    def _check(self) -> None:
        if not self.available:
            raise OSError("storage medium unavailable")

    async def get(self, key: str) -> str | None:
        self._check()
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._check()
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._check()
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class JsonFileStorage:
    """
    Small JSON document on disk, written atomically.

    File I/O runs in a worker thread. A corrupted document reads as empty so a
    damaged file logs the user out instead of wedging the app.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self.logger = logger.bind(component="json_file_storage", path=str(self.path))

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.logger.warning("storage_file_corrupted", error=str(e))
            return {}
        if not isinstance(data, dict):
            self.logger.warning("storage_file_unexpected_shape", type=type(data).__name__)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Atomic write: temp file in the same directory, then replace
        temp_fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix="auth_", dir=self.path.parent)
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.chmod(temp_path, 0o600)
            os.replace(temp_path, self.path)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    async def get(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._load)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._load)
            data[key] = value
            await asyncio.to_thread(self._save, data)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._load)
            if key not in data:
                return
            del data[key]
            await asyncio.to_thread(self._save, data)
