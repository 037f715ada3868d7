"""
Durable local storage for sync state.

Each logical store (the pending operation log, the dead-letter log, the
conversation snapshot) is a single serialized blob under one key. Writes
replace the whole blob, so a store is either fully written or left as it was.
"""

import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class StorageError(Exception):
    """Raised when a storage read or write fails."""


class KeyValueStorage(ABC):
    """Get/set of one serialized blob per key."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """
        Read the blob stored under ``key``.

        Returns:
            The stored text, or None if nothing has been stored yet

        Raises:
            StorageError: If reading fails
        """

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Replace the blob stored under ``key``.

        Raises:
            StorageError: If writing fails
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the blob stored under ``key`` if present."""


class InMemoryStorage(KeyValueStorage):
    """Process-local storage, used by tests and throwaway sessions."""

    def __init__(self):
        self._blobs: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._blobs.get(key)

    def set(self, key: str, value: str) -> None:
        self._blobs[key] = value

    def delete(self, key: str) -> None:
        self._blobs.pop(key, None)


class FileStorage(KeyValueStorage):
    """
    Stores each key as ``<base_dir>/<key>.json``.

    Writes go to a temp file in the same directory followed by ``os.replace``
    so a crash mid-write leaves the previous blob intact.
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir).expanduser().resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.base_dir / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}")

    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        try:
            fd, temp_path = tempfile.mkstemp(
                dir=self.base_dir,
                prefix=f".{path.name}.",
                suffix=".tmp",
                text=True,
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_path, path)
            except Exception:
                # Clean up temp file on error
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}")

        logger.debug(f"Wrote {len(value)} bytes to {path}")

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}")
