"""
assetrewards/storage.py

Key/value storage for reward records.

Two tiers:
1. Memory cache - Fast access
2. Backend - Durable copy (local disk in production)

Writes go to the backend first and only then to the cache, so a failed
write leaves both tiers holding the previous value. The file backend
writes each record to a temporary file and renames it over the old one;
a crash mid-write leaves the prior record intact.

Used by:
- RequestStore - scheduled reward requests
- PayoutLedger - computed payout entries
- SnapshotStore - ownership snapshots fed in by the snapshot subsystem
"""

import os
import json
import base64
import logging
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar
from abc import ABC, abstractmethod

from .config import DEFAULT_STORAGE_DIR
from .errors import StorageError

logger = logging.getLogger("assetrewards.storage")


# ============================================================================
# STORAGE BACKENDS
# ============================================================================

class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Get a value by key."""
        pass

    @abstractmethod
    async def put(self, key: str, value: bytes) -> bool:
        """Store a value. Returns False if the write did not happen."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a value. Returns False if absent or not deleted."""
        pass

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> List[str]:
        """List keys with optional prefix filter."""
        pass


class MemoryBackend(StorageBackend):
    """In-memory storage backend."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def put(self, key: str, value: bytes) -> bool:
        self._data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        if key in self._data:
            del self._data[key]
            return True
        return False

    async def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._data)


class FileBackend(StorageBackend):
    """
    Local file storage backend.

    One file per key. File names are the urlsafe-base64 form of the key so
    the directory listing alone recovers every key after a restart.
    """

    SUFFIX = ".rec"

    def __init__(self, storage_dir: Path = None):
        self.storage_dir = Path(storage_dir or DEFAULT_STORAGE_DIR)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _key_to_path(self, key: str) -> Path:
        name = base64.urlsafe_b64encode(key.encode()).decode()
        return self.storage_dir / f"{name}{self.SUFFIX}"

    def _path_to_key(self, path: Path) -> Optional[str]:
        try:
            return base64.urlsafe_b64decode(path.stem.encode()).decode()
        except ValueError:
            return None

    async def get(self, key: str) -> Optional[bytes]:
        path = self._key_to_path(key)
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            logger.error(f"Failed to read {key}: {e}")
            raise StorageError(f"Failed to read {key}: {e}") from e

    async def put(self, key: str, value: bytes) -> bool:
        path = self._key_to_path(key)
        tmp_path = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.storage_dir, suffix=".tmp")
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "wb") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
            return True
        except OSError as e:
            logger.error(f"Failed to write {key}: {e}")
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()
            return False

    async def delete(self, key: str) -> bool:
        path = self._key_to_path(key)
        if not path.exists():
            return False
        try:
            path.unlink()
            return True
        except OSError as e:
            logger.error(f"Failed to delete {key}: {e}")
            return False

    async def list_keys(self, prefix: str = "") -> List[str]:
        keys = []
        for path in self.storage_dir.glob(f"*{self.SUFFIX}"):
            key = self._path_to_key(path)
            if key is not None and key.startswith(prefix):
                keys.append(key)
        return sorted(keys)


# ============================================================================
# RECORD TABLE
# ============================================================================

T = TypeVar('T')


class RecordTable(Generic[T]):
    """
    A namespaced table of JSON records over a storage backend.

    Read order: Memory -> Backend
    Write order: Backend, then Memory

    Every write is a single-key replace, which is the only atomicity the
    reward tables rely on.
    """

    def __init__(
        self,
        namespace: str,
        backend: StorageBackend,
        to_dict: Callable[[T], Dict[str, Any]],
        from_dict: Callable[[Dict[str, Any]], T],
    ):
        self.namespace = namespace
        self._backend = backend
        self._cache = MemoryBackend()
        self._to_dict = to_dict
        self._from_dict = from_dict

    def _make_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _serialize(self, record: T) -> bytes:
        return json.dumps(self._to_dict(record), sort_keys=True).encode()

    def _deserialize(self, data: bytes) -> T:
        return self._from_dict(json.loads(data.decode()))

    async def get(self, key: str) -> Optional[T]:
        """Get a record, or None if absent."""
        full_key = self._make_key(key)

        data = await self._cache.get(full_key)
        if data is None:
            data = await self._backend.get(full_key)
            if data is None:
                return None
            await self._cache.put(full_key, data)

        return self._deserialize(data)

    async def contains(self, key: str) -> bool:
        full_key = self._make_key(key)
        if await self._cache.get(full_key) is not None:
            return True
        return await self._backend.get(full_key) is not None

    async def put(self, key: str, record: T) -> None:
        """
        Insert or replace a record.

        Raises:
            StorageError: If the backend did not accept the write
        """
        full_key = self._make_key(key)
        data = self._serialize(record)

        if not await self._backend.put(full_key, data):
            raise StorageError(f"Failed to write {full_key}")
        await self._cache.put(full_key, data)

    async def delete(self, key: str) -> bool:
        """
        Delete a record.

        Returns:
            False if no record existed

        Raises:
            StorageError: If the record exists but could not be deleted
        """
        if not await self.contains(key):
            return False

        full_key = self._make_key(key)
        if not await self._backend.delete(full_key):
            raise StorageError(f"Failed to delete {full_key}")
        await self._cache.delete(full_key)
        return True

    async def keys(self) -> List[str]:
        """List record keys in this namespace (without the prefix)."""
        prefix = self._make_key("")
        full_keys = await self._backend.list_keys(prefix)
        return sorted(k[len(prefix):] for k in full_keys)

    async def values(self) -> List[T]:
        """Load every record in this namespace, ordered by key."""
        records = []
        for key in await self.keys():
            record = await self.get(key)
            if record is not None:
                records.append(record)
        return records


def open_backend(storage_dir: Optional[Path] = None, in_memory: bool = False) -> StorageBackend:
    """Create the backend used by the reward tables."""
    if in_memory:
        return MemoryBackend()
    return FileBackend(storage_dir)
