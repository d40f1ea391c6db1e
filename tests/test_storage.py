"""
assetrewards/tests/test_storage.py

Tests for the storage layer: backends and record tables.
"""

import pytest
import tempfile
from pathlib import Path
from unittest.mock import patch

from assetrewards.errors import StorageError
from assetrewards.storage import (
    MemoryBackend,
    FileBackend,
    RecordTable,
    open_backend,
)


def _identity_table(backend, namespace="things"):
    return RecordTable(namespace, backend, lambda r: r, lambda d: d)


class TestMemoryBackend:
    """Test MemoryBackend class."""

    @pytest.fixture
    def backend(self):
        return MemoryBackend()

    @pytest.mark.asyncio
    async def test_put_and_get(self, backend):
        """Test basic put and get."""
        assert await backend.put("key1", b"value1") is True
        assert await backend.get("key1") == b"value1"

    @pytest.mark.asyncio
    async def test_get_nonexistent(self, backend):
        assert await backend.get("nonexistent") is None

    @pytest.mark.asyncio
    async def test_delete(self, backend):
        await backend.put("key1", b"value1")
        assert await backend.delete("key1") is True
        assert await backend.get("key1") is None
        assert await backend.delete("key1") is False

    @pytest.mark.asyncio
    async def test_list_keys(self, backend):
        """Test listing keys by prefix."""
        await backend.put("prefix:key1", b"v1")
        await backend.put("prefix:key2", b"v2")
        await backend.put("other:key3", b"v3")

        keys = await backend.list_keys("prefix:")
        assert sorted(keys) == ["prefix:key1", "prefix:key2"]
        assert len(await backend.list_keys()) == 3


class TestFileBackend:
    """Test FileBackend class."""

    @pytest.fixture
    def backend(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield FileBackend(Path(tmpdir))

    @pytest.mark.asyncio
    async def test_put_and_get(self, backend):
        await backend.put("key1", b"value1")
        assert await backend.get("key1") == b"value1"

    @pytest.mark.asyncio
    async def test_overwrite(self, backend):
        await backend.put("key1", b"old")
        await backend.put("key1", b"new")
        assert await backend.get("key1") == b"new"

    @pytest.mark.asyncio
    async def test_keys_with_separators(self, backend):
        """Keys containing ':' and '/' survive the file name encoding."""
        await backend.put("payouts:abc/def", b"v")
        assert await backend.list_keys("payouts:") == ["payouts:abc/def"]

    @pytest.mark.asyncio
    async def test_delete(self, backend):
        await backend.put("key1", b"value1")
        assert await backend.delete("key1") is True
        assert await backend.get("key1") is None
        assert await backend.delete("key1") is False

    @pytest.mark.asyncio
    async def test_survives_reopen(self, backend):
        """A new backend on the same directory sees every record."""
        await backend.put("a", b"1")
        await backend.put("b", b"2")

        reopened = FileBackend(backend.storage_dir)
        assert await reopened.list_keys() == ["a", "b"]
        assert await reopened.get("b") == b"2"

    @pytest.mark.asyncio
    async def test_failed_write_keeps_previous_value(self, backend):
        """A failed rename leaves the old record and no temp file."""
        await backend.put("key1", b"old")

        with patch("assetrewards.storage.os.replace", side_effect=OSError("disk full")):
            assert await backend.put("key1", b"new") is False

        assert await backend.get("key1") == b"old"
        assert list(backend.storage_dir.glob("*.tmp")) == []


class TestRecordTable:
    """Test RecordTable class."""

    @pytest.mark.asyncio
    async def test_namespaced_keys(self):
        backend = MemoryBackend()
        table = _identity_table(backend)
        await table.put("x", {"n": 1})

        assert await backend.list_keys() == ["things:x"]
        assert await table.keys() == ["x"]
        assert await table.get("x") == {"n": 1}

    @pytest.mark.asyncio
    async def test_namespaces_are_independent(self):
        backend = MemoryBackend()
        first = _identity_table(backend, "first")
        second = _identity_table(backend, "second")
        await first.put("x", {"n": 1})

        assert await second.get("x") is None
        assert await second.keys() == []

    @pytest.mark.asyncio
    async def test_get_reads_through_to_backend(self):
        """A second table over the same backend sees earlier writes."""
        backend = MemoryBackend()
        await _identity_table(backend).put("x", {"n": 1})

        assert await _identity_table(backend).get("x") == {"n": 1}
        assert await _identity_table(backend).contains("x") is True

    @pytest.mark.asyncio
    async def test_failed_put_raises_and_leaves_cache(self):
        backend = MemoryBackend()
        table = _identity_table(backend)
        await table.put("x", {"n": 1})

        with patch.object(backend, "put", return_value=False):
            with pytest.raises(StorageError):
                await table.put("x", {"n": 2})

        assert await table.get("x") == {"n": 1}

    @pytest.mark.asyncio
    async def test_delete(self):
        backend = MemoryBackend()
        table = _identity_table(backend)
        await table.put("x", {"n": 1})

        assert await table.delete("x") is True
        assert await table.get("x") is None
        assert await table.delete("x") is False

    @pytest.mark.asyncio
    async def test_failed_delete_raises(self):
        backend = MemoryBackend()
        table = _identity_table(backend)
        await table.put("x", {"n": 1})

        with patch.object(backend, "delete", return_value=False):
            with pytest.raises(StorageError):
                await table.delete("x")

        assert await table.get("x") == {"n": 1}

    @pytest.mark.asyncio
    async def test_values_ordered_by_key(self):
        table = _identity_table(MemoryBackend())
        await table.put("b", {"n": 2})
        await table.put("a", {"n": 1})

        assert await table.values() == [{"n": 1}, {"n": 2}]


class TestOpenBackend:

    def test_in_memory(self):
        assert isinstance(open_backend(in_memory=True), MemoryBackend)

    def test_file(self, tmp_path):
        backend = open_backend(tmp_path / "store")
        assert isinstance(backend, FileBackend)
        assert (tmp_path / "store").is_dir()
