"""Tests for the storage substrates.

This test suite covers both backends with:
- Basic read/write/delete/list operations
- Quota enforcement
- Error classification
- Locking
"""

import errno

import pytest
from filelock import FileLock

from motorcache.storage import (
    FileStorage,
    MemoryStorage,
    StorageError,
    StorageQuotaExceededError,
    StorageUnavailableError,
)


@pytest.fixture(params=["memory", "file"])
def storage(request, tmp_path):
    """Each backend with no quota."""
    if request.param == "memory":
        return MemoryStorage()
    return FileStorage(tmp_path / "store")


# ============================================================================
# Shared behaviour
# ============================================================================


class TestBackendContract:
    """Operations every backend must support identically."""

    def test_read_missing_returns_none(self, storage):
        assert storage.read("missing") is None

    def test_write_then_read(self, storage):
        storage.write("motor_nation_news_all", '{"a": 1}')

        assert storage.read("motor_nation_news_all") == '{"a": 1}'

    def test_overwrite(self, storage):
        storage.write("k", "one")
        storage.write("k", "two")

        assert storage.read("k") == "two"
        assert storage.list_keys() == ["k"]

    def test_delete(self, storage):
        storage.write("k", "v")

        storage.delete("k")

        assert storage.read("k") is None
        assert storage.list_keys() == []

    def test_delete_missing_is_noop(self, storage):
        storage.delete("missing")

    def test_list_keys(self, storage):
        for key in ("a", "b", "c"):
            storage.write(key, key)

        assert sorted(storage.list_keys()) == ["a", "b", "c"]

    @pytest.mark.parametrize(
        "key", ["search_all_bmw/m3", "news?limit=5", "ümlaut key", "..", "a%2Fb"]
    )
    def test_awkward_keys_roundtrip(self, storage, key):
        storage.write(key, "value")

        assert storage.read(key) == "value"
        assert storage.list_keys() == [key]

    def test_lock_is_reentrant(self, storage):
        with storage.lock():
            with storage.lock():
                storage.write("k", "v")

        assert storage.read("k") == "v"


# ============================================================================
# Quotas
# ============================================================================


class TestQuota:
    """Test byte quotas on both backends."""

    @pytest.fixture(params=["memory", "file"])
    def limited(self, request, tmp_path):
        if request.param == "memory":
            return MemoryStorage(max_bytes=10)
        return FileStorage(tmp_path / "store", max_bytes=10)

    def test_write_within_quota(self, limited):
        limited.write("a", "12345")
        limited.write("b", "12345")

        assert sorted(limited.list_keys()) == ["a", "b"]

    def test_write_over_quota_raises(self, limited):
        limited.write("a", "123456")

        with pytest.raises(StorageQuotaExceededError):
            limited.write("b", "12345")

        assert limited.read("b") is None

    def test_overwrite_does_not_count_old_value(self, limited):
        limited.write("a", "1234567890")

        limited.write("a", "0987654321")

        assert limited.read("a") == "0987654321"

    def test_quota_counts_encoded_bytes(self, limited):
        with pytest.raises(StorageQuotaExceededError):
            limited.write("a", "ü" * 6)


# ============================================================================
# FileStorage specifics
# ============================================================================


class TestFileStorage:
    """Test the directory-backed substrate."""

    def test_directory_created_lazily(self, tmp_path):
        storage = FileStorage(tmp_path / "nested" / "store")

        assert storage.list_keys() == []
        assert not (tmp_path / "nested").exists()

        storage.write("k", "v")

        assert (tmp_path / "nested" / "store").is_dir()

    def test_no_temp_files_left(self, tmp_path):
        storage = FileStorage(tmp_path)

        storage.write("k", "v")

        assert not list(tmp_path.glob("*.tmp"))

    def test_foreign_files_ignored(self, tmp_path):
        (tmp_path / "notes.txt").write_text("not an entry")
        storage = FileStorage(tmp_path)
        storage.write("k", "v")

        assert storage.list_keys() == ["k"]

    def test_unencoded_entry_names_ignored(self, tmp_path):
        (tmp_path / "motor_nation_a b.json").write_text("{}")
        storage = FileStorage(tmp_path)
        storage.write("motor_nation_a b", "v")

        assert storage.list_keys() == ["motor_nation_a b"]
        assert (tmp_path / "motor_nation_a%20b.json").exists()

    @pytest.mark.parametrize(
        "key",
        ["motor_nation_search_all_" + "x" * 300, "motor_nation_" + "Müller Straße " * 20],
    )
    def test_long_keys_round_trip(self, tmp_path, key):
        storage = FileStorage(tmp_path)

        storage.write(key, "v")

        assert storage.read(key) == "v"
        assert storage.list_keys() == [key]
        assert all(len(p.name) <= 255 for p in tmp_path.iterdir())

    def test_long_key_delete_removes_key_file(self, tmp_path):
        storage = FileStorage(tmp_path)
        key = "k" * 300
        storage.write(key, "v")

        storage.delete(key)

        assert storage.read(key) is None
        assert storage.list_keys() == []
        assert not list(tmp_path.glob("*.key"))

    def test_long_key_without_key_file_ignored(self, tmp_path):
        storage = FileStorage(tmp_path)
        storage.write("k" * 300, "v")
        for path in tmp_path.glob("*.key"):
            path.unlink()

        assert storage.list_keys() == []

    def test_persists_across_instances(self, tmp_path):
        FileStorage(tmp_path).write("k", "v")

        assert FileStorage(tmp_path).read("k") == "v"

    def test_disk_full_is_quota_error(self, tmp_path, monkeypatch):
        storage = FileStorage(tmp_path)

        def no_space(src, dst):
            raise OSError(errno.ENOSPC, "No space left on device")

        monkeypatch.setattr("motorcache.storage.backend.os.replace", no_space)

        with pytest.raises(StorageQuotaExceededError):
            storage.write("k", "v")
        assert not list(tmp_path.glob("*.tmp"))

    def test_other_os_error_is_plain_storage_error(self, tmp_path, monkeypatch):
        storage = FileStorage(tmp_path)

        def io_error(src, dst):
            raise OSError(errno.EIO, "I/O error")

        monkeypatch.setattr("motorcache.storage.backend.os.replace", io_error)

        with pytest.raises(StorageError) as exc_info:
            storage.write("k", "v")
        assert not isinstance(exc_info.value, StorageQuotaExceededError)

    def test_permission_error_is_unavailable(self, tmp_path, monkeypatch):
        storage = FileStorage(tmp_path)

        def denied(src, dst):
            raise PermissionError(errno.EACCES, "Permission denied")

        monkeypatch.setattr("motorcache.storage.backend.os.replace", denied)

        with pytest.raises(StorageUnavailableError):
            storage.write("k", "v")

    def test_lock_timeout_is_unavailable(self, tmp_path):
        storage = FileStorage(tmp_path, lock_timeout=0.1)
        holder = FileLock(str(tmp_path / FileStorage.LOCK_NAME))

        with holder:
            with pytest.raises(StorageUnavailableError, match="Timeout"):
                with storage.lock():
                    pass

    def test_lock_file_not_listed(self, tmp_path):
        storage = FileStorage(tmp_path)

        with storage.lock():
            storage.write("k", "v")

        assert storage.list_keys() == ["k"]


class TestMemoryStorage:
    """Test the dict-backed substrate."""

    def test_len(self):
        storage = MemoryStorage()
        storage.write("a", "1")
        storage.write("b", "2")

        assert len(storage) == 2
