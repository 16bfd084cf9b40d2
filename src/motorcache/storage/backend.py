"""Storage backends the cache persists its entries into.

A backend is a flat string-to-string store, the same shape as a browser's
``localStorage``: the cache owns the key namespacing and the serialization,
the backend only moves strings around. Backends may be shared with unrelated
data, so ``list_keys`` returns everything it holds.
"""

import contextlib
import errno
import hashlib
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union
from urllib.parse import quote, unquote

from filelock import FileLock, Timeout

logger = logging.getLogger(__name__)

# errno values that mean "the device or the user's quota is full"
_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


class StorageError(Exception):
    """Base exception for storage substrate failures."""

    pass


class StorageUnavailableError(StorageError):
    """Raised when the substrate cannot be read or written at all."""

    pass


class StorageQuotaExceededError(StorageError):
    """Raised when a write fails because the substrate is full."""

    pass


class StorageBackend:
    """Interface for a persistent string key/value substrate.

    Subclasses implement ``read``, ``write``, ``delete`` and ``list_keys``.
    ``lock`` returns a context manager that makes a sequence of calls atomic;
    it must be reentrant for the calling thread.
    """

    def read(self, raw_key: str) -> Optional[str]:
        raise NotImplementedError

    def write(self, raw_key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, raw_key: str) -> None:
        raise NotImplementedError

    def list_keys(self) -> List[str]:
        raise NotImplementedError

    def lock(self):
        return contextlib.nullcontext()


class MemoryStorage(StorageBackend):
    """Dict-backed substrate.

    Args:
        max_bytes: Optional quota on the total encoded size of all values.
            Writes that would exceed it raise StorageQuotaExceededError.

    Examples:
        >>> storage = MemoryStorage()
        >>> storage.write('a', '1')
        >>> storage.read('a')
        '1'
    """

    def __init__(self, max_bytes: Optional[int] = None):
        self.max_bytes = max_bytes
        self._data: Dict[str, str] = {}
        self._lock = threading.RLock()

    def read(self, raw_key: str) -> Optional[str]:
        return self._data.get(raw_key)

    def write(self, raw_key: str, value: str) -> None:
        if self.max_bytes is not None:
            used = sum(
                len(v.encode("utf-8")) for k, v in self._data.items() if k != raw_key
            )
            if used + len(value.encode("utf-8")) > self.max_bytes:
                raise StorageQuotaExceededError(
                    f"Writing {raw_key} would exceed quota of {self.max_bytes} bytes"
                )
        self._data[raw_key] = value

    def delete(self, raw_key: str) -> None:
        self._data.pop(raw_key, None)

    def list_keys(self) -> List[str]:
        return list(self._data)

    def lock(self):
        return self._lock

    def __len__(self) -> int:
        return len(self._data)


class FileStorage(StorageBackend):
    """Directory-backed substrate with one file per key.

    Keys are percent-encoded into filenames so any string is a valid key. A key
    whose encoded name would be too long for the filesystem is stored under its
    SHA-256 digest instead, with the key itself in a ``.key`` sidecar file.
    Writes go to a temp file first and are renamed into place. A lock file in
    the directory serializes compound operations across threads and processes.

    Args:
        directory: Directory holding the entry files (created lazily)
        max_bytes: Optional quota on the total size of all entry files
        lock_timeout: Seconds to wait for the directory lock

    Examples:
        >>> storage = FileStorage('/tmp/motorcache')
        >>> storage.write('motor_nation_news_all', '{}')
        >>> storage.list_keys()
        ['motor_nation_news_all']
    """

    SUFFIX = ".json"
    TEMP_SUFFIX = ".tmp"
    KEY_SUFFIX = ".key"
    LOCK_NAME = ".lock"
    # quote() escapes "#", so no encoded key starts with it
    HASHED_MARKER = "#"
    MAX_NAME_BYTES = 255

    def __init__(
        self,
        directory: Union[str, Path],
        max_bytes: Optional[int] = None,
        lock_timeout: float = 30,
    ):
        self.directory = Path(directory).expanduser()
        self.max_bytes = max_bytes
        self.lock_timeout = lock_timeout
        self._file_lock: Optional[FileLock] = None

    def _ensure_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise StorageUnavailableError(
                f"Cannot create storage directory {self.directory}: {e}"
            ) from e
        except OSError as e:
            raise StorageUnavailableError(
                f"Cannot access storage directory {self.directory}: {e}"
            ) from e

    def _name_for(self, raw_key: str) -> str:
        name = quote(raw_key, safe="")
        if len(name) + len(self.SUFFIX + self.TEMP_SUFFIX) > self.MAX_NAME_BYTES:
            digest = hashlib.sha256(raw_key.encode("utf-8")).hexdigest()
            name = self.HASHED_MARKER + digest
        return name

    def _path_for(self, raw_key: str) -> Path:
        return self.directory / (self._name_for(raw_key) + self.SUFFIX)

    def _sidecar_for(self, path: Path) -> Optional[Path]:
        """Key file of a digest-named entry; None for plain entries."""
        if not path.name.startswith(self.HASHED_MARKER):
            return None
        return path.with_suffix(self.KEY_SUFFIX)

    def _used_bytes(self, exclude: Optional[Path] = None) -> int:
        total = 0
        for path in self.directory.glob("*" + self.SUFFIX):
            if path == exclude:
                continue
            try:
                total += path.stat().st_size
            except FileNotFoundError:
                # Removed by another process between glob and stat
                continue
        return total

    @contextlib.contextmanager
    def lock(self) -> Iterator[None]:
        """Hold the directory lock for the duration of the block.

        Raises:
            StorageUnavailableError: If the lock cannot be acquired in time
        """
        self._ensure_directory()
        if self._file_lock is None:
            self._file_lock = FileLock(
                str(self.directory / self.LOCK_NAME), timeout=self.lock_timeout
            )
        try:
            self._file_lock.acquire()
        except Timeout as e:
            raise StorageUnavailableError(
                f"Timeout acquiring storage lock after {self.lock_timeout} seconds"
            ) from e
        try:
            yield
        finally:
            self._file_lock.release()

    def read(self, raw_key: str) -> Optional[str]:
        path = self._path_for(raw_key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError:
            # Bytes written by something else; surface as unparseable text
            return path.read_bytes().decode("utf-8", errors="replace")
        except PermissionError as e:
            raise StorageUnavailableError(f"Cannot read {path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e

    def write(self, raw_key: str, value: str) -> None:
        self._ensure_directory()
        path = self._path_for(raw_key)
        content = value.encode("utf-8")

        if self.max_bytes is not None:
            used = self._used_bytes(exclude=path)
            if used + len(content) > self.max_bytes:
                raise StorageQuotaExceededError(
                    f"Writing {raw_key} ({len(content)} bytes) would exceed quota "
                    f"({used} of {self.max_bytes} bytes used)"
                )

        temp_path = path.with_suffix(path.suffix + self.TEMP_SUFFIX)
        sidecar = self._sidecar_for(path)
        try:
            if sidecar is not None:
                sidecar.write_text(raw_key, encoding="utf-8")
            with open(temp_path, "wb") as f:
                f.write(content)
            os.replace(temp_path, path)
        except PermissionError as e:
            self._discard(temp_path)
            raise StorageUnavailableError(f"Cannot write {path}: {e}") from e
        except OSError as e:
            self._discard(temp_path)
            if e.errno in _QUOTA_ERRNOS:
                raise StorageQuotaExceededError(
                    f"Disk full while writing {raw_key}"
                ) from e
            raise StorageError(f"Cannot write {path}: {e}") from e

    @staticmethod
    def _discard(temp_path: Path) -> None:
        try:
            temp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to clean up temp file {temp_path}: {e}")

    def delete(self, raw_key: str) -> None:
        path = self._path_for(raw_key)
        sidecar = self._sidecar_for(path)
        self._unlink(path)
        if sidecar is not None:
            self._unlink(sidecar)

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except PermissionError as e:
            raise StorageUnavailableError(f"Cannot delete {path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Cannot delete {path}: {e}") from e

    def list_keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        try:
            names = [p.name for p in self.directory.iterdir()]
        except OSError as e:
            raise StorageUnavailableError(
                f"Cannot list storage directory {self.directory}: {e}"
            ) from e

        keys = []
        for name in names:
            if not name.endswith(self.SUFFIX):
                continue
            stem = name[: -len(self.SUFFIX)]
            if stem.startswith(self.HASHED_MARKER):
                raw_key = self._read_sidecar(self.directory / (stem + self.KEY_SUFFIX))
            else:
                raw_key = unquote(stem)
            # Files named by something else cannot be reached through their key
            if raw_key is None or self._name_for(raw_key) != stem:
                continue
            keys.append(raw_key)
        return keys

    @staticmethod
    def _read_sidecar(path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except (FileNotFoundError, UnicodeDecodeError):
            return None
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e
