"""
Durable Blob Stores

Implementations of the persist interface.

FileBlobStore keeps one file per key under a data directory. A write goes
to a temporary file first and is then renamed over the old image, so a
reader never sees a half-written file on filesystems with atomic rename.
It is still a full rewrite per mutation; there is no log or journal.

MemoryBlobStore is a dict. Used by tests and throwaway sessions.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional

from src.services.storage.interface import DurableBlobStore, StorageError


class FileBlobStore(DurableBlobStore):
    """Durable blobs as files in a directory."""

    def __init__(self, data_dir: Path):
        self._data_dir = Path(data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _path_for(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key in {".", ".."}:
            raise StorageError(f"Invalid blob key: {key!r}")
        return self._data_dir / key

    async def read(self, key: str) -> Optional[bytes]:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    async def write(self, key: str, data: bytes) -> None:
        path = self._path_for(key)
        self._data_dir.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", dir=self._data_dir)
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def delete(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)


class MemoryBlobStore(DurableBlobStore):
    """Blobs kept in a dict for the lifetime of the object."""

    def __init__(self, initial: Optional[dict[str, bytes]] = None):
        self._blobs: dict[str, bytes] = dict(initial or {})
        self.write_count = 0

    async def read(self, key: str) -> Optional[bytes]:
        return self._blobs.get(key)

    async def write(self, key: str, data: bytes) -> None:
        self._blobs[key] = bytes(data)
        self.write_count += 1

    async def delete(self, key: str) -> None:
        self._blobs.pop(key, None)
