import asyncio
import logging
import os
from pathlib import PurePosixPath

from compliance.errors import StorageError

logger = logging.getLogger(__name__)


class BlobStore:
    """Persists rendered and signed artifacts."""

    async def put(self, path: str, data: bytes) -> str:
        raise NotImplementedError

    async def get(self, path: str) -> bytes:
        raise NotImplementedError

    def get_public_url(self, path: str) -> str:
        raise NotImplementedError

    async def exists(self, path: str) -> bool:
        raise NotImplementedError


def _clean_path(path: str) -> str:
    pure = PurePosixPath(path)
    if pure.is_absolute() or ".." in pure.parts or not pure.parts:
        raise StorageError(f"Invalid blob path: {path}")
    return str(pure)


class LocalBlobStore(BlobStore):
    """Blob store on the local filesystem, served under /files."""

    def __init__(self, root_dir: str, public_base_url: str):
        self.root_dir = root_dir
        self.public_base_url = public_base_url.rstrip("/")

    def _full_path(self, path: str) -> str:
        return os.path.join(self.root_dir, *PurePosixPath(_clean_path(path)).parts)

    def _write(self, full_path: str, data: bytes) -> None:
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as f:
            f.write(data)

    def _read(self, full_path: str) -> bytes:
        with open(full_path, "rb") as f:
            return f.read()

    async def put(self, path: str, data: bytes) -> str:
        full_path = self._full_path(path)
        try:
            await asyncio.to_thread(self._write, full_path, data)
        except OSError as exc:
            logger.error("Could not store blob %s: %s", path, exc)
            raise StorageError("Could not store document artifact") from exc
        return self.get_public_url(path)

    async def get(self, path: str) -> bytes:
        full_path = self._full_path(path)
        try:
            return await asyncio.to_thread(self._read, full_path)
        except OSError as exc:
            logger.error("Could not read blob %s: %s", path, exc)
            raise StorageError("Could not read document artifact") from exc

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(os.path.isfile, self._full_path(path))

    def get_public_url(self, path: str) -> str:
        return f"{self.public_base_url}/files/{_clean_path(path)}"
