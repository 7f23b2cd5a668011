"""
Local filesystem storage implementation.

Blobs use a sharded directory layout that maps directly onto object-store
prefixes:

    <base_path>/blobs/<prefix>/<key>.blob          final blobs
    <base_path>/.tmp/uploads/<prefix>/<key>.tmp    staged uploads

Staged files live on the same filesystem as final blobs so that promotion is
a single atomic ``os.replace``.
"""
import hashlib
import os
import re
import time
from pathlib import Path
from typing import AsyncIterator

import aiofiles
import aiofiles.os

from ephemeral_share.config import settings
from ephemeral_share.logging_config import setup_logging
from ephemeral_share.storage.base import BlobHandle, StagedBlob, StorageBackend
from ephemeral_share.storage.exceptions import (
    BlobNotFoundError,
    FileSizeExceededError,
    StorageUnavailableError,
)

logger = setup_logging()

# Keys are UUIDs in practice; anything else must not be able to escape base_path
_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class LocalBlobHandle(BlobHandle):
    def __init__(self, key: str, file, size_bytes: int):
        self.key = key
        self.size_bytes = size_bytes
        self._file = file
        self._closed = False

    async def read(self, size: int) -> bytes:
        try:
            return await self._file.read(size)
        except OSError as e:
            raise StorageUnavailableError(f"Failed to read blob {self.key}") from e

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._file.close()


class LocalStorageBackend(StorageBackend):
    """
    Local filesystem blob storage with async operations.
    """

    def __init__(self, base_path: str | None = None, max_size_bytes: int | None = None):
        """
        Initialize local storage backend.

        Args:
            base_path: Base directory for blob storage (default from config)
            max_size_bytes: Maximum blob size in bytes (default from config)
        """
        self.base_path = Path(base_path or settings.STORAGE_BASE_PATH)
        self.max_size_bytes = (
            max_size_bytes if max_size_bytes is not None else settings.max_upload_size_bytes
        )

    async def write_staged(
        self,
        key: str,
        file_stream: AsyncIterator[bytes],
        max_size_bytes: int | None = None,
    ) -> StagedBlob:
        limit = self.max_size_bytes if max_size_bytes is None else max_size_bytes
        staging_path = self._get_staging_path(key)
        self._ensure_directory_exists(staging_path)

        digest = hashlib.sha256()
        total_size = 0

        try:
            async with aiofiles.open(staging_path, "wb") as f:
                async for chunk in file_stream:
                    total_size += len(chunk)

                    # Abort as soon as the limit is crossed, never buffer the rest
                    if total_size > limit:
                        raise FileSizeExceededError(total_size, limit)

                    digest.update(chunk)
                    await f.write(chunk)
        except OSError as e:
            self._remove_quietly(staging_path)
            raise StorageUnavailableError(f"Failed to write staged blob {key}") from e
        except BaseException:
            # 包含超過大小限制、串流來源中斷，以及逾時造成的CancelledError
            self._remove_quietly(staging_path)
            raise

        return StagedBlob(key=key, size_bytes=total_size, checksum=digest.hexdigest())

    async def promote(self, key: str) -> None:
        staging_path = self._get_staging_path(key)
        final_path = self._get_blob_path(key)

        if not staging_path.exists():
            if final_path.exists():
                return
            raise BlobNotFoundError(key)

        self._ensure_directory_exists(final_path)
        try:
            # Atomic move (rename) on the same filesystem
            await aiofiles.os.replace(staging_path, final_path)
        except FileNotFoundError as e:
            raise BlobNotFoundError(key) from e
        except OSError as e:
            raise StorageUnavailableError(f"Failed to promote blob {key}") from e

        self._remove_empty_parent(staging_path)

    async def discard_staged(self, key: str) -> None:
        staging_path = self._get_staging_path(key)
        self._remove_quietly(staging_path)
        self._remove_empty_parent(staging_path)

    async def open_blob(self, key: str) -> BlobHandle:
        blob_path = self._get_blob_path(key)

        try:
            f = await aiofiles.open(blob_path, "rb")
        except FileNotFoundError as e:
            raise BlobNotFoundError(key) from e
        except OSError as e:
            raise StorageUnavailableError(f"Failed to open blob {key}") from e

        try:
            size_bytes = os.fstat(f.fileno()).st_size
        except OSError as e:
            await f.close()
            raise StorageUnavailableError(f"Failed to stat blob {key}") from e

        return LocalBlobHandle(key, f, size_bytes)

    async def delete_blob(self, key: str) -> bool:
        blob_path = self._get_blob_path(key)

        try:
            await aiofiles.os.remove(blob_path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageUnavailableError(f"Failed to delete blob {key}") from e

        self._remove_empty_parent(blob_path)
        return True

    def blob_exists(self, key: str) -> bool:
        return self._get_blob_path(key).exists()

    def staged_exists(self, key: str) -> bool:
        return self._get_staging_path(key).exists()

    async def list_staged(self, older_than_seconds: float = 0) -> list[str]:
        staging_dir = self.base_path / ".tmp" / "uploads"

        if not staging_dir.exists():
            return []

        cutoff = time.time() - older_than_seconds
        keys = []

        # Iterate through prefix directories
        for prefix_dir in staging_dir.iterdir():
            if not prefix_dir.is_dir():
                continue
            for staged_file in prefix_dir.glob("*.tmp"):
                try:
                    modified_at = staged_file.stat().st_mtime
                except FileNotFoundError:
                    # Promoted or discarded while scanning
                    continue
                if modified_at <= cutoff:
                    keys.append(staged_file.stem)

        return keys

    def _get_blob_path(self, key: str) -> Path:
        """
        Structure: <base_path>/blobs/<prefix>/<key>.blob
        Example: data/blobs/blobs/3f/3f2b...e1.blob
        """
        self._validate_key(key)
        return self.base_path / "blobs" / key[:2] / f"{key}.blob"

    def _get_staging_path(self, key: str) -> Path:
        self._validate_key(key)
        return self.base_path / ".tmp" / "uploads" / key[:2] / f"{key}.tmp"

    @staticmethod
    def _validate_key(key: str) -> None:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid blob key: {key!r}")

    @staticmethod
    def _ensure_directory_exists(file_path: Path) -> None:
        file_path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _remove_quietly(file_path: Path) -> None:
        try:
            os.remove(file_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            # The stale staging sweep retries removal later
            logger.warning(f"Failed to remove {file_path.name}: {str(e)}")

    @staticmethod
    def _remove_empty_parent(file_path: Path) -> None:
        try:
            file_path.parent.rmdir()
        except OSError:
            # Directory not empty (or already gone)
            pass
