"""
Abstract base classes for blob storage backends.

A backend stores raw bytes under an opaque key. Uploads are written to a
staging location first and promoted to the final key in one atomic step, so
a reader never observes a partially written blob.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator


@dataclass(frozen=True)
class StagedBlob:
    """Result of a completed staging write."""

    key: str
    size_bytes: int
    checksum: str


class BlobHandle(ABC):
    """
    Open read handle on a stored blob.

    Holding a handle keeps the bytes readable even if the blob is deleted
    concurrently (on filesystems with POSIX unlink semantics).
    """

    key: str
    size_bytes: int

    @abstractmethod
    async def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; returns b"" at end of blob."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    async def iter_chunks(self, chunk_size: int) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read(chunk_size)
            if not chunk:
                break
            yield chunk


class StorageBackend(ABC):
    """
    Abstract base class for blob storage backends.

    All implementations (local filesystem, S3, etc.) must implement these
    methods. Every delete is idempotent so that the expiry sweep can be
    re-run safely after a crash.
    """

    max_size_bytes: int

    @abstractmethod
    async def write_staged(
        self,
        key: str,
        file_stream: AsyncIterator[bytes],
        max_size_bytes: int | None = None,
    ) -> StagedBlob:
        """
        Stream bytes into the staging location for ``key``.

        Args:
            key: Blob key (the file record id)
            file_stream: Async iterator yielding chunks
            max_size_bytes: Limit override, defaults to the backend limit

        Returns:
            StagedBlob with the final size and SHA-256 checksum

        Raises:
            FileSizeExceededError: As soon as the stream crosses the limit;
                the staged bytes are already removed.
            StorageUnavailableError: On I/O failure; staged bytes removed.
        """
        pass

    @abstractmethod
    async def promote(self, key: str) -> None:
        """
        Atomically move a staged blob to its final location.

        Promoting a key that is already final is a no-op.

        Raises:
            BlobNotFoundError: If neither a staged nor a final blob exists
            StorageUnavailableError: On I/O failure
        """
        pass

    @abstractmethod
    async def discard_staged(self, key: str) -> None:
        """Remove a staged blob if present."""
        pass

    @abstractmethod
    async def open_blob(self, key: str) -> BlobHandle:
        """
        Open a final blob for streaming reads.

        Raises:
            BlobNotFoundError: If the blob does not exist
            StorageUnavailableError: On I/O failure
        """
        pass

    @abstractmethod
    async def delete_blob(self, key: str) -> bool:
        """
        Delete a final blob.

        Returns:
            True if bytes were removed, False if the blob was already gone

        Raises:
            StorageUnavailableError: On I/O failure
        """
        pass

    @abstractmethod
    def blob_exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def staged_exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def list_staged(self, older_than_seconds: float = 0) -> list[str]:
        """
        List keys that have a staged blob.

        Args:
            older_than_seconds: Only return staged blobs whose last
                modification is at least this old
        """
        pass
