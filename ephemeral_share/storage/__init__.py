"""
Blob storage abstraction.

Raw file bytes are stored here, keyed by file record id. The package knows
nothing about expiry or ownership; that lives in the metadata store.
"""

from ephemeral_share.storage.base import BlobHandle, StagedBlob, StorageBackend
from ephemeral_share.storage.local import LocalStorageBackend
from ephemeral_share.storage.exceptions import (
    BlobNotFoundError,
    ChecksumMismatchError,
    FileSizeExceededError,
    StorageError,
    StorageUnavailableError,
)

__all__ = [
    "BlobHandle",
    "StagedBlob",
    "StorageBackend",
    "LocalStorageBackend",
    "BlobNotFoundError",
    "ChecksumMismatchError",
    "FileSizeExceededError",
    "StorageError",
    "StorageUnavailableError",
]
