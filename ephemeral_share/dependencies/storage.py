"""
Storage dependency injection for FastAPI.
"""
from ephemeral_share.config import settings
from ephemeral_share.storage.base import StorageBackend
from ephemeral_share.storage.local import LocalStorageBackend


def get_storage() -> StorageBackend:
    """
    Return the blob storage backend selected by ``STORAGE_BACKEND``.

    Raises:
        ValueError: If STORAGE_BACKEND is not supported
    """
    if settings.STORAGE_BACKEND == "local":
        return LocalStorageBackend(
            base_path=settings.STORAGE_BASE_PATH,
            max_size_bytes=settings.max_upload_size_bytes,
        )

    raise ValueError(f"Unknown storage backend: {settings.STORAGE_BACKEND}")
