"""
Storage-specific exceptions.

The gateway translates these into the public error taxonomy; nothing here
is meant to reach a client directly.
"""


class StorageError(Exception):
    """Base exception for storage operations."""

    pass


class FileSizeExceededError(StorageError):
    """Raised when an upload stream crosses the maximum size limit."""

    def __init__(self, file_size: int, max_size: int):
        self.file_size = file_size
        self.max_size = max_size
        super().__init__(
            f"File size ({file_size} bytes) exceeds maximum allowed size ({max_size} bytes)"
        )


class BlobNotFoundError(StorageError):
    """Raised when the requested blob (or staged blob) does not exist."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Blob not found: {key}")


class StorageUnavailableError(StorageError):
    """Raised for transient I/O failures that may succeed when retried."""

    pass


class ChecksumMismatchError(StorageError):
    """Raised when stored bytes no longer match their recorded checksum."""

    def __init__(self, key: str, expected: str, actual: str):
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(f"Checksum mismatch for blob {key}")
