"""
Public error taxonomy.

Every failure a client can observe is one of these kinds. The gateway maps
storage and database exceptions onto them; the exception handler in
``ephemeral_share.main`` renders them as ``{"success": false, "error": kind,
"message": ...}`` with the matching HTTP status.
"""
from fastapi import status


class TransferError(Exception):
    """Base class for errors surfaced to clients."""

    kind: str = "Error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(TransferError):
    kind = "InvalidInput"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class PayloadTooLarge(TransferError):
    kind = "PayloadTooLarge"
    status_code = status.HTTP_413_CONTENT_TOO_LARGE
    default_message = "File exceeds the maximum allowed size"


class NotFound(TransferError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "File not found"


class Expired(TransferError):
    # The download contract reports expired links as 404
    kind = "Expired"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "File has expired"


class Forbidden(TransferError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Private file - access denied"


class Unavailable(TransferError):
    kind = "Unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Storage temporarily unavailable, please try again later"
    retryable = True


class Corrupt(TransferError):
    kind = "Corrupt"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Stored file is damaged"


class Conflict(TransferError):
    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Could not allocate a unique file id"
