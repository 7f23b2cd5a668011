from fastapi import Request, status
from fastapi.responses import JSONResponse

from ephemeral_share.config import settings
from ephemeral_share.errors import PayloadTooLarge
from ephemeral_share.logging_config import setup_logging
from ephemeral_share.schemas.common import ErrorResponse

logger = setup_logging()

UPLOAD_PATH_SUFFIX = "/files/upload"


def _reject(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message).model_dump(),
    )


async def upload_limit_middleware(request: Request, call_next):
    """
    Reject oversized uploads before the multipart body is read.

    FastAPI parses the whole form before the endpoint runs, so the size check
    in the storage writer alone would still spool the full body to disk.
    Upload requests must therefore declare their size: without Content-Length
    (chunked encoding) they are answered with 411 and the body is never read.
    """
    if request.method != "POST" or not request.url.path.endswith(UPLOAD_PATH_SUFFIX):
        return await call_next(request)

    content_length = request.headers.get("content-length")
    if content_length is None:
        logger.warning(f"Upload rejected without Content-Length: path={request.url.path}")
        return _reject(
            status.HTTP_411_LENGTH_REQUIRED,
            "InvalidInput",
            "Content-Length header is required for uploads",
        )

    try:
        length = int(content_length)
    except ValueError:
        return _reject(status.HTTP_400_BAD_REQUEST, "InvalidInput", "Invalid Content-Length header")

    limit = settings.max_upload_size_bytes + settings.MULTIPART_OVERHEAD_BYTES
    if length > limit:
        logger.warning(
            f"Upload rejected before reading body: path={request.url.path}, "
            f"content_length={length}, limit={limit}"
        )
        error = PayloadTooLarge()
        return _reject(error.status_code, error.kind, error.message)

    return await call_next(request)
