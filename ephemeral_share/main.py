from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from ephemeral_share.api.router import router
from ephemeral_share.config import settings
from ephemeral_share.errors import InvalidInput, TransferError, Unavailable
from ephemeral_share.logging_config import setup_logging
from ephemeral_share.middleware.upload_limit import upload_limit_middleware
from ephemeral_share.schemas.common import ErrorResponse
from ephemeral_share.scheduler import start_expiry_scheduler

# Setup application logging
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # yield之前為啟動時執行，yield之後為關閉時執行
    scheduler = None
    if settings.ENABLE_EXPIRY_SWEEP:
        scheduler = start_expiry_scheduler()

    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)


# title參數: 設定 API的標題名稱，會顯示在Swagger UI /docs、ReDoc與OpenAPI schema中
app = FastAPI(title="Ephemeral Share API", lifespan=lifespan)

# 參數 "http" 表示這是 HTTP 中介軟體（會處理每個HTTP請求/回應）
app.middleware("http")(upload_limit_middleware)

app.include_router(router)


def _error_response(error: TransferError) -> JSONResponse:
    headers = None
    if error.retryable:
        headers = {"Retry-After": str(settings.RETRY_AFTER_SECONDS)}
    return JSONResponse(
        status_code=error.status_code,
        content=ErrorResponse(error=error.kind, message=error.message).model_dump(),
        headers=headers,
    )


@app.exception_handler(TransferError)
async def transfer_error_handler(request: Request, exc: TransferError):
    if exc.status_code >= 500:
        logger.error(
            f"{exc.kind} on {request.method} {request.url.path}: {exc.message}",
            exc_info=exc,
        )
    return _error_response(exc)


# 這是一個自定義的HTTP例外處理器，用來統一處理FastAPI拋出的HTTPException
# 告訴FastAPI：「當任何地方拋出HTTPException時，呼叫下面的function」
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Unwrap the 'detail' field from HTTPException responses."""
    content = exc.detail

    if isinstance(content, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=exc.headers,
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": "Unauthorized" if exc.status_code == 401 else "Error",
            "message": content,
        },
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # FastAPI預設回傳422，這裡統一成InvalidInput(400)，只回傳第一個錯誤
    errors = exc.errors()
    message = InvalidInput.default_message
    if errors:
        field = ".".join(str(part) for part in errors[0]["loc"] if part != "body")
        message = f"{field}: {errors[0]['msg']}" if field else errors[0]["msg"]
    return _error_response(InvalidInput(message))


@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, exc: OperationalError):
    logger.error(
        f"Database unavailable on {request.method} {request.url.path}: {str(exc)}",
        exc_info=True,
    )
    return _error_response(Unavailable())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    # Log detailed error for debugging (includes stack trace)
    logger.error(
        f"Unhandled exception: {exc.__class__.__name__}: {str(exc)}",
        exc_info=True,  # 告訴logger「把完整的錯誤堆疊都記錄下來」，可以知道錯誤發生在哪裡
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    # Return safe, static message to client (no internal details exposed)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "message": "An unexpected error occurred",
        },
    )
