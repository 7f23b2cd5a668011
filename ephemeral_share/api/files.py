"""
File transfer endpoints.

Three routers share the same gateway operations:

- ``/api/public/files``: anonymous or optionally authenticated access
- ``/api/user/files``: bearer token required; upload, list and delete
- ``/api/files``: upload and download only, for share links issued by the
  web client
"""
from collections.abc import AsyncIterator, Callable
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Response, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ephemeral_share.config import settings
from ephemeral_share.database import get_db, get_session_factory
from ephemeral_share.dependencies.auth import get_current_user, get_optional_user
from ephemeral_share.dependencies.storage import get_storage
from ephemeral_share.logging_config import setup_logging
from ephemeral_share.models.user import User
from ephemeral_share.schemas.files import FileInfoResponse, FileRecordSummary, UploadResponse
from ephemeral_share.services.expiry import reclaim_consumed
from ephemeral_share.services.files import (
    build_upload_request,
    delete_user_file,
    get_file_info,
    list_user_files,
    open_download,
    upload_file,
)
from ephemeral_share.storage.base import StorageBackend

public_router = APIRouter(prefix="/api/public/files", tags=["files"])
user_router = APIRouter(prefix="/api/user/files", tags=["user-files"])
share_router = APIRouter(prefix="/api/files", tags=["files"])

logger = setup_logging()


async def _iter_upload_file(file: UploadFile, chunk_size: int) -> AsyncIterator[bytes]:
    # UploadFile.read()在threadpool中讀取暫存檔，不會阻塞event loop
    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            break
        yield chunk


def _content_disposition(filename: str) -> str:
    # 舊瀏覽器只認得ASCII的filename，新瀏覽器會優先使用RFC 5987的filename*
    fallback = filename.encode("ascii", "ignore").decode().replace('"', "").replace("\\", "")
    fallback = fallback or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


async def _handle_upload(
    file: UploadFile,
    owner: User | None,
    db: Session,
    storage: StorageBackend,
    expires_in_seconds: int | None,
    max_downloads: int | None,
    is_public: bool = True,
) -> UploadResponse:
    request = build_upload_request(
        filename=file.filename,
        owner_id=owner.id if owner else None,
        content_type=file.content_type,
        size_hint=file.size,
        is_public=is_public,
        expires_in_seconds=expires_in_seconds,
        max_downloads=max_downloads,
    )
    try:
        record = await upload_file(
            db,
            storage,
            _iter_upload_file(file, settings.storage_chunk_size),
            request,
        )
    finally:
        await file.close()

    return UploadResponse(uuid=record.id)


async def _handle_download(
    file_id: str,
    requester: User | None,
    background_tasks: BackgroundTasks,
    db: Session,
    storage: StorageBackend,
    session_factory: Callable[[], Session],
) -> StreamingResponse:
    ticket = await open_download(db, storage, file_id, requester.id if requester else None)

    if ticket.exhausted:
        # The blob is only removed once the response body has been sent
        background_tasks.add_task(
            reclaim_consumed,
            ticket.file_id,
            db_session_factory=session_factory,
            storage=storage,
        )

    return StreamingResponse(
        ticket.iter_bytes(),
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": _content_disposition(ticket.filename),
            "Content-Length": str(ticket.size_bytes),
        },
    )


@share_router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
)
@public_router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_public_file(
    file: UploadFile = File(...),
    expires_in_seconds: int | None = Form(None, alias="expiresInSeconds"),
    max_downloads: int | None = Form(None, alias="maxDownloads"),
    user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    """
    Upload a file and get back its id.

    Anonymous uploads are public and always limited: without
    ``expiresInSeconds``/``maxDownloads`` they expire after 5 minutes or 3
    downloads, whichever comes first.

    **Example:**
    ```bash
    curl -X POST http://localhost:8000/api/public/files/upload \\
      -F "file=@report.pdf" \\
      -F "maxDownloads=1"
    ```
    """
    return await _handle_upload(file, user, db, storage, expires_in_seconds, max_downloads)


@share_router.get("/download/{file_id}", status_code=status.HTTP_200_OK)
@public_router.get("/download/{file_id}", status_code=status.HTTP_200_OK)
async def download_public_file(
    file_id: str,
    background_tasks: BackgroundTasks,
    user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """
    Stream a file and count one download.

    Expired and unknown ids both answer 404; private files answer 403 unless
    the bearer token belongs to the owner.
    """
    return await _handle_download(file_id, user, background_tasks, db, storage, session_factory)


@public_router.get(
    "/{file_id}",
    response_model=FileInfoResponse,
    status_code=status.HTTP_200_OK,
)
def get_public_file_info(
    file_id: str,
    user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """File metadata for the download page. Does not count as a download."""
    record = get_file_info(db, file_id, user.id if user else None)
    return FileInfoResponse.from_record(record)


@user_router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_user_file(
    file: UploadFile = File(...),
    expires_in_seconds: int | None = Form(None, alias="expiresInSeconds"),
    max_downloads: int | None = Form(None, alias="maxDownloads"),
    is_public: bool = Form(True, alias="public"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
):
    """
    Upload a file owned by the current user.

    Limits are optional here; a file without limits lives until its owner
    deletes it. ``public=false`` restricts downloads to the owner.
    """
    return await _handle_upload(
        file, user, db, storage, expires_in_seconds, max_downloads, is_public
    )


@user_router.get("/download/{file_id}", status_code=status.HTTP_200_OK)
async def download_user_file(
    file_id: str,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    return await _handle_download(file_id, user, background_tasks, db, storage, session_factory)


@user_router.get(
    "",
    response_model=list[FileRecordSummary],
    status_code=status.HTTP_200_OK,
)
def list_files(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the current user's files that have not been reclaimed yet, newest first."""
    records = list_user_files(db, user.id)
    return [FileRecordSummary.from_record(record) for record in records]


@user_router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    file_id: str,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """
    Expire one of the current user's files immediately.

    The link stops working at once; the bytes are reclaimed after the
    response is sent. Files owned by someone else answer 404.
    """
    delete_user_file(db, file_id, user.id)

    background_tasks.add_task(
        reclaim_consumed,
        file_id,
        db_session_factory=session_factory,
        storage=storage,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
