"""
Upload/download gateway.

Upload pairs a blob write with a metadata insert at the application level:

    1. stream bytes into a staging key (byte-counted, aborts past the limit)
    2. commit the FileRecord
    3. promote the staged blob to its final key

If step 2 fails the staged blob is discarded; if step 3 fails the record is
removed again. Either way no orphaned blob or record is left behind.

Download checks metadata, opens the blob, then consumes one download with a
single conditional UPDATE that increments the counter and, when the limit is
reached, expires the record in the same statement.
"""
import asyncio
import hashlib
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timedelta

from pydantic import ValidationError
from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ephemeral_share.config import settings
from ephemeral_share.errors import (
    Conflict,
    Corrupt,
    Expired,
    InvalidInput,
    NotFound,
    PayloadTooLarge,
    Unavailable,
)
from ephemeral_share.logging_config import setup_logging
from ephemeral_share.models.file_record import FileRecord, FileStatus
from ephemeral_share.schemas.files import UploadRequest
from ephemeral_share.services.access import authorize_download, authorize_owner
from ephemeral_share.services.expiry import expire_due_records, expire_record
from ephemeral_share.services.retry import call_with_retry
from ephemeral_share.storage.base import BlobHandle, StorageBackend
from ephemeral_share.storage.exceptions import (
    BlobNotFoundError,
    ChecksumMismatchError,
    FileSizeExceededError,
    StorageUnavailableError,
)
from ephemeral_share.utils.datetime import utcnow

logger = setup_logging()

MAX_ID_ATTEMPTS = 5


def build_upload_request(
    filename: str | None,
    owner_id: int | None,
    content_type: str | None = None,
    size_hint: int | None = None,
    is_public: bool = True,
    expires_in_seconds: int | None = None,
    max_downloads: int | None = None,
) -> UploadRequest:
    """
    Validate raw upload parameters and apply the expiry policy.

    Anonymous uploads are always public and always bounded: when neither
    limit is given they get the default TTL and download count, and their
    TTL is capped. Authenticated uploads may have no limits at all.

    Raises:
        InvalidInput: On any invalid field
    """
    try:
        request = UploadRequest(
            filename=filename or "",
            content_type=content_type or "application/octet-stream",
            size_hint=size_hint,
            owner_id=owner_id,
            is_public=is_public,
            expires_in_seconds=expires_in_seconds,
            max_downloads=max_downloads,
        )
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise InvalidInput(f"{field}: {error['msg']}") from e

    if request.max_downloads is not None and request.max_downloads > settings.MAX_DOWNLOADS_LIMIT:
        raise InvalidInput(
            f"max_downloads must not exceed {settings.MAX_DOWNLOADS_LIMIT}"
        )
    if request.expires_in_seconds is not None and request.expires_in_seconds > settings.MAX_TTL_SECONDS:
        raise InvalidInput(
            f"expires_in_seconds must not exceed {settings.MAX_TTL_SECONDS}"
        )

    if request.owner_id is None:
        request.is_public = True
        if request.expires_in_seconds is None and request.max_downloads is None:
            request.expires_in_seconds = settings.ANONYMOUS_DEFAULT_TTL_SECONDS
            request.max_downloads = settings.ANONYMOUS_DEFAULT_MAX_DOWNLOADS
        if request.expires_in_seconds is not None:
            request.expires_in_seconds = min(
                request.expires_in_seconds, settings.ANONYMOUS_MAX_TTL_SECONDS
            )

    return request


def _is_valid_file_id(file_id: str) -> bool:
    try:
        return str(uuid.UUID(file_id)) == file_id.lower()
    except (ValueError, AttributeError):
        return False


def _allocate_file_id(db: Session) -> str:
    for _ in range(MAX_ID_ATTEMPTS):
        candidate = str(uuid.uuid4())
        if db.get(FileRecord, candidate) is None:
            return candidate
        logger.warning(f"File id collision on {candidate}, regenerating")
    raise Conflict()


async def upload_file(
    db: Session,
    storage: StorageBackend,
    file_stream: AsyncIterator[bytes],
    request: UploadRequest,
) -> FileRecord:
    """
    Store an uploaded stream and create its FileRecord.

    Args:
        db: Database session
        storage: Blob storage backend
        file_stream: Async iterator yielding the file bytes
        request: Validated upload parameters (see build_upload_request)

    Returns:
        The committed FileRecord (status ACTIVE)

    Raises:
        PayloadTooLarge: Size hint or actual stream above the storage limit
        InvalidInput: Empty file
        Conflict: Could not allocate a unique id
        Unavailable: Storage or database unavailable, or upload timed out
    """
    max_size = storage.max_size_bytes
    if request.size_hint is not None and request.size_hint > max_size:
        raise PayloadTooLarge()

    file_id = _allocate_file_id(db)

    # 1. Stage the bytes
    try:
        staged = await asyncio.wait_for(
            storage.write_staged(file_id, file_stream, max_size),
            timeout=settings.UPLOAD_TIMEOUT_SECONDS,
        )
    except FileSizeExceededError as e:
        logger.warning(
            f"Upload rejected: file_id={file_id}, filename={request.filename}, "
            f"reason=too_large, limit={max_size}"
        )
        raise PayloadTooLarge() from e
    except asyncio.TimeoutError as e:
        await storage.discard_staged(file_id)
        logger.warning(f"Upload timed out: file_id={file_id}, filename={request.filename}")
        raise Unavailable("Upload timed out") from e
    except StorageUnavailableError as e:
        logger.error(f"Upload staging failed: file_id={file_id}, error={str(e)}")
        raise Unavailable() from e
    except BaseException:
        # Stream aborted by the client or cancelled: nothing may survive
        await storage.discard_staged(file_id)
        raise

    if staged.size_bytes == 0:
        await storage.discard_staged(file_id)
        raise InvalidInput("File is empty")

    # 2. Commit metadata
    now = utcnow()
    record = FileRecord(
        id=file_id,
        filename=request.filename,
        content_type=request.content_type,
        size_bytes=staged.size_bytes,
        checksum=staged.checksum,
        owner_id=request.owner_id,
        is_public=request.is_public,
        uploaded_at=now,
        expires_at=(
            now + timedelta(seconds=request.expires_in_seconds)
            if request.expires_in_seconds is not None
            else None
        ),
        max_downloads=request.max_downloads,
        download_count=0,
        status=FileStatus.ACTIVE.value,
    )

    def _commit_record():
        db.add(record)
        db.commit()

    try:
        await call_with_retry(
            _commit_record,
            description=f"Insert file record {file_id}",
            on_retry=db.rollback,
        )
    except IntegrityError as e:
        db.rollback()
        await storage.discard_staged(file_id)
        logger.warning(f"File id {file_id} taken at insert time")
        raise Conflict() from e
    except BaseException:
        db.rollback()
        await storage.discard_staged(file_id)
        raise

    # 3. Promote the blob
    try:
        await call_with_retry(
            lambda: storage.promote(file_id),
            description=f"Promote blob {file_id}",
        )
    except (Unavailable, BlobNotFoundError) as e:
        logger.error(f"Promotion failed, rolling back upload {file_id}: {str(e)}")
        _remove_record(db, record)
        await storage.discard_staged(file_id)
        raise Unavailable() from e

    logger.info(
        f"File uploaded: id={file_id}, size={staged.size_bytes}, owner_id={request.owner_id}, "
        f"expires_at={record.expires_at}, max_downloads={record.max_downloads}"
    )
    return record


def _remove_record(db: Session, record: FileRecord) -> None:
    try:
        db.delete(record)
        db.commit()
    except Exception as e:
        db.rollback()
        # The record keeps pointing at a missing blob, which downloads report
        # as NotFound; expire it so the sweep clears it
        logger.error(f"Failed to remove record {record.id} after rollback: {str(e)}")
        expire_record(db, record.id)


def _get_servable_record(db: Session, file_id: str, now: datetime) -> FileRecord:
    """
    Load a record that may currently be served.

    Raises:
        NotFound: Unknown id, or the record is not ACTIVE
        Expired: The time limit has passed (the record is expired lazily)
    """
    if not _is_valid_file_id(file_id):
        raise NotFound()

    record = db.get(FileRecord, file_id, populate_existing=True)
    if record is None or record.status != FileStatus.ACTIVE:
        raise NotFound()

    if record.expires_at is not None and record.expires_at <= now:
        expire_record(db, file_id, now)
        logger.info(f"File expired on access: id={file_id}")
        raise Expired()

    if record.max_downloads is not None and record.download_count >= record.max_downloads:
        raise NotFound()

    return record


async def _open_blob(storage: StorageBackend, file_id: str) -> BlobHandle:
    try:
        return await call_with_retry(
            lambda: storage.open_blob(file_id),
            description=f"Open blob {file_id}",
        )
    except BlobNotFoundError as e:
        # Reclaimed by the sweep, or never promoted
        logger.warning(f"Blob missing for file {file_id}")
        raise NotFound() from e


async def _consume_download(db: Session, record: FileRecord, now: datetime) -> bool:
    """
    Atomically count one download.

    The UPDATE only matches an ACTIVE, unexpired record below its limit, and
    flips it to EXPIRED when this download reaches the limit. SET expressions
    see the pre-update row, so ``download_count + 1`` is the new count.

    Returns:
        True if this download used up the last allowed download

    Raises:
        Expired: The time limit passed concurrently
        NotFound: The limit was reached (or the record left ACTIVE) concurrently
    """
    file_id = record.id
    new_count = FileRecord.download_count + 1
    reaches_limit = and_(
        FileRecord.max_downloads.is_not(None),
        new_count >= FileRecord.max_downloads,
    )

    stmt = (
        update(FileRecord)
        .where(
            FileRecord.id == file_id,
            FileRecord.status == FileStatus.ACTIVE.value,
            or_(FileRecord.expires_at.is_(None), FileRecord.expires_at > now),
            or_(
                FileRecord.max_downloads.is_(None),
                FileRecord.download_count < FileRecord.max_downloads,
            ),
        )
        .values(
            download_count=new_count,
            status=case(
                (reaches_limit, FileStatus.EXPIRED.value),
                else_=FileRecord.status,
            ),
            expired_at=case((reaches_limit, now), else_=FileRecord.expired_at),
        )
        .execution_options(synchronize_session=False)
    )

    def _run() -> int:
        result = db.execute(stmt)
        db.commit()
        return result.rowcount

    rowcount = await call_with_retry(
        _run,
        description=f"Consume download of {file_id}",
        on_retry=db.rollback,
    )

    current = db.get(FileRecord, file_id, populate_existing=True)
    if current is None:
        raise NotFound()
    if rowcount == 0:
        if current.expires_at is not None and current.expires_at <= now:
            raise Expired()
        raise NotFound()

    return current.status == FileStatus.EXPIRED


@dataclass
class DownloadTicket:
    """An authorized, already counted download, ready to stream."""

    file_id: str
    filename: str
    content_type: str
    size_bytes: int
    checksum: str
    handle: BlobHandle
    exhausted: bool

    async def iter_bytes(
        self,
        chunk_size: int | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[bytes]:
        """
        Stream the blob, verifying size and checksum at the end.

        Raises:
            Unavailable: The deadline passed or storage failed mid-stream
            Corrupt: The bytes do not match the recorded checksum
        """
        chunk_size = chunk_size or settings.storage_chunk_size
        timeout = timeout if timeout is not None else settings.DOWNLOAD_TIMEOUT_SECONDS

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        digest = hashlib.sha256()
        sent = 0
        chunks = self.handle.iter_chunks(chunk_size)

        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                chunk = await asyncio.wait_for(anext(chunks, b""), timeout=remaining)
                if not chunk:
                    break
                digest.update(chunk)
                sent += len(chunk)
                yield chunk

            actual = digest.hexdigest()
            if sent != self.size_bytes or actual != self.checksum:
                raise ChecksumMismatchError(self.file_id, self.checksum, actual)

        except asyncio.TimeoutError as e:
            logger.warning(f"Download timed out: id={self.file_id}, bytes_sent={sent}")
            raise Unavailable("Download timed out") from e
        except StorageUnavailableError as e:
            logger.error(f"Download read failed: id={self.file_id}, error={str(e)}")
            raise Unavailable() from e
        except ChecksumMismatchError as e:
            logger.error(
                f"Checksum mismatch: id={self.file_id}, expected={e.expected}, "
                f"actual={e.actual}, bytes_sent={sent}"
            )
            raise Corrupt() from e
        finally:
            await chunks.aclose()
            await self.handle.close()

    async def read_all(self) -> bytes:
        """Collect the whole blob. Meant for small files and tests."""
        return b"".join([chunk async for chunk in self.iter_bytes()])


async def open_download(
    db: Session,
    storage: StorageBackend,
    file_id: str,
    requester_id: int | None = None,
) -> DownloadTicket:
    """
    Authorize and count one download of ``file_id``.

    The blob handle is opened before the download is counted, so a missing
    blob never consumes a download and a concurrent reclaim cannot pull the
    bytes out from under a counted download.

    Args:
        db: Database session
        storage: Blob storage backend
        file_id: File record id (UUID string)
        requester_id: Authenticated user id, None for anonymous requests

    Returns:
        DownloadTicket; the caller must stream or close it

    Raises:
        NotFound, Expired, Forbidden, Corrupt, Unavailable
    """
    now = utcnow()
    record = _get_servable_record(db, file_id, now)
    authorize_download(record, requester_id)

    handle = await _open_blob(storage, file_id)
    try:
        if handle.size_bytes != record.size_bytes:
            logger.error(
                f"Blob size mismatch: id={file_id}, expected={record.size_bytes}, "
                f"actual={handle.size_bytes}"
            )
            raise Corrupt()

        ticket = DownloadTicket(
            file_id=record.id,
            filename=record.filename,
            content_type=record.content_type,
            size_bytes=record.size_bytes,
            checksum=record.checksum,
            handle=handle,
            exhausted=False,
        )
        ticket.exhausted = await _consume_download(db, record, now)
    except BaseException:
        await handle.close()
        raise

    logger.info(
        f"File download: id={file_id}, requester_id={requester_id}, "
        f"download_count={record.download_count}, exhausted={ticket.exhausted}"
    )
    return ticket


def get_file_info(
    db: Session,
    file_id: str,
    requester_id: int | None = None,
) -> FileRecord:
    """
    Return a servable record without consuming a download.

    Raises:
        NotFound, Expired, Forbidden
    """
    record = _get_servable_record(db, file_id, utcnow())
    authorize_download(record, requester_id)
    return record


def list_user_files(db: Session, owner_id: int) -> list[FileRecord]:
    """
    List the owner's ACTIVE and EXPIRED records, newest first.

    Records whose limits ran out since the last sweep are expired first so
    their status is current.
    """
    expire_due_records(db, owner_id=owner_id)

    return list(
        db.execute(
            select(FileRecord)
            .options(selectinload(FileRecord.owner))
            .where(
                FileRecord.owner_id == owner_id,
                FileRecord.status.in_(
                    [FileStatus.ACTIVE.value, FileStatus.EXPIRED.value]
                ),
            )
            .order_by(FileRecord.uploaded_at.desc())
            .execution_options(populate_existing=True)
        ).scalars().all()
    )


def delete_user_file(db: Session, file_id: str, owner_id: int) -> bool:
    """
    Expire an owned file ahead of its limits.

    Returns:
        True if the record was ACTIVE and is now EXPIRED, False if it had
        already expired (reclamation is still due in both cases)

    Raises:
        NotFound: Unknown id, already deleted, or not owned by ``owner_id``
    """
    if not _is_valid_file_id(file_id):
        raise NotFound()

    record = db.get(FileRecord, file_id, populate_existing=True)
    if record is None or record.status == FileStatus.DELETED:
        raise NotFound()

    authorize_owner(record, owner_id)

    transitioned = expire_record(db, file_id)
    logger.info(f"File deleted by owner: id={file_id}, owner_id={owner_id}")
    return transitioned


__all__ = [
    "DownloadTicket",
    "build_upload_request",
    "delete_user_file",
    "get_file_info",
    "list_user_files",
    "open_download",
    "upload_file",
]
