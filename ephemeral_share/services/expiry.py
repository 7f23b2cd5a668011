"""
Expiry and eviction of file records.

A record moves ACTIVE -> EXPIRED -> DELETED and never back. Every transition
here is a single conditional UPDATE on the current status, so a sweep racing
a download (or another sweep) cannot apply contradictory transitions: the
loser simply matches zero rows.

Reclamation deletes the blob first and marks the row DELETED second. A crash
in between leaves an EXPIRED row without bytes, which the next sweep finishes
without error.
"""
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import and_, delete, or_, select, update

from ephemeral_share.config import settings
from ephemeral_share.database import SessionLocal
from ephemeral_share.dependencies.storage import get_storage
from ephemeral_share.logging_config import setup_logging
from ephemeral_share.models.file_record import FileRecord, FileStatus
from ephemeral_share.services.retry import call_with_retry
from ephemeral_share.storage.base import StorageBackend
from ephemeral_share.utils.datetime import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = setup_logging()


@dataclass
class SweepResult:
    """Counters for one sweep."""

    expired: int = 0
    reclaimed: int = 0
    purged: int = 0
    staged_promoted: int = 0
    staged_discarded: int = 0
    failures: int = 0

    @property
    def changed(self) -> int:
        return (
            self.expired
            + self.reclaimed
            + self.purged
            + self.staged_promoted
            + self.staged_discarded
        )


def _due_condition(now: datetime):
    return or_(
        and_(FileRecord.expires_at.is_not(None), FileRecord.expires_at <= now),
        and_(
            FileRecord.max_downloads.is_not(None),
            FileRecord.download_count >= FileRecord.max_downloads,
        ),
    )


def expire_record(db: "Session", file_id: str, now: datetime | None = None) -> bool:
    """
    Transition one record ACTIVE -> EXPIRED.

    Returns:
        True if this call made the transition, False if the record was not
        ACTIVE (already expired, deleted or missing)
    """
    now = now or utcnow()
    result = db.execute(
        update(FileRecord)
        .where(
            FileRecord.id == file_id,
            FileRecord.status == FileStatus.ACTIVE.value,
        )
        .values(status=FileStatus.EXPIRED.value, expired_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def expire_due_records(
    db: "Session",
    now: datetime | None = None,
    owner_id: int | None = None,
) -> int:
    """
    Expire every ACTIVE record whose clock or download counter ran out.

    Args:
        db: Database session
        now: Reference time (naive UTC), defaults to the current time
        owner_id: Restrict to one owner's records

    Returns:
        Number of records transitioned
    """
    now = now or utcnow()
    stmt = (
        update(FileRecord)
        .where(
            FileRecord.status == FileStatus.ACTIVE.value,
            _due_condition(now),
        )
        .values(status=FileStatus.EXPIRED.value, expired_at=now)
        .execution_options(synchronize_session=False)
    )
    if owner_id is not None:
        stmt = stmt.where(FileRecord.owner_id == owner_id)

    result = db.execute(stmt)
    db.commit()
    return result.rowcount


async def reclaim_record(
    db: "Session",
    storage: StorageBackend,
    file_id: str,
    now: datetime | None = None,
) -> bool:
    """
    Delete the blob of an EXPIRED record, then mark the record DELETED.

    Safe to call repeatedly: a missing blob counts as already reclaimed and
    the status update only matches EXPIRED rows.

    Returns:
        True if the record moved to DELETED in this call
    """
    now = now or utcnow()

    removed = await call_with_retry(
        lambda: storage.delete_blob(file_id),
        description=f"Delete blob {file_id}",
    )
    # A crash between commit and promote can leave a staged copy behind
    await storage.discard_staged(file_id)

    result = db.execute(
        update(FileRecord)
        .where(
            FileRecord.id == file_id,
            FileRecord.status == FileStatus.EXPIRED.value,
        )
        .values(status=FileStatus.DELETED.value, deleted_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    if result.rowcount == 1:
        logger.info(f"Reclaimed file: id={file_id}, blob_removed={removed}")
        return True
    return False


async def reclaim_expired_records(
    db: "Session",
    storage: StorageBackend,
    now: datetime | None = None,
) -> tuple[int, int]:
    """
    Reclaim storage for every EXPIRED record.

    Returns:
        (reclaimed, failures)
    """
    expired_ids = db.execute(
        select(FileRecord.id).where(FileRecord.status == FileStatus.EXPIRED.value)
    ).scalars().all()

    reclaimed = 0
    failures = 0
    for file_id in expired_ids:
        try:
            if await reclaim_record(db, storage, file_id, now):
                reclaimed += 1
        except Exception as e:
            # Leave it EXPIRED, the next sweep tries again
            db.rollback()
            failures += 1
            logger.error(f"Failed to reclaim file {file_id}: {str(e)}")

    return reclaimed, failures


def purge_deleted_records(
    db: "Session",
    now: datetime | None = None,
    retention: timedelta | None = None,
) -> int:
    """
    Remove DELETED rows once their audit retention window has passed.

    Returns:
        Number of rows purged
    """
    now = now or utcnow()
    if retention is None:
        retention = timedelta(hours=settings.DELETED_RETENTION_HOURS)

    result = db.execute(
        delete(FileRecord)
        .where(
            FileRecord.status == FileStatus.DELETED.value,
            FileRecord.deleted_at <= now - retention,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount


async def cleanup_stale_staging(
    db: "Session",
    storage: StorageBackend,
    older_than_seconds: float | None = None,
) -> tuple[int, int]:
    """
    Resolve staged uploads that were never promoted or discarded.

    A staged blob whose ACTIVE record has no final blob is the result of a
    crash between metadata commit and promotion, so it is promoted. Every
    other stale staged blob belongs to an upload that never committed and is
    discarded.

    Returns:
        (promoted, discarded)
    """
    if older_than_seconds is None:
        older_than_seconds = settings.STAGING_MAX_AGE_SECONDS

    promoted = 0
    discarded = 0
    for key in await storage.list_staged(older_than_seconds):
        record = db.get(FileRecord, key)
        if (
            record is not None
            and record.status == FileStatus.ACTIVE
            and not storage.blob_exists(key)
        ):
            logger.info(f"Promoting stale staged blob for committed file {key}")
            await storage.promote(key)
            promoted += 1
        else:
            logger.info(f"Discarding orphaned staged blob {key}")
            await storage.discard_staged(key)
            discarded += 1

    return promoted, discarded


async def run_sweep(
    db: "Session | None" = None,
    storage: StorageBackend | None = None,
    now: datetime | None = None,
) -> SweepResult:
    """
    Run one full expiry sweep.

    Each step is isolated: a failing step is logged and counted, and the
    remaining steps still run.

    Args:
        db: Optional database session. If not provided, creates a new one.
        storage: Optional storage backend. If not provided, uses get_storage().
        now: Reference time (naive UTC), defaults to the current time
    """
    close_db = False
    if db is None:
        db = SessionLocal()
        close_db = True

    if storage is None:
        storage = get_storage()

    now = now or utcnow()
    result = SweepResult()

    try:
        try:
            result.expired = expire_due_records(db, now)
        except Exception as e:
            db.rollback()
            result.failures += 1
            logger.error(f"Expiry step failed: {str(e)}", exc_info=True)

        reclaimed, failures = await reclaim_expired_records(db, storage, now)
        result.reclaimed = reclaimed
        result.failures += failures

        try:
            result.purged = purge_deleted_records(db, now)
        except Exception as e:
            db.rollback()
            result.failures += 1
            logger.error(f"Purge step failed: {str(e)}", exc_info=True)

        try:
            promoted, discarded = await cleanup_stale_staging(db, storage)
            result.staged_promoted = promoted
            result.staged_discarded = discarded
        except Exception as e:
            db.rollback()
            result.failures += 1
            logger.error(f"Staging cleanup failed: {str(e)}", exc_info=True)

    finally:
        if close_db:
            db.close()

    if result.changed or result.failures:
        logger.info(
            f"Sweep finished: expired={result.expired}, reclaimed={result.reclaimed}, "
            f"purged={result.purged}, staged_promoted={result.staged_promoted}, "
            f"staged_discarded={result.staged_discarded}, failures={result.failures}"
        )
    return result


async def reclaim_consumed(
    file_id: str,
    db_session_factory: Callable[[], "Session"] = SessionLocal,
    storage: StorageBackend | None = None,
) -> None:
    """
    Eagerly reclaim a record whose last allowed download was just served.

    Runs as a FastAPI background task after the response body is sent, so
    the in-flight download has finished reading before the blob goes away.
    Errors are logged only; the periodic sweep is the fallback.
    """
    db = db_session_factory()
    storage = storage or get_storage()

    try:
        await reclaim_record(db, storage, file_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Eager reclaim failed for file {file_id}: {str(e)}", exc_info=True)
    finally:
        db.close()
