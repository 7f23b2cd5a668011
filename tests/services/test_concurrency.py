"""
Concurrent downloads against a download-limited file.

Each downloader runs in its own thread with its own session and connection,
so the only thing preventing overshoot is the conditional UPDATE.
"""
import asyncio
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ephemeral_share.database import Base
from ephemeral_share.errors import Expired, NotFound
from ephemeral_share.models.file_record import FileRecord, FileStatus
from ephemeral_share.services.files import build_upload_request, open_download, upload_file
from tests.helpers import stream_bytes

MAX_DOWNLOADS = 3
EXTRA_REQUESTERS = 5


@pytest.fixture
def race_session_factory(tmp_path):
    # A dedicated file database: the shared test connection holds an open
    # transaction that would block writers from other connections
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    yield factory

    engine.dispose()


def test_concurrent_downloads_never_exceed_limit(race_session_factory, storage):
    data = b"race condition payload"

    setup_db = race_session_factory()
    try:
        request = build_upload_request(
            filename="race.txt", owner_id=None, max_downloads=MAX_DOWNLOADS
        )
        record = asyncio.run(upload_file(setup_db, storage, stream_bytes(data), request))
        file_id = record.id
    finally:
        setup_db.close()

    barrier = threading.Barrier(MAX_DOWNLOADS + EXTRA_REQUESTERS)
    results = []
    results_lock = threading.Lock()

    def download():
        db = race_session_factory()
        try:
            barrier.wait()

            async def attempt():
                ticket = await open_download(db, storage, file_id)
                return await ticket.read_all()

            outcome = asyncio.run(attempt())
        except (Expired, NotFound) as e:
            outcome = e
        finally:
            db.close()

        with results_lock:
            results.append(outcome)

    threads = [
        threading.Thread(target=download)
        for _ in range(MAX_DOWNLOADS + EXTRA_REQUESTERS)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    successes = [r for r in results if isinstance(r, bytes)]
    rejections = [r for r in results if isinstance(r, (Expired, NotFound))]

    assert len(results) == MAX_DOWNLOADS + EXTRA_REQUESTERS
    assert len(successes) == MAX_DOWNLOADS
    assert all(body == data for body in successes)
    assert len(rejections) == EXTRA_REQUESTERS

    check_db = race_session_factory()
    try:
        final = check_db.get(FileRecord, file_id)
        assert final.download_count == MAX_DOWNLOADS
        assert final.status == FileStatus.EXPIRED
    finally:
        check_db.close()
