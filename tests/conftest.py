import os
import tempfile
from pathlib import Path

# Settings are read at import time, so the test environment must be in place
# before anything from ephemeral_share is imported
_TEST_DIR = tempfile.mkdtemp(prefix="ephemeral_share_tests_")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TEST_DIR, 'test.db')}")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-ephemeral-share")
os.environ.setdefault("STORAGE_BASE_PATH", os.path.join(_TEST_DIR, "blobs"))
os.environ["ENABLE_EXPIRY_SWEEP"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from ephemeral_share.database import Base, SessionLocal, engine, get_db, get_session_factory  # noqa: E402
from ephemeral_share.dependencies.storage import get_storage  # noqa: E402
from ephemeral_share.main import app  # noqa: E402
from ephemeral_share.models.user import User  # noqa: E402
from ephemeral_share.services.auth import hash_password  # noqa: E402
from ephemeral_share.storage.local import LocalStorageBackend  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Upper bound for blobs written by tests; keeps oversize tests cheap
TEST_MAX_SIZE_BYTES = 1024 * 1024


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Run Alembic migrations at the start of the test session."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))

    # Run all migrations to head
    # This ensures migrations are tested and matches production environment
    command.upgrade(alembic_cfg, "head")

    yield

    try:
        command.downgrade(alembic_cfg, "base")
    except Exception:
        # If downgrade fails, fall back to drop_all and reset Alembic version state
        Base.metadata.drop_all(bind=engine)
        try:
            command.stamp(alembic_cfg, "base")
        except Exception:
            pass


@pytest.fixture
def db():
    """Each test uses an independent transaction that gets rolled back after."""
    connection = engine.connect()
    transaction = connection.begin()
    session = SessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def storage(tmp_path):
    return LocalStorageBackend(base_path=str(tmp_path / "blobs"), max_size_bytes=TEST_MAX_SIZE_BYTES)


@pytest.fixture
def client(db, storage):
    """Test client with database, storage and background session overrides."""

    def override_get_db():
        yield db

    def override_get_storage():
        return storage

    def override_get_session_factory():
        # Background reclaim must see the rows of the test transaction
        return lambda: db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = override_get_storage
    app.dependency_overrides[get_session_factory] = override_get_session_factory
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def test_user(db):
    user = User(
        username="alice",
        email="alice@example.com",
        hashed_password=hash_password("password123"),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db):
    user = User(
        username="bob",
        email="bob@example.com",
        hashed_password=hash_password("password123"),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
