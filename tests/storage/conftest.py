"""
Conftest for storage tests - minimal setup without database.
"""
import pytest


# Storage tests only touch tmp_path, override the database fixtures
@pytest.fixture(scope="session")
def setup_database():
    """Skip database setup for storage tests."""
    pass


@pytest.fixture
def db():
    """Skip database fixture for storage tests."""
    yield None
