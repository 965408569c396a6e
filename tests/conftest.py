import pytest

from mindtree.database import DatabaseManager


@pytest.fixture
def db():
    """Initialized in-memory database."""
    with DatabaseManager(":memory:") as manager:
        manager.initialize_database()
        yield manager
