import pytest
from docrecord import Database, MemoryConnection, SqliteConnection
from docrecord import configure, reset_database


def _sqlite():
    return SqliteConnection(":memory:")


@pytest.fixture(params=[MemoryConnection, _sqlite], ids=["memory", "sqlite"])
def database(request):
    """process-wide database, on each storage backend"""
    db = Database(request.param(), "testdb")
    configure(db)
    yield db
    reset_database()
    db.connection.close()


@pytest.fixture
def memory_database():
    db = Database(MemoryConnection(), "testdb")
    configure(db)
    yield db
    reset_database()
