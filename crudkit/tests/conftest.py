import os
import sys
import pytest
from pathlib import Path

# Ensure project root on sys.path
_THIS_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _THIS_DIR.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


@pytest.fixture(scope="session")
def tmp_db_path(tmp_path_factory):
    path = tmp_path_factory.mktemp("db") / "crudkit_test.db"
    # Point crudkit to this temp DB
    os.environ["CRUDKIT_DB_PATH"] = str(path)
    return str(path)


@pytest.fixture(scope="session")
def db(tmp_db_path):
    from crudkit.db import Database, ensure_schema
    from crudkit.logs import ensure_log_schema
    database = Database(tmp_db_path)
    ensure_schema(database)
    ensure_log_schema(database)
    return database


@pytest.fixture()
def client(db):
    from fastapi.testclient import TestClient
    from crudkit.api import create_app
    return TestClient(create_app(db))


@pytest.fixture(autouse=True)
def _clean_db(db, tmp_db_path):
    # Clean tables before each test for isolation
    # Safety: ensure we only ever wipe the temp DB, never a real one
    assert db.path == tmp_db_path, "Refusing to clean non-temp DB"
    with db.connect() as conn:
        for t in ("books", "authors", "operation_log", "sqlite_sequence"):
            conn.execute(f"DELETE FROM {t}")
    yield


@pytest.fixture()
def seed(db):
    """两位作者 + 三本书"""
    with db.connect() as conn:
        conn.execute("INSERT INTO authors (id, name, bio) VALUES (1, 'Alice', 'poet')")
        conn.execute("INSERT INTO authors (id, name, bio) VALUES (2, 'Bob', NULL)")
        conn.execute("INSERT INTO books (id, title, author_id) VALUES (1, 'Verses', 1)")
        conn.execute("INSERT INTO books (id, title, author_id) VALUES (2, 'More Verses', 1)")
        conn.execute("INSERT INTO books (id, title, author_id) VALUES (3, 'Manual', 2)")
    return db
