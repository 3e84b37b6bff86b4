import pytest

from sqlitekit.config import DriverConfig
from sqlitekit.connection import MEMORY, connect


@pytest.fixture()
def config():
    # Explicit defaults so SQLITEKIT_* variables in the caller's shell don't leak in.
    return DriverConfig()


@pytest.fixture()
def db(config):
    conn = connect(MEMORY, config=config)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture()
def file_db(tmp_path, config):
    conn = connect(str(tmp_path / 'test.db'), config=config)
    try:
        yield conn
    finally:
        conn.close()
