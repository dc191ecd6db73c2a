"""
Unit tests for the database connection pool wrapper

The psycopg_pool ConnectionPool is patched out; see
tests/integration/test_record_resolver_postgres.py for the real database.
"""
from unittest.mock import MagicMock, patch

import psycopg
import pytest

from profile_sync.core.errors import DatabaseError
from profile_sync.warehouse.connection import DatabaseConnectionPool

POOL_CLASS = "profile_sync.warehouse.connection.ConnectionPool"


def test_database_name_overrides_uri():
    pool = DatabaseConnectionPool(uri="postgresql://u:p@db:5432/other", database="app")

    assert "dbname=app" in pool.conninfo
    assert "connect_timeout=30" in pool.conninfo


def test_empty_uri_rejected():
    with pytest.raises(ValueError):
        DatabaseConnectionPool(uri="")


def test_open_retries_then_raises():
    with patch(POOL_CLASS) as pool_cls, patch("profile_sync.warehouse.connection.time.sleep") as sleep:
        pool_cls.return_value.open.side_effect = psycopg.OperationalError("refused")
        pool = DatabaseConnectionPool(uri="postgresql://u:p@db/app")

        with pytest.raises(DatabaseError) as exc_info:
            pool.open(max_retries=3, retry_delay=0.5)

    assert pool_cls.return_value.open.call_count == 3
    assert sleep.call_count == 2
    assert "after 3 attempts" in str(exc_info.value)


def test_open_succeeds_after_transient_failure():
    with patch(POOL_CLASS) as pool_cls, patch("profile_sync.warehouse.connection.time.sleep"):
        pool_cls.return_value.open.side_effect = [psycopg.OperationalError("starting up"), None]
        pool = DatabaseConnectionPool(uri="postgresql://u:p@db/app")

        pool.open()

    assert pool._pool is pool_cls.return_value


def test_context_manager_opens_and_closes():
    with patch(POOL_CLASS) as pool_cls:
        with DatabaseConnectionPool(uri="postgresql://u:p@db/app") as pool:
            assert pool._pool is not None

    pool_cls.return_value.close.assert_called_once()
    assert pool._pool is None


def test_connection_requires_open_pool():
    pool = DatabaseConnectionPool(uri="postgresql://u:p@db/app")

    with pytest.raises(RuntimeError):
        with pool.get_connection():
            pass


def test_query_error_wrapped():
    with patch(POOL_CLASS) as pool_cls:
        cursor = MagicMock()
        cursor.execute.side_effect = psycopg.ProgrammingError("relation does not exist")
        conn = pool_cls.return_value.connection.return_value.__enter__.return_value
        conn.cursor.return_value.__enter__.return_value = cursor

        with DatabaseConnectionPool(uri="postgresql://u:p@db/app") as pool:
            with pytest.raises(DatabaseError):
                pool.execute_query("SELECT * FROM missing")
