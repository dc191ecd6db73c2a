"""
PostgreSQL connection management using psycopg3

A run holds one small pool for its whole lifetime; the pool is opened when
the resolution stage starts and closed unconditionally when it ends.
"""
import time
from contextlib import contextmanager

import psycopg
from psycopg import OperationalError
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from ..core.errors import DatabaseError
from ..observability.logger import get_logger

logger = get_logger(__name__)


class DatabaseConnectionPool:
    """
    PostgreSQL connection pool manager using psycopg3

    Rows are returned as dictionaries so they can be used directly as
    authoritative records.
    """

    def __init__(
        self,
        uri: str,
        database: str | None = None,
        min_size: int = 1,
        max_size: int = 1,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize database connection pool

        Args:
            uri: Connection string (URI or key=value form)
            database: Database name, overriding any name in the URI
            min_size: Minimum pool size
            max_size: Maximum pool size
            timeout: Connection timeout in seconds
        """
        if not uri:
            raise ValueError("Database connection string must be provided.")

        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout

        overrides = {"connect_timeout": int(self.timeout)}
        if database:
            overrides["dbname"] = database
        self.conninfo = make_conninfo(uri, **overrides)

        self._pool: ConnectionPool | None = None

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the connection pool with retry logic.

        Args:
            max_retries: Maximum number of connection attempts
            retry_delay: Delay between retries in seconds

        Raises:
            DatabaseError: If connection fails after all retries
        """
        if self._pool is not None:
            return

        for attempt in range(1, max_retries + 1):
            pool = ConnectionPool(
                conninfo=self.conninfo,
                min_size=self.min_size,
                max_size=self.max_size,
                timeout=self.timeout,
                kwargs={"row_factory": dict_row},  # Return rows as dictionaries
                open=False,
            )
            try:
                pool.open(wait=True, timeout=self.timeout)
            except OperationalError as e:
                pool.close()
                logger.warning(
                    f"Database connection attempt {attempt}/{max_retries} failed: {e}"
                )
                if attempt < max_retries:
                    time.sleep(retry_delay)
                    continue
                raise DatabaseError(
                    f"Failed to connect to database after {max_retries} attempts: {e}"
                ) from e
            self._pool = pool
            return

    def close(self) -> None:
        """Close the connection pool"""
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self):
        """
        Get a connection from the pool

        Yields:
            psycopg.Connection: Database connection

        Raises:
            RuntimeError: If pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def get_cursor(self):
        """
        Get a cursor from a pooled connection

        Yields:
            psycopg.Cursor: Database cursor
        """
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                yield cur

    def execute_query(self, query, params: tuple | None = None) -> list[dict]:
        """
        Execute a SELECT query and return results

        Args:
            query: SQL text or psycopg.sql.Composed query
            params: Query parameters (optional)

        Returns:
            List of dictionaries (one per row)

        Raises:
            DatabaseError: If the query fails
        """
        try:
            with self.get_cursor() as cur:
                cur.execute(query, params)
                return cur.fetchall()
        except psycopg.Error as e:
            logger.error(f"Database query failed: {e}")
            raise DatabaseError(f"Database query failed: {e}") from e

    def __enter__(self):
        """Context manager entry"""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.close()
        return False
