"""
ConnectionPool - Thread-safe psycopg2 connection pooling.

Wraps psycopg2's ThreadedConnectionPool and translates driver failures
into StorageError so callers deal with one error type.
"""

from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

import psycopg2
import psycopg2.pool

from src.utils.logging import get_logger
from src.utils.rbac.errors import StorageError

logger = get_logger(__name__)


class ConnectionPool:
    """
    Shared pool of PostgreSQL connections.

    Example:
        >>> pool = ConnectionPool(connection_params={'host': 'localhost', ...})
        >>> with pool.connection() as conn:
        ...     with conn.cursor() as cursor:
        ...         cursor.execute("SELECT 1")
    """

    def __init__(
        self,
        connection_params: Optional[Dict[str, Any]] = None,
        dsn: Optional[str] = None,
        min_conn: int = 1,
        max_conn: int = 10,
    ):
        """
        Create the pool.

        Args:
            connection_params: Dict with host, port, database, user, password
            dsn: libpq connection string (e.g. DATABASE_URL); used if given
            min_conn: Connections opened up front
            max_conn: Upper bound on open connections

        Raises:
            ValueError: If neither connection_params nor dsn is provided
            StorageError: If the database cannot be reached
        """
        if not connection_params and not dsn:
            raise ValueError("Either dsn or connection_params must be provided")

        try:
            if dsn:
                self._pool = psycopg2.pool.ThreadedConnectionPool(min_conn, max_conn, dsn=dsn)
            else:
                self._pool = psycopg2.pool.ThreadedConnectionPool(min_conn, max_conn, **connection_params)
        except psycopg2.Error as e:
            raise StorageError(f"Could not connect to PostgreSQL: {e}") from e

        logger.info("Connection pool created (min=%d, max=%d)", min_conn, max_conn)

    def get_connection(self) -> psycopg2.extensions.connection:
        """
        Borrow a connection. Must be returned with release_connection().

        Raises:
            StorageError: If the pool is closed or exhausted, or the server is gone
        """
        if self._pool is None:
            raise StorageError("Connection pool is closed")
        try:
            return self._pool.getconn()
        except psycopg2.Error as e:
            raise StorageError(f"Could not acquire a database connection: {e}") from e

    def release_connection(self, conn) -> None:
        """Return a borrowed connection to the pool."""
        if self._pool is not None:
            self._pool.putconn(conn)

    @contextmanager
    def connection(self) -> Generator[psycopg2.extensions.connection, None, None]:
        """Context manager that borrows and always returns a connection."""
        conn = self.get_connection()
        try:
            yield conn
        finally:
            self.release_connection(conn)

    def health_check(self) -> bool:
        """Run SELECT 1; False if the database does not answer."""
        try:
            with self.connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute("SELECT 1")
                    cursor.fetchone()
            return True
        except (StorageError, psycopg2.Error) as e:
            logger.error("Database health check failed: %s", e)
            return False

    def close(self) -> None:
        """Close every connection in the pool."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("Connection pool closed")
