"""
PostgreSQL Service Factory - one pool, shared by the role and user services.

The factory is owned by the process entry point (the web app runner or a
CLI command) and used as a context manager so the pool is released on
shutdown however the process exits. There is no module-level instance.
"""
from typing import Any, Dict, Mapping, NamedTuple, Optional
import os

from src.utils.connection_pool import ConnectionPool
from src.utils.env import read_secret
from src.utils.logging import get_logger
from src.utils.role_service import RoleService
from src.utils.user_service import UserService

logger = get_logger(__name__)


class DatabaseSettings(NamedTuple):
    """Where and how to connect; exactly one of dsn / connection_params is set."""
    dsn: Optional[str]
    connection_params: Optional[Dict[str, Any]]
    pool_min_conn: int
    pool_max_conn: int


def database_settings_from_env(
    env: Optional[Mapping[str, str]] = None,
    password_override: Optional[str] = None,
) -> DatabaseSettings:
    """
    Resolve connection settings.

    DATABASE_URL (or DATABASE_URL_FILE) wins. Otherwise PGHOST, PGPORT,
    PGDATABASE, PGUSER and PG_PASSWORD are read, falling back to the
    POSTGRES_* names used by the postgres container image.
    """
    env = os.environ if env is None else env
    pool_min_conn = int(env.get('PG_POOL_MIN', 1))
    pool_max_conn = int(env.get('PG_POOL_MAX', 10))

    dsn = read_secret('DATABASE_URL', env)
    if dsn:
        return DatabaseSettings(dsn, None, pool_min_conn, pool_max_conn)

    password = (
        password_override
        or read_secret('PG_PASSWORD', env)
        or read_secret('POSTGRES_PASSWORD', env)
        or ''
    )
    params = {
        'host': env.get('PGHOST', env.get('POSTGRES_HOST', 'localhost')),
        'port': int(env.get('PGPORT', env.get('POSTGRES_PORT', 5432))),
        'database': env.get('PGDATABASE', env.get('POSTGRES_DB', 'storefront')),
        'user': env.get('PGUSER', env.get('POSTGRES_USER', 'storefront')),
        'password': password,
    }
    return DatabaseSettings(None, params, pool_min_conn, pool_max_conn)


class PostgresServiceFactory:
    """
    Hands out RoleService and UserService instances over one ConnectionPool.

    Usage:
        with PostgresServiceFactory.from_env() as factory:
            admin = factory.role_service.find_role_by_name("ADMIN")
            snapshot = factory.user_service.get_user_snapshot(user_id)
    """

    def __init__(
        self,
        connection_pool: Optional[ConnectionPool] = None,
        connection_params: Optional[Dict[str, Any]] = None,
        dsn: Optional[str] = None,
    ):
        self._pool = connection_pool
        self._conn_params = connection_params
        self._dsn = dsn

        self._role_service: Optional[RoleService] = None
        self._user_service: Optional[UserService] = None

    @classmethod
    def from_config(
        cls,
        connection_params: Optional[Dict[str, Any]] = None,
        dsn: Optional[str] = None,
        pool_min_conn: int = 1,
        pool_max_conn: int = 10,
    ) -> 'PostgresServiceFactory':
        """
        Open the pool immediately so an unreachable database fails here.

        Raises:
            StorageError: If the database cannot be reached
        """
        pool = ConnectionPool(
            connection_params=connection_params,
            dsn=dsn,
            min_conn=pool_min_conn,
            max_conn=pool_max_conn,
        )
        return cls(connection_pool=pool, connection_params=connection_params, dsn=dsn)

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        *,
        password_override: Optional[str] = None,
    ) -> 'PostgresServiceFactory':
        """Build from environment variables; see database_settings_from_env."""
        settings = database_settings_from_env(env, password_override)
        target = 'DATABASE_URL' if settings.dsn else settings.connection_params['host']
        logger.info(f"Connecting to PostgreSQL via {target}")
        return cls.from_config(
            connection_params=settings.connection_params,
            dsn=settings.dsn,
            pool_min_conn=settings.pool_min_conn,
            pool_max_conn=settings.pool_max_conn,
        )

    @property
    def connection_pool(self) -> ConnectionPool:
        if self._pool is None:
            if not (self._conn_params or self._dsn):
                raise ValueError("No connection pool or params available")
            self._pool = ConnectionPool(connection_params=self._conn_params, dsn=self._dsn)
        return self._pool

    @property
    def role_service(self) -> RoleService:
        if self._role_service is None:
            self._role_service = RoleService(connection_pool=self.connection_pool)
        return self._role_service

    @property
    def user_service(self) -> UserService:
        # Shares the RoleService so role lookups use the same pool
        if self._user_service is None:
            self._user_service = UserService(
                connection_pool=self.connection_pool,
                role_service=self.role_service,
            )
        return self._user_service

    def close(self) -> None:
        """Close the pool and drop the services bound to it."""
        if self._pool is not None:
            self._pool.close()
            self._pool = None
        self._role_service = None
        self._user_service = None

    def __enter__(self) -> 'PostgresServiceFactory':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
