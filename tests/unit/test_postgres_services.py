"""
Unit tests for PostgreSQL services.

Tests cover:
- ConnectionPool
- RoleService
- UserService
- PostgresServiceFactory
"""
from datetime import datetime
from unittest.mock import MagicMock, patch

import psycopg2
import psycopg2.errors
import pytest

from src.utils.connection_pool import ConnectionPool
from src.utils.postgres_service_factory import PostgresServiceFactory, database_settings_from_env
from src.utils.rbac.errors import NotFoundError, StorageError, ValidationError
from src.utils.rbac.models import RolePermission
from src.utils.rbac.permission_enum import Action, Resource
from src.utils.role_service import RoleService
from src.utils.sql import SQL_INSERT_ROLE, SQL_INSERT_ROLE_PERMISSION
from src.utils.user_service import UserService


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def mock_connection():
    """Create a mock psycopg2 connection."""
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value.__enter__ = MagicMock(return_value=cursor)
    conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    return conn, cursor


@pytest.fixture
def mock_pool(mock_connection):
    """Create a mock connection pool."""
    conn, cursor = mock_connection
    pool = MagicMock(spec=ConnectionPool)
    pool.get_connection.return_value = conn
    pool.release_connection = MagicMock()
    return pool


ADMIN_ROW = {"id": 2, "name": "ADMIN", "description": "Administrator with elevated privileges"}
ADMIN_PERMISSION_ROWS = [
    {"resource": "users", "actions": ["read"]},
    {"resource": "products", "actions": ["create"]},
]


# =============================================================================
# ConnectionPool Tests
# =============================================================================

class TestConnectionPool:
    """Tests for ConnectionPool."""

    def test_init_requires_params_or_dsn(self):
        """Test that ConnectionPool requires connection info."""
        with pytest.raises(ValueError, match="Either dsn or connection_params must be provided"):
            ConnectionPool()

    @patch('psycopg2.pool.ThreadedConnectionPool')
    def test_init_with_params(self, mock_tcp):
        """Test initialization with connection params."""
        params = {
            'host': 'localhost',
            'port': 5432,
            'database': 'test',
            'user': 'user',
            'password': 'pass',
        }
        pool = ConnectionPool(connection_params=params)

        mock_tcp.assert_called_once_with(1, 10, **params)
        assert pool._pool is not None

    @patch('psycopg2.pool.ThreadedConnectionPool')
    def test_init_with_dsn(self, mock_tcp):
        ConnectionPool(dsn="postgresql://u:p@db/store", min_conn=2, max_conn=4)
        mock_tcp.assert_called_once_with(2, 4, dsn="postgresql://u:p@db/store")

    @patch('psycopg2.pool.ThreadedConnectionPool')
    def test_unreachable_database_raises_storage_error(self, mock_tcp):
        mock_tcp.side_effect = psycopg2.OperationalError("connection refused")
        with pytest.raises(StorageError, match="Could not connect"):
            ConnectionPool(dsn="postgresql://db/store")

    @patch('psycopg2.pool.ThreadedConnectionPool')
    def test_get_connection_failure_raises_storage_error(self, mock_tcp):
        mock_tcp.return_value.getconn.side_effect = psycopg2.pool.PoolError("connection pool exhausted")
        pool = ConnectionPool(dsn="postgresql://db/store")
        with pytest.raises(StorageError):
            pool.get_connection()

    @patch('psycopg2.pool.ThreadedConnectionPool')
    def test_connection_context_releases(self, mock_tcp):
        pool = ConnectionPool(dsn="postgresql://db/store")
        conn = mock_tcp.return_value.getconn.return_value

        with pool.connection() as borrowed:
            assert borrowed is conn

        mock_tcp.return_value.putconn.assert_called_once_with(conn)

    @patch('psycopg2.pool.ThreadedConnectionPool')
    def test_health_check(self, mock_tcp):
        pool = ConnectionPool(dsn="postgresql://db/store")
        assert pool.health_check() is True

        mock_tcp.return_value.getconn.side_effect = psycopg2.OperationalError("gone")
        assert pool.health_check() is False

    @patch('psycopg2.pool.ThreadedConnectionPool')
    def test_close(self, mock_tcp):
        pool = ConnectionPool(dsn="postgresql://db/store")
        pool.close()

        mock_tcp.return_value.closeall.assert_called_once()
        with pytest.raises(StorageError, match="closed"):
            pool.get_connection()


# =============================================================================
# RoleService Tests
# =============================================================================

class TestRoleService:
    """Tests for RoleService."""

    def test_find_role_by_name(self, mock_pool, mock_connection):
        """Test loading a role with its permissions."""
        conn, cursor = mock_connection
        cursor.fetchone.return_value = ADMIN_ROW
        cursor.fetchall.return_value = ADMIN_PERMISSION_ROWS

        service = RoleService(connection_pool=mock_pool)
        role = service.find_role_by_name("ADMIN")

        assert role.id == 2
        assert role.name == "ADMIN"
        assert role.permitted_actions(Resource.USERS) == frozenset({Action.READ})
        assert role.permitted_actions(Resource.PRODUCTS) == frozenset({Action.CREATE})
        assert role.permitted_actions(Resource.ORDERS) == frozenset()
        mock_pool.release_connection.assert_called_once_with(conn)

    def test_find_role_by_name_missing(self, mock_pool, mock_connection):
        """A missing role is a normal None result."""
        conn, cursor = mock_connection
        cursor.fetchone.return_value = None

        service = RoleService(connection_pool=mock_pool)

        assert service.find_role_by_name("ROOT") is None
        cursor.fetchall.assert_not_called()

    def test_get_role_or_raise(self, mock_pool, mock_connection):
        conn, cursor = mock_connection
        cursor.fetchone.return_value = None

        service = RoleService(connection_pool=mock_pool)

        with pytest.raises(NotFoundError):
            service.get_role_or_raise(42)

    def test_list_roles(self, mock_pool, mock_connection):
        conn, cursor = mock_connection
        cursor.fetchall.side_effect = [
            [{"id": 1, "name": "ROOT", "description": "Superuser with full access"}, ADMIN_ROW],
            [{"resource": "roles", "actions": ["create", "read", "update", "delete"]}],
            ADMIN_PERMISSION_ROWS,
        ]

        service = RoleService(connection_pool=mock_pool)
        roles = service.list_roles()

        assert [r.name for r in roles] == ["ROOT", "ADMIN"]
        assert roles[0].permitted_actions(Resource.ROLES) == frozenset(Action)

    def test_read_failure_raises_storage_error(self, mock_pool, mock_connection):
        conn, cursor = mock_connection
        cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")

        service = RoleService(connection_pool=mock_pool)

        with pytest.raises(StorageError):
            service.find_role_by_name("ADMIN")
        mock_pool.release_connection.assert_called_once_with(conn)

    def test_create_role(self, mock_pool, mock_connection):
        """Test creating a role and its permission rows in one transaction."""
        conn, cursor = mock_connection
        cursor.fetchone.return_value = {"id": 7}

        service = RoleService(connection_pool=mock_pool)
        role = service.create_role(
            "ADMIN",
            "Administrator with elevated privileges",
            [
                RolePermission(Resource.USERS, frozenset({Action.READ})),
                RolePermission(Resource.PRODUCTS, frozenset({Action.CREATE})),
            ],
        )

        assert role.id == 7
        assert role.permitted_actions(Resource.USERS) == frozenset({Action.READ})

        calls = cursor.execute.call_args_list
        assert calls[0][0] == (SQL_INSERT_ROLE, ("ADMIN", "Administrator with elevated privileges"))
        assert calls[1][0] == (SQL_INSERT_ROLE_PERMISSION, (7, "users", ["read"]))
        assert calls[2][0] == (SQL_INSERT_ROLE_PERMISSION, (7, "products", ["create"]))
        conn.commit.assert_called_once()

    def test_create_role_validates_before_io(self, mock_pool):
        service = RoleService(connection_pool=mock_pool)

        with pytest.raises(ValidationError):
            service.create_role("ADMIN", "", [
                RolePermission(Resource.USERS, frozenset({Action.READ})),
                RolePermission(Resource.USERS, frozenset({Action.DELETE})),
            ])
        mock_pool.get_connection.assert_not_called()

    def test_create_role_duplicate_name(self, mock_pool, mock_connection):
        conn, cursor = mock_connection
        cursor.execute.side_effect = psycopg2.errors.UniqueViolation()

        service = RoleService(connection_pool=mock_pool)

        with pytest.raises(ValidationError, match="already exists"):
            service.create_role("ADMIN", "", [])
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_create_role_storage_failure_rolls_back(self, mock_pool, mock_connection):
        conn, cursor = mock_connection
        cursor.fetchone.return_value = {"id": 7}
        cursor.execute.side_effect = [None, psycopg2.OperationalError("server closed the connection")]

        service = RoleService(connection_pool=mock_pool)

        with pytest.raises(StorageError):
            service.create_role("ADMIN", "", [RolePermission(Resource.USERS, frozenset({Action.READ}))])
        conn.rollback.assert_called_once()
        mock_pool.release_connection.assert_called_once_with(conn)

    def test_ensure_schema(self, mock_pool, mock_connection):
        conn, cursor = mock_connection

        RoleService(connection_pool=mock_pool).ensure_schema()

        assert "CREATE TABLE IF NOT EXISTS roles" in cursor.execute.call_args[0][0]
        conn.commit.assert_called_once()


# =============================================================================
# UserService Tests
# =============================================================================

class TestUserService:
    """Tests for UserService."""

    USER_ROW = {
        "id": "user123",
        "email": "jane@example.com",
        "password_hash": "$2b$12$hash",
        "role_id": 2,
        "created_at": datetime(2026, 3, 1),
    }

    def test_get_user_snapshot(self, mock_pool, mock_connection):
        """Test loading user, overrides and role into a snapshot."""
        conn, cursor = mock_connection
        cursor.fetchone.side_effect = [self.USER_ROW, ADMIN_ROW]
        cursor.fetchall.side_effect = [
            [{"resource": "users", "denied_actions": ["read"], "allowed_actions": None}],
            ADMIN_PERMISSION_ROWS,
        ]

        service = UserService(connection_pool=mock_pool)
        snapshot = service.get_user_snapshot("user123")

        assert snapshot.id == "user123"
        assert snapshot.email == "jane@example.com"
        assert snapshot.role.name == "ADMIN"
        assert snapshot.overrides.lookup(Resource.USERS).denied == frozenset({Action.READ})
        assert snapshot.overrides.lookup(Resource.USERS).allowed == frozenset()

    def test_get_user_snapshot_missing(self, mock_pool, mock_connection):
        conn, cursor = mock_connection
        cursor.fetchone.return_value = None

        service = UserService(connection_pool=mock_pool)

        assert service.get_user_snapshot("nobody") is None

    def test_get_public_user_omits_password(self, mock_pool, mock_connection):
        conn, cursor = mock_connection
        cursor.fetchone.side_effect = [self.USER_ROW, ADMIN_ROW]
        cursor.fetchall.side_effect = [[], ADMIN_PERMISSION_ROWS]

        service = UserService(connection_pool=mock_pool)
        payload = service.get_public_user("user123").to_dict()

        assert payload["id"] == "user123"
        assert payload["role"]["name"] == "ADMIN"
        assert "password_hash" not in payload

    def test_missing_role_raises(self, mock_pool, mock_connection):
        conn, cursor = mock_connection
        cursor.fetchone.side_effect = [self.USER_ROW, None]
        cursor.fetchall.return_value = []

        service = UserService(connection_pool=mock_pool)

        with pytest.raises(NotFoundError):
            service.get_user_snapshot("user123")


# =============================================================================
# PostgresServiceFactory Tests
# =============================================================================

class TestPostgresServiceFactory:
    """Tests for PostgresServiceFactory."""

    def test_services_share_pool(self, mock_pool):
        factory = PostgresServiceFactory(connection_pool=mock_pool)

        assert factory.role_service is factory.role_service
        assert factory.user_service._roles is factory.role_service
        assert factory.connection_pool is mock_pool

    @patch('src.utils.postgres_service_factory.ConnectionPool')
    def test_from_env_prefers_database_url(self, mock_pool_cls):
        env = {"DATABASE_URL": "postgresql://u:p@db/store", "PGHOST": "ignored", "PG_POOL_MAX": "4"}

        PostgresServiceFactory.from_env(env)

        mock_pool_cls.assert_called_once_with(
            connection_params=None,
            dsn="postgresql://u:p@db/store",
            min_conn=1,
            max_conn=4,
        )

    @patch('src.utils.postgres_service_factory.ConnectionPool')
    def test_from_env_with_pg_vars(self, mock_pool_cls):
        env = {"PGHOST": "db", "PGPORT": "5433", "PGDATABASE": "store", "PGUSER": "app", "PG_PASSWORD": "pw"}

        PostgresServiceFactory.from_env(env)

        kwargs = mock_pool_cls.call_args.kwargs
        assert kwargs["connection_params"] == {
            "host": "db",
            "port": 5433,
            "database": "store",
            "user": "app",
            "password": "pw",
        }
        assert kwargs["dsn"] is None

    def test_context_manager_closes_pool(self, mock_pool):
        with PostgresServiceFactory(connection_pool=mock_pool) as factory:
            factory.role_service

        mock_pool.close.assert_called_once()
        assert factory._role_service is None

    def test_no_pool_or_params(self):
        with pytest.raises(ValueError):
            PostgresServiceFactory().connection_pool

    def test_settings_fall_back_to_container_names(self):
        settings = database_settings_from_env({"POSTGRES_HOST": "postgres", "POSTGRES_PASSWORD": "pw"})

        assert settings.dsn is None
        assert settings.connection_params["host"] == "postgres"
        assert settings.connection_params["database"] == "storefront"
        assert settings.connection_params["password"] == "pw"
        assert (settings.pool_min_conn, settings.pool_max_conn) == (1, 10)
