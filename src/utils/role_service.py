"""
RoleService - Role persistence in PostgreSQL.

Provides the lookups and inserts role provisioning needs, plus the reads
the application uses to resolve a user's role.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import psycopg2
import psycopg2.errors
import psycopg2.extras

from src.utils.connection_pool import ConnectionPool
from src.utils.logging import get_logger
from src.utils.rbac.errors import NotFoundError, StorageError, ValidationError
from src.utils.rbac.models import Role, RolePermission
from src.utils.sql import (
    SQL_CREATE_RBAC_TABLES,
    SQL_GET_ROLE_BY_ID,
    SQL_GET_ROLE_BY_NAME,
    SQL_GET_ROLE_PERMISSIONS,
    SQL_INSERT_ROLE,
    SQL_INSERT_ROLE_PERMISSION,
    SQL_LIST_ROLES,
)

logger = get_logger(__name__)


class RoleService:
    """
    Service for reading and creating roles.

    Example:
        >>> service = RoleService(connection_pool=pool)
        >>> service.ensure_schema()
        >>> admin = service.find_role_by_name("ADMIN")
    """

    def __init__(self, connection_pool: ConnectionPool):
        """
        Initialize RoleService.

        Args:
            connection_pool: ConnectionPool instance
        """
        self._pool = connection_pool

    def _get_connection(self) -> psycopg2.extensions.connection:
        return self._pool.get_connection()

    def _release_connection(self, conn) -> None:
        self._pool.release_connection(conn)

    def ensure_schema(self) -> None:
        """
        Create the role, user and override tables if missing.

        Raises:
            StorageError: If the DDL fails
        """
        conn = self._get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute(SQL_CREATE_RBAC_TABLES)
            conn.commit()
            logger.debug("RBAC tables ensured")
        except psycopg2.Error as e:
            conn.rollback()
            raise StorageError(f"Could not create RBAC tables: {e}") from e
        finally:
            self._release_connection(conn)

    # =========================================================================
    # Reads
    # =========================================================================

    @staticmethod
    def _build_role(row: Dict[str, Any], permission_rows: Iterable[Dict[str, Any]]) -> Role:
        return Role(
            id=row["id"],
            name=row["name"],
            description=row.get("description") or "",
            permissions=tuple(
                RolePermission(resource=p["resource"], actions=p["actions"] or ())
                for p in permission_rows
            ),
        )

    def _fetch_role(self, query: str, params: tuple) -> Optional[Role]:
        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(query, params)
                row = cursor.fetchone()
                if row is None:
                    return None

                cursor.execute(SQL_GET_ROLE_PERMISSIONS, (row["id"],))
                permission_rows = cursor.fetchall()
            return self._build_role(row, permission_rows)
        except psycopg2.Error as e:
            raise StorageError(f"Could not load role: {e}") from e
        finally:
            self._release_connection(conn)

    def find_role_by_name(self, name: str) -> Optional[Role]:
        """
        Look up a role by its unique name.

        Returns:
            Role with its permissions, or None if no such role exists
        """
        return self._fetch_role(SQL_GET_ROLE_BY_NAME, (name,))

    def get_role(self, role_id: int) -> Optional[Role]:
        """Look up a role by id, or None."""
        return self._fetch_role(SQL_GET_ROLE_BY_ID, (role_id,))

    def get_role_or_raise(self, role_id: int) -> Role:
        """
        Look up a role by id.

        Raises:
            NotFoundError: If the role does not exist
        """
        role = self.get_role(role_id)
        if role is None:
            raise NotFoundError(f"Role {role_id} not found")
        return role

    def list_roles(self) -> List[Role]:
        """All roles, in creation order."""
        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(SQL_LIST_ROLES)
                rows = cursor.fetchall()
                roles = []
                for row in rows:
                    cursor.execute(SQL_GET_ROLE_PERMISSIONS, (row["id"],))
                    roles.append(self._build_role(row, cursor.fetchall()))
            return roles
        except psycopg2.Error as e:
            raise StorageError(f"Could not list roles: {e}") from e
        finally:
            self._release_connection(conn)

    # =========================================================================
    # Writes
    # =========================================================================

    def create_role(
        self,
        name: str,
        description: str,
        permissions: Iterable[RolePermission],
    ) -> Role:
        """
        Create a role and its permission entries in one transaction.

        Args:
            name: Unique role name
            description: Human readable description
            permissions: One RolePermission per resource

        Returns:
            The created Role, with its database id

        Raises:
            ValidationError: If the definition is invalid or the name is taken
            StorageError: If the insert fails
        """
        # Validate before touching the database
        role = Role(name=name, description=description, permissions=tuple(permissions))

        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(SQL_INSERT_ROLE, (role.name, role.description))
                role_id = cursor.fetchone()["id"]
                for perm in role.permissions:
                    cursor.execute(
                        SQL_INSERT_ROLE_PERMISSION,
                        (role_id, perm.resource.value, perm.to_dict()["permissions"]),
                    )
            conn.commit()
        except psycopg2.errors.UniqueViolation as e:
            conn.rollback()
            raise ValidationError(f"Role '{role.name}' already exists", field="name") from e
        except psycopg2.Error as e:
            conn.rollback()
            raise StorageError(f"Could not create role '{role.name}': {e}") from e
        finally:
            self._release_connection(conn)

        logger.info("Created role %s (id=%s)", role.name, role_id)
        return Role(name=role.name, description=role.description, permissions=role.permissions, id=role_id)
