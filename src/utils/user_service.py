"""
UserService - Loads users, their role and their overrides from PostgreSQL.

Produces the read-only UserSnapshot the authorization engine consumes and
the PublicUser view returned to clients. Creating users and handling
credentials is not part of this service.
"""

from __future__ import annotations

from typing import Optional, Tuple

import psycopg2
import psycopg2.extras

from src.utils.connection_pool import ConnectionPool
from src.utils.logging import get_logger
from src.utils.rbac.errors import StorageError
from src.utils.rbac.models import (
    PublicUser,
    UserOverride,
    UserOverrideSet,
    UserRecord,
    UserSnapshot,
    to_public_user,
    to_snapshot,
)
from src.utils.role_service import RoleService
from src.utils.sql import SQL_GET_USER, SQL_GET_USER_OVERRIDES

logger = get_logger(__name__)


class UserService:
    """Read access to users for authorization."""

    def __init__(self, connection_pool: ConnectionPool, role_service: Optional[RoleService] = None):
        self._pool = connection_pool
        self._roles = role_service or RoleService(connection_pool=connection_pool)

    def _load(self, user_id: str) -> Optional[Tuple[UserRecord, UserOverrideSet]]:
        conn = self._pool.get_connection()
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(SQL_GET_USER, (user_id,))
                row = cursor.fetchone()
                if row is None:
                    return None

                cursor.execute(SQL_GET_USER_OVERRIDES, (user_id,))
                override_rows = cursor.fetchall()
        except psycopg2.Error as e:
            raise StorageError(f"Could not load user {user_id}: {e}") from e
        finally:
            self._pool.release_connection(conn)

        record = UserRecord(
            id=row["id"],
            email=row["email"],
            password_hash=row["password_hash"],
            role_id=row["role_id"],
            created_at=row.get("created_at"),
        )
        overrides = UserOverrideSet(tuple(
            UserOverride(
                resource=o["resource"],
                denied=o["denied_actions"] or (),
                allowed=o["allowed_actions"] or (),
            )
            for o in override_rows
        ))
        return record, overrides

    def get_user_snapshot(self, user_id: str) -> Optional[UserSnapshot]:
        """
        Load a fresh, immutable snapshot of a user for one decision.

        Returns:
            UserSnapshot, or None if the user does not exist

        Raises:
            NotFoundError: If the user's role is missing
            StorageError: If the database cannot be queried
        """
        loaded = self._load(user_id)
        if loaded is None:
            logger.debug("User %s not found", user_id)
            return None
        record, overrides = loaded
        return to_snapshot(record, self._roles.get_role_or_raise(record.role_id), overrides)

    def get_public_user(self, user_id: str) -> Optional[PublicUser]:
        """Load the public view of a user (no password hash), or None."""
        loaded = self._load(user_id)
        if loaded is None:
            return None
        record, overrides = loaded
        return to_public_user(record, self._roles.get_role_or_raise(record.role_id), overrides)
