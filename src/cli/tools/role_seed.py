"""
One-shot role seeder, run before the application serves traffic.

Expects env:
- DATABASE_URL, or PGHOST, PGPORT, PGDATABASE, PGUSER, PG_PASSWORD
- AUTH_ROLES_PATH (optional): path to auth_roles.yaml; built-in ROOT and
  ADMIN roles are used when absent

Actions:
1) Ensure the role/user/override tables exist.
2) Create every desired role whose name is not present yet.
   Existing roles are left untouched (no update in place).
Exits 0 on success, non-zero on failure.
"""

import os
import sys
from typing import Iterable, List, Mapping, Optional

from src.utils.logging import get_logger
from src.utils.postgres_service_factory import PostgresServiceFactory
from src.utils.rbac.audit import log_role_seeded
from src.utils.rbac.models import Role
from src.utils.rbac.registry import load_role_seeds

logger = get_logger(__name__)


def ensure_seeded(role_service, desired_roles: Iterable[Role]) -> List[str]:
    """
    Create each desired role that does not exist yet.

    Running this twice with the same roles leaves the same final role set:
    a role found by name is never recreated or modified.

    Args:
        role_service: Object with find_role_by_name() and create_role()
        desired_roles: Baseline roles to provision

    Returns:
        Names of the roles created by this call

    Raises:
        StorageError: If the database is unreachable (fatal at startup)
    """
    created = []
    for role in desired_roles:
        existing = role_service.find_role_by_name(role.name)
        resources = [r.value for r in role.resources]

        if existing is None:
            role_service.create_role(role.name, role.description, role.permissions)
            created.append(role.name)
            log_role_seeded(role.name, resources, created=True)
        else:
            log_role_seeded(role.name, resources, created=False)

    logger.info("Role provisioning complete: %d created", len(created))
    return created


def seed_entry(config_path: Optional[str], env: Mapping[str, str]) -> List[str]:
    print(f"[role-seed] Loading roles from {config_path or 'default locations'}")
    roles = load_role_seeds(config_path)
    print("[role-seed] Desired roles:", [role.name for role in roles])

    with PostgresServiceFactory.from_env(env) as factory:
        role_service = factory.role_service
        role_service.ensure_schema()
        created = ensure_seeded(role_service, roles)

    print(f"[role-seed] Created roles: {created or 'none'}")
    print("Role seeding completed")
    return created


def main():
    config_path = os.environ.get("AUTH_ROLES_PATH")
    seed_entry(config_path, os.environ)


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:
        print(f"Role seeding failed: {exc}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)
