"""
RBAC Registry - Baseline role definitions used for provisioning

This module loads the desired baseline roles from a standalone
auth_roles.yaml file (or the built-in defaults) and validates them into
Role objects before anything touches the database.
"""

import os
from typing import Any, Dict, List, Optional

import yaml

from src.utils.logging import get_logger
from src.utils.rbac.errors import RBACConfigError, ValidationError
from src.utils.rbac.models import Role, RolePermission, entry_actions
from src.utils.rbac.permission_enum import ALL_ACTIONS, ALL_RESOURCES, Action, Resource

logger = get_logger(__name__)

WILDCARD = "*"

# Global registry instance (singleton pattern)
_registry: Optional['RoleSeedRegistry'] = None


def expand_wildcards(definition: Any) -> Any:
    """
    Expand '*' in the resource and action lists of one role definition.

    {'resource': '*', 'permissions': ['*']} becomes one entry per
    resource, each with every action. Entries are rewritten under the
    'permissions' key whichever of 'permissions' or 'actions' they used.
    Anything malformed is passed through for Role.from_dict to reject.
    """
    if not isinstance(definition, dict):
        return definition

    entries = definition.get('permissions') or []
    if not isinstance(entries, list):
        return definition

    expanded = []
    for entry in entries:
        if not isinstance(entry, dict):
            expanded.append(entry)
            continue
        actions = entry_actions(entry) or []
        if isinstance(actions, list) and WILDCARD in actions:
            actions = [a.value for a in ALL_ACTIONS]
        if entry.get('resource') == WILDCARD:
            expanded.extend({'resource': r.value, 'permissions': actions} for r in ALL_RESOURCES)
        else:
            rest = {k: v for k, v in entry.items() if k != 'actions'}
            expanded.append({**rest, 'permissions': actions})

    return {**definition, 'permissions': expanded}


def default_role_seeds() -> List[Role]:
    """
    The baseline roles every deployment needs.

    ROOT holds every resource x action combination; ADMIN holds a curated
    subset.
    """
    return [
        Role(
            name="ROOT",
            description="Superuser with full access",
            permissions=tuple(RolePermission(resource, frozenset(ALL_ACTIONS)) for resource in ALL_RESOURCES),
        ),
        Role(
            name="ADMIN",
            description="Administrator with elevated privileges",
            permissions=(
                RolePermission(Resource.USERS, frozenset({Action.READ})),
                RolePermission(Resource.ORDERS, frozenset({Action.READ})),
                RolePermission(Resource.PRODUCTS, frozenset({Action.CREATE})),
            ),
        ),
    ]


class RoleSeedRegistry:
    """
    Validated set of baseline roles to provision at startup.

    Manages:
    - Parsing role definitions from configuration
    - Wildcard expansion ('*' for every resource or every action)
    - Validation (unique names, known resources/actions, one entry per resource)
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the registry from configuration.

        Args:
            config: Dictionary loaded from auth_roles configuration, with a
                    'roles' list of role definitions
        """
        self._config = config or {}
        self._roles: Dict[str, Role] = {}

        self._load_roles()

        logger.info(f"Role seed registry initialized: {len(self._roles)} roles")

    def _load_roles(self) -> None:
        """
        Parse and validate the role definitions.

        Raises:
            RBACConfigError: If configuration is invalid
        """
        definitions = self._config.get('roles')
        if not definitions:
            raise RBACConfigError("No roles defined in configuration", field="roles")
        if not isinstance(definitions, list):
            raise RBACConfigError("'roles' must be a list of role definitions", field="roles")

        for index, definition in enumerate(definitions):
            try:
                role = Role.from_dict(expand_wildcards(definition))
            except ValidationError as e:
                raise RBACConfigError(f"Invalid role definition #{index}: {e}", field="roles") from e

            if role.name in self._roles:
                raise RBACConfigError(f"Role '{role.name}' is defined more than once", field="roles")
            self._roles[role.name] = role

        logger.debug("Role seed configuration validated successfully")

    @property
    def roles(self) -> List[Role]:
        """Roles in configuration order."""
        return list(self._roles.values())

    @property
    def role_names(self) -> List[str]:
        return list(self._roles)

    def get_role(self, role_name: str) -> Optional[Role]:
        """
        Get the desired definition of a role.

        Args:
            role_name: Name of the role

        Returns:
            Role or None if not configured
        """
        return self._roles.get(role_name)


def load_rbac_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load role seed configuration from a YAML file.

    Priority order:
    1. Explicit config_path if provided
    2. AUTH_ROLES_PATH environment variable
    3. ./configs/auth_roles.yaml
    4. Built-in defaults (ROOT and ADMIN)

    Args:
        config_path: Optional path to auth_roles.yaml

    Returns:
        Configuration dictionary

    Raises:
        RBACConfigError: If an explicit path or AUTH_ROLES_PATH names a missing file,
            or the file is not valid YAML
    """
    if config_path and not os.path.isfile(config_path):
        raise RBACConfigError(f"Role configuration file not found: {config_path}", field="config_path")

    env_path = os.environ.get('AUTH_ROLES_PATH')
    if not config_path and env_path and not os.path.isfile(env_path):
        raise RBACConfigError(f"AUTH_ROLES_PATH points to a missing file: {env_path}", field="AUTH_ROLES_PATH")

    search_paths = [
        config_path,
        env_path,
        os.path.join(os.getcwd(), 'configs', 'auth_roles.yaml'),
    ]

    config_file = None
    for path in search_paths:
        if path and os.path.isfile(path):
            config_file = path
            break

    if config_file:
        logger.info(f"Loading role seed configuration from: {config_file}")
        try:
            with open(config_file, 'r') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RBACConfigError(f"Could not parse {config_file}: {e}", field="config_path") from e
        if not isinstance(config, dict):
            raise RBACConfigError(f"{config_file} must contain a mapping with a 'roles' list", field="config_path")
        return config

    logger.info("No auth_roles configuration found, using built-in baseline roles")
    return {'roles': [role.to_dict() for role in default_role_seeds()]}


def load_role_seeds(config_path: Optional[str] = None) -> List[Role]:
    """Load and validate the desired baseline roles."""
    return RoleSeedRegistry(load_rbac_config(config_path)).roles


def get_registry(config_path: Optional[str] = None, force_reload: bool = False) -> RoleSeedRegistry:
    """
    Get the global role seed registry instance (singleton).

    Args:
        config_path: Optional path to configuration file
        force_reload: If True, reload configuration even if already loaded

    Returns:
        RoleSeedRegistry instance
    """
    global _registry

    if _registry is None or force_reload:
        _registry = RoleSeedRegistry(load_rbac_config(config_path))

    return _registry


def reset_registry() -> None:
    """
    Reset the global registry (for testing purposes).
    """
    global _registry
    _registry = None
