"""
RBAC (Role-Based Access Control) Module for the storefront API

This module provides authorization functionality including:
- The closed catalog of resources and actions
- Roles and per-user allow/deny overrides
- The authorization decision function
- Baseline role definitions for provisioning
- Route protection through an explicit guard table
- Audit logging for security events

Usage:
    from src.utils.rbac import can_perform, Resource, Action

    if can_perform(user, Resource.PRODUCTS, Action.CREATE):
        ...
"""

from src.utils.rbac.permission_enum import (
    Action,
    Resource,
    is_valid_action,
    is_valid_resource,
)
from src.utils.rbac.errors import (
    NotFoundError,
    PermissionDeniedError,
    RBACConfigError,
    RBACError,
    StorageError,
    ValidationError,
)
from src.utils.rbac.models import (
    PublicUser,
    Role,
    RolePermission,
    UserOverride,
    UserOverrideSet,
    UserRecord,
    UserSnapshot,
    to_public_user,
)
from src.utils.rbac.engine import (
    can_perform,
    can_perform_all,
    effective_actions,
    require_permission,
)
from src.utils.rbac.registry import (
    RoleSeedRegistry,
    default_role_seeds,
    get_registry,
    load_role_seeds,
)

__all__ = [
    # Catalog
    'Action',
    'Resource',
    'is_valid_action',
    'is_valid_resource',
    # Errors
    'NotFoundError',
    'PermissionDeniedError',
    'RBACConfigError',
    'RBACError',
    'StorageError',
    'ValidationError',
    # Model
    'PublicUser',
    'Role',
    'RolePermission',
    'UserOverride',
    'UserOverrideSet',
    'UserRecord',
    'UserSnapshot',
    'to_public_user',
    # Engine
    'can_perform',
    'can_perform_all',
    'effective_actions',
    'require_permission',
    # Registry
    'RoleSeedRegistry',
    'default_role_seeds',
    'get_registry',
    'load_role_seeds',
]
