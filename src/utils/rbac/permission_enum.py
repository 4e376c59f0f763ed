"""
RBAC Permission Catalog - Authoritative list of resources and actions.

Both enums are str-valued, so members compare equal to their string values
and can be stored in Postgres TEXT columns or YAML files without calling
.value. Adding a resource or action is an edit to this file, never a
runtime operation.

Usage:
    from src.utils.rbac.permission_enum import Action, Resource

    @guards.protect('list_products', Resource.PRODUCTS, Action.READ)
    ...

    if is_valid_resource('orders'):
        ...
"""

from enum import Enum
from typing import Union

from src.utils.rbac.errors import ValidationError


class Resource(str, Enum):
    USERS = "users"
    PRODUCTS = "products"
    ORDERS = "orders"
    ROLES = "roles"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


ALL_RESOURCES = tuple(Resource)
ALL_ACTIONS = tuple(Action)

_RESOURCE_VALUES = frozenset(r.value for r in Resource)
_ACTION_VALUES = frozenset(a.value for a in Action)


def is_valid_resource(value: Union[str, Resource]) -> bool:
    """Check whether a value names a resource in the catalog."""
    if isinstance(value, Resource):
        return True
    return isinstance(value, str) and value in _RESOURCE_VALUES


def is_valid_action(value: Union[str, Action]) -> bool:
    """Check whether a value names an action in the catalog."""
    if isinstance(value, Action):
        return True
    return isinstance(value, str) and value in _ACTION_VALUES


def coerce_resource(value: Union[str, Resource]) -> Resource:
    """
    Convert a string or enum member to a Resource.

    Raises:
        ValidationError: If the value is not in the catalog
    """
    if not is_valid_resource(value):
        raise ValidationError(f"Unknown resource {value!r}", field="resource")
    return Resource(value)


def coerce_action(value: Union[str, Action]) -> Action:
    """
    Convert a string or enum member to an Action.

    Raises:
        ValidationError: If the value is not in the catalog
    """
    if not is_valid_action(value):
        raise ValidationError(f"Unknown action {value!r}", field="action")
    return Action(value)
