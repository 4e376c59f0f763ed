"""
Authorization engine - decides whether a user may perform an action on a
resource.

Precedence, evaluated per call:
1. an override on the resource that denies the action -> denied
2. an override on the resource that allows the action -> allowed
3. otherwise the role's grant for the resource decides
4. no role entry for the resource -> denied

The engine does no I/O, keeps no state and holds no locks; it is safe to
call from any number of request threads.
"""

from typing import Iterable, Tuple, Union

from src.utils.logging import get_logger
from src.utils.rbac.errors import PermissionDeniedError
from src.utils.rbac.models import UserSnapshot
from src.utils.rbac.permission_enum import ALL_ACTIONS, Action, Resource, coerce_action, coerce_resource

logger = get_logger(__name__)


def can_perform(
    user: UserSnapshot,
    resource: Union[str, Resource],
    action: Union[str, Action],
) -> bool:
    """
    Check whether a user may perform an action on a resource.

    Args:
        user: Snapshot holding the user's role and overrides
        resource: Resource from the catalog (enum member or its string value)
        action: Action from the catalog (enum member or its string value)

    Returns:
        True if permitted, False otherwise

    Raises:
        ValidationError: If resource or action is not in the catalog
    """
    resource = coerce_resource(resource)
    action = coerce_action(action)

    override = user.overrides.lookup(resource)
    if override is not None:
        if action in override.denied:
            logger.debug("user=%s %s:%s denied by override", user.id, resource.value, action.value)
            return False
        if action in override.allowed:
            logger.debug("user=%s %s:%s allowed by override", user.id, resource.value, action.value)
            return True

    return action in user.role.permitted_actions(resource)


def can_perform_all(
    user: UserSnapshot,
    requirements: Iterable[Tuple[Union[str, Resource], Union[str, Action]]],
) -> bool:
    """True only if every (resource, action) requirement is permitted."""
    return all(can_perform(user, resource, action) for resource, action in requirements)


def effective_actions(user: UserSnapshot, resource: Union[str, Resource]) -> frozenset:
    """The set of actions can_perform would permit on a resource."""
    resource = coerce_resource(resource)
    return frozenset(action for action in ALL_ACTIONS if can_perform(user, resource, action))


def require_permission(
    user: UserSnapshot,
    resource: Union[str, Resource],
    action: Union[str, Action],
) -> None:
    """
    Raise unless the user may perform the action.

    For callers outside an HTTP request (jobs, CLI). The raised error does
    not say which rule denied access.

    Raises:
        PermissionDeniedError: If the action is not permitted
        ValidationError: If resource or action is not in the catalog
    """
    if not can_perform(user, resource, action):
        raise PermissionDeniedError()
