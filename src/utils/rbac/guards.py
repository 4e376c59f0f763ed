"""
RBAC Guards - Route protection for Flask endpoints

Permission requirements are declared in a GuardTable built at startup
(endpoint name -> required (resource, action) pairs). install_guards()
registers a before_request hook that resolves the current user and asks
the authorization engine about every requirement of the matched endpoint.

Responses for denied requests are generic: they never say which role or
override caused the denial. Details go to the audit log only.

Usage:
    table = GuardTable()
    table.protect('list_roles', Resource.ROLES, Action.READ)
    table.require_authenticated('my_permissions')
    install_guards(app, table, bearer_snapshot_loader(user_service, secret))
"""

from typing import Callable, Dict, List, Optional, Tuple, Union

from flask import Flask, g, jsonify, request

from src.utils.logging import get_logger
from src.utils.rbac.audit import log_authentication_event, log_permission_check
from src.utils.rbac.engine import can_perform
from src.utils.rbac.errors import RBACConfigError
from src.utils.rbac.jwt_parser import extract_bearer_token, extract_user_id
from src.utils.rbac.models import UserSnapshot
from src.utils.rbac.permission_enum import Action, Resource, coerce_action, coerce_resource

logger = get_logger(__name__)

SnapshotLoader = Callable[[], Optional[UserSnapshot]]
Requirement = Tuple[Resource, Action]


class GuardTable:
    """
    Registration table of per-endpoint permission requirements.

    An endpoint listed with several requirements needs ALL of them.
    Endpoints that are not listed are not guarded.
    """

    def __init__(self):
        self._requirements: Dict[str, List[Requirement]] = {}

    def protect(
        self,
        endpoint: str,
        resource: Union[str, Resource],
        action: Union[str, Action],
    ) -> 'GuardTable':
        """
        Require (resource, action) for an endpoint.

        Raises:
            ValidationError: If resource or action is not in the catalog
        """
        requirement = (coerce_resource(resource), coerce_action(action))
        requirements = self._requirements.setdefault(endpoint, [])
        if requirement not in requirements:
            requirements.append(requirement)
        return self

    def require_authenticated(self, endpoint: str) -> 'GuardTable':
        """Require a resolved user but no specific permission."""
        self._requirements.setdefault(endpoint, [])
        return self

    def requirements_for(self, endpoint: Optional[str]) -> Optional[Tuple[Requirement, ...]]:
        """
        Requirements for an endpoint.

        Returns:
            Tuple of requirements (possibly empty for authenticated-only
            endpoints), or None if the endpoint is not guarded
        """
        if endpoint is None or endpoint not in self._requirements:
            return None
        return tuple(self._requirements[endpoint])

    @property
    def endpoints(self) -> List[str]:
        return list(self._requirements)

    def __contains__(self, endpoint: str) -> bool:
        return endpoint in self._requirements


def _unauthenticated_response():
    return jsonify({
        'error': 'Authentication required',
        'message': 'Please log in to access this resource',
        'status': 401
    }), 401


def _forbidden_response():
    return jsonify({
        'error': 'Not authorized',
        'status': 403
    }), 403


def check_request(table: GuardTable, load_snapshot: SnapshotLoader):
    """
    Evaluate the current request against the guard table.

    Returns:
        None to let the request through, or a (response, status) tuple
    """
    endpoint = request.endpoint
    requirements = table.requirements_for(endpoint)
    if requirements is None:
        return None

    user = load_snapshot()
    if user is None:
        log_permission_check(
            user='anonymous',
            permission='authenticated',
            granted=False,
            endpoint=endpoint,
            role=None
        )
        return _unauthenticated_response()

    g.current_user = user
    permission = ','.join(f"{r.value}:{a.value}" for r, a in requirements) or 'authenticated'

    for resource, action in requirements:
        if not can_perform(user, resource, action):
            log_permission_check(
                user=user.id,
                permission=permission,
                granted=False,
                endpoint=endpoint,
                role=user.role.name,
                extra={'failed': f"{resource.value}:{action.value}"}
            )
            return _forbidden_response()

    log_permission_check(
        user=user.id,
        permission=permission,
        granted=True,
        endpoint=endpoint,
        role=user.role.name
    )
    return None


def install_guards(
    app: Flask,
    table: GuardTable,
    load_snapshot: SnapshotLoader,
    strict: bool = True,
) -> None:
    """
    Register the guard table on a Flask app.

    Call after all routes are registered. With strict=True, entries naming
    endpoints the app does not have are rejected so that a typo cannot
    leave a route unguarded.

    Raises:
        RBACConfigError: If strict and the table names unknown endpoints
    """
    if strict:
        unknown = [e for e in table.endpoints if e not in app.view_functions]
        if unknown:
            raise RBACConfigError(f"Guard table names unknown endpoints: {unknown}", field="endpoints")

    @app.before_request
    def _enforce_guards():
        return check_request(table, load_snapshot)

    logger.info(f"Installed route guards for {len(table.endpoints)} endpoints")


def bearer_snapshot_loader(user_service, secret: str) -> SnapshotLoader:
    """
    Build a loader that resolves the request's bearer token to a snapshot.

    Args:
        user_service: Object with get_user_snapshot(user_id)
        secret: HS256 secret used to verify tokens
    """
    def _load() -> Optional[UserSnapshot]:
        token = extract_bearer_token(request.headers.get('Authorization'))
        if token is None:
            return None

        user_id = extract_user_id(token, secret)
        if user_id is None:
            log_authentication_event('unknown', 'token_check', False, 'bearer', 'invalid token')
            return None

        snapshot = user_service.get_user_snapshot(user_id)
        if snapshot is None:
            log_authentication_event(user_id, 'snapshot_load', False, 'bearer', 'user not found')
        return snapshot

    return _load


def current_user() -> Optional[UserSnapshot]:
    """The snapshot resolved by the guard for this request, if any."""
    return g.get('current_user')
