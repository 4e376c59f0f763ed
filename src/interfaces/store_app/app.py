from typing import Iterable, Optional, Sequence, Tuple

from flask import Flask, jsonify

from src.cli.tools.role_seed import ensure_seeded
from src.utils.env import require_secret
from src.utils.logging import get_logger, setup_logging
from src.utils.postgres_service_factory import PostgresServiceFactory
from src.utils.rbac.engine import effective_actions
from src.utils.rbac.errors import RBACConfigError, StorageError
from src.utils.rbac.guards import GuardTable, bearer_snapshot_loader, current_user, install_guards
from src.utils.rbac.models import Role
from src.utils.rbac.permission_enum import ALL_ACTIONS, ALL_RESOURCES, Action, Resource
from src.utils.rbac.registry import get_registry

logger = get_logger(__name__)


class StoreAppWrapper(object):
    """
    Wires the HTTP routes to the role/user services and the route guard.

    The database factory is owned by the caller; this class only borrows it.
    Provisioning runs in the constructor so that a wrapper (and its app)
    only exists once the baseline roles are in place.
    """

    def __init__(
        self,
        app: Flask,
        factory: PostgresServiceFactory,
        jwt_secret: str,
        seeds: Optional[Sequence[Role]] = None,
    ):
        logger.info("Entering StoreAppWrapper")
        self.app = app
        self.factory = factory
        self.role_service = factory.role_service
        self.user_service = factory.user_service
        self.guards = GuardTable()

        # Seed before any route is reachable; StorageError here is fatal
        self.role_service.ensure_schema()
        ensure_seeded(self.role_service, seeds if seeds is not None else get_registry().roles)

        self.add_endpoint('/health', 'health', self.health)
        self.add_endpoint('/api/roles', 'list_roles', self.list_roles,
                          requires=[(Resource.ROLES, Action.READ)])
        self.add_endpoint('/api/users/<user_id>', 'get_user', self.get_user,
                          requires=[(Resource.USERS, Action.READ)])
        self.add_endpoint('/api/me/permissions', 'my_permissions', self.my_permissions,
                          authenticated=True)

        install_guards(self.app, self.guards, bearer_snapshot_loader(self.user_service, jwt_secret))

    def add_endpoint(
        self,
        endpoint=None,
        endpoint_name=None,
        handler=None,
        methods=['GET'],
        requires: Iterable[Tuple[Resource, Action]] = (),
        authenticated: bool = False,
        **kwargs,
    ):
        self.app.add_url_rule(endpoint, endpoint_name, handler, methods=methods, **kwargs)
        if authenticated:
            self.guards.require_authenticated(endpoint_name)
        for resource, action in requires:
            self.guards.protect(endpoint_name, resource, action)

    def health(self):
        healthy = self.factory.connection_pool.health_check()
        return jsonify({'status': 'ok' if healthy else 'unavailable'}), (200 if healthy else 503)

    def list_roles(self):
        return jsonify({'roles': [role.to_dict() for role in self.role_service.list_roles()]})

    def get_user(self, user_id: str):
        user = self.user_service.get_public_user(user_id)
        if user is None:
            return jsonify({'error': 'Not found', 'status': 404}), 404
        return jsonify(user.to_dict())

    def my_permissions(self):
        user = current_user()
        permissions = {}
        for resource in ALL_RESOURCES:
            allowed = effective_actions(user, resource)
            permissions[resource.value] = [a.value for a in ALL_ACTIONS if a in allowed]
        return jsonify({'id': user.id, 'role': user.role.name, 'permissions': permissions})


def create_app(
    factory: PostgresServiceFactory,
    *,
    jwt_secret: Optional[str] = None,
    seeds: Optional[Sequence[Role]] = None,
) -> Flask:
    """
    Build the Flask app around an already acquired service factory.

    Raises:
        RBACConfigError: If JWT_SECRET is not configured
        StorageError: If the database cannot be seeded; do not serve
    """
    app = Flask(__name__)
    StoreAppWrapper(app, factory, jwt_secret or require_secret('JWT_SECRET'), seeds=seeds)
    return app


def run(host: str = '0.0.0.0', port: int = 5000) -> None:
    """Acquire the database, seed, serve, and always release the pool."""
    setup_logging()
    with PostgresServiceFactory.from_env() as factory:
        try:
            app = create_app(factory)
        except (StorageError, RBACConfigError) as e:
            logger.critical(f"Startup failed, refusing to serve: {e}")
            raise
        app.run(host=host, port=port)


if __name__ == '__main__':
    run()
