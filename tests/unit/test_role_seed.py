"""
Unit tests for role provisioning.

ensure_seeded is exercised against an in-memory role store (for
idempotence across runs) and against a mocked RoleService.
"""
from unittest.mock import MagicMock, patch

import pytest

from src.cli.tools import role_seed
from src.cli.tools.role_seed import ensure_seeded, seed_entry
from src.utils.rbac.errors import StorageError
from src.utils.rbac.models import Role
from src.utils.rbac.permission_enum import Action, Resource
from src.utils.rbac.registry import default_role_seeds


class InMemoryRoleStore:
    """Minimal stand-in for RoleService keyed by role name."""

    def __init__(self):
        self.roles = {}
        self.create_calls = 0

    def find_role_by_name(self, name):
        return self.roles.get(name)

    def create_role(self, name, description, permissions):
        self.create_calls += 1
        role = Role(name=name, description=description, permissions=tuple(permissions), id=len(self.roles) + 1)
        self.roles[name] = role
        return role


class TestEnsureSeeded:
    """Tests for ensure_seeded."""

    def test_creates_missing_roles(self):
        store = InMemoryRoleStore()
        created = ensure_seeded(store, default_role_seeds())

        assert created == ["ROOT", "ADMIN"]
        root = store.roles["ROOT"]
        for resource in Resource:
            assert root.permitted_actions(resource) == frozenset(Action)

    def test_idempotent(self):
        store = InMemoryRoleStore()
        ensure_seeded(store, default_role_seeds())
        snapshot = dict(store.roles)

        created = ensure_seeded(store, default_role_seeds())

        assert created == []
        assert store.create_calls == 2
        assert store.roles == snapshot
        assert len(store.roles["ROOT"].permissions) == len(Resource)

    def test_existing_role_left_untouched(self):
        store = InMemoryRoleStore()
        customised = Role(name="ADMIN", description="edited by hand", id=99)
        store.roles["ADMIN"] = customised

        created = ensure_seeded(store, default_role_seeds())

        assert created == ["ROOT"]
        assert store.roles["ADMIN"] is customised

    def test_storage_error_propagates(self):
        service = MagicMock()
        service.find_role_by_name.side_effect = StorageError("connection refused")

        with pytest.raises(StorageError):
            ensure_seeded(service, default_role_seeds())
        service.create_role.assert_not_called()

    def test_passes_full_permission_list(self):
        service = MagicMock()
        service.find_role_by_name.return_value = None
        admin = default_role_seeds()[1]

        ensure_seeded(service, [admin])

        service.create_role.assert_called_once_with("ADMIN", admin.description, admin.permissions)


class TestSeedEntry:
    """Tests for the one-shot seeding entry point."""

    @patch.object(role_seed, "PostgresServiceFactory")
    def test_seed_entry_ensures_schema_and_closes(self, mock_factory_cls, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("AUTH_ROLES_PATH", raising=False)

        factory = MagicMock()
        factory.__enter__.return_value = factory
        factory.role_service.find_role_by_name.return_value = None
        mock_factory_cls.from_env.return_value = factory

        created = seed_entry(None, {"DATABASE_URL": "postgresql://x"})

        assert created == ["ROOT", "ADMIN"]
        mock_factory_cls.from_env.assert_called_once_with({"DATABASE_URL": "postgresql://x"})
        factory.role_service.ensure_schema.assert_called_once()
        factory.__exit__.assert_called_once()

    @patch.object(role_seed, "PostgresServiceFactory")
    def test_seed_entry_fails_when_storage_down(self, mock_factory_cls, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("AUTH_ROLES_PATH", raising=False)
        mock_factory_cls.from_env.side_effect = StorageError("could not connect")

        with pytest.raises(StorageError):
            seed_entry(None, {})
