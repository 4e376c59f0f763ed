"""
RBAC data model - roles, per-user overrides and the user snapshot the
authorization engine reads.

All types are frozen dataclasses. A snapshot handed to the engine cannot be
changed underneath an in-flight decision; loaders build fresh objects for
every request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from src.utils.rbac.errors import ValidationError
from src.utils.rbac.permission_enum import Action, Resource, coerce_action, coerce_resource


def _action_set(values: Optional[Iterable[Union[str, Action]]]) -> frozenset:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        raise ValidationError(f"Expected a list of actions, got {values!r}", field="actions")
    return frozenset(coerce_action(v) for v in values)


def _first_present(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def entry_actions(data: Mapping[str, Any]) -> Any:
    """Action list of a permission entry; 'actions' is accepted for 'permissions'."""
    return _first_present(data, "permissions", "actions")


@dataclass(frozen=True)
class RolePermission:
    """Allowed actions on a single resource within a role."""

    resource: Resource
    actions: frozenset = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "resource", coerce_resource(self.resource))
        object.__setattr__(self, "actions", _action_set(self.actions))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RolePermission":
        """Build from {'resource': 'users', 'permissions': ['read', ...]}."""
        if not isinstance(data, Mapping) or "resource" not in data:
            raise ValidationError(f"Malformed permission entry: {data!r}", field="permissions")
        return cls(
            resource=data["resource"],
            actions=entry_actions(data) or (),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource": self.resource.value,
            "permissions": [a.value for a in Action if a in self.actions],
        }


@dataclass(frozen=True)
class Role:
    """
    A named bundle of per-resource allowed actions.

    Each resource appears at most once in the permission list. The role is
    referenced, not owned, by the users assigned to it.
    """

    name: str
    description: str = ""
    permissions: Tuple[RolePermission, ...] = ()
    id: Optional[int] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Role name must be a non-empty string", field="name")

        permissions = tuple(self.permissions)
        seen = set()
        for perm in permissions:
            if not isinstance(perm, RolePermission):
                raise ValidationError(
                    f"Role '{self.name}' permissions must be RolePermission entries", field="permissions"
                )
            if perm.resource in seen:
                raise ValidationError(
                    f"Role '{self.name}' has more than one entry for resource '{perm.resource.value}'",
                    field="permissions",
                )
            seen.add(perm.resource)

        object.__setattr__(self, "permissions", permissions)
        object.__setattr__(
            self, "_by_resource", {perm.resource: perm.actions for perm in permissions}
        )

    def permitted_actions(self, resource: Union[str, Resource]) -> frozenset:
        """
        Actions this role grants on a resource.

        Returns an empty set when the role has no entry for the resource.
        A value outside the catalog raises ValidationError, as in can_perform.
        """
        return self._by_resource.get(coerce_resource(resource), frozenset())

    @property
    def resources(self) -> Tuple[Resource, ...]:
        return tuple(perm.resource for perm in self.permissions)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Role":
        """
        Build a role from the seed / persistence shape:

            {'name': 'ADMIN', 'description': '...',
             'permissions': [{'resource': 'users', 'permissions': ['read']}]}
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"Role definition must be a mapping, got {type(data).__name__}")
        entries = data.get("permissions") or []
        if not isinstance(entries, list):
            raise ValidationError("Role permissions must be a list", field="permissions")
        return cls(
            name=data.get("name"),
            description=data.get("description") or "",
            permissions=tuple(RolePermission.from_dict(entry) for entry in entries),
            id=data.get("id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "name": self.name,
            "description": self.description,
            "permissions": [perm.to_dict() for perm in self.permissions],
        }
        if self.id is not None:
            result["id"] = self.id
        return result


@dataclass(frozen=True)
class UserOverride:
    """
    Per-user exception for one resource.

    Denied and allowed sets may both name the same action; the engine
    resolves that to a denial.
    """

    resource: Resource
    denied: frozenset = field(default_factory=frozenset)
    allowed: frozenset = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "resource", coerce_resource(self.resource))
        object.__setattr__(self, "denied", _action_set(self.denied))
        object.__setattr__(self, "allowed", _action_set(self.allowed))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserOverride":
        """Accepts deniedPermissions/allowedPermissions or their snake_case forms."""
        if not isinstance(data, Mapping) or "resource" not in data:
            raise ValidationError(f"Malformed override entry: {data!r}", field="overrides")
        return cls(
            resource=data["resource"],
            denied=_first_present(data, "deniedPermissions", "denied_permissions", "denied_actions"),
            allowed=_first_present(data, "allowedPermissions", "allowed_permissions", "allowed_actions"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource": self.resource.value,
            "deniedPermissions": [a.value for a in Action if a in self.denied],
            "allowedPermissions": [a.value for a in Action if a in self.allowed],
        }


@dataclass(frozen=True)
class UserOverrideSet:
    """A user's overrides, at most one per resource. Order is irrelevant."""

    overrides: Tuple[UserOverride, ...] = ()

    def __post_init__(self) -> None:
        overrides = tuple(self.overrides)
        by_resource: Dict[Resource, UserOverride] = {}
        for override in overrides:
            if not isinstance(override, UserOverride):
                raise ValidationError("Override set entries must be UserOverride instances", field="overrides")
            if override.resource in by_resource:
                raise ValidationError(
                    f"More than one override for resource '{override.resource.value}'",
                    field="overrides",
                )
            by_resource[override.resource] = override
        object.__setattr__(self, "overrides", overrides)
        object.__setattr__(self, "_by_resource", by_resource)

    def lookup(self, resource: Union[str, Resource]) -> Optional[UserOverride]:
        return self._by_resource.get(coerce_resource(resource))

    def __iter__(self) -> Iterator[UserOverride]:
        return iter(self.overrides)

    def __len__(self) -> int:
        return len(self.overrides)

    @classmethod
    def from_list(cls, entries: Optional[Iterable[Mapping[str, Any]]]) -> "UserOverrideSet":
        return cls(tuple(UserOverride.from_dict(entry) for entry in (entries or [])))

    def to_list(self) -> List[Dict[str, Any]]:
        return [override.to_dict() for override in self.overrides]


@dataclass(frozen=True)
class UserSnapshot:
    """Read-only view of a user as consumed by the authorization engine."""

    id: str
    role: Role
    overrides: UserOverrideSet = field(default_factory=UserOverrideSet)
    email: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            raise ValidationError("UserSnapshot requires a fully loaded Role", field="role")
        if not isinstance(self.overrides, UserOverrideSet):
            object.__setattr__(self, "overrides", UserOverrideSet(tuple(self.overrides or ())))


@dataclass(frozen=True)
class UserRecord:
    """A user row as persisted, including the password hash."""

    id: str
    email: str
    password_hash: str
    role_id: int
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class PublicUser:
    """Public-facing view of a user. Has no password field at all."""

    id: str
    email: str
    role: Role
    overrides: UserOverrideSet
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role.to_dict(),
            "overrides": self.overrides.to_list(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def to_public_user(record: UserRecord, role: Role, overrides: UserOverrideSet) -> PublicUser:
    """Map a persisted user record to its public view."""
    return PublicUser(
        id=record.id,
        email=record.email,
        role=role,
        overrides=overrides,
        created_at=record.created_at,
    )


def to_snapshot(record: UserRecord, role: Role, overrides: UserOverrideSet) -> UserSnapshot:
    """Map a persisted user record to the snapshot the engine consumes."""
    return UserSnapshot(id=record.id, role=role, overrides=overrides, email=record.email)
