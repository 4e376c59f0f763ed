"""
RBAC error taxonomy.

Construction-time problems raise ValidationError before any object escapes.
Storage problems raise StorageError and are fatal when they happen during
startup provisioning.
"""

from typing import Optional


class RBACError(Exception):
    """Base class for all access control errors."""
    pass


class ValidationError(RBACError):
    """Raised for malformed roles, overrides, or unknown catalog values."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}" if field else message)


class RBACConfigError(ValidationError):
    """Raised when seed or environment configuration is invalid."""
    pass


class NotFoundError(RBACError):
    """Raised when a lookup that must succeed finds nothing."""
    pass


class StorageError(RBACError):
    """Raised when the persistence layer is unreachable or a query fails."""
    pass


class PermissionDeniedError(RBACError):
    """
    Raised when a permission check fails outside of an HTTP request.

    The message is deliberately generic: it never names the rule that
    caused the denial.
    """

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)
