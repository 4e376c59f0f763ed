"""
RBAC Audit Logging - Security event logging for access control

Route decisions, role provisioning and failed token resolution are
written to the 'storefront.rbac.audit' logger. Each event produces one
human-readable line and one 'AUDIT: {...}' JSON line. Audit entries
stay server-side: nothing here is returned to the client.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from src.utils.logging import get_logger

audit_logger = get_logger('rbac.audit')


def _emit(event: str, summary: str, level: int, json_level: int, **fields: Any) -> None:
    entry: Dict[str, Any] = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'event': event,
    }
    entry.update({k: v for k, v in fields.items() if v is not None})

    audit_logger.log(level, summary)
    audit_logger.log(json_level, f"AUDIT: {json.dumps(entry, default=str)}")


def log_permission_check(
    user: str,
    permission: str,
    granted: bool,
    endpoint: Optional[str],
    role: Optional[str],
    extra: Optional[dict] = None
) -> None:
    """
    Record the guard's decision for one request.

    Grants go to DEBUG; denials are WARNING with the JSON entry at INFO so
    they survive the default log level.

    Args:
        user: User id, or 'anonymous' when no principal was resolved
        permission: Requirements checked, as 'resource:action[,...]'
        granted: Whether the request was let through
        endpoint: Flask endpoint name
        role: Name of the user's role
        extra: Additional context (e.g. the first failed requirement)
    """
    result = 'GRANTED' if granted else 'DENIED'
    summary = f"{user} | {permission} | {result} | {endpoint} | role: {role}"

    fields = dict(extra or {})
    fields.update(user=user, permission=permission, result=result, endpoint=endpoint, role=role)

    if granted:
        _emit('permission_check', summary, logging.DEBUG, logging.DEBUG, **fields)
    else:
        _emit('permission_check', summary, logging.WARNING, logging.INFO, **fields)


def log_role_seeded(role: str, resources: Iterable[str], created: bool) -> None:
    """Record whether a baseline role was created or found already present."""
    resources = list(resources)
    if created:
        summary = f"Seeded role: {role} ({len(resources)} resources)"
        _emit('role_seeded', summary, logging.INFO, logging.DEBUG, role=role, resources=resources)
    else:
        summary = f"Role already present, left untouched: {role}"
        _emit('role_present', summary, logging.DEBUG, logging.DEBUG, role=role, resources=resources)


def log_authentication_event(
    user: str,
    event_type: str,
    success: bool,
    method: str,
    details: Optional[str] = None
) -> None:
    """
    Record a step of resolving the request principal.

    Args:
        user: User id (or 'unknown' when the token could not be read)
        event_type: 'token_check' or 'snapshot_load'
        success: Whether the step succeeded
        method: Credential type ('bearer')
        details: Reason for a failure
    """
    result = 'SUCCESS' if success else 'FAILURE'
    summary = f"AUTH | {event_type} | {user} | {result} | method: {method}"
    if details:
        summary += f" | {details}"

    _emit(event_type, summary, logging.INFO if success else logging.WARNING, logging.DEBUG,
          user=user, result=result, method=method, details=details)
