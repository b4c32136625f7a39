# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Role permissions

WHY: Only managers and admins may close a business day or cancel a sale;
staff ring up sales, services and expenses and read the ledger. A role
missing from DEFAULT_ROLE_PERMISSIONS grants nothing. Denials are written
to security_events, grants are not.
"""

from ..extensions import db
from ..models import User, SecurityEvent
from ..models.security import SECURITY_EVENT_TYPES
from ..permissions import DEFAULT_ROLE_PERMISSIONS
from watchshop.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """Append one of SECURITY_EVENT_TYPES and commit."""
    if event_type not in SECURITY_EVENT_TYPES:
        raise ValueError(f"Unknown security event type: {event_type}")
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        success=success,
        resource=resource,
        action=action,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_permissions(user_id: int) -> set[str]:
    """
    Get all permission codes for a user.

    Returns set of permission codes (e.g., {"RECORD_SALE", "VIEW_LEDGER"}).
    Inactive or unknown users have no permissions.
    """
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return set()
    return set(DEFAULT_ROLE_PERMISSIONS.get(user.role, ()))


def user_has_permission(user_id: int, permission_code: str) -> bool:
    """Check if user has a specific permission."""
    return permission_code in get_user_permissions(user_id)


def require_permission(
    user_id: int,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Require user to have permission, raise PermissionDeniedError if not.

    Denials are written to security_events.
    """
    if user_has_permission(user_id, permission_code):
        return

    # Log only denials (policy: no granted logs)
    log_security_event(
        user_id=user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Missing permission: {permission_code}",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise PermissionDeniedError(f"Permission denied: {permission_code}")
