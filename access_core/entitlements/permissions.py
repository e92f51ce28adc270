"""
Fine-grained resource/action permission checks.

CRITICAL: Fails CLOSED. When no permission predicate is available the
action is denied. This is deliberately stricter than subscription
resolution, which fails open.
"""

from typing import Callable, Optional

from access_core.entitlements.errors import (
    EntitlementErrorType,
    create_error,
    create_permission_error,
)
from access_core.entitlements.exceptions import InvalidCheckInputError
from access_core.entitlements.models import AccessVerdict


def format_permission(resource: str, action: str) -> str:
    """Human-readable permission label, e.g. "delete on products"."""
    return f"{action} on {resource}"


def check_permission_access(
    resource: str,
    action: str,
    has_permission: Optional[Callable[[str, str], bool]] = None,
) -> AccessVerdict:
    """
    Check a (resource, action) permission.

    Args:
        resource: Resource name, e.g. "products"
        action: Action name, e.g. "delete"
        has_permission: Predicate supplied by the role/permission store
    """
    if not resource or not action:
        raise InvalidCheckInputError("resource and action are required")

    if has_permission is None:
        return AccessVerdict.deny(
            create_error(EntitlementErrorType.MISSING_PERMISSION),
            reason="Permission checker not available",
        )

    label = format_permission(resource, action)
    if not has_permission(resource, action):
        return AccessVerdict.deny(
            create_permission_error(label),
            reason=f"Missing permission: {label}",
        )

    return AccessVerdict.allow()
