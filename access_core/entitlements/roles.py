"""
Role canonicalization and role-based access checks.

IMPORTANT: ROLE_ALIASES is the single source of truth for mapping raw role
strings to display roles. Do NOT compare role strings ad hoc elsewhere.

Canonical roles:
- Business Owner: admin, superadmin, super_admin, tenant_admin, owner
- Store Manager:  manager, store-manager, store_manager
- Sales Staff:    everything else (cashier, user, staff, ...)
"""

from enum import Enum
from typing import Callable, Dict, Optional, Sequence

from access_core.entitlements.errors import (
    EntitlementErrorType,
    create_error,
    create_role_error,
)
from access_core.entitlements.exceptions import InvalidCheckInputError
from access_core.entitlements.models import AccessVerdict


class CanonicalRole(str, Enum):
    """Display roles used by access rules."""

    BUSINESS_OWNER = "Business Owner"
    STORE_MANAGER = "Store Manager"
    SALES_STAFF = "Sales Staff"


# Raw role (lower-cased) -> canonical role
ROLE_ALIASES: Dict[str, CanonicalRole] = {
    "admin": CanonicalRole.BUSINESS_OWNER,
    "superadmin": CanonicalRole.BUSINESS_OWNER,
    "super_admin": CanonicalRole.BUSINESS_OWNER,
    "tenant_admin": CanonicalRole.BUSINESS_OWNER,
    "owner": CanonicalRole.BUSINESS_OWNER,
    "business owner": CanonicalRole.BUSINESS_OWNER,
    "manager": CanonicalRole.STORE_MANAGER,
    "store-manager": CanonicalRole.STORE_MANAGER,
    "store_manager": CanonicalRole.STORE_MANAGER,
    "store manager": CanonicalRole.STORE_MANAGER,
}

DEFAULT_ROLE = CanonicalRole.SALES_STAFF


def canonicalize_role(raw_role: Optional[str]) -> str:
    """Map a raw role string to its canonical display role."""
    key = (raw_role or "").strip().lower()
    return ROLE_ALIASES.get(key, DEFAULT_ROLE).value


def role_matches(user_role: str, required_role: str) -> bool:
    """
    Case-insensitive role comparison.

    Matches when the user's raw role or its canonical role equals the
    required role as written. The required role is never canonicalized.
    """
    required = required_role.strip().lower()
    if user_role.strip().lower() == required:
        return True
    return canonicalize_role(user_role).lower() == required


def check_role_access(
    required_roles: Sequence[str],
    user_role: Optional[str] = None,
    can_access: Optional[Callable[[Sequence[str]], bool]] = None,
) -> AccessVerdict:
    """
    Check that the user's role satisfies one of the required roles.

    When can_access is supplied it is authoritative and the built-in
    membership test is skipped.

    Args:
        required_roles: Roles that may perform the action (any one suffices)
        user_role: The actor's raw role string
        can_access: Optional external predicate over the required roles
    """
    if isinstance(required_roles, str):
        raise InvalidCheckInputError("required_roles must be a sequence of role names, not a string")

    if not user_role:
        return AccessVerdict.deny(
            create_error(EntitlementErrorType.ROLE_NOT_ASSIGNED),
            reason="No role assigned to user",
        )

    required_label = " or ".join(required_roles)

    if can_access is not None:
        if not can_access(list(required_roles)):
            return AccessVerdict.deny(
                create_role_error(required_label),
                reason=f"User role '{user_role}' insufficient. Required: {required_label}",
            )
        return AccessVerdict.allow()

    if not any(role_matches(user_role, role) for role in required_roles):
        return AccessVerdict.deny(
            create_role_error(required_label),
            reason=f"User role '{user_role}' not in required roles: {', '.join(required_roles)}",
        )

    return AccessVerdict.allow()
