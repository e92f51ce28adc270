"""
Authorization / entitlement evaluation core.

This module provides:
- resolve_access: Subscription record -> allow/deny (fail-open on lookup failure)
- create_error / map_external_error: Closed denial taxonomy with user-facing copy
- should_offer_upgrade / format_for_display: Presentation helpers for denials
- check_feature_access: Feature availability and usage limits
- check_role_access: Canonical role membership
- check_permission_access: Resource/action predicates (fail-closed)
- check_authentication / check_comprehensive_access: Ordered, fail-fast composition
- CompositeAuthorizer: Capability-injected authorizer with denial auditing
- AccessGuard: Session-level subscription gate state machine

Evaluation order: authentication -> feature -> role -> permission
"""

from access_core.entitlements.models import (
    AccessVerdict,
    Actor,
    FeatureEntitlement,
    PlanRef,
    SubscriptionRecord,
    SubscriptionStatus,
)
from access_core.entitlements.errors import (
    EntitlementError,
    EntitlementErrorType,
    ErrorContext,
    create_error,
    format_for_display,
    map_external_error,
    should_offer_upgrade,
)
from access_core.entitlements.exceptions import (
    AccessCoreError,
    AccessDeniedError,
    CheckoutError,
    InvalidCheckInputError,
    InvalidGuardStateError,
    SubscriptionLookupError,
)
from access_core.entitlements.subscription import resolve_access, resolve_tenant_access
from access_core.entitlements.features import check_feature_access
from access_core.entitlements.roles import canonicalize_role, check_role_access
from access_core.entitlements.permissions import check_permission_access
from access_core.entitlements.authorizer import (
    AccessOptions,
    CompositeAuthorizer,
    check_authentication,
    check_comprehensive_access,
)
from access_core.entitlements.capabilities import (
    AccessCapabilities,
    PlanCapabilities,
    StaticCapabilities,
)
from access_core.entitlements.guard import AccessGuard, GuardState, LookupFailurePolicy

__all__ = [
    # Models
    "AccessVerdict",
    "Actor",
    "FeatureEntitlement",
    "PlanRef",
    "SubscriptionRecord",
    "SubscriptionStatus",
    # Errors
    "EntitlementError",
    "EntitlementErrorType",
    "ErrorContext",
    "create_error",
    "map_external_error",
    "should_offer_upgrade",
    "format_for_display",
    # Exceptions
    "AccessCoreError",
    "AccessDeniedError",
    "CheckoutError",
    "InvalidCheckInputError",
    "InvalidGuardStateError",
    "SubscriptionLookupError",
    # Checkers
    "resolve_access",
    "resolve_tenant_access",
    "check_feature_access",
    "canonicalize_role",
    "check_role_access",
    "check_permission_access",
    "check_authentication",
    "check_comprehensive_access",
    "AccessOptions",
    "CompositeAuthorizer",
    # Capabilities
    "AccessCapabilities",
    "PlanCapabilities",
    "StaticCapabilities",
    # Guard
    "AccessGuard",
    "GuardState",
    "LookupFailurePolicy",
]
