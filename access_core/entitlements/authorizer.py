"""
Composite authorizer - combines authentication, feature, role and
permission checks for one protected action.

Evaluation order (fixed, fail-fast):
    1. authentication
    2. feature availability / usage limit
    3. role
    4. permission

Each axis is opt-in per call: when its inputs are not supplied the axis is
skipped and does not affect the outcome. The first denial is returned and
later axes are never evaluated.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Tuple

from access_core.entitlements.audit import AccessAuditLogger, AccessDenialEvent
from access_core.entitlements.capabilities import AccessCapabilities
from access_core.entitlements.errors import EntitlementErrorType, create_error
from access_core.entitlements.exceptions import AccessDeniedError, InvalidCheckInputError
from access_core.entitlements.features import check_feature_access
from access_core.entitlements.models import AccessVerdict, Actor
from access_core.entitlements.permissions import check_permission_access
from access_core.entitlements.roles import check_role_access, role_matches

logger = logging.getLogger(__name__)


def check_authentication(is_authenticated: bool) -> AccessVerdict:
    """Deny with AUTHENTICATION_REQUIRED when the actor is not authenticated."""
    if not is_authenticated:
        return AccessVerdict.deny(
            create_error(EntitlementErrorType.AUTHENTICATION_REQUIRED),
            reason="User not authenticated",
        )
    return AccessVerdict.allow()


@dataclass(frozen=True)
class AccessOptions:
    """
    Inputs for check_comprehensive_access.

    required_permission is a (resource, action) pair.
    """

    is_authenticated: Optional[bool] = None

    feature_name: Optional[str] = None
    has_feature: Optional[Callable[[str], bool]] = None
    get_limit: Optional[Callable[[str], Optional[int]]] = None
    current_usage: Optional[int] = None

    required_roles: Sequence[str] = field(default_factory=tuple)
    user_role: Optional[str] = None
    can_access: Optional[Callable[[Sequence[str]], bool]] = None

    required_permission: Optional[Tuple[str, str]] = None
    has_permission: Optional[Callable[[str, str], bool]] = None

    def __post_init__(self):
        if self.required_permission is not None and len(self.required_permission) != 2:
            raise InvalidCheckInputError("required_permission must be a (resource, action) pair")


def check_comprehensive_access(options: Optional[AccessOptions] = None, **kwargs) -> AccessVerdict:
    """
    Run every supplied axis in order and return the first denial.

    Accepts either an AccessOptions instance or the same fields as keyword
    arguments.
    """
    if options is None:
        options = AccessOptions(**kwargs)
    elif kwargs:
        raise InvalidCheckInputError("Pass either an AccessOptions instance or keyword arguments, not both")

    if options.is_authenticated is not None:
        verdict = check_authentication(options.is_authenticated)
        if not verdict.allowed:
            return verdict

    if options.feature_name and options.has_feature is not None:
        verdict = check_feature_access(
            options.feature_name,
            options.has_feature,
            options.get_limit,
            options.current_usage,
        )
        if not verdict.allowed:
            return verdict

    if options.required_roles:
        verdict = check_role_access(
            options.required_roles,
            options.user_role,
            options.can_access,
        )
        if not verdict.allowed:
            return verdict

    if options.required_permission is not None and options.has_permission is not None:
        resource, action = options.required_permission
        verdict = check_permission_access(resource, action, options.has_permission)
        if not verdict.allowed:
            return verdict

    return AccessVerdict.allow()


class CompositeAuthorizer:
    """
    Capability-injected authorizer.

    The capability object is supplied once; every authorize() call threads
    it into check_comprehensive_access. Denials are written to the audit log.

    Usage:
        authorizer = CompositeAuthorizer(PlanCapabilities.for_actor(loader, plan_id, role))
        verdict = authorizer.authorize(
            actor,
            feature_name="advanced_reporting",
            required_roles=["Business Owner", "Store Manager"],
            required_permission=("reports", "read"),
        )
    """

    def __init__(
        self,
        capabilities: AccessCapabilities,
        auditor: Optional[AccessAuditLogger] = None,
    ):
        self.capabilities = capabilities
        self.auditor = auditor or AccessAuditLogger()

    def authorize(
        self,
        actor: Optional[Actor],
        feature_name: Optional[str] = None,
        current_usage: Optional[int] = None,
        required_roles: Optional[Sequence[str]] = None,
        required_permission: Optional[Tuple[str, str]] = None,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
    ) -> AccessVerdict:
        caps = self.capabilities
        user_role = actor.role if actor is not None else None

        options = AccessOptions(
            is_authenticated=actor is not None and actor.is_authenticated,
            feature_name=feature_name,
            has_feature=caps.has_feature if feature_name else None,
            get_limit=caps.feature_limit if current_usage is not None else None,
            current_usage=current_usage,
            required_roles=tuple(required_roles or ()),
            user_role=user_role,
            can_access=self._role_predicate(user_role),
            required_permission=required_permission,
            has_permission=caps.has_permission if required_permission is not None else None,
        )
        verdict = check_comprehensive_access(options)

        if not verdict.allowed:
            if actor is not None:
                self.auditor.log_denial(
                    AccessDenialEvent.from_verdict(verdict, actor, endpoint=endpoint, method=method)
                )
            else:
                logger.warning(
                    "Access denied for unauthenticated request",
                    extra={"endpoint": endpoint, "error_type": verdict.error_type},
                )
        return verdict

    def require(self, actor: Optional[Actor], **kwargs) -> None:
        """
        Same as authorize() but raises on denial.

        Raises:
            AccessDeniedError: Carrying the denial's EntitlementError
        """
        verdict = self.authorize(actor, **kwargs)
        if not verdict.allowed:
            raise AccessDeniedError(verdict.error, reason=verdict.reason)

    def _role_predicate(self, user_role: Optional[str]) -> Callable[[Sequence[str]], bool]:
        """
        Role predicate honoring the capability's authoritative answer and
        falling back to canonical role membership when it defers.
        """
        caps = self.capabilities

        def can_access(required_roles: Sequence[str]) -> bool:
            decision = caps.can_access(required_roles)
            if decision is not None:
                return decision
            return user_role is not None and any(role_matches(user_role, role) for role in required_roles)

        return can_access
