"""
Access check dependencies.

Provides reusable FastAPI dependencies that run the composite authorizer
for a route and translate denials into HTTP errors:

- 401 for AUTHENTICATION_REQUIRED / SESSION_INVALID
- 402 when the denial requires an upgrade
- 403 otherwise

Usage:
    @router.get("/reports", dependencies=[Depends(require_access(
        feature_name="advanced_reporting",
        required_roles=["Business Owner", "Store Manager"],
        required_permission=("reports", "read"),
    ))])
"""

import logging
from typing import Callable, Optional, Sequence, Tuple

from fastapi import Depends, HTTPException, Request, status

from access_core.database.session import get_session_factory
from access_core.entitlements.audit import AccessAuditLogger
from access_core.entitlements.authorizer import CompositeAuthorizer
from access_core.entitlements.capabilities import AccessCapabilities, PlanCapabilities
from access_core.entitlements.errors import EntitlementError, EntitlementErrorType, format_for_display
from access_core.entitlements.exceptions import InvalidCheckInputError, SubscriptionLookupError
from access_core.entitlements.interfaces import SubscriptionReader
from access_core.entitlements.loader import get_plans_config_loader
from access_core.entitlements.models import AccessVerdict, Actor
from access_core.entitlements.subscription import resolve_access
from access_core.services.subscription_reader import SqlSubscriptionReader

logger = logging.getLogger(__name__)

denial_auditor = AccessAuditLogger()

_UNAUTHENTICATED_TYPES = (
    EntitlementErrorType.AUTHENTICATION_REQUIRED,
    EntitlementErrorType.SESSION_INVALID,
)


def get_actor(request: Request) -> Optional[Actor]:
    """
    Resolve the current actor.

    Upstream auth middleware may place an Actor on request.state.actor;
    otherwise the identity headers forwarded by the gateway are used.
    Returns None when the request is unauthenticated.
    """
    actor = getattr(request.state, "actor", None)
    if isinstance(actor, Actor):
        return actor

    user_id = request.headers.get("X-User-Id")
    tenant_id = request.headers.get("X-Tenant-Id")
    if not user_id or not tenant_id:
        return None

    try:
        return Actor(
            user_id=user_id,
            tenant_id=tenant_id,
            role=request.headers.get("X-User-Role") or None,
            email=request.headers.get("X-User-Email") or None,
        )
    except InvalidCheckInputError as e:
        logger.warning("Invalid actor headers", extra={"error": str(e)})
        return None


def get_subscription_reader() -> SubscriptionReader:
    """Raises 503 if the database is not configured."""
    try:
        factory = get_session_factory()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )
    return SqlSubscriptionReader(factory)


async def get_capabilities(
    actor: Optional[Actor] = Depends(get_actor),
    reader: SubscriptionReader = Depends(get_subscription_reader),
) -> AccessCapabilities:
    """
    Build the capability object for the current actor.

    Plan features apply only while the subscription grants access; otherwise
    (and when the lookup fails) the default features are used.
    """
    plan_id = None
    if actor is not None:
        try:
            record = await reader.read(actor.tenant_id)
        except SubscriptionLookupError as e:
            logger.error(
                "Subscription lookup failed - using default features",
                extra={"tenant_id": actor.tenant_id, "error": str(e)},
            )
            record = None
        if record is not None and record.plan is not None and resolve_access(record):
            plan_id = record.plan.plan_id or record.plan.name

    return PlanCapabilities.for_actor(
        get_plans_config_loader(),
        plan_id=plan_id,
        role=actor.role if actor is not None else None,
    )


def http_status_for(error: EntitlementError) -> int:
    if error.type in _UNAUTHENTICATED_TYPES:
        return status.HTTP_401_UNAUTHORIZED
    if error.upgrade_required:
        return status.HTTP_402_PAYMENT_REQUIRED
    return status.HTTP_403_FORBIDDEN


def denial_detail(verdict: AccessVerdict) -> dict:
    """JSON detail for a denied verdict."""
    detail = verdict.error.to_dict()
    detail["display"] = format_for_display(verdict.error)
    if verdict.error.upgrade_required:
        detail["upgrade_message"] = get_plans_config_loader().get_upgrade_message(verdict.error.feature_name)
    return detail



def require_access(
    feature_name: Optional[str] = None,
    required_roles: Optional[Sequence[str]] = None,
    required_permission: Optional[Tuple[str, str]] = None,
    usage_counter: Optional[Callable[[Actor], int]] = None,
) -> Callable:
    """
    Factory function to create an access check dependency.

    Args:
        feature_name: Feature the route requires
        required_roles: Roles allowed to call the route (any one suffices)
        required_permission: (resource, action) the route requires
        usage_counter: Returns the actor's current usage of feature_name,
            enabling the usage-limit check

    Returns:
        A FastAPI dependency that returns the Actor when access is allowed
    """

    def check_access(
        request: Request,
        actor: Optional[Actor] = Depends(get_actor),
        capabilities: AccessCapabilities = Depends(get_capabilities),
    ) -> Actor:
        current_usage = None
        if usage_counter is not None and actor is not None and feature_name:
            current_usage = usage_counter(actor)

        verdict = CompositeAuthorizer(capabilities, auditor=denial_auditor).authorize(
            actor,
            feature_name=feature_name,
            current_usage=current_usage,
            required_roles=required_roles,
            required_permission=required_permission,
            endpoint=request.url.path,
            method=request.method,
        )

        if not verdict.allowed:
            raise HTTPException(
                status_code=http_status_for(verdict.error),
                detail=denial_detail(verdict),
            )

        return actor

    return check_access
