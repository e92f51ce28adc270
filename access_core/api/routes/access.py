"""
Access API routes.

- GET  /api/access/subscription   Subscription gate verdict for the caller's tenant
- POST /api/access/check          Composite access check for one protected action
- POST /api/access/checkout       Start checkout from a denied subscription state
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from access_core.api.dependencies.access import (
    denial_auditor,
    get_actor,
    get_capabilities,
    get_subscription_reader,
)
from access_core.entitlements.authorizer import CompositeAuthorizer
from access_core.entitlements.capabilities import AccessCapabilities
from access_core.entitlements.errors import EntitlementErrorType, create_error
from access_core.entitlements.exceptions import CheckoutError
from access_core.entitlements.guard import AccessGuard, GuardState
from access_core.entitlements.interfaces import CheckoutInitiator, SubscriptionReader
from access_core.entitlements.loader import get_plans_config_loader
from access_core.entitlements.models import Actor
from access_core.integrations.checkout_client import HttpCheckoutInitiator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/access", tags=["access"])


# Request/Response models
class AccessCheckRequest(BaseModel):
    """Inputs for a composite access check. Omitted axes are skipped."""
    feature_name: Optional[str] = Field(None, description="Feature key to check")
    current_usage: Optional[int] = Field(None, ge=0, description="Caller-supplied usage counter")
    required_roles: List[str] = Field(default_factory=list, description="Any one of these roles suffices")
    resource: Optional[str] = Field(None, description="Resource for the permission check")
    action: Optional[str] = Field(None, description="Action for the permission check")


class AccessCheckResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    error: Optional[dict] = None
    upgrade_message: Optional[str] = None


class SubscriptionGateResponse(BaseModel):
    state: str
    subscription_status: Optional[str] = None
    panel: Optional[dict] = None


class CheckoutResponse(BaseModel):
    checkout_url: str


async def get_checkout_initiator():
    """Yield a checkout initiator; raises 503 if checkout is not configured."""
    try:
        initiator = HttpCheckoutInitiator.from_env()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Checkout not configured",
        )
    try:
        yield initiator
    finally:
        await initiator.close()


def _require_actor(actor: Optional[Actor]) -> Actor:
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=create_error(EntitlementErrorType.AUTHENTICATION_REQUIRED).to_dict(),
        )
    return actor


@router.get("/subscription", response_model=SubscriptionGateResponse)
async def get_subscription_gate(
    actor: Optional[Actor] = Depends(get_actor),
    reader: SubscriptionReader = Depends(get_subscription_reader),
):
    """Evaluate the subscription gate for the caller's tenant."""
    actor = _require_actor(actor)

    guard = AccessGuard(reader)
    try:
        state = await guard.resolve(actor)
    finally:
        guard.teardown()

    record = guard.record
    return SubscriptionGateResponse(
        state=state.value,
        subscription_status=record.status.value if record is not None else None,
        panel=guard.panel.to_dict() if guard.panel is not None else None,
    )


@router.post("/check", response_model=AccessCheckResponse)
async def check_access(
    body: AccessCheckRequest,
    actor: Optional[Actor] = Depends(get_actor),
    capabilities: AccessCapabilities = Depends(get_capabilities),
):
    """
    Run the composite check and return the verdict.

    A denial is a normal 200 response with allowed=false.
    """
    required_permission = None
    if body.resource and body.action:
        required_permission = (body.resource, body.action)

    verdict = CompositeAuthorizer(capabilities, auditor=denial_auditor).authorize(
        actor,
        feature_name=body.feature_name,
        current_usage=body.current_usage,
        required_roles=body.required_roles,
        required_permission=required_permission,
        endpoint="/api/access/check",
        method="POST",
    )
    response = AccessCheckResponse(**verdict.to_dict())
    if verdict.error is not None and verdict.error.upgrade_required:
        response.upgrade_message = get_plans_config_loader().get_upgrade_message(verdict.error.feature_name)
    return response


@router.post("/checkout", response_model=CheckoutResponse)
async def start_checkout(
    actor: Optional[Actor] = Depends(get_actor),
    reader: SubscriptionReader = Depends(get_subscription_reader),
    checkout: CheckoutInitiator = Depends(get_checkout_initiator),
):
    """Create a checkout URL when the subscription gate denies access."""
    actor = _require_actor(actor)

    guard = AccessGuard(reader, checkout=checkout)
    try:
        state = await guard.resolve(actor)
        if state != GuardState.DENIED:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Subscription already grants access",
            )
        url = await guard.start_checkout()
    except CheckoutError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Checkout failed: {e}",
        )
    finally:
        guard.teardown()

    return CheckoutResponse(checkout_url=url)
