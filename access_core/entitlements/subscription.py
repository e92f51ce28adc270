"""
Subscription state resolution.

Maps a raw subscription record to allow/deny, and classifies denials for
the guard's blocking panel.

Access rules by status:
- no record:        allowed (unrestricted tenant)
- active:           allowed
- trial / trialing: allowed while trial_end is absent or in the future
- pending:          allowed (payment grace period)
- anything else:    denied

CRITICAL: A failing lookup resolves to ALLOWED (fail-open) and is logged.
This is the opposite policy to the permission checker, which fails closed.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from access_core.entitlements.errors import (
    EntitlementError,
    EntitlementErrorType,
    create_error,
)
from access_core.entitlements.models import SubscriptionRecord, SubscriptionStatus, as_utc

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_access(record: Optional[SubscriptionRecord], now: Optional[datetime] = None) -> bool:
    """
    Decide whether a subscription record grants access.

    Args:
        record: Subscription record, or None when the tenant has none
        now: Evaluation time (defaults to current UTC time)
    """
    if record is None:
        return True

    status = record.status
    if status == SubscriptionStatus.ACTIVE:
        return True
    if status.is_trial:
        if record.trial_end is None:
            return True
        return record.trial_end > (as_utc(now) or _utcnow())
    if status == SubscriptionStatus.PENDING:
        return True
    return False


def resolve_tenant_access(
    lookup: Callable[[str], Optional[SubscriptionRecord]],
    tenant_id: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Run a synchronous subscription lookup and resolve access.

    Any lookup failure resolves to allowed and is logged.
    """
    try:
        record = lookup(tenant_id)
    except Exception as e:
        logger.error(
            "Subscription lookup failed - allowing access",
            extra={"tenant_id": tenant_id, "error": str(e)},
            exc_info=True,
        )
        return True
    return resolve_access(record, now)


class DenialCause(str, Enum):
    """Why the guard is blocking the session."""

    PAYMENT_PENDING = "payment_pending"
    TRIAL_EXPIRED = "trial_expired"
    NO_ACTIVE_PLAN = "no_active_plan"
    LOOKUP_FAILED = "lookup_failed"      # Only under the fail-closed lookup policy


DENIAL_DESCRIPTIONS = {
    DenialCause.PAYMENT_PENDING: "Your payment is pending. Please complete your payment to continue.",
    DenialCause.TRIAL_EXPIRED: "Your trial has expired. Upgrade to continue using the system.",
    DenialCause.NO_ACTIVE_PLAN: "An active subscription is required to access this system.",
    DenialCause.LOOKUP_FAILED: "We couldn't verify your subscription right now. Please try again.",
}


def classify_denial(record: Optional[SubscriptionRecord], now: Optional[datetime] = None) -> DenialCause:
    """Pick the cause shown to the user when access is denied."""
    if record is None:
        return DenialCause.NO_ACTIVE_PLAN
    if record.status == SubscriptionStatus.PENDING:
        return DenialCause.PAYMENT_PENDING
    if record.trial_has_ended(as_utc(now) or _utcnow()):
        return DenialCause.TRIAL_EXPIRED
    return DenialCause.NO_ACTIVE_PLAN


def denial_error(record: Optional[SubscriptionRecord], now: Optional[datetime] = None) -> EntitlementError:
    """Map a subscription denial onto the error taxonomy."""
    cause = classify_denial(record, now)
    if cause == DenialCause.TRIAL_EXPIRED:
        return create_error(EntitlementErrorType.TRIAL_EXPIRED)
    if record is not None and record.status == SubscriptionStatus.EXPIRED:
        return create_error(EntitlementErrorType.SUBSCRIPTION_EXPIRED)
    return create_error(EntitlementErrorType.SUBSCRIPTION_REQUIRED)
