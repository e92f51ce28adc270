"""
Typed value objects for access evaluation.

Provides:
- SubscriptionStatus: Closed set of subscription lifecycle states
- PlanRef: Plan reference carried on a subscription record
- SubscriptionRecord: Raw subscription state for a tenant
- Actor: The authenticated user making a request, scoped to a tenant
- FeatureEntitlement: Feature availability with optional usage ceiling
- AccessVerdict: Allow/deny outcome of a check

All objects are immutable. Verdicts are computed fresh per check and are
never persisted or mutated.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from access_core.entitlements.exceptions import InvalidCheckInputError

# Limits at or above this value are treated as unlimited
UNLIMITED = 999999


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle states."""

    ACTIVE = "active"
    TRIAL = "trial"
    TRIALING = "trialing"
    PENDING = "pending"        # Payment initiated, not yet confirmed
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    OTHER = "other"            # Any status string we do not recognise

    @classmethod
    def from_raw(cls, value: Optional[str]) -> "SubscriptionStatus":
        """Map a raw status string to a SubscriptionStatus (unknown -> OTHER)."""
        if isinstance(value, cls):
            return value
        normalized = (value or "").strip().lower()
        if normalized == "canceled":
            return cls.CANCELLED
        try:
            return cls(normalized)
        except ValueError:
            return cls.OTHER

    @property
    def is_trial(self) -> bool:
        return self in (SubscriptionStatus.TRIAL, SubscriptionStatus.TRIALING)


def as_utc(value: Optional[Any]) -> Optional[datetime]:
    """
    Normalize a timestamp to an aware UTC datetime.

    Accepts datetimes (naive values are interpreted as UTC) and ISO-8601
    strings. Returns None for None/empty input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidCheckInputError(f"Invalid timestamp: {value!r}") from e
    if not isinstance(value, datetime):
        raise InvalidCheckInputError(f"Unsupported timestamp type: {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class PlanRef:
    """Reference to the billing plan behind a subscription."""

    plan_id: Optional[str] = None
    name: Optional[str] = None
    price: Optional[float] = None
    period: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["PlanRef"]:
        if not data:
            return None
        return cls(
            plan_id=data.get("id") or data.get("plan_id"),
            name=data.get("name"),
            price=data.get("price"),
            period=data.get("period"),
        )


@dataclass(frozen=True)
class SubscriptionRecord:
    """
    Subscription state for a tenant as returned by the subscription reader.

    Timestamps are stored as aware UTC datetimes.
    """

    status: SubscriptionStatus
    trial_end: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    plan: Optional[PlanRef] = None

    def __post_init__(self):
        object.__setattr__(self, "status", SubscriptionStatus.from_raw(self.status))
        object.__setattr__(self, "trial_end", as_utc(self.trial_end))
        object.__setattr__(self, "current_period_end", as_utc(self.current_period_end))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubscriptionRecord":
        """
        Build a record from a reader payload.

        Accepts the plan under either "plan" or "billing_plans".
        """
        plan_data = data.get("plan") or data.get("billing_plans")
        plan = plan_data if isinstance(plan_data, PlanRef) else PlanRef.from_dict(plan_data)
        return cls(
            status=data.get("status"),
            trial_end=data.get("trial_end"),
            current_period_end=data.get("current_period_end"),
            plan=plan,
        )

    def trial_has_ended(self, now: datetime) -> bool:
        """True if a trial end date is set and has passed."""
        return self.trial_end is not None and self.trial_end <= now


@dataclass(frozen=True)
class Actor:
    """Authenticated user making a request, with a role scoped to a tenant."""

    user_id: str
    tenant_id: str
    role: Optional[str] = None
    is_authenticated: bool = True
    email: Optional[str] = None

    def __post_init__(self):
        if not self.user_id:
            raise InvalidCheckInputError("user_id cannot be empty")
        if not self.tenant_id:
            raise InvalidCheckInputError("tenant_id cannot be empty")

    @property
    def session_key(self) -> tuple:
        """Key used to scope cached subscription state to this session."""
        return (self.user_id, self.tenant_id)


@dataclass(frozen=True)
class FeatureEntitlement:
    """Single feature entitlement: availability plus an optional usage ceiling."""

    feature_name: str
    available: bool
    limit: Optional[int] = None

    def is_unlimited(self) -> bool:
        """Check if feature has no ceiling (None or the UNLIMITED sentinel)."""
        return self.limit is None or self.limit >= UNLIMITED


@dataclass(frozen=True)
class AccessVerdict:
    """
    Allow/deny outcome of a check.

    Invariant: allowed is True iff error is None. `reason` is a developer
    facing explanation for logs; it is never shown to users.
    """

    allowed: bool
    error: Optional[Any] = None
    reason: Optional[str] = None

    def __post_init__(self):
        if self.allowed and self.error is not None:
            raise InvalidCheckInputError("An allowed verdict cannot carry an error")
        if not self.allowed and self.error is None:
            raise InvalidCheckInputError("A denied verdict must carry an error")

    @classmethod
    def allow(cls) -> "AccessVerdict":
        return cls(allowed=True)

    @classmethod
    def deny(cls, error, reason: Optional[str] = None) -> "AccessVerdict":
        return cls(allowed=False, error=error, reason=reason)

    @property
    def error_type(self) -> Optional[str]:
        return self.error.type.value if self.error is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "error": self.error.to_dict() if self.error is not None else None,
        }
