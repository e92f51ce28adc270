"""
Entitlement error taxonomy and factory.

Provides:
- EntitlementErrorType: Closed set of denial kinds
- ErrorTemplate / ERROR_TEMPLATES: One immutable base template per kind
- ErrorContext: Optional context interpolated into the user message
- MessageBuilder: Immutable builder that assembles message segments in order
- EntitlementError: Structured, immutable denial object
- create_error / map_external_error / should_offer_upgrade / format_for_display

CRITICAL: The taxonomy is closed. A new denial reason requires a new enum
member and template; never overload an existing kind.

Interpolation order in create_error is a contract:
    1. "this feature" -> feature name
    2. " Required role: <role>"
    3. " Required permission: <permission>"
    4. " (<current>/<limit>)"
"""

import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError

from access_core.entitlements.exceptions import InvalidCheckInputError

logger = logging.getLogger(__name__)


class EntitlementErrorType(str, Enum):
    """Denial kinds."""

    # Feature access
    FEATURE_NOT_AVAILABLE = "FEATURE_NOT_AVAILABLE"
    FEATURE_LIMIT_EXCEEDED = "FEATURE_LIMIT_EXCEEDED"
    SUBSCRIPTION_REQUIRED = "SUBSCRIPTION_REQUIRED"
    SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"

    # Roles and permissions
    INSUFFICIENT_ROLE = "INSUFFICIENT_ROLE"
    MISSING_PERMISSION = "MISSING_PERMISSION"
    ROLE_NOT_ASSIGNED = "ROLE_NOT_ASSIGNED"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # Resource access
    RESOURCE_ACCESS_DENIED = "RESOURCE_ACCESS_DENIED"
    TENANT_ACCESS_DENIED = "TENANT_ACCESS_DENIED"
    USER_ACCESS_DENIED = "USER_ACCESS_DENIED"

    # Session / account
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    SESSION_INVALID = "SESSION_INVALID"
    ACCOUNT_SUSPENDED = "ACCOUNT_SUSPENDED"

    UNKNOWN_PERMISSION_ERROR = "UNKNOWN_PERMISSION_ERROR"


@dataclass(frozen=True)
class ErrorTemplate:
    """Base copy and flags for one error kind."""

    message: str
    user_message: str
    actionable: bool
    upgrade_required: bool
    suggested_actions: Tuple[str, ...]


_T = EntitlementErrorType

ERROR_TEMPLATES: Mapping[EntitlementErrorType, ErrorTemplate] = MappingProxyType({
    _T.FEATURE_NOT_AVAILABLE: ErrorTemplate(
        message="Feature is not available on current subscription plan",
        user_message="This feature is not included in your current plan",
        actionable=True,
        upgrade_required=True,
        suggested_actions=("Upgrade your subscription plan", "Contact sales for plan options"),
    ),
    _T.FEATURE_LIMIT_EXCEEDED: ErrorTemplate(
        message="Feature usage limit has been exceeded",
        user_message="You've reached your plan's limit for this feature",
        actionable=True,
        upgrade_required=True,
        suggested_actions=(
            "Upgrade to a higher plan for increased limits",
            "Remove existing items to stay within limits",
        ),
    ),
    _T.SUBSCRIPTION_REQUIRED: ErrorTemplate(
        message="Active subscription required for this feature",
        user_message="This feature requires an active subscription",
        actionable=True,
        upgrade_required=True,
        suggested_actions=("Subscribe to a paid plan", "Start a free trial"),
    ),
    _T.SUBSCRIPTION_EXPIRED: ErrorTemplate(
        message="Subscription has expired",
        user_message="Your subscription has expired. Please renew to continue using premium features",
        actionable=True,
        upgrade_required=True,
        suggested_actions=(
            "Renew your subscription",
            "Update payment method",
            "Contact support for assistance",
        ),
    ),
    _T.TRIAL_EXPIRED: ErrorTemplate(
        message="Free trial period has ended",
        user_message="Your free trial has ended. Subscribe to continue using premium features",
        actionable=True,
        upgrade_required=True,
        suggested_actions=("Subscribe to a paid plan", "Contact sales for extension options"),
    ),
    _T.INSUFFICIENT_ROLE: ErrorTemplate(
        message="User role insufficient for this action",
        user_message="You don't have the required role to perform this action",
        actionable=False,
        upgrade_required=False,
        suggested_actions=(
            "Contact your administrator for role assignment",
            "Request elevated permissions",
        ),
    ),
    _T.MISSING_PERMISSION: ErrorTemplate(
        message="Required permission not granted",
        user_message="You don't have permission to access this feature",
        actionable=False,
        upgrade_required=False,
        suggested_actions=("Contact your administrator for permission", "Request access to this resource"),
    ),
    _T.ROLE_NOT_ASSIGNED: ErrorTemplate(
        message="No role assigned to user",
        user_message="Your account doesn't have a role assigned",
        actionable=False,
        upgrade_required=False,
        suggested_actions=("Contact your administrator for role assignment", "Request account setup"),
    ),
    _T.PERMISSION_DENIED: ErrorTemplate(
        message="Permission explicitly denied",
        user_message="Access denied. You are not authorized to perform this action",
        actionable=False,
        upgrade_required=False,
        suggested_actions=("Contact your administrator", "Verify your account permissions"),
    ),
    _T.RESOURCE_ACCESS_DENIED: ErrorTemplate(
        message="Access to resource denied",
        user_message="You don't have access to this resource",
        actionable=False,
        upgrade_required=False,
        suggested_actions=("Contact your administrator", "Verify you have access to this data"),
    ),
    _T.TENANT_ACCESS_DENIED: ErrorTemplate(
        message="Access to tenant denied",
        user_message="You don't have access to this organization",
        actionable=False,
        upgrade_required=False,
        suggested_actions=(
            "Contact the organization administrator",
            "Verify you're logged into the correct account",
        ),
    ),
    _T.USER_ACCESS_DENIED: ErrorTemplate(
        message="User access denied",
        user_message="Your account access has been restricted",
        actionable=False,
        upgrade_required=False,
        suggested_actions=("Contact support for assistance", "Verify your account status"),
    ),
    _T.AUTHENTICATION_REQUIRED: ErrorTemplate(
        message="Authentication required",
        user_message="Please log in to access this feature",
        actionable=True,
        upgrade_required=False,
        suggested_actions=("Log in to your account", "Create an account if you don't have one"),
    ),
    _T.SESSION_INVALID: ErrorTemplate(
        message="Session is invalid or expired",
        user_message="Your session has expired. Please log in again",
        actionable=True,
        upgrade_required=False,
        suggested_actions=("Log out and log back in", "Refresh the page"),
    ),
    _T.ACCOUNT_SUSPENDED: ErrorTemplate(
        message="Account has been suspended",
        user_message="Your account has been suspended",
        actionable=False,
        upgrade_required=False,
        suggested_actions=("Contact support for account reactivation", "Review account status"),
    ),
    _T.UNKNOWN_PERMISSION_ERROR: ErrorTemplate(
        message="Unknown permission error occurred",
        user_message="An unexpected permission error occurred",
        actionable=True,
        upgrade_required=False,
        suggested_actions=("Try again in a moment", "Contact support if the issue persists"),
    ),
})


@dataclass(frozen=True)
class ErrorContext:
    """Optional context for create_error."""

    feature_name: Optional[str] = None
    required_role: Optional[str] = None
    required_permission: Optional[str] = None
    current_limit: Optional[int] = None
    plan_limit: Optional[int] = None

    @classmethod
    def coerce(cls, context: Union["ErrorContext", Mapping[str, Any], None]) -> "ErrorContext":
        """Accept an ErrorContext, a plain mapping with the same keys, or None."""
        if context is None:
            return cls()
        if isinstance(context, cls):
            return context
        allowed = {f.name for f in fields(cls)}
        unknown = set(context) - allowed
        if unknown:
            raise InvalidCheckInputError(f"Unknown error context keys: {sorted(unknown)}")
        return cls(**context)


@dataclass(frozen=True)
class MessageBuilder:
    """
    Immutable builder for user messages.

    The base template text is the first segment; every interpolation step
    returns a new builder. build() joins segments in insertion order.
    """

    segments: Tuple[str, ...] = ()

    @classmethod
    def from_template(cls, text: str) -> "MessageBuilder":
        return cls(segments=(text,))

    def with_feature_name(self, feature_name: Optional[str]) -> "MessageBuilder":
        """Replace the first literal "this feature" in the base segment."""
        if not feature_name or not self.segments:
            return self
        base, rest = self.segments[0], self.segments[1:]
        return MessageBuilder(segments=(base.replace("this feature", feature_name, 1),) + rest)

    def append(self, segment: Optional[str]) -> "MessageBuilder":
        if not segment:
            return self
        return MessageBuilder(segments=self.segments + (segment,))

    def build(self) -> str:
        return "".join(self.segments)


def interpolate_user_message(template: str, context: ErrorContext) -> MessageBuilder:
    """Run the fixed interpolation pipeline over a template."""
    builder = MessageBuilder.from_template(template).with_feature_name(context.feature_name)
    if context.required_role:
        builder = builder.append(f" Required role: {context.required_role}")
    if context.required_permission:
        builder = builder.append(f" Required permission: {context.required_permission}")
    if context.current_limit is not None and context.plan_limit is not None:
        builder = builder.append(f" ({context.current_limit}/{context.plan_limit})")
    return builder


@dataclass(frozen=True)
class EntitlementError:
    """Structured, immutable denial with user-facing copy and remediation hints."""

    type: EntitlementErrorType
    message: str
    user_message: str
    actionable: bool
    upgrade_required: bool
    suggested_actions: Tuple[str, ...] = field(default_factory=tuple)
    feature_name: Optional[str] = None
    required_role: Optional[str] = None
    required_permission: Optional[str] = None
    current_limit: Optional[int] = None
    plan_limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "error": self.type.value,
            "message": self.message,
            "user_message": self.user_message,
            "actionable": self.actionable,
            "upgrade_required": self.upgrade_required,
            "suggested_actions": list(self.suggested_actions),
            "feature_name": self.feature_name,
            "required_role": self.required_role,
            "required_permission": self.required_permission,
            "current_limit": self.current_limit,
            "plan_limit": self.plan_limit,
        }


def create_error(
    error_type: EntitlementErrorType,
    context: Union[ErrorContext, Mapping[str, Any], None] = None,
) -> EntitlementError:
    """
    Build an EntitlementError from its template plus optional context.

    Args:
        error_type: Member of EntitlementErrorType
        context: ErrorContext or mapping with the same keys

    Raises:
        InvalidCheckInputError: If error_type is not part of the taxonomy
    """
    try:
        error_type = EntitlementErrorType(error_type)
    except ValueError as e:
        raise InvalidCheckInputError(f"Unknown entitlement error type: {error_type!r}") from e

    ctx = ErrorContext.coerce(context)
    template = ERROR_TEMPLATES[error_type]

    return EntitlementError(
        type=error_type,
        message=template.message,
        user_message=interpolate_user_message(template.user_message, ctx).build(),
        actionable=template.actionable,
        upgrade_required=template.upgrade_required,
        suggested_actions=template.suggested_actions,
        feature_name=ctx.feature_name,
        required_role=ctx.required_role,
        required_permission=ctx.required_permission,
        current_limit=ctx.current_limit,
        plan_limit=ctx.plan_limit,
    )


def create_feature_error(
    feature_name: str,
    current_limit: Optional[int] = None,
    plan_limit: Optional[int] = None,
) -> EntitlementError:
    """FEATURE_LIMIT_EXCEEDED when usage is at/over the limit, else FEATURE_NOT_AVAILABLE."""
    if current_limit is not None and plan_limit is not None and current_limit >= plan_limit:
        return create_error(
            EntitlementErrorType.FEATURE_LIMIT_EXCEEDED,
            ErrorContext(feature_name=feature_name, current_limit=current_limit, plan_limit=plan_limit),
        )
    return create_error(EntitlementErrorType.FEATURE_NOT_AVAILABLE, ErrorContext(feature_name=feature_name))


def create_role_error(required_role: str) -> EntitlementError:
    return create_error(EntitlementErrorType.INSUFFICIENT_ROLE, ErrorContext(required_role=required_role))


def create_permission_error(required_permission: str) -> EntitlementError:
    return create_error(
        EntitlementErrorType.MISSING_PERMISSION,
        ErrorContext(required_permission=required_permission),
    )


# External error translation. First match wins.
_PERMISSION_DENIED_CODES = ("42501",)
_AUTH_CODES = ("PGRST301",)


def _extract_code_and_message(raw: Any) -> Tuple[Optional[str], str]:
    """Pull an error code and lower-cased message out of a provider error."""
    if raw is None:
        return None, ""
    if isinstance(raw, str):
        return None, raw.lower()
    if isinstance(raw, Mapping):
        code = raw.get("code")
        message = raw.get("message") or ""
        return (str(code) if code is not None else None), str(message).lower()

    # SQLAlchemy DBAPIError wraps the driver error in .orig; its own .code is
    # a SQLAlchemy docs link id, not a database code
    code = getattr(getattr(raw, "orig", None), "pgcode", None) or getattr(raw, "pgcode", None)
    if code is None and not isinstance(raw, SQLAlchemyError):
        code = getattr(raw, "code", None)
    message = getattr(raw, "message", None) or str(raw)
    return (str(code) if code is not None else None), str(message).lower()


def map_external_error(raw: Any) -> EntitlementError:
    """
    Translate a provider/storage error into the taxonomy.

    Accepts a mapping with "code"/"message", an exception, or plain text.
    Unrecognised input maps to UNKNOWN_PERMISSION_ERROR.
    """
    code, message = _extract_code_and_message(raw)

    if code in _PERMISSION_DENIED_CODES or "permission denied" in message:
        error_type = EntitlementErrorType.PERMISSION_DENIED
    elif code in _AUTH_CODES or "jwt" in message:
        error_type = EntitlementErrorType.AUTHENTICATION_REQUIRED
    elif "rls" in message or "row level security" in message:
        error_type = EntitlementErrorType.RESOURCE_ACCESS_DENIED
    elif "subscription" in message or "billing" in message:
        error_type = EntitlementErrorType.SUBSCRIPTION_REQUIRED
    else:
        error_type = EntitlementErrorType.UNKNOWN_PERMISSION_ERROR

    logger.debug(
        "Mapped external error",
        extra={"error_code": code, "error_type": error_type.value},
    )
    return create_error(error_type)


def should_offer_upgrade(error: EntitlementError) -> bool:
    """Whether to surface the upgrade/remediation action for a denial."""
    return error.upgrade_required and error.actionable


def format_for_display(error: EntitlementError) -> str:
    """
    Render the user-facing text for a denial.

    Suggested actions are included only for actionable errors that have any.
    """
    if not error.actionable or not error.suggested_actions:
        return error.user_message

    bullets = "\n".join(f"• {action}" for action in error.suggested_actions)
    return f"{error.user_message}\n\nSuggested actions:\n{bullets}"
