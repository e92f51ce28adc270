"""
Feature entitlement checks: availability and usage ceilings.

Usage counters are supplied by the caller; nothing here reads storage.
"""

from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from access_core.entitlements.errors import create_feature_error
from access_core.entitlements.exceptions import InvalidCheckInputError
from access_core.entitlements.models import UNLIMITED, AccessVerdict

# Warn when usage reaches this fraction of the plan limit
DEFAULT_WARNING_THRESHOLD = 0.8


def check_feature_access(
    feature_name: str,
    has_feature: Callable[[str], bool],
    get_limit: Optional[Callable[[str], Optional[int]]] = None,
    current_usage: Optional[int] = None,
) -> AccessVerdict:
    """
    Check feature availability, then the usage limit.

    Availability takes precedence: when the feature is not available the
    limit is never consulted.

    Args:
        feature_name: Feature key, e.g. "advanced_reporting"
        has_feature: Predicate over feature names
        get_limit: Returns the plan limit for a feature (None = no limit)
        current_usage: Caller-supplied usage counter

    Raises:
        InvalidCheckInputError: On empty feature name or negative usage
    """
    if not feature_name:
        raise InvalidCheckInputError("feature_name cannot be empty")
    if current_usage is not None and current_usage < 0:
        raise InvalidCheckInputError("current_usage cannot be negative")

    if not has_feature(feature_name):
        return AccessVerdict.deny(
            create_feature_error(feature_name),
            reason=f"Feature '{feature_name}' not available in current plan",
        )

    if get_limit is not None and current_usage is not None:
        limit = get_limit(feature_name)
        if limit is not None and current_usage >= limit:
            return AccessVerdict.deny(
                create_feature_error(feature_name, current_usage, limit),
                reason=f"Feature '{feature_name}' usage limit exceeded ({current_usage}/{limit})",
            )

    return AccessVerdict.allow()


@dataclass(frozen=True)
class UsageWarning:
    """Near-limit warning for a feature."""

    feature_name: str
    current_usage: int
    limit: int

    @property
    def usage_percent(self) -> float:
        return round(self.current_usage / self.limit * 100, 1)

    @property
    def remaining(self) -> int:
        return max(self.limit - self.current_usage, 0)

    @property
    def message(self) -> str:
        return (
            f"You've used {self.current_usage} of {self.limit} for {self.feature_name}. "
            f"Upgrade to increase your limit."
        )


def check_usage_warning(
    feature_name: str,
    get_limit: Callable[[str], Optional[int]],
    current_usage: int,
    threshold: float = DEFAULT_WARNING_THRESHOLD,
) -> Optional[UsageWarning]:
    """
    Return a warning when usage is close to (but below) a finite limit.

    Unlimited features (no limit, or the UNLIMITED sentinel) never warn.
    """
    if not 0 < threshold <= 1:
        raise InvalidCheckInputError("threshold must be in (0, 1]")

    limit = get_limit(feature_name)
    if limit is None or limit <= 0 or limit >= UNLIMITED:
        return None
    if current_usage >= limit or current_usage < limit * threshold:
        return None
    return UsageWarning(feature_name=feature_name, current_usage=current_usage, limit=limit)


DEFAULT_UPGRADE_MESSAGE = "Upgrade your subscription to access this feature"


def feature_upgrade_message(feature_name: Optional[str], messages: Optional[Mapping[str, str]] = None) -> str:
    """
    Upgrade prompt for a feature.

    Falls back to DEFAULT_UPGRADE_MESSAGE when the feature has no copy of
    its own.
    """
    if feature_name and messages:
        message = messages.get(feature_name)
        if message:
            return message
    return DEFAULT_UPGRADE_MESSAGE
