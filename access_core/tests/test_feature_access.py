"""
Tests for feature availability and usage-limit checks.
"""

from unittest.mock import Mock

import pytest

from access_core.entitlements.errors import EntitlementErrorType
from access_core.entitlements.exceptions import InvalidCheckInputError
from access_core.entitlements.features import (
    DEFAULT_UPGRADE_MESSAGE,
    check_feature_access,
    check_usage_warning,
    feature_upgrade_message,
)
from access_core.entitlements.models import UNLIMITED, FeatureEntitlement


# =============================================================================
# Availability
# =============================================================================

class TestFeatureAvailability:
    """Tests for the availability axis."""

    def test_available_feature_is_allowed(self):
        verdict = check_feature_access("basic_pos", lambda name: True)

        assert verdict.allowed is True
        assert verdict.error is None

    def test_unavailable_feature_is_denied(self):
        """Missing features deny with FEATURE_NOT_AVAILABLE."""
        verdict = check_feature_access("gift_cards", lambda name: False)

        assert verdict.allowed is False
        assert verdict.error.type == EntitlementErrorType.FEATURE_NOT_AVAILABLE
        assert verdict.error.feature_name == "gift_cards"
        assert verdict.reason == "Feature 'gift_cards' not available in current plan"

    def test_availability_takes_precedence_over_limit(self):
        """The limit lookup is never consulted for an unavailable feature."""
        get_limit = Mock(return_value=5)

        verdict = check_feature_access("sms", lambda name: False, get_limit, current_usage=10)

        assert verdict.error.type == EntitlementErrorType.FEATURE_NOT_AVAILABLE
        get_limit.assert_not_called()

    def test_empty_feature_name_raises(self):
        with pytest.raises(InvalidCheckInputError):
            check_feature_access("", lambda name: True)

    def test_negative_usage_raises(self):
        with pytest.raises(InvalidCheckInputError):
            check_feature_access("sms", lambda name: True, lambda name: 5, current_usage=-1)


# =============================================================================
# Usage limits
# =============================================================================

class TestFeatureLimits:
    """Tests for the usage-limit axis."""

    def test_usage_at_limit_is_denied(self):
        """Usage equal to the limit is already over it."""
        verdict = check_feature_access("sms", lambda name: True, lambda name: 5, current_usage=5)

        assert verdict.allowed is False
        assert verdict.error.type == EntitlementErrorType.FEATURE_LIMIT_EXCEEDED
        assert verdict.error.user_message.endswith("(5/5)")
        assert verdict.reason == "Feature 'sms' usage limit exceeded (5/5)"

    def test_usage_below_limit_is_allowed(self):
        verdict = check_feature_access("sms", lambda name: True, lambda name: 5, current_usage=4)

        assert verdict.allowed is True

    def test_no_limit_is_allowed(self):
        """A None limit means the feature has no ceiling."""
        verdict = check_feature_access("sms", lambda name: True, lambda name: None, current_usage=10_000)

        assert verdict.allowed is True

    def test_limit_skipped_without_usage(self):
        """get_limit is only consulted when a usage counter is supplied."""
        get_limit = Mock(return_value=1)

        verdict = check_feature_access("sms", lambda name: True, get_limit)

        assert verdict.allowed is True
        get_limit.assert_not_called()


# =============================================================================
# Usage warnings
# =============================================================================

class TestUsageWarning:
    """Tests for near-limit warnings."""

    def test_warns_at_threshold(self):
        warning = check_usage_warning("max_staff_users", lambda name: 10, current_usage=8)

        assert warning is not None
        assert warning.usage_percent == 80.0
        assert warning.remaining == 2
        assert "8 of 10" in warning.message

    def test_no_warning_below_threshold(self):
        assert check_usage_warning("max_staff_users", lambda name: 10, current_usage=7) is None

    def test_no_warning_once_limit_reached(self):
        """At the limit the checker denies; there is nothing to warn about."""
        assert check_usage_warning("max_staff_users", lambda name: 10, current_usage=10) is None

    def test_unlimited_never_warns(self):
        assert check_usage_warning("max_locations", lambda name: UNLIMITED, current_usage=UNLIMITED - 1) is None
        assert check_usage_warning("max_locations", lambda name: None, current_usage=5) is None

    def test_invalid_threshold_raises(self):
        with pytest.raises(InvalidCheckInputError):
            check_usage_warning("sms", lambda name: 10, current_usage=1, threshold=0)


class TestFeatureEntitlement:
    """Tests for the FeatureEntitlement model."""

    def test_unlimited_sentinel(self):
        assert FeatureEntitlement("max_locations", True, UNLIMITED).is_unlimited() is True
        assert FeatureEntitlement("max_locations", True, None).is_unlimited() is True
        assert FeatureEntitlement("max_locations", True, 5).is_unlimited() is False


# =============================================================================
# Upgrade prompts
# =============================================================================

class TestFeatureUpgradeMessage:
    """Tests for per-feature upgrade copy."""

    MESSAGES = {"gift_cards": "Upgrade to offer gift cards to your customers"}

    def test_configured_message(self):
        assert feature_upgrade_message("gift_cards", self.MESSAGES) == "Upgrade to offer gift cards to your customers"

    def test_unlisted_feature_gets_generic_prompt(self):
        assert feature_upgrade_message("loyalty_program", self.MESSAGES) == DEFAULT_UPGRADE_MESSAGE

    def test_no_feature_or_table(self):
        assert feature_upgrade_message(None, self.MESSAGES) == DEFAULT_UPGRADE_MESSAGE
        assert feature_upgrade_message("gift_cards") == DEFAULT_UPGRADE_MESSAGE

    def test_blank_copy_falls_back(self):
        assert feature_upgrade_message("gift_cards", {"gift_cards": ""}) == DEFAULT_UPGRADE_MESSAGE
