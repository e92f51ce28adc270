"""
Exception classes for the access core.

Expected denials are never raised: checkers return AccessVerdict objects.
These exceptions cover programmer errors, collaborator failures and
callers that explicitly ask for a raise-on-deny contract.
"""

from typing import Any, Dict, Optional


class AccessCoreError(Exception):
    """Base exception for access core errors."""
    pass


class InvalidCheckInputError(AccessCoreError, ValueError):
    """Raised when a checker is called with malformed input."""
    pass


class SubscriptionLookupError(AccessCoreError):
    """
    Raised by subscription readers on transport or storage failure.

    The resolver treats this (and any other lookup failure) as fail-open.
    """

    def __init__(self, tenant_id: str, message: str):
        self.tenant_id = tenant_id
        super().__init__(f"Subscription lookup failed for tenant {tenant_id}: {message}")


class CheckoutError(AccessCoreError):
    """Raised when the checkout initiator cannot produce a redirect URL."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidGuardStateError(AccessCoreError):
    """Raised when an AccessGuard operation is not valid in its current state."""
    pass


class AccessDeniedError(AccessCoreError):
    """
    Raised by raise-on-deny helpers (CompositeAuthorizer.require).

    Wraps the structured EntitlementError so callers outside HTTP can
    still render the user-facing copy.
    """

    def __init__(self, error, reason: Optional[str] = None):
        self.error = error
        self.reason = reason
        super().__init__(reason or error.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        payload = self.error.to_dict()
        payload["reason"] = self.reason
        return payload
