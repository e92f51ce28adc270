"""
Abstract collaborators consumed by the access core.

The core never reads storage or calls the network itself; concrete
implementations live in access_core.services and access_core.integrations.
"""

from abc import ABC, abstractmethod
from typing import Optional

from access_core.entitlements.models import Actor, PlanRef, SubscriptionRecord


class SubscriptionReader(ABC):
    """Reads the current subscription record for a tenant."""

    @abstractmethod
    async def read(self, tenant_id: str) -> Optional[SubscriptionRecord]:
        """
        Fetch the subscription record.

        Returns:
            The record, or None when the tenant has no subscription

        Raises:
            SubscriptionLookupError: On transport or storage failure
        """
        pass


class CheckoutInitiator(ABC):
    """Starts an upgrade/checkout flow and returns where to send the user."""

    @abstractmethod
    async def create_checkout(
        self,
        plan: Optional[PlanRef],
        tenant_id: str,
        email: Optional[str] = None,
    ) -> str:
        """
        Returns:
            Redirect URL for the checkout page

        Raises:
            CheckoutError: If no redirect URL could be obtained
        """
        pass


class ActorContextProvider(ABC):
    """Supplies the current actor and the sign-out transition."""

    @abstractmethod
    def current_actor(self) -> Optional[Actor]:
        """Current actor, or None while authentication is still resolving."""
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass
