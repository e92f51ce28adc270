"""
HTTP checkout initiator.

Posts a checkout request to the payment provider's checkout endpoint and
returns the authorization URL the user should be redirected to. Payment
processing itself happens entirely on the provider side.

Configuration:
    CHECKOUT_API_URL   Checkout endpoint (required)
    CHECKOUT_API_KEY   Bearer token sent with the request (optional)
"""

import os
import logging
from typing import Optional

import httpx

from access_core.entitlements.exceptions import CheckoutError
from access_core.entitlements.interfaces import CheckoutInitiator
from access_core.entitlements.models import PlanRef

logger = logging.getLogger(__name__)

# Plan id sent when the tenant has no plan on record
DEFAULT_CHECKOUT_PLAN = "basic-plan"


class HttpCheckoutInitiator(CheckoutInitiator):
    """
    Checkout initiator backed by an HTTP endpoint.

    Usage:
        async with HttpCheckoutInitiator.from_env() as checkout:
            url = await checkout.create_checkout(plan, tenant_id, email=email)
    """

    def __init__(
        self,
        checkout_url: str,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not checkout_url:
            raise ValueError("checkout_url is required")

        self.checkout_url = checkout_url
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(30.0, connect=10.0),
            headers=headers,
        )

    @classmethod
    def from_env(cls) -> "HttpCheckoutInitiator":
        return cls(
            checkout_url=os.getenv("CHECKOUT_API_URL", ""),
            api_key=os.getenv("CHECKOUT_API_KEY"),
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def create_checkout(
        self,
        plan: Optional[PlanRef],
        tenant_id: str,
        email: Optional[str] = None,
    ) -> str:
        payload = {
            "planId": plan.plan_id if plan and plan.plan_id else DEFAULT_CHECKOUT_PLAN,
            "tenantId": tenant_id,
        }
        if email:
            payload["email"] = email

        try:
            response = await self._client.post(self.checkout_url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Checkout request failed", extra={
                "tenant_id": tenant_id,
                "error": str(e),
            })
            raise CheckoutError(f"Checkout request failed: {e}") from e

        if response.status_code >= 400:
            logger.error("Checkout API error", extra={
                "tenant_id": tenant_id,
                "status_code": response.status_code,
                "response_text": response.text[:500],
            })
            raise CheckoutError(
                f"Checkout API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CheckoutError("Checkout response was not valid JSON") from e

        url = data.get("authorization_url") if isinstance(data, dict) else None
        if not url:
            logger.error("Checkout response missing authorization_url", extra={
                "tenant_id": tenant_id,
            })
            raise CheckoutError("Checkout response missing authorization_url")

        logger.info("Checkout created", extra={
            "tenant_id": tenant_id,
            "plan_id": payload["planId"],
        })
        return url
