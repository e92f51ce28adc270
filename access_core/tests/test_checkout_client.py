"""
Tests for the HTTP checkout initiator.

Uses httpx.MockTransport so no network calls are made.
"""

import json

import httpx
import pytest

from access_core.entitlements.exceptions import CheckoutError
from access_core.entitlements.models import PlanRef
from access_core.integrations.checkout_client import HttpCheckoutInitiator

CHECKOUT_URL = "https://payments.example.com/api/checkout"


def make_initiator(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpCheckoutInitiator(CHECKOUT_URL, client=client)


class TestHttpCheckoutInitiator:
    """Tests for HttpCheckoutInitiator.create_checkout."""

    @pytest.mark.asyncio
    async def test_returns_authorization_url(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"authorization_url": "https://pay.example.com/abc"})

        async with make_initiator(handler) as checkout:
            url = await checkout.create_checkout(
                PlanRef(plan_id="starter", name="Starter"), "tenant-1", email="owner@example.com"
            )

        assert url == "https://pay.example.com/abc"
        assert str(requests[0].url) == CHECKOUT_URL
        assert json.loads(requests[0].content) == {
            "planId": "starter",
            "tenantId": "tenant-1",
            "email": "owner@example.com",
        }

    @pytest.mark.asyncio
    async def test_default_plan_when_none(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"authorization_url": "https://pay.example.com/abc"})

        async with make_initiator(handler) as checkout:
            await checkout.create_checkout(None, "tenant-1")

        assert bodies == [{"planId": "basic-plan", "tenantId": "tenant-1"}]

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        async with make_initiator(lambda request: httpx.Response(502, text="bad gateway")) as checkout:
            with pytest.raises(CheckoutError) as exc_info:
                await checkout.create_checkout(None, "tenant-1")

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_missing_url_raises(self):
        async with make_initiator(lambda request: httpx.Response(200, json={"status": "ok"})) as checkout:
            with pytest.raises(CheckoutError):
                await checkout.create_checkout(None, "tenant-1")

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        async with make_initiator(lambda request: httpx.Response(200, text="<html>")) as checkout:
            with pytest.raises(CheckoutError):
                await checkout.create_checkout(None, "tenant-1")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_initiator(handler) as checkout:
            with pytest.raises(CheckoutError):
                await checkout.create_checkout(None, "tenant-1")

    def test_requires_url(self):
        with pytest.raises(ValueError):
            HttpCheckoutInitiator("")
