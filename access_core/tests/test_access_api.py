"""
Tests for the access API routes and the require_access dependency.

Uses FastAPI TestClient with dependency overrides for the subscription
reader and the checkout initiator.
"""

from datetime import datetime, timezone
from typing import Optional
from unittest.mock import AsyncMock

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from access_core.api.dependencies.access import get_subscription_reader, require_access
from access_core.api.routes.access import get_checkout_initiator
from access_core.entitlements.exceptions import CheckoutError, SubscriptionLookupError
from access_core.entitlements.interfaces import CheckoutInitiator, SubscriptionReader
from access_core.entitlements.loader import get_plans_config_loader
from access_core.entitlements.models import Actor, PlanRef, SubscriptionRecord
from access_core.main import app

PAST = datetime(2000, 1, 1, tzinfo=timezone.utc)

PROFESSIONAL = PlanRef(plan_id="professional", name="Professional", price=5000, period="month")
STARTER = PlanRef(plan_id="starter", name="Starter", price=2500, period="month")


class FakeSubscriptionReader(SubscriptionReader):
    """In-memory reader keyed by tenant id."""

    def __init__(self, records=None, error: Optional[Exception] = None):
        self.records = records or {}
        self.error = error

    async def read(self, tenant_id: str) -> Optional[SubscriptionRecord]:
        if self.error is not None:
            raise self.error
        return self.records.get(tenant_id)


RECORDS = {
    "tenant-active": SubscriptionRecord(status="active", plan=PROFESSIONAL),
    "tenant-starter": SubscriptionRecord(status="active", plan=STARTER),
    "tenant-trial-over": SubscriptionRecord(status="trialing", trial_end=PAST, plan=PROFESSIONAL),
    "tenant-cancelled": SubscriptionRecord(status="cancelled", plan=STARTER),
}


def headers(tenant_id="tenant-active", role="manager", user_id="user-1", email=None):
    result = {"X-User-Id": user_id, "X-Tenant-Id": tenant_id, "X-User-Role": role}
    if email:
        result["X-User-Email"] = email
    return result


@pytest.fixture
def reader():
    return FakeSubscriptionReader(dict(RECORDS))


@pytest.fixture
def checkout():
    mock = AsyncMock(spec=CheckoutInitiator)
    mock.create_checkout.return_value = "https://pay.example.com/session/1"
    return mock


@pytest.fixture
def client(plans_config_path, reader, checkout, monkeypatch):
    monkeypatch.delenv("SUBSCRIPTION_LOOKUP_FAIL_CLOSED", raising=False)
    get_plans_config_loader(plans_config_path)
    app.dependency_overrides[get_subscription_reader] = lambda: reader
    app.dependency_overrides[get_checkout_initiator] = lambda: checkout
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# GET /api/access/subscription
# =============================================================================

class TestSubscriptionGateEndpoint:
    """Tests for GET /api/access/subscription."""

    def test_active_subscription_allowed(self, client):
        response = client.get("/api/access/subscription", headers=headers())

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "allowed"
        assert body["subscription_status"] == "active"
        assert body["panel"] is None

    def test_expired_trial_denied_with_panel(self, client):
        response = client.get("/api/access/subscription", headers=headers(tenant_id="tenant-trial-over"))

        body = response.json()
        assert body["state"] == "denied"
        assert body["panel"]["cause"] == "trial_expired"
        assert body["panel"]["primary_action"] == "Upgrade Now"
        assert body["panel"]["offer_upgrade"] is True
        assert body["panel"]["error"]["error"] == "TRIAL_EXPIRED"

    def test_lookup_failure_fails_open(self, client, reader):
        reader.error = SubscriptionLookupError("tenant-active", "connection refused")

        response = client.get("/api/access/subscription", headers=headers())

        assert response.json()["state"] == "allowed"

    def test_unauthenticated_is_401(self, client):
        response = client.get("/api/access/subscription")

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "AUTHENTICATION_REQUIRED"


# =============================================================================
# POST /api/access/check
# =============================================================================

class TestAccessCheckEndpoint:
    """Tests for POST /api/access/check."""

    def test_plan_feature_allowed(self, client):
        response = client.post(
            "/api/access/check",
            headers=headers(),
            json={
                "feature_name": "advanced_reporting",
                "required_roles": ["Business Owner", "Store Manager"],
                "resource": "reports",
                "action": "read",
            },
        )

        assert response.status_code == 200
        assert response.json() == {"allowed": True, "reason": None, "error": None, "upgrade_message": None}

    def test_feature_missing_from_plan(self, client):
        response = client.post(
            "/api/access/check",
            headers=headers(tenant_id="tenant-starter"),
            json={"feature_name": "advanced_reporting"},
        )

        body = response.json()
        assert body["allowed"] is False
        assert body["error"]["error"] == "FEATURE_NOT_AVAILABLE"
        assert body["error"]["upgrade_required"] is True
        assert body["upgrade_message"] == "Upgrade to access detailed analytics and advanced reporting features"

    def test_denied_subscription_falls_back_to_default_features(self, client):
        """A tenant whose trial ended keeps only the default features."""
        response = client.post(
            "/api/access/check",
            headers=headers(tenant_id="tenant-trial-over"),
            json={"feature_name": "advanced_reporting"},
        )

        assert response.json()["error"]["error"] == "FEATURE_NOT_AVAILABLE"

    def test_usage_limit(self, client):
        response = client.post(
            "/api/access/check",
            headers=headers(),
            json={"feature_name": "max_locations", "current_usage": 5},
        )

        body = response.json()
        assert body["error"]["error"] == "FEATURE_LIMIT_EXCEEDED"
        assert body["error"]["user_message"].endswith("(5/5)")

    def test_sales_staff_denied_owner_only_report(self, client):
        response = client.post(
            "/api/access/check",
            headers=headers(role="cashier"),
            json={
                "feature_name": "advanced_reporting",
                "required_roles": ["Business Owner"],
                "resource": "reports",
                "action": "read",
            },
        )

        body = response.json()
        assert body["error"]["error"] == "INSUFFICIENT_ROLE"
        assert body["error"]["required_role"] == "Business Owner"

    def test_owner_has_every_permission(self, client):
        response = client.post(
            "/api/access/check",
            headers=headers(role="admin"),
            json={"required_roles": ["Store Manager"], "resource": "products", "action": "delete"},
        )

        assert response.json()["allowed"] is True

    def test_missing_permission(self, client):
        response = client.post(
            "/api/access/check",
            headers=headers(role="manager"),
            json={"resource": "products", "action": "delete"},
        )

        assert response.json()["error"]["required_permission"] == "delete on products"

    def test_unauthenticated_verdict(self, client):
        response = client.post("/api/access/check", json={"feature_name": "basic_pos"})

        assert response.status_code == 200
        assert response.json()["error"]["error"] == "AUTHENTICATION_REQUIRED"

    def test_negative_usage_rejected(self, client):
        response = client.post(
            "/api/access/check",
            headers=headers(),
            json={"feature_name": "max_locations", "current_usage": -1},
        )

        assert response.status_code == 422


# =============================================================================
# POST /api/access/checkout
# =============================================================================

class TestCheckoutEndpoint:
    """Tests for POST /api/access/checkout."""

    def test_checkout_for_denied_tenant(self, client, checkout):
        response = client.post(
            "/api/access/checkout",
            headers=headers(tenant_id="tenant-cancelled", email="owner@example.com"),
        )

        assert response.status_code == 200
        assert response.json() == {"checkout_url": "https://pay.example.com/session/1"}
        checkout.create_checkout.assert_awaited_once_with(STARTER, "tenant-cancelled", email="owner@example.com")

    def test_checkout_conflict_when_allowed(self, client, checkout):
        response = client.post("/api/access/checkout", headers=headers())

        assert response.status_code == 409
        checkout.create_checkout.assert_not_called()

    def test_checkout_provider_failure(self, client, checkout):
        checkout.create_checkout.side_effect = CheckoutError("Checkout API error: 500", status_code=500)

        response = client.post("/api/access/checkout", headers=headers(tenant_id="tenant-cancelled"))

        assert response.status_code == 502


# =============================================================================
# require_access dependency
# =============================================================================

@pytest.fixture
def guarded_client(plans_config_path, reader):
    get_plans_config_loader(plans_config_path)
    guarded = FastAPI()

    @guarded.get("/reports")
    def reports(actor: Actor = Depends(require_access(
        feature_name="advanced_reporting",
        required_roles=["Business Owner", "Store Manager"],
        required_permission=("reports", "read"),
    ))):
        return {"user_id": actor.user_id}

    @guarded.post("/locations")
    def add_location(actor: Actor = Depends(require_access(
        feature_name="max_locations",
        usage_counter=lambda actor: 5,
    ))):
        return {"ok": True}

    guarded.dependency_overrides[get_subscription_reader] = lambda: reader
    return TestClient(guarded)


class TestRequireAccess:
    """Tests for the require_access dependency factory."""

    def test_allowed_returns_actor(self, guarded_client):
        response = guarded_client.get("/reports", headers=headers())

        assert response.status_code == 200
        assert response.json() == {"user_id": "user-1"}

    def test_unauthenticated_is_401(self, guarded_client):
        assert guarded_client.get("/reports").status_code == 401

    def test_upgrade_required_is_402(self, guarded_client):
        response = guarded_client.get("/reports", headers=headers(tenant_id="tenant-starter"))

        assert response.status_code == 402
        detail = response.json()["detail"]
        assert detail["error"] == "FEATURE_NOT_AVAILABLE"
        assert "Suggested actions:" in detail["display"]
        assert detail["upgrade_message"] == "Upgrade to access detailed analytics and advanced reporting features"

    def test_role_denial_is_403(self, guarded_client):
        response = guarded_client.get("/reports", headers=headers(role="cashier"))

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "INSUFFICIENT_ROLE"
        assert "upgrade_message" not in response.json()["detail"]

    def test_usage_counter_enforces_limit(self, guarded_client):
        response = guarded_client.post("/locations", headers=headers())

        assert response.status_code == 402
        assert response.json()["detail"]["error"] == "FEATURE_LIMIT_EXCEEDED"
        assert response.json()["detail"]["upgrade_message"] == "Upgrade your subscription to access this feature"


class TestApplication:
    """Tests for application startup."""

    def test_health_with_bundled_plans(self, monkeypatch):
        """Startup loads the bundled config/plans.yml."""
        monkeypatch.delenv("ACCESS_PLANS_CONFIG", raising=False)

        with TestClient(app) as test_client:
            response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert get_plans_config_loader().plan_ids == ["starter", "professional", "enterprise"]
