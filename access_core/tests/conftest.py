"""
Shared test fixtures.

- now / clock: Fixed evaluation time
- make_actor: Actor factory
- plans_config_path: Temporary plans.yml with three plans and three roles
- session_factory: SQLite in-memory session factory with the read model schema
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from access_core.db_base import Base
from access_core.entitlements.loader import reset_plans_config_loader
from access_core.entitlements.models import Actor
from access_core.models.subscription_details import TenantSubscriptionDetails  # noqa: F401  registers table

# Set test environment
os.environ.setdefault("ENV", "test")

FIXED_NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def yesterday():
    return FIXED_NOW - timedelta(days=1)


@pytest.fixture
def tomorrow():
    return FIXED_NOW + timedelta(days=1)


@pytest.fixture
def make_actor():
    """Factory for actors; defaults to an authenticated store manager."""

    def _make(user_id="user-1", tenant_id="tenant-1", role="manager", **kwargs):
        return Actor(user_id=user_id, tenant_id=tenant_id, role=role, **kwargs)

    return _make


@pytest.fixture
def sample_plans_config():
    return {
        "default_features": {
            "basic_pos": True,
            "advanced_reporting": False,
            "max_locations": 1,
            "max_staff_users": 3,
        },
        "plans": [
            {"id": "starter", "name": "Starter", "price": 2500, "period": "month", "features": {}},
            {
                "id": "professional",
                "name": "Professional",
                "price": 5000,
                "period": "month",
                "features": {"advanced_reporting": True, "max_locations": 5},
            },
            {
                "id": "enterprise",
                "name": "Enterprise",
                "price": 12000,
                "period": "month",
                "features": {"advanced_reporting": True, "max_locations": 999999},
            },
        ],
        "roles": [
            {"name": "Business Owner", "permissions": {"all": True}},
            {
                "name": "Store Manager",
                "permissions": {
                    "products": {"read": True, "delete": False},
                    "reports": {"read": True},
                },
            },
            {"name": "Sales Staff", "permissions": {"sales": {"create": True}}},
        ],
        "upgrade_messages": {
            "advanced_reporting": "Upgrade to access detailed analytics and advanced reporting features",
        },
    }


@pytest.fixture
def plans_config_path(tmp_path, sample_plans_config):
    path = tmp_path / "plans.yml"
    path.write_text(yaml.safe_dump(sample_plans_config))
    return str(path)


@pytest.fixture(autouse=True)
def _reset_plans_loader():
    reset_plans_config_loader()
    yield
    reset_plans_config_loader()


@pytest.fixture
def db_engine():
    """SQLite in-memory engine shared across threads."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
