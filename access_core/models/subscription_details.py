"""
Read model over tenant_subscription_details.

The view is owned by the billing system; this service only reads it.
One row per tenant joins the tenant's subscription with its billing plan.
"""

from sqlalchemy import Column, DateTime, Numeric, String

from access_core.db_base import Base
from access_core.entitlements.models import PlanRef, SubscriptionRecord


class TenantSubscriptionDetails(Base):
    """Subscription state and plan info for a tenant (read-only)."""

    __tablename__ = "tenant_subscription_details"

    tenant_id = Column(
        String(36),
        primary_key=True,
        comment="Tenant owning the subscription"
    )
    status = Column(
        String(32),
        nullable=False,
        comment="active, trial, trialing, pending, cancelled, expired"
    )
    trial_end = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)

    # Denormalized from billing_plans
    plan_id = Column(String(36), nullable=True)
    plan_name = Column(String(100), nullable=True)
    plan_price = Column(Numeric(12, 2), nullable=True)
    plan_period = Column(String(20), nullable=True)

    def to_record(self) -> SubscriptionRecord:
        plan = None
        if self.plan_id or self.plan_name:
            plan = PlanRef(
                plan_id=self.plan_id,
                name=self.plan_name,
                price=float(self.plan_price) if self.plan_price is not None else None,
                period=self.plan_period,
            )
        return SubscriptionRecord(
            status=self.status,
            trial_end=self.trial_end,
            current_period_end=self.current_period_end,
            plan=plan,
        )

    def __repr__(self) -> str:
        return f"<TenantSubscriptionDetails(tenant_id={self.tenant_id}, status={self.status})>"
