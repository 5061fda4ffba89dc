from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


SUBSCRIPTION_STATUSES = ("trial", "active", "suspended", "cancelled", "expired")
USABLE_SUBSCRIPTION_STATUSES = ("trial", "active")
BILLING_CYCLES = ("monthly", "quarterly", "yearly")

# billing_cycle -> months covered by one payment
BILLING_CYCLE_MONTHS = {"monthly": 1, "quarterly": 3, "yearly": 12}


class Tenant(db.Model):
    """
    Multi-tenant root: every business using the POS is a Tenant.

    WHY: Shared-database multi-tenancy. Users, products, customers, sales and
    stock movements all carry tenant_id and every query is scoped by it.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_name = db.Column(db.String(255), nullable=False)
    subdomain = db.Column(db.String(64), nullable=True, unique=True, index=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    business_type = db.Column(db.String(64), nullable=True)

    currency = db.Column(db.String(8), nullable=False, default="TND")
    default_tax_rate = db.Column(db.Float, nullable=False, default=19.0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Subscription state gates access for every non-platform user
    subscription_status = db.Column(db.String(16), nullable=False, default="trial", index=True)
    trial_ends_at = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)
    plan_id = db.Column(
        db.Integer, db.ForeignKey("subscription_plans.id", ondelete="SET NULL"), nullable=True, index=True
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    plan = db.relationship("SubscriptionPlan", backref=db.backref("tenants", lazy=True))

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} business_name={self.business_name!r}>"

    def subscription_is_usable(self, now=None) -> bool:
        if self.subscription_status not in USABLE_SUBSCRIPTION_STATUSES:
            return False
        now = now or utcnow()
        if self.subscription_status == "trial" and self.trial_ends_at is not None and self.trial_ends_at < now:
            return False
        if self.current_period_end is not None and self.current_period_end < now:
            return False
        return True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_name": self.business_name,
            "subdomain": self.subdomain,
            "email": self.email,
            "phone": self.phone,
            "business_type": self.business_type,
            "currency": self.currency,
            "default_tax_rate": self.default_tax_rate,
            "is_active": self.is_active,
            "subscription_status": self.subscription_status,
            "trial_ends_at": to_utc_z(self.trial_ends_at),
            "current_period_end": to_utc_z(self.current_period_end),
            "plan_id": self.plan_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-tenant document sequences.

    WHY: Prevent race conditions when generating sale and customer numbers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_type", name="uq_doc_sequences_tenant_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("document_sequences", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class SubscriptionPlan(db.Model):
    """
    Platform-wide plan catalogue managed by super admins.

    Limits use -1 for unlimited. features maps feature keys to booleans.
    """
    __tablename__ = "subscription_plans"
    __table_args__ = (
        db.Index("ix_subscription_plans_active_public", "is_active", "is_public"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=False)

    price = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="TND")
    billing_cycle = db.Column(db.String(16), nullable=False, default="monthly")
    trial_days = db.Column(db.Integer, nullable=False, default=14)

    # Limits
    max_products = db.Column(db.Integer, nullable=False, default=100)
    max_staff = db.Column(db.Integer, nullable=False, default=3)
    max_branches = db.Column(db.Integer, nullable=False, default=1)
    max_customers = db.Column(db.Integer, nullable=False, default=1000)

    features = db.Column(db.JSON, nullable=False, default=dict)

    is_popular = db.Column(db.Boolean, nullable=False, default=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_public = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def price_per_month(self) -> float:
        months = BILLING_CYCLE_MONTHS.get(self.billing_cycle, 1)
        return round(self.price / months, 2)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "price": self.price,
            "price_per_month": self.price_per_month,
            "currency": self.currency,
            "billing_cycle": self.billing_cycle,
            "trial_days": self.trial_days,
            "limits": {
                "max_products": self.max_products,
                "max_staff": self.max_staff,
                "max_branches": self.max_branches,
                "max_customers": self.max_customers,
            },
            "features": dict(self.features or {}),
            "is_popular": self.is_popular,
            "display_order": self.display_order,
            "is_active": self.is_active,
            "is_public": self.is_public,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
