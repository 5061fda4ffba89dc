from __future__ import annotations

from ..extensions import db
from ..errors import CreditLimitExceeded, CreditNotAllowed
from ..time_utils import to_utc_z, utcnow


CUSTOMER_TYPES = ("retail", "wholesale", "vip")

# (minimum points, tier), highest first
LOYALTY_TIERS = (
    (10000, "platinum"),
    (5000, "gold"),
    (2000, "silver"),
    (0, "bronze"),
)


def loyalty_tier_for_points(points: float) -> str:
    for threshold, tier in LOYALTY_TIERS:
        if points >= threshold:
            return tier
    return "bronze"


class Customer(db.Model):
    """
    Customer master data with purchase stats, loyalty and store credit.

    MULTI-TENANT: Customers are scoped to tenants via tenant_id;
    customer_number ("CUST000001") is unique within a tenant.

    CREDIT: current_credit is the outstanding balance owed by the customer.
    It never exceeds credit_limit and never drops below 0.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "customer_number", name="uq_customers_tenant_number"),
        db.Index("ix_customers_tenant_phone", "tenant_id", "phone"),
        db.Index("ix_customers_tenant_email", "tenant_id", "email"),
        db.Index("ix_customers_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    customer_number = db.Column(db.String(32), nullable=False)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=False)
    alternate_phone = db.Column(db.String(32), nullable=True)

    # Address
    street = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    governorate = db.Column(db.String(128), nullable=True)
    postal_code = db.Column(db.String(16), nullable=True)
    country = db.Column(db.String(64), nullable=False, default="Tunisia")

    type = db.Column(db.String(16), nullable=False, default="retail")
    tax_id = db.Column(db.String(64), nullable=True)
    preferred_payment_method = db.Column(db.String(16), nullable=True)

    # Loyalty
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    loyalty_tier = db.Column(db.String(16), nullable=False, default="bronze")

    # Credit
    allow_credit = db.Column(db.Boolean, nullable=False, default=False)
    credit_limit = db.Column(db.Float, nullable=False, default=0.0)
    current_credit = db.Column(db.Float, nullable=False, default=0.0)

    # Denormalized aggregates (updated when sales complete or are refunded)
    purchase_count = db.Column(db.Integer, nullable=False, default=0)
    total_purchases = db.Column(db.Integer, nullable=False, default=0)
    total_spent = db.Column(db.Float, nullable=False, default=0.0)
    average_order_value = db.Column(db.Float, nullable=False, default=0.0)
    first_purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    tenant = db.relationship("Tenant", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def available_credit(self) -> float:
        return (self.credit_limit or 0.0) - (self.current_credit or 0.0)

    def update_purchase_stats(self, amount: float, at=None) -> None:
        at = at or utcnow()
        self.purchase_count = (self.purchase_count or 0) + 1
        self.total_purchases = self.purchase_count
        self.total_spent = (self.total_spent or 0.0) + amount
        self.average_order_value = self.total_spent / self.purchase_count
        self.last_purchase_date = at
        if self.first_purchase_date is None:
            self.first_purchase_date = at

    def reverse_purchase_stats(self, amount: float) -> None:
        """Undo one update_purchase_stats call (refunds)."""
        self.purchase_count = max(0, (self.purchase_count or 0) - 1)
        self.total_purchases = self.purchase_count
        self.total_spent = max(0.0, (self.total_spent or 0.0) - amount)
        self.average_order_value = (
            self.total_spent / self.purchase_count if self.purchase_count else 0.0
        )

    def add_loyalty_points(self, points: int) -> None:
        """Add (or, with a negative value, remove) points and re-evaluate the tier."""
        self.loyalty_points = max(0, (self.loyalty_points or 0) + points)
        self.loyalty_tier = loyalty_tier_for_points(self.loyalty_points)

    def check_credit(self, amount: float) -> None:
        """Raise if `amount` cannot be put on this customer's account. No mutation."""
        if not self.allow_credit:
            raise CreditNotAllowed(
                "Credit not allowed for this customer",
                details={"customer_id": self.id, "requested_credit": amount},
            )
        current = self.current_credit or 0.0
        if current + amount > (self.credit_limit or 0.0):
            raise CreditLimitExceeded(
                "Credit limit exceeded",
                details={
                    "customer_id": self.id,
                    "credit_limit": self.credit_limit,
                    "current_credit": current,
                    "requested_credit": amount,
                },
            )

    def add_credit(self, amount: float) -> None:
        self.check_credit(amount)
        self.current_credit = (self.current_credit or 0.0) + amount

    def pay_credit(self, amount: float) -> float:
        """Reduce the balance (floored at 0). Returns the amount actually applied."""
        current = self.current_credit or 0.0
        applied = min(current, amount)
        self.current_credit = max(0.0, current - amount)
        return applied

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_number": self.customer_number,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "alternate_phone": self.alternate_phone,
            "address": {
                "street": self.street,
                "city": self.city,
                "governorate": self.governorate,
                "postal_code": self.postal_code,
                "country": self.country,
            },
            "type": self.type,
            "tax_id": self.tax_id,
            "preferred_payment_method": self.preferred_payment_method,
            "loyalty_points": self.loyalty_points,
            "loyalty_tier": self.loyalty_tier,
            "allow_credit": self.allow_credit,
            "credit_limit": self.credit_limit,
            "current_credit": self.current_credit,
            "available_credit": self.available_credit,
            "purchase_count": self.purchase_count,
            "total_purchases": self.total_purchases,
            "total_spent": self.total_spent,
            "average_order_value": self.average_order_value,
            "first_purchase_date": to_utc_z(self.first_purchase_date),
            "last_purchase_date": to_utc_z(self.last_purchase_date),
            "is_active": self.is_active,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
