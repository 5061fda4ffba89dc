from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Branch(db.Model):
    """
    A physical store location of a tenant.

    MULTI-TENANT: code ("BR001") is unique within a tenant. At most one
    branch per tenant is the main branch.

    Stock is held per product, not per branch.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_branches_tenant_code"),
        db.Index("ix_branches_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=True)

    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    # Address
    street = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    governorate = db.Column(db.String(128), nullable=True)
    postal_code = db.Column(db.String(16), nullable=True)
    country = db.Column(db.String(64), nullable=False, default="Tunisia")

    manager_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_main_branch = db.Column(db.Boolean, nullable=False, default=False)

    opened_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    manager = db.relationship("User", foreign_keys=[manager_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "email": self.email,
            "phone": self.phone,
            "address": {
                "street": self.street,
                "city": self.city,
                "governorate": self.governorate,
                "postal_code": self.postal_code,
                "country": self.country,
            },
            "manager": (
                {"id": self.manager.id, "full_name": self.manager.full_name}
                if self.manager is not None else None
            ),
            "is_active": self.is_active,
            "is_main_branch": self.is_main_branch,
            "opened_date": to_utc_z(self.opened_date),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
