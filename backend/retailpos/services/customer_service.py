# Overview: Service-layer operations for customers; CRUD, search and credit collection.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import CustomerNotFound, PosError
from ..models import Customer
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    enforce_rules_customer,
    parse_positive_quantity,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .pagination import paginate
from .tenant_service import scoped_get


CUSTOMER_MUTABLE_FIELDS = {
    "first_name", "last_name", "email", "phone", "alternate_phone",
    "street", "city", "governorate", "postal_code", "country",
    "type", "tax_id", "preferred_payment_method",
    "allow_credit", "credit_limit", "is_active", "notes",
}

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=CUSTOMER_MUTABLE_FIELDS,
    required_on_create={"first_name", "last_name", "phone"},
)


def list_customers(
    *,
    tenant_id: int,
    page: int | None = None,
    per_page: int | None = None,
    search: str | None = None,
    customer_type: str | None = None,
    is_active: bool | None = None,
) -> dict:
    """Newest first; search matches names, phone, email and customer number."""
    query = db.session.query(Customer).filter(Customer.tenant_id == tenant_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Customer.first_name.ilike(pattern),
            Customer.last_name.ilike(pattern),
            Customer.phone.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.customer_number.ilike(pattern),
        ))
    if customer_type:
        query = query.filter(Customer.type == customer_type)
    if is_active is not None:
        query = query.filter(Customer.is_active.is_(is_active))

    query = query.order_by(Customer.created_at.desc(), Customer.id.desc())
    return paginate(query, page=page, per_page=per_page)


def get_customer(*, tenant_id: int, customer_id: int) -> Customer:
    customer = scoped_get(Customer, customer_id, tenant_id)
    if customer is None:
        raise CustomerNotFound("Customer not found", details={"customer_id": customer_id})
    return customer


def create_customer(*, tenant_id: int, payload: dict, user_id: int | None = None) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    enforce_rules_customer(patch)
    if patch.get("email"):
        patch["email"] = patch["email"].lower()

    customer = Customer(
        tenant_id=tenant_id,
        customer_number=next_document_number(tenant_id=tenant_id, document_type="customer"),
        country="Tunisia",
        type="retail",
        loyalty_points=0,
        loyalty_tier="bronze",
        allow_credit=False,
        credit_limit=0.0,
        current_credit=0.0,
        created_by_user_id=user_id,
    )
    for key, value in patch.items():
        setattr(customer, key, value)

    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(*, tenant_id: int, customer_id: int, payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    enforce_rules_customer(patch)
    if patch.get("email"):
        patch["email"] = patch["email"].lower()

    customer = get_customer(tenant_id=tenant_id, customer_id=customer_id)

    new_limit = patch.get("credit_limit")
    if new_limit is not None and new_limit < (customer.current_credit or 0.0):
        raise ConflictError("credit_limit cannot be lower than the outstanding credit")

    for key, value in patch.items():
        setattr(customer, key, value)
    db.session.commit()
    return customer


def delete_customer(*, tenant_id: int, customer_id: int) -> None:
    """Hard delete; refused while the customer still owes credit."""
    customer = get_customer(tenant_id=tenant_id, customer_id=customer_id)
    if (customer.current_credit or 0.0) > 0:
        raise ConflictError("Customer has outstanding credit and cannot be deleted")
    db.session.delete(customer)
    db.session.commit()


def pay_credit(*, tenant_id: int, customer_id: int, amount) -> tuple[Customer, float]:
    """
    Record a payment against the customer's credit balance.

    The balance floors at 0; returns (customer, amount actually applied).
    """
    amount = parse_positive_quantity(amount, "amount")

    def _op():
        try:
            customer = lock_for_update(
                db.session.query(Customer).filter_by(id=customer_id, tenant_id=tenant_id)
            ).first()
            if not customer:
                raise CustomerNotFound("Customer not found", details={"customer_id": customer_id})
            applied = customer.pay_credit(amount)
            db.session.commit()
            return customer, applied
        except PosError:
            db.session.rollback()
            raise

    customer, applied = run_with_retry(_op)
    current_app.logger.info(
        "Credit payment: tenant=%s customer=%s applied=%s balance=%s",
        tenant_id, customer.id, applied, customer.current_credit,
    )
    return customer, applied
