# Overview: Service-layer operations for the platform subscription plan catalogue.

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..models import SubscriptionPlan
from ..models.tenancy import BILLING_CYCLES
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, validate_payload


PLAN_FIELDS = {
    "name", "slug", "description", "price", "currency", "billing_cycle", "trial_days",
    "max_products", "max_staff", "max_branches", "max_customers",
    "features", "is_popular", "display_order", "is_active", "is_public",
}

PLAN_POLICY = ModelValidationPolicy(
    writable_fields=PLAN_FIELDS,
    required_on_create={"name", "description", "price"},
)

_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{0,63}$")


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def enforce_rules_plan(patch: dict) -> None:
    for key in ("price", "trial_days"):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")
    # -1 means unlimited
    for key in ("max_products", "max_staff", "max_branches", "max_customers"):
        if patch.get(key) is not None and patch[key] < -1:
            raise ValidationError(f"{key} must be -1 (unlimited) or >= 0")
    if patch.get("billing_cycle") is not None and patch["billing_cycle"] not in BILLING_CYCLES:
        raise ValidationError(f"billing_cycle must be one of: {', '.join(BILLING_CYCLES)}")
    features = patch.get("features")
    if features is not None:
        if not isinstance(features, dict) or not all(isinstance(v, bool) for v in features.values()):
            raise ValidationError("features must map feature names to booleans")


def list_plans(*, include_inactive: bool = True) -> list[SubscriptionPlan]:
    """Cheapest first, ties by display order."""
    query = db.session.query(SubscriptionPlan)
    if not include_inactive:
        query = query.filter(SubscriptionPlan.is_active.is_(True))
    return query.order_by(
        SubscriptionPlan.price.asc(),
        SubscriptionPlan.display_order.asc(),
        SubscriptionPlan.id.asc(),
    ).all()


def get_plan(plan_id: int) -> SubscriptionPlan | None:
    return db.session.get(SubscriptionPlan, plan_id)


def create_plan(payload: dict) -> SubscriptionPlan:
    """
    Raises:
        ValidationError: missing or invalid fields
        ConflictError: slug already used by another plan
    """
    patch = validate_payload(model=SubscriptionPlan, payload=payload, policy=PLAN_POLICY, partial=False)
    enforce_rules_plan(patch)

    slug = (patch.get("slug") or _slugify(patch["name"])).lower()
    if not _SLUG_RE.match(slug):
        raise ValidationError("slug must be lowercase letters, digits and hyphens")
    if db.session.query(SubscriptionPlan.id).filter_by(slug=slug).first() is not None:
        raise ConflictError(f"Plan slug {slug} already exists")
    patch["slug"] = slug
    if patch.get("currency"):
        patch["currency"] = patch["currency"].upper()

    plan = SubscriptionPlan(
        currency="TND",
        billing_cycle="monthly",
        trial_days=14,
        features={},
    )
    for key, value in patch.items():
        setattr(plan, key, value)

    db.session.add(plan)
    db.session.commit()
    current_app.logger.info("Created subscription plan %s slug=%s", plan.id, plan.slug)
    return plan
