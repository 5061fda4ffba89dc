# Overview: Service-layer operations for tenant staff accounts.

"""
Staff Management Service

MULTI-TENANT: tenant admins manage the users of their own tenant only.
User ids of other tenants (and platform super admins) behave like missing ids.

Roles assignable here are the tenant roles; super_admin accounts are only
created from the CLI. Deleting a staff member deactivates the account and
revokes its sessions so sale and movement attribution stays intact.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import User
from ..permissions import TENANT_ASSIGNABLE_ROLES
from ..validation import ConflictError, ValidationError
from . import auth_service, session_service
from .pagination import paginate
from .tenant_service import scoped_get


STAFF_UPDATABLE_FIELDS = ("first_name", "last_name", "phone", "role", "is_active")


class StaffNotFoundError(Exception):
    """Raised when a user id does not exist in the caller's tenant."""
    pass


def _require_assignable_role(role) -> str:
    if role not in TENANT_ASSIGNABLE_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(TENANT_ASSIGNABLE_ROLES)}")
    return role


def list_staff(
    *,
    tenant_id: int,
    page: int | None = None,
    per_page: int | None = None,
    role: str | None = None,
    is_active: bool | None = None,
) -> dict:
    query = db.session.query(User).filter(User.tenant_id == tenant_id)
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    query = query.order_by(User.last_name.asc(), User.first_name.asc(), User.id.asc())
    return paginate(query, page=page, per_page=per_page)


def get_staff(*, tenant_id: int, user_id: int) -> User:
    user = scoped_get(User, user_id, tenant_id)
    if user is None:
        raise StaffNotFoundError("User not found")
    return user


def create_staff(*, tenant_id: int, payload: dict) -> User:
    """
    Create a staff user in the caller's tenant.

    Raises:
        ValidationError: missing fields or non-tenant role
        ConflictError: email already registered
        PasswordValidationError: weak password
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    role = _require_assignable_role(payload.get("role") or "staff")

    user = auth_service.create_user(
        email=payload.get("email"),
        password=payload.get("password"),
        first_name=payload.get("first_name"),
        last_name=payload.get("last_name"),
        phone=payload.get("phone"),
        role=role,
        tenant_id=tenant_id,
    )
    current_app.logger.info("Created staff user %s role=%s tenant=%s", user.id, user.role, tenant_id)
    return user


def update_staff(*, tenant_id: int, user_id: int, payload: dict, acting_user: User) -> User:
    """
    Update name, phone, role or active flag.

    Deactivation revokes every session of the user. Admins cannot deactivate
    or demote themselves, which would lock the tenant out of staff management.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - set(STAFF_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")

    user = get_staff(tenant_id=tenant_id, user_id=user_id)

    if "role" in payload:
        _require_assignable_role(payload["role"])
    if "is_active" in payload and not isinstance(payload["is_active"], bool):
        raise ValidationError("is_active must be a boolean")
    for key in ("first_name", "last_name"):
        if key in payload and not str(payload[key] or "").strip():
            raise ValidationError(f"{key} cannot be empty")

    if user.id == acting_user.id:
        if payload.get("is_active") is False:
            raise ConflictError("You cannot deactivate your own account")
        if "role" in payload and payload["role"] != user.role:
            raise ConflictError("You cannot change your own role")

    was_active = user.is_active
    for key in STAFF_UPDATABLE_FIELDS:
        if key in payload:
            value = payload[key]
            setattr(user, key, value.strip() if isinstance(value, str) else value)
    db.session.commit()

    if was_active and not user.is_active:
        revoked = session_service.revoke_all_user_sessions(user.id, reason="Account deactivated")
        current_app.logger.info("Deactivated user %s (revoked %s sessions)", user.id, revoked)
    return user


def deactivate_staff(*, tenant_id: int, user_id: int, acting_user: User) -> User:
    return update_staff(
        tenant_id=tenant_id,
        user_id=user_id,
        payload={"is_active": False},
        acting_user=acting_user,
    )
