# Overview: Service-layer operations for store branches of a tenant.

"""
Branch Service

MULTI-TENANT: branches belong to one tenant; ids of other tenants behave
like missing ids. Branch codes are upper-cased and unique per tenant; when
omitted the next "BR001"-style code is allocated.

A branch manager must be an active user of the same tenant. Marking a
branch as main clears the flag on the tenant's other branches.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Branch, User
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, validate_payload
from .document_service import next_document_number
from .tenant_service import scoped_get


BRANCH_MUTABLE_FIELDS = {
    "name", "code", "description", "email", "phone",
    "street", "city", "governorate", "postal_code", "country",
    "manager_id", "is_active", "is_main_branch", "opened_date", "notes",
}

BRANCH_POLICY = ModelValidationPolicy(
    writable_fields=BRANCH_MUTABLE_FIELDS,
    required_on_create={"name"},
)


class BranchNotFoundError(Exception):
    """Raised when a branch id does not exist in the caller's tenant."""
    pass


def _code_taken(tenant_id: int, code: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Branch.id).filter(Branch.tenant_id == tenant_id, Branch.code == code)
    if exclude_id is not None:
        query = query.filter(Branch.id != exclude_id)
    return query.first() is not None


def _allocate_code(tenant_id: int) -> str:
    while True:
        code = next_document_number(tenant_id=tenant_id, document_type="branch")
        if not _code_taken(tenant_id, code):
            return code


def _require_manager(tenant_id: int, manager_id: int) -> None:
    manager = scoped_get(User, manager_id, tenant_id)
    if manager is None or not manager.is_active:
        raise ValidationError("manager_id must be an active user of this tenant")


def _clean(patch: dict, tenant_id: int, branch: Branch | None = None) -> dict:
    if "code" in patch and patch["code"]:
        patch["code"] = patch["code"].upper()
        if _code_taken(tenant_id, patch["code"], exclude_id=branch.id if branch else None):
            raise ConflictError(f"Branch code {patch['code']} already exists")
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
    if patch.get("manager_id") is not None:
        _require_manager(tenant_id, patch["manager_id"])
    return patch


def _clear_other_main_branches(tenant_id: int, keep_id: int) -> None:
    (
        db.session.query(Branch)
        .filter(Branch.tenant_id == tenant_id, Branch.id != keep_id, Branch.is_main_branch.is_(True))
        .update({Branch.is_main_branch: False}, synchronize_session="fetch")
    )


def list_branches(*, tenant_id: int, is_active: bool | None = None) -> list[Branch]:
    """Main branch first, then newest."""
    query = db.session.query(Branch).filter(Branch.tenant_id == tenant_id)
    if is_active is not None:
        query = query.filter(Branch.is_active.is_(is_active))
    return query.order_by(Branch.is_main_branch.desc(), Branch.created_at.desc(), Branch.id.desc()).all()


def get_branch(*, tenant_id: int, branch_id: int) -> Branch:
    branch = scoped_get(Branch, branch_id, tenant_id)
    if branch is None:
        raise BranchNotFoundError("Branch not found")
    return branch


def create_branch(*, tenant_id: int, payload: dict, user_id: int | None = None) -> Branch:
    patch = _clean(
        validate_payload(model=Branch, payload=payload, policy=BRANCH_POLICY, partial=False),
        tenant_id,
    )
    if not patch.get("code"):
        patch["code"] = _allocate_code(tenant_id)

    branch = Branch(
        tenant_id=tenant_id,
        country="Tunisia",
        is_active=True,
        is_main_branch=False,
        created_by_user_id=user_id,
    )
    for key, value in patch.items():
        setattr(branch, key, value)

    db.session.add(branch)
    db.session.flush()
    if branch.is_main_branch:
        _clear_other_main_branches(tenant_id, branch.id)
    db.session.commit()
    current_app.logger.info("Created branch %s code=%s tenant=%s", branch.id, branch.code, tenant_id)
    return branch


def update_branch(*, tenant_id: int, branch_id: int, payload: dict) -> Branch:
    patch = validate_payload(model=Branch, payload=payload, policy=BRANCH_POLICY, partial=True)
    branch = get_branch(tenant_id=tenant_id, branch_id=branch_id)
    patch = _clean(patch, tenant_id, branch)

    for key, value in patch.items():
        setattr(branch, key, value)
    if patch.get("is_main_branch"):
        _clear_other_main_branches(tenant_id, branch.id)
    db.session.commit()
    return branch


def delete_branch(*, tenant_id: int, branch_id: int) -> None:
    branch = get_branch(tenant_id=tenant_id, branch_id=branch_id)
    db.session.delete(branch)
    db.session.commit()
    current_app.logger.info("Deleted branch %s tenant=%s", branch_id, tenant_id)
