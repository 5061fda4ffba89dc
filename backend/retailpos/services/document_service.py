# Overview: Service-layer operations for document numbers; allocates per-tenant sequences.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


# document_type -> (prefix, zero padding)
DOCUMENT_FORMATS = {
    "sale": ("SL-", 6),
    "customer": ("CUST", 6),
    "branch": ("BR", 3),
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _allocate(tenant_id: int, document_type: str) -> int:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        # First number for this tenant/type. A concurrent first insert loses on
        # the unique constraint and falls back to the atomic increment.
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(
                    tenant_id=tenant_id, document_type=document_type, next_number=2
                ))
            return 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"Could not allocate {document_type} number")

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(tenant_id=tenant_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(*, tenant_id: int, document_type: str) -> str:
    """
    Atomically allocate the next document number for a tenant/type.

    Runs inside the caller's transaction (UPDATE ... SET next_number =
    next_number + 1 holds the row lock until the caller commits), so a
    rolled-back sale also gives its number back.
    """
    if not tenant_id:
        raise DocumentSequenceError("tenant_id is required")
    if document_type not in DOCUMENT_FORMATS:
        raise DocumentSequenceError(f"Unknown document_type: {document_type}")

    prefix, pad = DOCUMENT_FORMATS[document_type]
    number = _allocate(tenant_id, document_type)
    return f"{prefix}{str(number).zfill(pad)}"
