# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service with Multi-Tenant Support

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

MULTI-TENANT: Staff users belong to exactly one tenant. Emails are unique
across the platform because login does not name a tenant. Self-service
registration creates a tenant (trial subscription) together with its first
tenant_admin user.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters; upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
"""

import re
from datetime import timedelta

import bcrypt
from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import User, Tenant
from ..permissions import Role, validate_role
from ..validation import ConflictError, ValidationError
from ..time_utils import utcnow
from . import session_service


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SUBDOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,62}$")


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class AccountDisabledError(Exception):
    """Raised when valid credentials belong to a deactivated account."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email) -> str:
    value = str(email or "").strip().lower()
    if not EMAIL_RE.match(value):
        raise ValidationError("A valid email is required")
    return value


def normalize_subdomain(subdomain, exclude_tenant_id: int | None = None) -> str | None:
    """Lower-case and validate a subdomain; ConflictError if another tenant holds it."""
    if not subdomain:
        return None
    subdomain = str(subdomain).strip().lower()
    if not SUBDOMAIN_RE.match(subdomain):
        raise ValidationError("subdomain may only contain lowercase letters, digits and hyphens")
    query = db.session.query(Tenant.id).filter_by(subdomain=subdomain)
    if exclude_tenant_id is not None:
        query = query.filter(Tenant.id != exclude_tenant_id)
    if query.first():
        raise ConflictError("Subdomain already taken")
    return subdomain


def _require_unique_email(email: str, exclude_user_id: int | None = None) -> None:
    query = db.session.query(User.id).filter(func.lower(User.email) == email)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    if query.first():
        raise ConflictError("Email already registered")


def create_user(
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str,
    tenant_id: int | None,
    phone: str | None = None,
    commit: bool = True,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValidationError: bad email, unknown role, or tenant/role mismatch
        ConflictError: email already registered
        PasswordValidationError: weak password
    """
    email = normalize_email(email)
    if not validate_role(role):
        raise ValidationError(f"Unknown role: {role}")
    if role == Role.SUPER_ADMIN.value and tenant_id is not None:
        raise ValidationError("super_admin users cannot belong to a tenant")
    if role != Role.SUPER_ADMIN.value and tenant_id is None:
        raise ValidationError("Tenant users require a tenant")
    if not (first_name or "").strip() or not (last_name or "").strip():
        raise ValidationError("first_name and last_name are required")

    _require_unique_email(email)

    user = User(
        tenant_id=tenant_id,
        email=email,
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        phone=phone,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.session.add(user)
    if commit:
        db.session.commit()
    return user


def register_tenant(
    *,
    business_name: str,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: str | None = None,
    subdomain: str | None = None,
    business_type: str | None = None,
) -> tuple[Tenant, User]:
    """
    Self-service signup: new tenant on a trial subscription plus its
    tenant_admin user, committed together.
    """
    if not (business_name or "").strip():
        raise ValidationError("business_name is required")

    email = normalize_email(email)
    _require_unique_email(email)

    subdomain = normalize_subdomain(subdomain)

    trial_days = current_app.config.get("TRIAL_DAYS", 14)
    tenant = Tenant(
        business_name=business_name.strip(),
        subdomain=subdomain or None,
        email=email,
        phone=phone,
        business_type=business_type,
        currency=current_app.config.get("DEFAULT_CURRENCY", "TND"),
        default_tax_rate=current_app.config.get("DEFAULT_TAX_RATE", 19.0),
        is_active=True,
        subscription_status="trial",
        trial_ends_at=utcnow() + timedelta(days=trial_days),
    )
    db.session.add(tenant)
    db.session.flush()

    try:
        user = create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=Role.TENANT_ADMIN.value,
            tenant_id=tenant.id,
            phone=phone,
            commit=False,
        )
    except (ValidationError, ConflictError, PasswordValidationError):
        db.session.rollback()
        raise

    db.session.commit()
    current_app.logger.info("Registered tenant %s (%s)", tenant.id, tenant.business_name)
    return tenant, user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate by email and password.

    Returns the User on success, None for unknown email or wrong password.
    Raises AccountDisabledError when the password is right but the account
    is deactivated. Updates last_login_at on success.
    """
    email = str(email or "").strip().lower()
    user = db.session.query(User).filter(func.lower(User.email) == email).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    if not user.is_active:
        raise AccountDisabledError("Account is deactivated")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def change_password(*, user: User, current_password: str, new_password: str) -> int:
    """
    Replace the user's password and revoke all of their sessions.

    Returns the number of sessions revoked.
    """
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.session.commit()
    return session_service.revoke_all_user_sessions(user.id, reason="Password changed")


PROFILE_FIELDS = ("first_name", "last_name", "phone")


def update_profile(*, user: User, payload: dict) -> User:
    """Self-service edit of the caller's own name and phone. Email and role are not editable here."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    for key in ("first_name", "last_name"):
        if key in payload and not str(payload[key] or "").strip():
            raise ValidationError(f"{key} cannot be empty")

    for key in PROFILE_FIELDS:
        if key in payload:
            value = str(payload[key]).strip() if payload[key] is not None else None
            if key == "phone":
                value = value or None
            setattr(user, key, value)
    db.session.commit()
    return user
