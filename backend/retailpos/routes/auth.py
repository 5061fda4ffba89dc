# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/retailpos/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on registration and password change
- Session management with opaque bearer tokens (hashed at rest)
- Failed logins and logouts recorded as security events
- Users of a deactivated tenant or unusable subscription cannot log in
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..permissions import Role, get_permission_definition
from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..services.auth_service import AccountDisabledError, PasswordValidationError
from ..services.tenant_service import TenantUnavailableError, require_usable_tenant
from ..validation import ConflictError, ValidationError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


@auth_bp.post("/register")
def register_route():
    """
    Self-service signup: creates a tenant on a trial subscription and its
    tenant_admin user, then logs the new admin in.

    Request body:
    {
        "business_name": "Epicerie Centrale",   // required
        "email": "owner@example.com",          // required
        "password": "Str0ng!pass",             // required
        "first_name": "...", "last_name": "...",
        "phone": "...", "subdomain": "...", "business_type": "..."   // optional
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        tenant, user = auth_service.register_tenant(
            business_name=data.get("business_name"),
            email=data.get("email"),
            password=data.get("password"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            phone=data.get("phone"),
            subdomain=data.get("subdomain"),
            business_type=data.get("business_type"),
        )
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    except Exception:
        current_app.logger.exception("Failed to register tenant")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "tenant": tenant.to_dict(),
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user.id)),
        "token": token,
        "session": session.to_dict(),
        "message": "Registration successful"
    }), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by email and password and create a session token.

    Token must be included in the Authorization header for protected routes.

    SECURITY:
    - Failed attempts are recorded as LOGIN_FAILED security events
    - Tenant users need an active tenant with a usable subscription
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email") or data.get("username")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        try:
            user = auth_service.authenticate(email, password)
        except AccountDisabledError as e:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource=request.path,
                reason=f"Account disabled: {email}",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": str(e)}), 403

        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource=request.path,
                reason=f"Invalid credentials: {email}",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        tenant = None
        if user.role != Role.SUPER_ADMIN.value:
            try:
                tenant = require_usable_tenant(user.tenant_id)
            except TenantUnavailableError as e:
                permission_service.log_security_event(
                    user_id=user.id,
                    event_type="TENANT_INACTIVE",
                    success=False,
                    resource=request.path,
                    reason=str(e),
                    ip_address=ip_address,
                    user_agent=user_agent,
                    tenant_id=user.tenant_id,
                )
                return jsonify({"error": str(e), "code": "TENANT_UNAVAILABLE"}), 403

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )
        permission_service.log_security_event(
            user_id=user.id,
            event_type="LOGIN_SUCCESS",
            success=True,
            resource=request.path,
            ip_address=ip_address,
            user_agent=user_agent,
            tenant_id=user.tenant_id,
        )

        return jsonify({
            "user": user.to_dict(),
            "tenant": tenant.to_dict() if tenant else None,
            "permissions": sorted(permission_service.get_user_permissions(user.id)),
            "token": token,
            "session": session.to_dict(),
            "tenant_id": session.tenant_id,
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    try:
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        revoked = session_service.revoke_session(token, reason="User logout")

        if not revoked:
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """
    Current user, tenant and permission codes.

    WHY: Frontend can check the token is still valid and get permissions
    for UI filtering (hiding nav items, buttons, etc.)
    """
    user = g.current_user
    tenant = user.tenant if g.tenant_id else None
    codes = sorted(permission_service.get_user_permissions(user.id))
    return jsonify({
        "user": user.to_dict(),
        "tenant": tenant.to_dict() if tenant else None,
        "permissions": codes,
        "permission_details": [get_permission_definition(code) for code in codes],
        "tenant_id": g.tenant_id,
    }), 200


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    """Update the caller's first_name, last_name or phone."""
    payload = request.get_json(silent=True) or {}
    try:
        user = auth_service.update_profile(user=g.current_user, payload=payload)
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    return jsonify({"user": user.to_dict()}), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """
    Change the caller's password.

    Every session of the user (including the current one) is revoked; the
    client must log in again.
    """
    data = request.get_json(silent=True) or {}
    current_password = data.get("current_password")
    new_password = data.get("new_password")
    if not current_password or not new_password:
        return jsonify({"error": "current_password and new_password required"}), 400

    try:
        revoked = auth_service.change_password(
            user=g.current_user,
            current_password=current_password,
            new_password=new_password,
        )
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500

    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type="PASSWORD_CHANGED",
        success=True,
        resource=request.path,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        tenant_id=g.tenant_id,
    )
    return jsonify({"message": "Password changed", "sessions_revoked": revoked}), 200
