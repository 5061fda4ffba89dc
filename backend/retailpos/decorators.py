# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .permissions import Role, validate_permission_code
from .services import session_service, permission_service
from .services.permission_service import PermissionDeniedError
from .services.tenant_service import TenantUnavailableError, require_usable_tenant


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'tenant_id')


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.tenant_id: The tenant ID from the session (None for super admins)
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    - Tenant user session missing tenant_id

    Returns 403 if the tenant is deactivated or its subscription is not
    usable (suspended, cancelled, expired, or past current_period_end).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        is_platform_user = context.user.role == Role.SUPER_ADMIN.value

        if not is_platform_user:
            if not context.tenant_id:
                permission_service.log_security_event(
                    user_id=context.user.id,
                    event_type="TENANT_CONTEXT_MISSING",
                    success=False,
                    resource=request.path,
                    action=request.method,
                    reason="Session missing tenant_id",
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
                return jsonify({"error": "Invalid session: missing tenant context"}), 401

            try:
                require_usable_tenant(context.tenant_id)
            except TenantUnavailableError as e:
                return jsonify({"error": str(e), "code": "TENANT_UNAVAILABLE"}), 403

        g.current_user = context.user
        g.tenant_id = context.tenant_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a capability from the caller's role.

    Denials are logged to security_events with the tenant context.
    """
    if not validate_permission_code(permission_code):
        raise ValueError(f"Unknown permission code: {permission_code}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                permission_service.require_permission(
                    user_id=g.current_user.id,
                    permission_code=permission_code,
                    resource=request.path,
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                    tenant_id=g.tenant_id,
                )
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator

