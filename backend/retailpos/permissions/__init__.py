# Overview: Permission system package.
# Re-exports all public APIs for package-level imports.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    PRODUCT_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    SALES_PERMISSIONS,
    CUSTOMER_PERMISSIONS,
    USER_PERMISSIONS,
    REPORT_PERMISSIONS,
    TENANT_PERMISSIONS,
    PLATFORM_PERMISSIONS,
)
from .roles import Role, ROLE_VALUES, TENANT_ASSIGNABLE_ROLES, DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    get_all_permission_codes,
    get_permission_definition,
    validate_permission_code,
    validate_role,
    get_role_permissions,
    role_has_permission,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "PRODUCT_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "SALES_PERMISSIONS",
    "CUSTOMER_PERMISSIONS",
    "USER_PERMISSIONS",
    "REPORT_PERMISSIONS",
    "TENANT_PERMISSIONS",
    "PLATFORM_PERMISSIONS",
    "Role",
    "ROLE_VALUES",
    "TENANT_ASSIGNABLE_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_permission_codes",
    "get_permission_definition",
    "validate_permission_code",
    "validate_role",
    "get_role_permissions",
    "role_has_permission",
]
