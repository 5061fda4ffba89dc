# Overview: Closed role enumeration and the role -> permission capability table.

from enum import Enum


class Role(str, Enum):
    """
    Every user holds exactly one of these roles.

    SUPER_ADMIN is a platform role with no tenant. It does not bypass tenant
    permissions: it only receives the platform capabilities listed below.
    """
    SUPER_ADMIN = "super_admin"
    TENANT_ADMIN = "tenant_admin"
    MANAGER = "manager"
    CASHIER = "cashier"
    STOCK_MANAGER = "stock_manager"
    STAFF = "staff"


ROLE_VALUES = tuple(role.value for role in Role)

# Roles a tenant admin may assign to staff
TENANT_ASSIGNABLE_ROLES = (
    Role.TENANT_ADMIN.value,
    Role.MANAGER.value,
    Role.CASHIER.value,
    Role.STOCK_MANAGER.value,
    Role.STAFF.value,
)


DEFAULT_ROLE_PERMISSIONS = {
    Role.SUPER_ADMIN.value: [
        "MANAGE_TENANTS",
        "VIEW_PLATFORM_STATS",
    ],
    Role.TENANT_ADMIN.value: [
        "VIEW_PRODUCTS",
        "MANAGE_PRODUCTS",
        "VIEW_INVENTORY",
        "ADJUST_INVENTORY",
        "CREATE_SALE",
        "HOLD_SALE",
        "VIEW_DAILY_SUMMARY",
        "VIEW_SALES",
        "CANCEL_SALE",
        "REFUND_SALE",
        "VIEW_CUSTOMERS",
        "MANAGE_CUSTOMERS",
        "COLLECT_CREDIT",
        "MANAGE_STAFF",
        "VIEW_REPORTS",
        "MANAGE_TENANT_SETTINGS",
        "MANAGE_BRANCHES",
    ],
    Role.MANAGER.value: [
        "VIEW_PRODUCTS",
        "VIEW_INVENTORY",
        "ADJUST_INVENTORY",
        "CREATE_SALE",
        "HOLD_SALE",
        "VIEW_DAILY_SUMMARY",
        "VIEW_SALES",
        "CANCEL_SALE",
        "REFUND_SALE",
        "VIEW_CUSTOMERS",
        "MANAGE_CUSTOMERS",
        "COLLECT_CREDIT",
        "VIEW_REPORTS",
    ],
    Role.CASHIER.value: [
        "VIEW_PRODUCTS",
        "CREATE_SALE",
        "HOLD_SALE",
        "VIEW_DAILY_SUMMARY",
        "VIEW_SALES",
        "VIEW_CUSTOMERS",
        "MANAGE_CUSTOMERS",
        "COLLECT_CREDIT",
    ],
    Role.STOCK_MANAGER.value: [
        "VIEW_PRODUCTS",
        "MANAGE_PRODUCTS",
        "VIEW_INVENTORY",
        "ADJUST_INVENTORY",
    ],
    Role.STAFF.value: [
        "VIEW_PRODUCTS",
        "CREATE_SALE",
        "HOLD_SALE",
        "VIEW_DAILY_SUMMARY",
        "VIEW_CUSTOMERS",
    ],
}
