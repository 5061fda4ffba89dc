# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- PRODUCTS --

PRODUCT_PERMISSIONS = [
    (
        "VIEW_PRODUCTS",
        "View Products",
        "View the product catalog, prices and stock levels",
        PermissionCategory.PRODUCTS,
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create, edit and delete products, units and unit prices",
        PermissionCategory.PRODUCTS,
    ),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View stock movements",
        PermissionCategory.INVENTORY,
    ),
    (
        "ADJUST_INVENTORY",
        "Adjust Inventory",
        "Record stock-in purchases and stock-out adjustments",
        PermissionCategory.INVENTORY,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "CREATE_SALE",
        "Create Sale",
        "Check out carts at the POS and search products",
        PermissionCategory.SALES,
    ),
    (
        "HOLD_SALE",
        "Hold Sale",
        "Park carts as held orders and retrieve them",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_DAILY_SUMMARY",
        "View Daily Summary",
        "View the POS end-of-day summary",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_SALES",
        "View Sales",
        "View sales history and sale details",
        PermissionCategory.SALES,
    ),
    (
        "CANCEL_SALE",
        "Cancel Sale",
        "Cancel pending sales",
        PermissionCategory.SALES,
    ),
    (
        "REFUND_SALE",
        "Refund Sale",
        "Refund completed sales and return stock",
        PermissionCategory.SALES,
    ),
]


# -- CUSTOMERS --

CUSTOMER_PERMISSIONS = [
    (
        "VIEW_CUSTOMERS",
        "View Customers",
        "View customer records",
        PermissionCategory.CUSTOMERS,
    ),
    (
        "MANAGE_CUSTOMERS",
        "Manage Customers",
        "Create, edit and delete customers",
        PermissionCategory.CUSTOMERS,
    ),
    (
        "COLLECT_CREDIT",
        "Collect Credit",
        "Record payments against customer credit balances",
        PermissionCategory.CUSTOMERS,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "MANAGE_STAFF",
        "Manage Staff",
        "Create, edit and deactivate staff accounts",
        PermissionCategory.USERS,
    ),
]


# -- REPORTS --

REPORT_PERMISSIONS = [
    (
        "VIEW_REPORTS",
        "View Reports",
        "View sales and product analytics",
        PermissionCategory.REPORTS,
    ),
]


# -- TENANT --

TENANT_PERMISSIONS = [
    (
        "MANAGE_TENANT_SETTINGS",
        "Manage Tenant Settings",
        "View and edit business settings (currency, tax rate, contact)",
        PermissionCategory.TENANT,
    ),
    (
        "MANAGE_BRANCHES",
        "Manage Branches",
        "Create, edit and remove store branches",
        PermissionCategory.TENANT,
    ),
]


# -- PLATFORM --

PLATFORM_PERMISSIONS = [
    (
        "MANAGE_TENANTS",
        "Manage Tenants",
        "Create, edit and remove tenants, their status and subscription plans",
        PermissionCategory.PLATFORM,
    ),
    (
        "VIEW_PLATFORM_STATS",
        "View Platform Stats",
        "View platform-wide tenant and user statistics",
        PermissionCategory.PLATFORM,
    ),
]


PERMISSION_DEFINITIONS = (
    PRODUCT_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + SALES_PERMISSIONS
    + CUSTOMER_PERMISSIONS
    + USER_PERMISSIONS
    + REPORT_PERMISSIONS
    + TENANT_PERMISSIONS
    + PLATFORM_PERMISSIONS
)
