"""
Permission System Constants and Definitions

WHY: Centralized permission definitions ensure consistency across the application.
All permission codes and role mappings defined here.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- Default role mappings follow principle of least privilege
- Admin has all permissions by default
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    SALES = "SALES"
    SERVICES = "SERVICES"
    EXPENSES = "EXPENSES"
    LEDGER = "LEDGER"
    SYSTEM = "SYSTEM"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    (
        "RECORD_SALE",
        "Record Sale",
        "Record counter sales",
        PermissionCategory.SALES,
    ),
    (
        "CANCEL_SALE",
        "Cancel Sale",
        "Cancel or refund a recorded sale",
        PermissionCategory.SALES,
    ),
    (
        "MANAGE_SERVICES",
        "Manage Services",
        "Open service jobs, update their status and take payment",
        PermissionCategory.SERVICES,
    ),
    (
        "RECORD_EXPENSE",
        "Record Expense",
        "Record shop expenses",
        PermissionCategory.EXPENSES,
    ),
    (
        "VIEW_LEDGER",
        "View Ledger",
        "View daily ledger summaries, closures and reports",
        PermissionCategory.LEDGER,
    ),
    (
        "CLOSE_BUSINESS_DAY",
        "Close Business Day",
        "Perform the irreversible close of business for a date",
        PermissionCategory.LEDGER,
    ),
    (
        "SYSTEM_ADMIN",
        "System Administration",
        "Full system access",
        PermissionCategory.SYSTEM,
    ),
]

ALL_PERMISSION_CODES = frozenset(code for code, _, _, _ in PERMISSION_DEFINITIONS)


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

DEFAULT_ROLE_PERMISSIONS = {
    # Admin gets ALL permissions
    "admin": sorted(ALL_PERMISSION_CODES),
    "manager": [
        "RECORD_SALE",
        "CANCEL_SALE",
        "MANAGE_SERVICES",
        "RECORD_EXPENSE",
        "VIEW_LEDGER",
        "CLOSE_BUSINESS_DAY",
    ],
    # Counter staff record transactions but cannot undo or close them
    "staff": [
        "RECORD_SALE",
        "MANAGE_SERVICES",
        "RECORD_EXPENSE",
        "VIEW_LEDGER",
    ],
}
