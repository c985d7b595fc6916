"""User roles and the role -> permission matrix.

Two tiers of roles exist:

- Tier 1 (tenant level, user_tenants): OWNER, TENANT_ADMIN. Full access to
  every company of the tenant.
- Tier 2 (company level, user_company_roles): ADMIN, FINANCE, SALES,
  WAREHOUSE, STAFF. Access limited to the granted company.

Permission Matrix (Tier 2):
┌──────────────────────┬───────┬─────────┬───────┬───────────┬───────┐
│ Permission           │ ADMIN │ FINANCE │ SALES │ WAREHOUSE │ STAFF │
├──────────────────────┼───────┼─────────┼───────┼───────────┼───────┤
│ VIEW_DATA            │   ✓   │    ✓    │   ✓   │     ✓     │   ✓   │
│ CREATE_DATA          │   ✓   │    ✓    │   ✓   │     ✓     │       │
│ EDIT_DATA            │   ✓   │    ✓    │   ✓   │     ✓     │       │
│ DELETE_DATA          │   ✓   │         │       │           │       │
│ APPROVE_TRANSACTIONS │   ✓   │    ✓    │       │           │       │
│ MANAGE_USERS         │   ✓   │         │       │           │       │
│ VIEW_REPORTS         │   ✓   │    ✓    │   ✓   │           │       │
│ MANAGE_SETTINGS      │   ✓   │         │       │           │       │
└──────────────────────┴───────┴─────────┴───────┴───────────┴───────┘

Tier 1 roles hold every permission.
"""

from enum import Enum
from typing import FrozenSet, List, Union


class UserRole(str, Enum):
    """Roles as stored in user_tenants.role / user_company_roles.role."""
    OWNER = "OWNER"
    TENANT_ADMIN = "TENANT_ADMIN"
    ADMIN = "ADMIN"
    FINANCE = "FINANCE"
    SALES = "SALES"
    WAREHOUSE = "WAREHOUSE"
    STAFF = "STAFF"


class Permission(str, Enum):
    VIEW_DATA = "VIEW_DATA"
    CREATE_DATA = "CREATE_DATA"
    EDIT_DATA = "EDIT_DATA"
    DELETE_DATA = "DELETE_DATA"
    APPROVE_TRANSACTIONS = "APPROVE_TRANSACTIONS"
    MANAGE_USERS = "MANAGE_USERS"
    VIEW_REPORTS = "VIEW_REPORTS"
    MANAGE_SETTINGS = "MANAGE_SETTINGS"


TIER1_ROLES: FrozenSet[UserRole] = frozenset({UserRole.OWNER, UserRole.TENANT_ADMIN})
TIER2_ROLES: FrozenSet[UserRole] = frozenset({
    UserRole.ADMIN,
    UserRole.FINANCE,
    UserRole.SALES,
    UserRole.WAREHOUSE,
    UserRole.STAFF,
})

ALL_PERMISSIONS: FrozenSet[Permission] = frozenset(Permission)

ROLE_PERMISSIONS = {
    UserRole.OWNER: ALL_PERMISSIONS,
    UserRole.TENANT_ADMIN: ALL_PERMISSIONS,
    UserRole.ADMIN: ALL_PERMISSIONS,
    UserRole.FINANCE: frozenset({
        Permission.VIEW_DATA,
        Permission.CREATE_DATA,
        Permission.EDIT_DATA,
        Permission.APPROVE_TRANSACTIONS,
        Permission.VIEW_REPORTS,
    }),
    UserRole.SALES: frozenset({
        Permission.VIEW_DATA,
        Permission.CREATE_DATA,
        Permission.EDIT_DATA,
        Permission.VIEW_REPORTS,
    }),
    UserRole.WAREHOUSE: frozenset({
        Permission.VIEW_DATA,
        Permission.CREATE_DATA,
        Permission.EDIT_DATA,
    }),
    UserRole.STAFF: frozenset({Permission.VIEW_DATA}),
}

RoleLike = Union[UserRole, str]


def _coerce(role: RoleLike):
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def is_valid_role(role: RoleLike) -> bool:
    return _coerce(role) is not None


def is_tenant_level(role: RoleLike) -> bool:
    """True for Tier 1 roles (OWNER, TENANT_ADMIN)."""
    return _coerce(role) in TIER1_ROLES


def is_company_level(role: RoleLike) -> bool:
    """True for Tier 2 roles, the only ones allowed in user_company_roles."""
    return _coerce(role) in TIER2_ROLES


def role_has_permission(role: RoleLike, permission: Union[Permission, str]) -> bool:
    """Check the matrix. Unknown roles or permissions have no permissions.

    Examples:
        >>> role_has_permission(UserRole.FINANCE, Permission.APPROVE_TRANSACTIONS)
        True
        >>> role_has_permission("SALES", "DELETE_DATA")
        False
    """
    coerced = _coerce(role)
    if coerced is None:
        return False
    try:
        permission = Permission(permission)
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS[coerced]


def permissions_for_role(role: RoleLike) -> List[Permission]:
    """Permissions granted to a role, in declaration order."""
    coerced = _coerce(role)
    if coerced is None:
        return []
    granted = ROLE_PERMISSIONS[coerced]
    return [p for p in Permission if p in granted]
