"""Dual-tier roles, the permission matrix and permission checks."""

from .roles import (
    TIER1_ROLES,
    TIER2_ROLES,
    Permission,
    UserRole,
    is_company_level,
    is_tenant_level,
    is_valid_role,
    permissions_for_role,
    role_has_permission,
)

__all__ = [
    "TIER1_ROLES",
    "TIER2_ROLES",
    "Permission",
    "UserRole",
    "is_company_level",
    "is_tenant_level",
    "is_valid_role",
    "permissions_for_role",
    "role_has_permission",
]
