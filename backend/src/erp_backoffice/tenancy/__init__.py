"""Tenant isolation, company context and tenant user management."""
