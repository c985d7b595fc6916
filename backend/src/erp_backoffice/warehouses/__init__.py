"""Warehouses: the reference company-scoped resource."""
