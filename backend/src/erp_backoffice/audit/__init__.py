"""Audit trail for security and access-control events."""
