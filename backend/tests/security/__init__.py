"""Security tests for the back office API

This package covers:
- SQL injection through search and login inputs
- Authentication bypass with missing, forged or stale tokens
- Tenant escape through headers, paths and request bodies
"""
