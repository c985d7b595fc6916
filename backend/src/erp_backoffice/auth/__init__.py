"""Authentication: passwords, tokens, lockout and the auth service."""
