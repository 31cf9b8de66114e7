"""
Feature modules live under this package.

Each module owns its models, service functions and blueprint views,
while reusing platform primitives (auth, RBAC, audit, DB session).
"""
