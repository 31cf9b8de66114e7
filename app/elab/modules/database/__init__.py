"""
Database module: the team's inventory items.

Create/update goes through a single controller endpoint that always
redirects back to the database page with `mode` and `id`.
"""
