"""
Teams module (sysadmin).

Scope:
- Teams CRUD (create + list + rename + archive + delete-when-empty)
- Default status labels, item type and experiment template seeded per team
- Per-team and install-wide statistics
- Team settings (documentation link, timestamping provider) for team admins
"""
