#!/usr/bin/env python3
"""Attach a role to an account and optionally move it to a team (idempotent).

Usage:
  python scripts/attach_role.py --email alice@example.org --role team_admin --team 2
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.elab.models import Role, User  # noqa: E402
from app.elab.modules.teams.models import Team  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="Account email")
    parser.add_argument("--role", default="admin", help="Role key (admin, team_admin, user)")
    parser.add_argument("--team", type=int, default=None, help="Team id to assign the account to")
    args = parser.parse_args()

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///elab.db").strip()
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == args.email.strip().lower()).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            sys.exit(1)
        role = s.query(Role).filter(Role.key == args.role).one_or_none()
        if not role:
            print(f"Role not found: {args.role}. Run python scripts/init_db.py first.")
            sys.exit(1)

        if args.team is not None:
            team = s.get(Team, args.team)
            if not team:
                print(f"Team not found: {args.team}")
                sys.exit(1)
            if team.is_archived:
                print(f"Team #{team.id} is archived.")
                sys.exit(1)
            user.team_id = team.id

        if role in (user.roles or []):
            print(f"User already has role {args.role}: {user.email}")
            return
        user.roles.append(role)
        print(f"Role {args.role} attached to {user.email}")


if __name__ == "__main__":
    main()
