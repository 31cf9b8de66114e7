#!/usr/bin/env python3
"""Create a team (with its default status labels, item type and template) from the command line.

Usage:
  python scripts/create_team.py --name "Cell biology" --as admin@example.org
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.elab.models import User  # noqa: E402
from app.elab.modules.teams.service import create_team  # noqa: E402
from app.elab.rbac import AccessDenied  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--name", required=True, help="Team name")
    parser.add_argument("--as", dest="actor", required=True, help="Email of the sysadmin performing the change")
    args = parser.parse_args()

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///elab.db").strip()
    with script_session(db_url) as s:
        actor = s.query(User).filter(User.email == args.actor.strip().lower()).one_or_none()
        if not actor:
            print(f"User not found: {args.actor}")
            sys.exit(1)
        try:
            team = create_team(s, args.name, actor)
        except (ValueError, AccessDenied) as e:
            print(f"Cannot create team: {e}")
            sys.exit(1)
        print(f"Created team #{team.id}: {team.name}")


if __name__ == "__main__":
    main()
