import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.elab.models import Permission, Role, User  # noqa: E402
from app.elab.modules.teams.models import Team  # noqa: E402
from app.elab.modules.teams.service import create_team  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402

PERMISSIONS = (
    ("sysadmin", "Sysadmin: manage teams and accounts"),
    ("admin.view", "Admin: view shell"),
    ("team.admin", "Team: edit settings"),
    ("database.view", "Database: view items"),
    ("database.edit", "Database: create/edit items"),
)

# role key -> (display name, permission keys)
ROLES = {
    "admin": ("Sysadmin", [key for key, _ in PERMISSIONS]),
    "team_admin": ("Team admin", ["admin.view", "team.admin", "database.view", "database.edit"]),
    "user": ("User", ["database.view", "database.edit"]),
}


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles, a first team and the admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.org").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    first_team_name = (os.environ.get("FIRST_TEAM_NAME") or "Default team").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///elab.db").strip()

    with script_session(db_url) as s:
        perms: dict[str, Permission] = {}
        for key, name in PERMISSIONS:
            p = s.query(Permission).filter(Permission.key == key).one_or_none()
            if not p:
                p = Permission(key=key, name=name)
                s.add(p)
            perms[key] = p

        roles: dict[str, Role] = {}
        for role_key, (role_name, perm_keys) in ROLES.items():
            role = s.query(Role).filter(Role.key == role_key).one_or_none()
            if not role:
                role = Role(key=role_key, name=role_name)
                s.add(role)
            for key in perm_keys:
                if perms[key] not in role.permissions:
                    role.permissions.append(perms[key])
            roles[role_key] = role

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(email=admin_email, password_hash=generate_password_hash(admin_password), is_active=True)
            s.add(user)
        if roles["admin"] not in user.roles:
            user.roles.append(roles["admin"])
        s.flush()

        # First team goes through the regular service so it gets its default rows.
        if user.team_id is None:
            team = s.query(Team).order_by(Team.id.asc()).first()
            if team is None:
                team = create_team(s, first_team_name, user)
            user.team_id = team.id

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
