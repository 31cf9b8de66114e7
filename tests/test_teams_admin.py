"""HTTP tests for team administration (sysadmin team list, team admin settings, accounts)."""
import pytest
from werkzeug.security import generate_password_hash

from app.elab import auth, create_app
from app.elab.db import session_scope
from app.elab.models import AuditEvent, Base, Permission, Role, User
from app.elab.modules.teams.models import Status, Team
from app.elab.modules.teams.service import create_team


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    auth._login_attempts.clear()
    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        perms = {
            key: Permission(key=key, name=key)
            for key in ("sysadmin", "admin.view", "team.admin", "database.view", "database.edit")
        }
        s.add_all(perms.values())
        sysadmin = Role(key="admin", name="Sysadmin")
        sysadmin.permissions.extend(perms.values())
        team_admin = Role(key="team_admin", name="Team admin")
        team_admin.permissions.extend([perms["admin.view"], perms["team.admin"], perms["database.view"]])
        s.add_all([sysadmin, team_admin])

        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        admin.roles.append(sysadmin)
        s.add(admin)
        s.flush()

        lab = create_team(s, "Lab", admin)
        admin.team_id = lab.id

        boss = User(
            email="boss@example.com",
            password_hash=generate_password_hash("pw"),
            is_active=True,
            team_id=lab.id,
        )
        boss.roles.append(team_admin)
        s.add(boss)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="admin@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=True)


def _csrf(client):
    with client.session_transaction() as sess:
        return sess["csrf_token"]


def _team_id(app, name):
    with session_scope(app) as s:
        return s.query(Team).filter(Team.name == name).one().id


def test_teams_list_requires_sysadmin(client):
    r = client.get("/admin/teams")
    assert r.status_code == 302

    _login(client, "boss@example.com")
    r = client.get("/admin/teams")
    assert r.status_code == 403


def test_teams_list_ok(client):
    _login(client)
    r = client.get("/admin/teams")
    assert r.status_code == 200
    assert b"Teams" in r.data
    assert b"Lab" in r.data


def test_team_create(app, client):
    _login(client)
    r = client.post(
        "/admin/teams/new",
        data={"csrf_token": _csrf(client), "name": "Microbiology"},
        follow_redirects=True,
    )
    assert r.status_code == 200
    assert b"Microbiology" in r.data

    team_id = _team_id(app, "Microbiology")
    with session_scope(app) as s:
        assert s.query(Status).filter(Status.team_id == team_id).count() == 4


def test_team_create_empty_name(app, client):
    _login(client)
    r = client.post("/admin/teams/new", data={"csrf_token": _csrf(client), "name": " "}, follow_redirects=True)
    assert b"Team name is required." in r.data
    with session_scope(app) as s:
        assert s.query(Team).count() == 1


def test_team_create_without_csrf(client):
    _login(client)
    r = client.post("/admin/teams/new", data={"name": "Sneaky"})
    assert r.status_code == 400


def test_team_rename(app, client):
    _login(client)
    team_id = _team_id(app, "Lab")
    r = client.post(
        f"/admin/teams/{team_id}/name",
        data={"csrf_token": _csrf(client), "name": "Renamed lab"},
        follow_redirects=True,
    )
    assert b"Team name updated." in r.data
    with session_scope(app) as s:
        assert s.get(Team, team_id).name == "Renamed lab"


def test_team_delete_in_use_is_refused(app, client):
    _login(client)
    team_id = _team_id(app, "Lab")
    r = client.post(f"/admin/teams/{team_id}/delete", data={"csrf_token": _csrf(client)}, follow_redirects=True)
    assert b"Only a team with no users, items or experiments can be deleted." in r.data
    with session_scope(app) as s:
        assert s.get(Team, team_id) is not None


def test_team_delete_empty(app, client):
    _login(client)
    client.post("/admin/teams/new", data={"csrf_token": _csrf(client), "name": "Empty"})
    team_id = _team_id(app, "Empty")

    r = client.post(f"/admin/teams/{team_id}/delete", data={"csrf_token": _csrf(client)}, follow_redirects=True)
    assert b"Team deleted." in r.data
    with session_scope(app) as s:
        assert s.get(Team, team_id) is None
        assert s.query(Status).filter(Status.team_id == team_id).count() == 0
        assert s.query(AuditEvent).filter(AuditEvent.action == "team.delete").count() == 1


def test_team_archive_blocks_login(app, client):
    _login(client)
    team_id = _team_id(app, "Lab")
    r = client.post(f"/admin/teams/{team_id}/archive", data={"csrf_token": _csrf(client)}, follow_redirects=True)
    assert b"Team archived." in r.data

    other = app.test_client()
    r = other.post("/auth/login", data={"email": "boss@example.com", "password": "pw"}, follow_redirects=True)
    assert b"Your team is archived" in r.data

    r = client.post(f"/admin/teams/{team_id}/archive", data={"csrf_token": _csrf(client)}, follow_redirects=True)
    assert b"Team restored." in r.data


def test_team_settings_as_team_admin(app, client):
    _login(client, "boss@example.com")
    r = client.get("/admin/team")
    assert r.status_code == 200
    assert b"Team settings: Lab" in r.data

    r = client.post(
        "/admin/team",
        data={
            "csrf_token": _csrf(client),
            "link_name": "Lab wiki",
            "link_href": "https://wiki.example.org",
            "stampprovider": "https://freetsa.org/tsr",
            "stamplogin": "lab",
            "stamppass": "s3cret",
            "stampcert": "cacert.pem",
        },
        follow_redirects=True,
    )
    assert b"Configuration updated successfully." in r.data

    with session_scope(app) as s:
        team = s.get(Team, _team_id(app, "Lab"))
        assert team.link_name == "Lab wiki"
        assert team.deletable_xp is False
        assert team.stamp_password == "s3cret"


def test_team_settings_bad_provider(app, client):
    _login(client, "boss@example.com")
    r = client.post(
        "/admin/team",
        data={"csrf_token": _csrf(client), "stampprovider": "not a url"},
        follow_redirects=True,
    )
    assert b"Timestamping provider must be an http(s) URL." in r.data
    with session_scope(app) as s:
        assert s.get(Team, _team_id(app, "Lab")).stamp_provider is None


def test_account_create_requires_team(app, client):
    _login(client)
    r = client.post(
        "/admin/accounts/new",
        data={
            "csrf_token": _csrf(client),
            "email": "new@example.com",
            "password": "longenough",
            "password_confirm": "longenough",
        },
        follow_redirects=True,
    )
    assert b"A team is required." in r.data

    team_id = _team_id(app, "Lab")
    r = client.post(
        "/admin/accounts/new",
        data={
            "csrf_token": _csrf(client),
            "email": "new@example.com",
            "password": "longenough",
            "password_confirm": "longenough",
            "team_id": str(team_id),
        },
        follow_redirects=True,
    )
    assert b"Account created for new@example.com." in r.data
    with session_scope(app) as s:
        assert s.query(User).filter(User.email == "new@example.com").one().team_id == team_id
