"""Tests for the Teams service (create/read/update/rename/destroy/stats/archive)."""
import datetime as dt
import json

import pytest
from werkzeug.security import generate_password_hash

from app.elab import create_app
from app.elab.db import session_scope
from app.elab.models import AuditEvent, Base, Permission, Role, User
from app.elab.modules.database.models import Item
from app.elab.modules.experiments.models import Experiment
from app.elab.modules.teams.models import ExperimentTemplate, ItemType, Status, Team
from app.elab.modules.teams.service import (
    DEFAULT_ITEM_TYPE_NAME,
    DEFAULT_LINK_HREF,
    DEFAULT_LINK_NAME,
    DEFAULT_TEMPLATE_NAME,
    archive_team,
    create_team,
    destroy_team,
    get_stats,
    read_teams,
    update_team,
    update_team_name,
)
from app.elab.rbac import AccessDenied


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        p = Permission(key="sysadmin", name="Sysadmin")
        r = Role(key="admin", name="Sysadmin")
        r.permissions.append(p)
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        admin.roles.append(r)
        plain = User(email="user@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        s.add_all([p, r, admin, plain])

    return app


def _admin(s):
    return s.query(User).filter(User.email == "admin@example.com").one()


def _plain(s):
    return s.query(User).filter(User.email == "user@example.com").one()


def test_create_team_seeds_defaults(app):
    with session_scope(app) as s:
        team = create_team(s, "Cell biology", _admin(s))
        team_id = team.id

    with session_scope(app) as s:
        team = s.get(Team, team_id)
        assert team.name == "Cell biology"
        assert team.deletable_xp is True
        assert team.is_archived is False
        assert team.link_name == DEFAULT_LINK_NAME
        assert team.link_href == DEFAULT_LINK_HREF

        statuses = s.query(Status).filter(Status.team_id == team_id).order_by(Status.ordering).all()
        assert [st.name for st in statuses] == ["Running", "Success", "Need to be redone", "Fail"]
        assert [st.color for st in statuses] == ["0096ff", "00ac00", "c0c0c0", "ff0000"]
        assert [st.is_default for st in statuses] == [True, False, False, False]

        item_types = s.query(ItemType).filter(ItemType.team_id == team_id).all()
        assert len(item_types) == 1
        assert item_types[0].name == DEFAULT_ITEM_TYPE_NAME
        assert item_types[0].bgcolor == "32a100"

        templates = s.query(ExperimentTemplate).filter(ExperimentTemplate.team_id == team_id).all()
        assert len(templates) == 1
        assert templates[0].name == DEFAULT_TEMPLATE_NAME
        assert templates[0].user_id is None
        assert "Goal" in templates[0].body

        ev = s.query(AuditEvent).filter(AuditEvent.action == "team.create").one()
        assert ev.entity_id == str(team_id)


def test_create_team_strips_tags_and_requires_name(app):
    with session_scope(app) as s:
        team = create_team(s, "  <b>Chemistry</b> ", _admin(s))
        assert team.name == "Chemistry"

        with pytest.raises(ValueError, match="Team name is required"):
            create_team(s, "   ", _admin(s))
        with pytest.raises(ValueError):
            create_team(s, "<i></i>", _admin(s))


def test_non_sysadmin_is_denied(app):
    with session_scope(app) as s:
        team = create_team(s, "Lab", _admin(s))
        user = _plain(s)
        with pytest.raises(AccessDenied, match="Only admin can access this!"):
            create_team(s, "Other", user)
        with pytest.raises(AccessDenied):
            read_teams(s, user)
        with pytest.raises(AccessDenied):
            update_team_name(s, team.id, "Renamed", user)
        with pytest.raises(AccessDenied):
            get_stats(s, user)
        with pytest.raises(AccessDenied):
            destroy_team(s, team.id, user)
        with pytest.raises(AccessDenied):
            archive_team(s, team.id, user)
        with pytest.raises(AccessDenied):
            create_team(s, "Anonymous", None)


def test_read_teams_newest_first(app):
    with session_scope(app) as s:
        admin = _admin(s)
        first = create_team(s, "First", admin)
        second = create_team(s, "Second", admin)
        first.created_at = dt.datetime(2020, 1, 1)
        second.created_at = dt.datetime(2021, 1, 1)
        s.flush()

        names = [t.name for t in read_teams(s, admin)]
        assert names == ["Second", "First"]


def test_update_team_name(app):
    with session_scope(app) as s:
        team = create_team(s, "Old name", _admin(s))
        update_team_name(s, team.id, "New name", _admin(s))
        assert team.name == "New name"

        with pytest.raises(ValueError, match="Team name is required"):
            update_team_name(s, team.id, "", _admin(s))
        with pytest.raises(ValueError, match="Team not found"):
            update_team_name(s, 9999, "Ghost", _admin(s))

        s.flush()
        ev = s.query(AuditEvent).filter(AuditEvent.action == "team.rename").one()
        assert json.loads(ev.metadata_json) == {"old": "Old name", "new": "New name"}


def test_update_team_settings(app):
    with session_scope(app) as s:
        team = create_team(s, "Lab", _admin(s))
        update_team(
            s,
            team,
            {
                "deletable_xp": "0",
                "link_name": "Wiki",
                "link_href": "https://wiki.example.org",
                "stampprovider": "https://freetsa.org/tsr",
                "stampcert": "cacert.pem",
                "stamplogin": "lab",
                "stamppass": "secret",
            },
            _admin(s),
        )
        assert team.deletable_xp is False
        assert team.link_name == "Wiki"
        assert team.link_href == "https://wiki.example.org"
        assert team.stamp_provider == "https://freetsa.org/tsr"
        assert team.stamp_password == "secret"

        # Blank password keeps the stored one; missing link fields fall back to defaults.
        update_team(s, team, {"deletable_xp": "1", "stamppass": ""}, _admin(s))
        assert team.deletable_xp is True
        assert team.stamp_password == "secret"
        assert team.link_name == DEFAULT_LINK_NAME
        assert team.link_href == DEFAULT_LINK_HREF
        assert team.stamp_provider is None
        s.flush()

        events = s.query(AuditEvent).filter(AuditEvent.action == "team.update").all()
        assert len(events) == 2
        assert "secret" not in (events[0].metadata_json or "")


def test_update_team_rejects_bad_provider(app):
    with session_scope(app) as s:
        team = create_team(s, "Lab", _admin(s))
        with pytest.raises(ValueError, match="http"):
            update_team(s, team, {"stampprovider": "ftp://tsa.example.org"}, _admin(s))
        assert team.stamp_provider is None


@pytest.mark.parametrize(
    "href",
    [
        "javascript:alert(document.cookie)",
        "JavaScript:alert(1)",
        "javascript&colon;alert(1)",
        "data:text/html,<script>alert(1)</script>",
        "//evil.example.org/docs",
    ],
)
def test_update_team_rejects_bad_link_href(app, href):
    with session_scope(app) as s:
        team = create_team(s, "Lab", _admin(s))
        with pytest.raises(ValueError, match="relative path or an http"):
            update_team(s, team, {"link_name": "Docs", "link_href": href}, _admin(s))
        assert team.link_href == DEFAULT_LINK_HREF
        assert team.link_name == DEFAULT_LINK_NAME


def test_update_team_accepts_relative_and_http_links(app):
    with session_scope(app) as s:
        team = create_team(s, "Lab", _admin(s))
        for href in ("doc/_build/html/", "/wiki/lab", "http://intranet.example.org", "https://wiki.example.org/x"):
            update_team(s, team, {"link_href": href}, _admin(s))
            assert team.link_href == href


def test_entity_encoded_tags_are_stripped(app):
    with session_scope(app) as s:
        team = create_team(s, "&lt;b&gt;Genomics&lt;/b&gt;", _admin(s))
        assert team.name == "Genomics"

        update_team_name(s, team.id, "&lt;script&gt;alert(1)&lt;/script&gt;Lab", _admin(s))
        assert "<" not in team.name
        assert team.name == "alert(1)Lab"

        update_team_name(s, team.id, "&amp;lt;i&amp;gt;Bio&amp;lt;/i&amp;gt;", _admin(s))
        assert team.name == "Bio"

        update_team(s, team, {"link_name": "&lt;b&gt;Wiki&lt;/b&gt;"}, _admin(s))
        assert team.link_name == "Wiki"


def test_get_stats_team_and_install(app):
    with session_scope(app) as s:
        admin = _admin(s)
        lab = create_team(s, "Lab", admin)
        other = create_team(s, "Other", admin)
        item_type = lab.item_types[0]

        _plain(s).team_id = lab.id
        s.add_all(
            [
                Item(team_id=lab.id, type_id=item_type.id, title="Plasmid", date=dt.date(2024, 1, 2)),
                Item(team_id=lab.id, type_id=item_type.id, title="Antibody", date=dt.date(2024, 1, 3)),
                Experiment(team_id=lab.id, title="Western blot", date=dt.date(2024, 1, 4)),
            ]
        )
        s.flush()

        assert get_stats(s, admin, lab.id) == {"total_users": 1, "total_items": 2, "total_experiments": 1}
        assert get_stats(s, admin, other.id) == {"total_users": 0, "total_items": 0, "total_experiments": 0}
        assert get_stats(s, admin) == {
            "total_users": 2,
            "total_items": 2,
            "total_experiments": 1,
            "total_teams": 2,
        }


def test_destroy_empty_team_removes_defaults(app):
    with session_scope(app) as s:
        team = create_team(s, "Short-lived", _admin(s))
        team_id = team.id

    with session_scope(app) as s:
        assert destroy_team(s, team_id, _admin(s)) is True

    with session_scope(app) as s:
        assert s.get(Team, team_id) is None
        assert s.query(Status).filter(Status.team_id == team_id).count() == 0
        assert s.query(ItemType).filter(ItemType.team_id == team_id).count() == 0
        assert s.query(ExperimentTemplate).filter(ExperimentTemplate.team_id == team_id).count() == 0
        assert s.query(AuditEvent).filter(AuditEvent.action == "team.delete").count() == 1


def test_destroy_refuses_team_with_users(app):
    with session_scope(app) as s:
        team = create_team(s, "Busy", _admin(s))
        _plain(s).team_id = team.id
        s.flush()

        assert destroy_team(s, team.id, _admin(s)) is False
        assert s.get(Team, team.id) is not None
        assert s.query(Status).filter(Status.team_id == team.id).count() == 4


def test_destroy_refuses_team_with_items_or_experiments(app):
    with session_scope(app) as s:
        admin = _admin(s)
        with_item = create_team(s, "Has item", admin)
        with_xp = create_team(s, "Has experiment", admin)
        s.add(Item(team_id=with_item.id, type_id=with_item.item_types[0].id, title="Flask", date=dt.date.today()))
        s.add(Experiment(team_id=with_xp.id, title="PCR", date=dt.date.today()))
        s.flush()

        assert destroy_team(s, with_item.id, admin) is False
        assert destroy_team(s, with_xp.id, admin) is False
        assert s.query(AuditEvent).filter(AuditEvent.action == "team.delete").count() == 0


def test_destroy_unknown_team(app):
    with session_scope(app) as s:
        with pytest.raises(ValueError, match="Team not found"):
            destroy_team(s, 12345, _admin(s))


def test_archive_toggles(app):
    with session_scope(app) as s:
        admin = _admin(s)
        team = create_team(s, "Lab", admin)

        assert archive_team(s, team.id, admin) is True
        assert team.is_archived is True
        assert archive_team(s, team.id, admin) is False
        assert team.is_archived is False
        s.flush()

        actions = [
            ev.action
            for ev in s.query(AuditEvent)
            .filter(AuditEvent.entity_type == "Team", AuditEvent.action.like("team.%archive"))
            .order_by(AuditEvent.id)
        ]
        assert actions == ["team.archive", "team.unarchive"]
