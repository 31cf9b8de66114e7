"""
Teams service layer.
Handles team CRUD, seeding of per-team defaults, statistics and team settings.
"""
from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.elab.audit import record_event
from app.elab.modules.database.models import Item
from app.elab.modules.experiments.models import Experiment
from app.elab.models import User
from app.elab.rbac import ensure_sysadmin
from app.elab.security import clean_text

from .models import ExperimentTemplate, ItemType, Status, Team


DEFAULT_LINK_NAME = "Documentation"
DEFAULT_LINK_HREF = "doc/_build/html/"

# (name, color, is_default)
DEFAULT_STATUSES = (
    ("Running", "0096ff", True),
    ("Success", "00ac00", False),
    ("Need to be redone", "c0c0c0", False),
    ("Fail", "ff0000", False),
)

DEFAULT_ITEM_TYPE_NAME = "Edit me"
DEFAULT_ITEM_TYPE_COLOR = "32a100"
DEFAULT_ITEM_TYPE_TEMPLATE = "<p>Go to the admin panel to edit/add more items types!</p>"

DEFAULT_TEMPLATE_NAME = "default"
DEFAULT_TEMPLATE_BODY = (
    '<p><span style="font-size: 14pt;"><strong>Goal :</strong></span></p>\n'
    "<p>&nbsp;</p>\n"
    '<p><span style="font-size: 14pt;"><strong>Procedure :</strong></span></p>\n'
    "<p>&nbsp;</p>\n"
    '<p><span style="font-size: 14pt;"><strong>Results :</strong></span></p><p>&nbsp;</p>'
)


def _get_team(s: Session, team_id: int) -> Team:
    team = s.get(Team, team_id)
    if not team:
        raise ValueError("Team not found.")
    return team


def _seed_team_defaults(team: Team) -> None:
    for ordering, (name, color, is_default) in enumerate(DEFAULT_STATUSES, start=1):
        team.statuses.append(Status(name=name, color=color, is_default=is_default, ordering=ordering))

    team.item_types.append(
        ItemType(
            name=DEFAULT_ITEM_TYPE_NAME,
            bgcolor=DEFAULT_ITEM_TYPE_COLOR,
            template=DEFAULT_ITEM_TYPE_TEMPLATE,
            ordering=1,
        )
    )

    team.experiment_templates.append(
        ExperimentTemplate(name=DEFAULT_TEMPLATE_NAME, body=DEFAULT_TEMPLATE_BODY, user_id=None)
    )


def create_team(s: Session, name: str | None, user: User | None) -> Team:
    """Create a team with its default status labels, item type and experiment template."""
    ensure_sysadmin(user)
    name = clean_text(name)
    if not name:
        raise ValueError("Team name is required.")

    team = Team(name=name, link_name=DEFAULT_LINK_NAME, link_href=DEFAULT_LINK_HREF)
    _seed_team_defaults(team)
    s.add(team)
    s.flush()  # Get ID

    record_event(
        s,
        actor=user,
        action="team.create",
        entity_type="Team",
        entity_id=str(team.id),
        metadata={"name": team.name},
    )
    return team


def read_teams(s: Session, user: User | None) -> list[Team]:
    """All teams, newest first."""
    ensure_sysadmin(user)
    return s.query(Team).order_by(Team.created_at.desc(), Team.id.desc()).all()


def _check_link_href(href: str) -> str:
    """Documentation link: a relative path (like the default) or an http(s) URL."""
    parsed = urlparse(href)
    if parsed.scheme or parsed.netloc:
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Link target must be a relative path or an http(s) URL.")
    return href


def _timestamp_settings(params: dict[str, Any], team: Team) -> dict[str, str | None]:
    """Extract the trusted timestamping fields from a settings form."""
    provider = clean_text(params.get("stampprovider")) or None
    if provider:
        parsed = urlparse(provider)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Timestamping provider must be an http(s) URL.")

    # Password fields are never re-rendered; an empty value means "unchanged".
    password = params.get("stamppass") or ""
    return {
        "stamp_login": clean_text(params.get("stamplogin")) or None,
        "stamp_password": password if password else team.stamp_password,
        "stamp_provider": provider,
        "stamp_cert": clean_text(params.get("stampcert")) or None,
    }


def update_team(s: Session, team: Team, params: dict[str, Any], user: User) -> Team:
    """Update the team settings (documentation link, experiment deletion, timestamping)."""
    stamp = _timestamp_settings(params, team)

    deletable_xp = str(params.get("deletable_xp") or "").strip() == "1"
    link_name = clean_text(params["link_name"]) if "link_name" in params else DEFAULT_LINK_NAME
    link_href = _check_link_href(clean_text(params["link_href"])) if "link_href" in params else DEFAULT_LINK_HREF

    changes: dict[str, dict[str, Any]] = {}
    new_values: dict[str, Any] = {
        "deletable_xp": deletable_xp,
        "link_name": link_name,
        "link_href": link_href,
        "stamp_login": stamp["stamp_login"],
        "stamp_provider": stamp["stamp_provider"],
        "stamp_cert": stamp["stamp_cert"],
    }
    for field, new in new_values.items():
        old = getattr(team, field)
        if old != new:
            changes[field] = {"old": old, "new": new}
            setattr(team, field, new)

    if stamp["stamp_password"] != team.stamp_password:
        changes["stamp_password"] = {"old": "***", "new": "***"}
        team.stamp_password = stamp["stamp_password"]

    record_event(
        s,
        actor=user,
        action="team.update",
        entity_type="Team",
        entity_id=str(team.id),
        metadata={"name": team.name, "changes": changes},
    )
    return team


def update_team_name(s: Session, team_id: int, name: str | None, user: User | None) -> Team:
    ensure_sysadmin(user)
    team = _get_team(s, team_id)
    new_name = clean_text(name)
    if not new_name:
        raise ValueError("Team name is required.")

    old_name = team.name
    team.name = new_name
    record_event(
        s,
        actor=user,
        action="team.rename",
        entity_type="Team",
        entity_id=str(team.id),
        metadata={"old": old_name, "new": new_name},
    )
    return team


def get_stats(s: Session, user: User | None, team_id: int | None = None) -> dict[str, int]:
    """
    Counts of users, items and experiments for one team,
    or for the whole install (plus the number of teams) when team_id is None.
    """
    ensure_sysadmin(user)

    users_q = select(func.count(User.id))
    items_q = select(func.count(Item.id))
    experiments_q = select(func.count(Experiment.id))
    if team_id is not None:
        users_q = users_q.where(User.team_id == team_id)
        items_q = items_q.where(Item.team_id == team_id)
        experiments_q = experiments_q.where(Experiment.team_id == team_id)

    columns = [
        users_q.scalar_subquery().label("total_users"),
        items_q.scalar_subquery().label("total_items"),
        experiments_q.scalar_subquery().label("total_experiments"),
    ]
    if team_id is None:
        columns.append(select(func.count(Team.id)).scalar_subquery().label("total_teams"))

    row = s.execute(select(*columns)).one()
    return {key: int(value or 0) for key, value in row._mapping.items()}


def destroy_team(s: Session, team_id: int, user: User | None) -> bool:
    """
    Delete a team only if it has no users, items or experiments.
    Returns False (and deletes nothing) when the team is in use.
    """
    ensure_sysadmin(user)
    team = _get_team(s, team_id)

    stats = get_stats(s, user, team_id)
    if stats["total_users"] or stats["total_items"] or stats["total_experiments"]:
        return False

    name = team.name
    # Children first so FK enforcement is satisfied; the caller commits once.
    for model in (Status, ItemType, ExperimentTemplate):
        s.execute(delete(model).where(model.team_id == team_id))
    s.execute(delete(Team).where(Team.id == team_id))

    record_event(
        s,
        actor=user,
        action="team.delete",
        entity_type="Team",
        entity_id=str(team_id),
        metadata={"name": name},
    )
    return True


def archive_team(s: Session, team_id: int, user: User | None) -> bool:
    """Toggle the archived flag; returns the new value."""
    ensure_sysadmin(user)
    team = _get_team(s, team_id)
    team.is_archived = not team.is_archived

    record_event(
        s,
        actor=user,
        action="team.archive" if team.is_archived else "team.unarchive",
        entity_type="Team",
        entity_id=str(team.id),
        metadata={"name": team.name},
    )
    return team.is_archived
