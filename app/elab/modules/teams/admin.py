from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, session, url_for

from app.elab.db import db_session
from app.elab.models import User
from app.elab.modules.teams.models import Team
from app.elab.modules.teams.service import (
    archive_team,
    create_team,
    destroy_team,
    get_stats,
    read_teams,
    update_team,
    update_team_name,
)
from app.elab.rbac import AccessDenied, require_permission

bp = Blueprint("teams", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- List (sysadmin) ----------
@bp.get("/teams")
@require_permission("sysadmin")
def teams_list():
    s = db_session()
    u = _current_user()
    teams = read_teams(s, u)
    stats_by_team = {t.id: get_stats(s, u, t.id) for t in teams}
    return render_template(
        "admin/teams/list.html",
        teams=teams,
        stats_by_team=stats_by_team,
        install_stats=get_stats(s, u),
    )


# ---------- New ----------
@bp.post("/teams/new")
@require_permission("sysadmin")
def teams_new_post():
    s = db_session()
    u = _current_user()
    try:
        team = create_team(s, request.form.get("name"), u)
    except (ValueError, AccessDenied) as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("teams.teams_list"))
    s.commit()
    flash(f"Team '{team.name}' created.", "success")
    return redirect(url_for("teams.teams_list"))


# ---------- Rename ----------
@bp.post("/teams/<int:team_id>/name")
@require_permission("sysadmin")
def teams_rename_post(team_id: int):
    s = db_session()
    u = _current_user()
    try:
        update_team_name(s, team_id, request.form.get("name"), u)
    except (ValueError, AccessDenied) as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("teams.teams_list"))
    s.commit()
    flash("Team name updated.", "success")
    return redirect(url_for("teams.teams_list"))


# ---------- Archive ----------
@bp.post("/teams/<int:team_id>/archive")
@require_permission("sysadmin")
def teams_archive_post(team_id: int):
    s = db_session()
    u = _current_user()
    try:
        archived = archive_team(s, team_id, u)
    except (ValueError, AccessDenied) as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("teams.teams_list"))
    s.commit()
    flash("Team archived." if archived else "Team restored.", "success")
    return redirect(url_for("teams.teams_list"))


# ---------- Delete ----------
@bp.post("/teams/<int:team_id>/delete")
@require_permission("sysadmin")
def teams_delete_post(team_id: int):
    s = db_session()
    u = _current_user()
    try:
        deleted = destroy_team(s, team_id, u)
    except (ValueError, AccessDenied) as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("teams.teams_list"))
    if not deleted:
        flash("Only a team with no users, items or experiments can be deleted.", "danger")
        return redirect(url_for("teams.teams_list"))
    s.commit()
    flash("Team deleted.", "success")
    return redirect(url_for("teams.teams_list"))


# ---------- Own team settings (team admin) ----------
def _own_team() -> Team:
    s = db_session()
    team_id = session.get("team_id")
    team = s.get(Team, team_id) if team_id is not None else None
    if not team:
        abort(404)
    return team


@bp.get("/team")
@require_permission("team.admin")
def team_settings_get():
    return render_template("admin/teams/settings.html", team=_own_team())


@bp.post("/team")
@require_permission("team.admin")
def team_settings_post():
    s = db_session()
    u = _current_user()
    team = _own_team()
    try:
        update_team(s, team, request.form.to_dict(), u)
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("teams.team_settings_get"))
    s.commit()
    flash("Configuration updated successfully.", "success")
    return redirect(url_for("teams.team_settings_get"))
