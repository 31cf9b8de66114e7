import re
from datetime import date, datetime, time, timedelta

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for
from sqlalchemy import text
from werkzeug.security import generate_password_hash

from app.elab.audit import record_event
from app.elab.db import db_session
from app.elab.models import AuditEvent, Role, User
from app.elab.modules.teams.models import Team
from app.elab.modules.teams.service import get_stats
from app.elab.rbac import is_sysadmin, require_permission

bp = Blueprint("admin", __name__)

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/")
@require_permission("admin.view")
def index():
    import os

    s = db_session()
    status = {
        "env": (os.environ.get("ENV") or "development").strip().lower(),
        "db_connected": False,
        "db_error": None,
    }

    # DB connectivity (lightweight)
    try:
        s.execute(text("SELECT 1"))
        status["db_connected"] = True
    except Exception as e:
        status["db_error"] = str(e)

    u = _current_user()
    install_stats = get_stats(s, u) if status["db_connected"] and is_sysadmin(u) else None
    recent_errors = (
        s.query(AuditEvent)
        .filter(AuditEvent.action == "error")
        .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
        .limit(10)
        .all()
        if status["db_connected"]
        else []
    )
    return render_template(
        "admin/index.html",
        system_status=status,
        install_stats=install_stats,
        recent_errors=recent_errors,
    )


@bp.get("/me")
@require_permission("admin.view")
def me():
    user = getattr(g, "current_user", None)
    role_keys: list[str] = []
    perm_keys: list[str] = []
    if user:
        role_keys = sorted({r.key for r in (user.roles or [])})
        perms = set()
        for r in user.roles or []:
            for p in r.permissions or []:
                perms.add(p.key)
        perm_keys = sorted(perms)
    return render_template("admin/me.html", user=user, role_keys=role_keys, perm_keys=perm_keys)


@bp.get("/audit")
@require_permission("admin.view")
def audit_list():
    """
    Minimal audit trail UI (last 200 events) with simple filters:
    - action (contains; "error" lists logged application errors)
    - actor_email (contains)
    - date range (YYYY-MM-DD)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return render_template(
        "admin/audit/list.html",
        events=events,
        action=action,
        actor_email=actor_email,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )


@bp.get("/login")
def login_redirect():
    return redirect(url_for("auth.login_get"))


# ---------- Accounts (sysadmin) ----------
# Every account belongs to exactly one team; the team decides what it sees in the database.

def _form_errors_for_password(password: str, password_confirm: str) -> list[str]:
    if not password:
        return ["Password is required."]
    if len(password) < 8:
        return ["Password must be at least 8 characters."]
    if password != password_confirm:
        return ["Passwords do not match."]
    return []


def _team_from_form(s) -> Team | None:
    raw = (request.form.get("team_id") or "").strip()
    if not raw.isdigit():
        return None
    return s.get(Team, int(raw))


def _roles_from_form(s) -> list[Role]:
    ids = [int(r) for r in request.form.getlist("role_ids") if r.isdigit()]
    if not ids:
        return []
    return s.query(Role).filter(Role.id.in_(ids)).order_by(Role.key.asc()).all()


def _account_snapshot(user: User) -> dict:
    return {
        "is_active": user.is_active,
        "team_id": user.team_id,
        "roles": sorted(r.key for r in user.roles),
    }


def _account_form_context(s, *, active_teams_only: bool) -> dict:
    teams_q = s.query(Team)
    if active_teams_only:
        teams_q = teams_q.filter(Team.is_archived.is_(False))
    return {
        "roles": s.query(Role).order_by(Role.name.asc()).all(),
        "teams": teams_q.order_by(Team.name.asc()).all(),
    }


@bp.get("/accounts")
@require_permission("sysadmin")
def accounts_list():
    s = db_session()
    users = s.query(User).order_by(User.team_id.asc(), User.email.asc()).all()
    return render_template("admin/accounts/list.html", users=users)


@bp.get("/accounts/new")
@require_permission("sysadmin")
def accounts_new_get():
    s = db_session()
    return render_template("admin/accounts/new.html", **_account_form_context(s, active_teams_only=True))


@bp.post("/accounts/new")
@require_permission("sysadmin")
def accounts_new_post():
    s = db_session()
    u = _current_user()

    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    team = _team_from_form(s)

    errors: list[str] = []
    if not _EMAIL_RE.match(email):
        errors.append("Email is required." if not email else "Invalid email format.")
    elif s.query(User.id).filter(User.email == email).first():
        errors.append("An account with this email already exists.")
    if team is None:
        errors.append("A team is required.")
    elif team.is_archived:
        errors.append("Cannot add users to an archived team.")
    errors.extend(_form_errors_for_password(password, request.form.get("password_confirm") or ""))
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("admin.accounts_new_get"))

    new_user = User(email=email, password_hash=generate_password_hash(password), is_active=True, team_id=team.id)
    new_user.roles.extend(_roles_from_form(s))
    s.add(new_user)
    s.flush()

    record_event(
        s,
        actor=u,
        action="user.create",
        entity_type="User",
        entity_id=str(new_user.id),
        metadata={"email": email, **_account_snapshot(new_user)},
    )
    s.commit()
    flash(f"Account created for {email}.", "success")
    return redirect(url_for("admin.accounts_list"))


@bp.get("/accounts/<int:user_id>")
@require_permission("sysadmin")
def accounts_detail(user_id: int):
    s = db_session()
    account = s.get(User, user_id) or abort(404)
    return render_template(
        "admin/accounts/detail.html",
        account=account,
        **_account_form_context(s, active_teams_only=False),
    )


@bp.post("/accounts/<int:user_id>/update")
@require_permission("sysadmin")
def accounts_update(user_id: int):
    s = db_session()
    u = _current_user()
    account = s.get(User, user_id) or abort(404)
    back = redirect(url_for("admin.accounts_detail", user_id=user_id))

    if account.id == u.id:
        flash("You cannot modify your own account from this page.", "danger")
        return back
    team = _team_from_form(s)
    if team is None:
        flash("A team is required.", "danger")
        return back
    if team.is_archived and team.id != account.team_id:
        flash("Cannot move users to an archived team.", "danger")
        return back

    before = _account_snapshot(account)
    account.is_active = request.form.get("is_active") == "1"
    account.team_id = team.id
    account.roles = _roles_from_form(s)
    after = _account_snapshot(account)

    if before != after:
        record_event(
            s,
            actor=u,
            action="user.update",
            entity_type="User",
            entity_id=str(account.id),
            metadata={"before": before, "after": after},
        )
        s.commit()
    flash(f"Account updated for {account.email}.", "success")
    return back


@bp.post("/accounts/<int:user_id>/reset-password")
@require_permission("sysadmin")
def accounts_reset_password(user_id: int):
    s = db_session()
    u = _current_user()
    account = s.get(User, user_id) or abort(404)

    password = request.form.get("password") or ""
    errors = _form_errors_for_password(password, request.form.get("password_confirm") or "")
    for e in errors:
        flash(e, "danger")
    if not errors:
        account.password_hash = generate_password_hash(password)
        record_event(
            s,
            actor=u,
            action="user.password_reset",
            entity_type="User",
            entity_id=str(account.id),
            metadata={"target_email": account.email},
        )
        s.commit()
        flash(f"Password reset for {account.email}.", "success")
    return redirect(url_for("admin.accounts_detail", user_id=user_id))
