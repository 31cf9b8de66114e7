from __future__ import annotations

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for

from app.elab.audit import log_error
from app.elab.db import db_session
from app.elab.models import User
from app.elab.modules.database.service import create_item, get_item, list_items, update_item
from app.elab.modules.teams.models import ItemType
from app.elab.rbac import require_permission

bp = Blueprint("database", __name__)

MODES = ("show", "view", "edit")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Page ----------
@bp.get("/")
@require_permission("database.view")
def database_page():
    s = db_session()
    team_id = session.get("team_id")
    mode = (request.args.get("mode") or "show").strip()
    if mode not in MODES:
        mode = "show"

    if mode in ("view", "edit"):
        try:
            item = get_item(s, request.args.get("id"), team_id)
        except ValueError as e:
            flash(str(e), "danger")
            return redirect(url_for("database.database_page"))
        return render_template(f"database/{mode}.html", item=item)

    item_types = (
        s.query(ItemType).filter(ItemType.team_id == team_id).order_by(ItemType.ordering.asc(), ItemType.id.asc()).all()
        if team_id is not None
        else []
    )
    return render_template("database/show.html", items=list_items(s, team_id), item_types=item_types)


# ---------- Controller ----------
def _run_controller():
    """
    Create (GET databaseCreateItemId) or update (POST databaseUpdate) an item,
    then always redirect back to the database page with the resulting mode and id.
    """
    s = db_session()
    u = _current_user()
    team_id = session.get("team_id")
    mode = "show"
    item_id: int | None = None

    try:
        if "databaseCreateItemId" in request.args:
            item = create_item(s, team_id=team_id, type_id=request.args.get("databaseCreateItemId"), user=u)
            s.commit()
            item_id = item.id
            mode = "edit"

        if "databaseUpdate" in request.form:
            raw_id = request.form.get("databaseId")
            update_item(
                s,
                raw_id,
                team_id=team_id,
                title=request.form.get("databaseUpdateTitle"),
                date=request.form.get("databaseUpdateDate"),
                body=request.form.get("databaseUpdateBody"),
                user=u,
            )
            s.commit()
            item_id = int(raw_id)  # type: ignore[arg-type]
            mode = "view"
    except Exception as e:
        s.rollback()
        message = str(e) or e.__class__.__name__
        if not isinstance(e, ValueError):
            current_app.logger.exception("Database controller failed (request_id=%s)", getattr(g, "request_id", None))
        log_error(s, actor=u, message=message, metadata={"path": request.path, "method": request.method})
        s.commit()
        flash(message, "danger")

    return redirect(url_for("database.database_page", mode=mode, id=item_id))


@bp.get("/controller")
@require_permission("database.edit")
def controller_get():
    return _run_controller()


@bp.post("/controller")
@require_permission("database.edit")
def controller_post():
    return _run_controller()
