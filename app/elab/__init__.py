import logging
from datetime import timedelta

from flask import Flask, g, render_template, request, session
from dotenv import load_dotenv
from sqlalchemy import inspect as sa_inspect

from app.elab.config import load_config
from app.elab.db import init_db, teardown_db_session
from app.elab.routes import bp as routes_bp
from app.elab.auth import bp as auth_bp, load_current_user
from app.elab.admin import bp as admin_bp
from app.elab.modules.database.admin import bp as database_bp
from app.elab.modules.teams.admin import bp as teams_bp

# Tables the running code expects; checked before serving the first request.
_REQUIRED_TABLES = (
    "users",
    "teams",
    "status",
    "items_types",
    "experiments_templates",
    "items",
    "experiments",
    "audit_events",
)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    from app.elab.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        from app.elab.rbac import user_has_permission

        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        user = getattr(g, "current_user", None)
        return {"has_perm": has_perm, "current_team": user.team if user else None}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/logout have their own rate limiting and carry no session yet.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(teams_bp, url_prefix="/admin")
    app.register_blueprint(database_bp, url_prefix="/database")

    # Schema health (lean): checked lazily because tables may be created after create_app()
    # (alembic in release, create_all in tests).
    app.config.setdefault("_schema_health_ok", None)

    def _missing_tables() -> list[str]:
        engine = app.extensions["sqlalchemy_engine"]
        insp = sa_inspect(engine)
        return [t for t in _REQUIRED_TABLES if not insp.has_table(t)]

    @app.before_request
    def _schema_health_guardrail():  # type: ignore[no-redef]
        if app.config.get("_schema_health_ok"):
            return None
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        missing = _missing_tables()
        if missing:
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
            return render_template("errors/schema_out_of_date.html", missing=missing), 500
        app.config["_schema_health_ok"] = True
        return None

    def _load_user_wrapper():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return render_template("errors/404.html"), 404

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_permission=missing), 403

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
