import secrets

from flask import Request, session
from markupsafe import Markup


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from form or header."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    return bool(token and secrets.compare_digest(str(token), str(session.get("csrf_token") or "")))


def clean_text(value: str | None) -> str:
    """
    Strip HTML tags and surrounding whitespace from a single-line form value
    (team names, link labels, item titles).

    striptags() unescapes entities after removing tags, so repeat until the
    text stops changing; otherwise "&lt;b&gt;" comes back as a real tag.
    """
    if not value:
        return ""
    text = str(value)
    while True:
        cleaned = Markup(text).striptags()
        if cleaned == text:
            return cleaned.strip()
        text = cleaned
