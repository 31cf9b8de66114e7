import json
import logging
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.elab.models import AuditEvent, User

logger = logging.getLogger(__name__)


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper.
    Works outside a request too (scripts, tests), in which case request_id/client_ip stay empty.
    """
    in_request = has_request_context()
    rid = request_id or (getattr(g, "request_id", None) if in_request else None)
    ev = AuditEvent(
        request_id=rid,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=request.remote_addr if in_request else None,
    )
    s.add(ev)
    return ev


def log_error(s: Session, *, actor: User | None, message: str, metadata: dict[str, Any] | None = None) -> AuditEvent:
    """
    Persist an application error so it shows up in the admin audit trail.
    The caller owns the commit (after rolling back whatever failed).
    """
    logger.error("Error (user=%s): %s", actor.id if actor else None, message)
    return record_event(
        s,
        actor=actor,
        action="error",
        reason=message[:512],
        metadata=metadata,
    )
