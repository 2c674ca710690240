import json
from typing import Any

from flask import g, has_request_context
from sqlalchemy.orm import Session

from app.showcase.models import AuditEvent
from app.showcase.rbac import Identity


def record_event(
    s: Session,
    *,
    actor: Identity | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper.
    """
    rid = request_id
    if rid is None and has_request_context():
        rid = getattr(g, "request_id", None)
    ev = AuditEvent(
        request_id=rid,
        actor_user_id=actor.user_id if actor else None,
        actor_role=actor.role.value if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=json.dumps(metadata, sort_keys=True) if metadata else None,
    )
    s.add(ev)
    return ev
