from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from flask import g, has_app_context, has_request_context, request
from sqlalchemy.orm import Session

from app.travelnotes.models import AuditEvent

if TYPE_CHECKING:
    from app.travelnotes.rbac import Principal


def record_event(
    s: Session,
    *,
    actor: "Principal | None",
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper. Works inside and outside a request.
    """
    rid = request_id
    if rid is None and has_app_context():
        rid = getattr(g, "request_id", None)
    ev = AuditEvent(
        request_id=rid,
        actor_user_id=actor.id if actor else None,
        actor_role=actor.role.value if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason[:512] if reason else None,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=request.remote_addr if has_request_context() else None,
    )
    s.add(ev)
    return ev
