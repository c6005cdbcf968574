"""
Moderation workflow for travel notes.

States:
    pending  -> approved | rejected   (auditor/admin)
    approved <-> rejected             (auditor/admin, re-review)
    any      -> pending               (owner edit, see notes.service.update_note)

Role checks trust the Principal handed in by the web layer; nothing here
reads the session.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.travelnotes.audit import record_event
from app.travelnotes.db import atomic
from app.travelnotes.errors import ForbiddenError, NotFoundError, ValidationError
from app.travelnotes.modules.notes.models import Note, NoteStatus
from app.travelnotes.modules.notes.service import get_note_by_id
from app.travelnotes.rbac import Principal, can_delete_any, can_moderate, can_view_unpublished

logger = logging.getLogger(__name__)

_STATUS_ACTIONS = {
    NoteStatus.APPROVED: "note.approve",
    NoteStatus.REJECTED: "note.reject",
    NoteStatus.PENDING: "note.reopen",
}


def parse_status(raw: "str | NoteStatus | None") -> NoteStatus | None:
    """Blank means 'no filter'; anything else must name a status."""
    if raw is None or isinstance(raw, NoteStatus):
        return raw
    raw = raw.strip().lower()
    if not raw or raw == "all":
        return None
    try:
        return NoteStatus(raw)
    except ValueError:
        raise ValidationError(f"Unknown status {raw!r}.") from None


def set_status(
    s: Session,
    principal: Principal | None,
    note_id: int,
    new_status: "str | NoteStatus",
    rejection_reason: str | None = None,
) -> Note:
    """
    Approve, reject or reopen a note.

    A reason is required (and stored verbatim) when rejecting; for every other
    status the reason is cleared.
    """
    if principal is None or not can_moderate(principal.role):
        raise ForbiddenError("Only auditors and admins can review notes.")

    status = parse_status(new_status)
    if status is None:
        raise ValidationError("A status is required.")
    if status is NoteStatus.REJECTED and not (rejection_reason or "").strip():
        raise ValidationError("A rejection reason is required.")

    with atomic(s):
        note = s.execute(select(Note).where(Note.id == note_id)).scalar_one_or_none()
        if note is None or note.is_deleted:
            raise NotFoundError("Note not found.")

        previous = note.status
        note.status = status
        note.rejection_reason = rejection_reason if status is NoteStatus.REJECTED else None
        note.updated_at = datetime.utcnow()

        record_event(
            s,
            actor=principal,
            action=_STATUS_ACTIONS[status],
            entity_type="Note",
            entity_id=str(note.id),
            reason=note.rejection_reason,
            metadata={"from": previous.value, "to": status.value},
        )

    logger.info("Note %s status %s -> %s by user %s", note_id, previous.value, status.value, principal.id)
    return get_note_by_id(s, note_id)  # type: ignore[return-value]


def admin_soft_delete(s: Session, principal: Principal | None, note_id: int, reason: str | None = None) -> Note:
    """Logical delete of any note; admins only. Idempotent."""
    if principal is None or not can_delete_any(principal.role):
        raise ForbiddenError("Only admins can delete notes.")

    with atomic(s):
        note = s.execute(select(Note).where(Note.id == note_id)).scalar_one_or_none()
        if note is None:
            raise NotFoundError("Note not found.")
        if not note.is_deleted:
            note.is_deleted = True
            note.updated_at = datetime.utcnow()
            record_event(
                s,
                actor=principal,
                action="note.admin_delete",
                entity_type="Note",
                entity_id=str(note.id),
                reason=reason,
                metadata={"owner_id": note.user_id, "status": note.status.value},
            )

    return get_note_by_id(s, note_id)  # type: ignore[return-value]


def can_view(principal: Principal | None, note: Note) -> bool:
    is_owner = principal is not None and principal.id == note.user_id
    is_privileged = principal is not None and can_view_unpublished(principal.role)
    if note.is_deleted:
        return is_privileged
    if note.status is NoteStatus.APPROVED:
        return True
    return is_owner or is_privileged


def get_visible_note(s: Session, principal: Principal | None, note_id: int) -> Note:
    """
    Fetch a note for display, applying the visibility rule: a note that is not
    approved is shown only to its owner or an admin. Deleted notes are shown
    to admins only.
    """
    note = get_note_by_id(s, note_id)
    if note is None:
        raise NotFoundError("Note not found.")
    if not can_view(principal, note):
        if note.is_deleted:
            raise NotFoundError("Note not found.")
        raise ForbiddenError("This note has not been approved yet.")
    return note


def get_note_for_review(s: Session, principal: Principal | None, note_id: int) -> Note:
    """Review detail: any status for auditors/admins; deleted notes for admins only."""
    if principal is None or not can_moderate(principal.role):
        raise ForbiddenError("Only auditors and admins can review notes.")
    note = get_note_by_id(s, note_id)
    if note is None or (note.is_deleted and not can_view_unpublished(principal.role)):
        raise NotFoundError("Note not found.")
    return note
