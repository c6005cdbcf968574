"""
Note repository: notes and their media are written and read as one unit.

Every mutating call runs in a single transaction (see db.atomic). A note and
its media rows are either all committed or none are; storage failures come
back as PersistenceError after a full rollback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload, selectinload

from app.travelnotes.audit import record_event
from app.travelnotes.db import atomic
from app.travelnotes.errors import NotFoundError, ValidationError
from app.travelnotes.modules.notes.models import MediaKind, Note, NoteMedia, NoteStatus

if TYPE_CHECKING:
    from app.travelnotes.rbac import Principal

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 255


@dataclass(frozen=True)
class MediaItemInput:
    kind: MediaKind
    url: str
    order: int | None = None


def _coerce_media_item(raw: Any, index: int) -> tuple[MediaItemInput | None, str | None]:
    if isinstance(raw, MediaItemInput):
        item = raw
    elif isinstance(raw, dict):
        kind_raw = raw.get("type") or raw.get("media_type") or raw.get("kind")
        try:
            kind = MediaKind(kind_raw.value if isinstance(kind_raw, MediaKind) else str(kind_raw or "").strip().lower())
        except ValueError:
            return None, f"Media #{index + 1} has an unknown type {kind_raw!r} (expected image or video)."
        order_raw = raw.get("order")
        try:
            order = int(order_raw) if order_raw not in (None, "") else None
        except (TypeError, ValueError):
            return None, f"Media #{index + 1} has a non-numeric order."
        item = MediaItemInput(kind=kind, url=str(raw.get("url") or ""), order=order)
    else:
        return None, f"Media #{index + 1} is not a media item."

    if not item.url.strip():
        return None, f"Media #{index + 1} is missing its URL."
    return item, None


def normalize_media_list(raw_items: Iterable[Any] | None) -> tuple[list[MediaItemInput], list[str]]:
    """
    Coerce caller media entries into MediaItemInput, filling in the list index
    where no explicit order was supplied.
    """
    items: list[MediaItemInput] = []
    errors: list[str] = []
    for index, raw in enumerate(raw_items or []):
        item, err = _coerce_media_item(raw, index)
        if err:
            errors.append(err)
            continue
        assert item is not None
        items.append(
            MediaItemInput(
                kind=item.kind,
                url=item.url.strip(),
                order=item.order if item.order is not None else index,
            )
        )
    return items, errors


def media_from_form(urls: list[str], types: list[str]) -> list[dict[str, Any]]:
    """Pair the parallel mediaUrls[] / mediaTypes[] form lists; position is the order."""
    out: list[dict[str, Any]] = []
    for index, url in enumerate(urls):
        url = (url or "").strip()
        if not url:
            continue
        kind = types[index] if index < len(types) else "image"
        out.append({"type": kind, "url": url, "order": len(out)})
    return out


def validate_note_payload(payload: dict) -> list[str]:
    """Validate note create/update payload. Returns list of errors."""
    errors = []
    title = (payload.get("title") or "").strip()
    content = (payload.get("content") or "").strip()
    if not title:
        errors.append("Title is required.")
    elif len(title) > TITLE_MAX_LENGTH:
        errors.append(f"Title must be at most {TITLE_MAX_LENGTH} characters.")
    if not content:
        errors.append("Content is required.")
    _, media_errors = normalize_media_list(payload.get("media"))
    errors.extend(media_errors)
    return errors


def _clean_payload(payload: dict) -> tuple[str, str, str | None, list[MediaItemInput]]:
    errors = validate_note_payload(payload)
    if errors:
        raise ValidationError(" ".join(errors))
    media, _ = normalize_media_list(payload.get("media"))
    return (
        (payload.get("title") or "").strip(),
        (payload.get("content") or "").strip(),
        (payload.get("location") or "").strip() or None,
        media,
    )


def _media_rows(items: list[MediaItemInput], now: datetime) -> list[NoteMedia]:
    return [NoteMedia(media_type=m.kind, url=m.url, order=m.order or 0, created_at=now) for m in items]


def get_note_by_id(s: Session, note_id: int) -> Note | None:
    """
    Note with owner and ordered media, fetched in one joined query.
    No status or deletion filtering; callers apply the visibility rule.
    """
    stmt = (
        select(Note)
        .options(joinedload(Note.owner), joinedload(Note.media))
        .where(Note.id == note_id)
        .execution_options(populate_existing=True)
    )
    return s.execute(stmt).unique().scalar_one_or_none()


def get_owned_note(s: Session, note_id: int, owner_id: int) -> Note | None:
    return s.execute(select(Note).where(Note.id == note_id, Note.user_id == owner_id)).scalar_one_or_none()


def create_note(s: Session, owner_id: int, payload: dict, *, actor: "Principal | None" = None) -> Note:
    """
    Create a note in `pending` with its media. Any `status` in the payload is ignored.
    """
    title, content, location, media = _clean_payload(payload)

    with atomic(s):
        now = datetime.utcnow()
        note = Note(
            user_id=owner_id,
            title=title,
            content=content,
            location=location,
            status=NoteStatus.PENDING,
            rejection_reason=None,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        note.media = _media_rows(media, now)
        s.add(note)
        s.flush()

        record_event(
            s,
            actor=actor,
            action="note.create",
            entity_type="Note",
            entity_id=str(note.id),
            metadata={"owner_id": owner_id, "title": title, "media_count": len(media)},
        )

    logger.info("Note created id=%s owner=%s media=%d", note.id, owner_id, len(media))
    return get_note_by_id(s, note.id)  # type: ignore[return-value]


def update_note(s: Session, note_id: int, owner_id: int, payload: dict, *, actor: "Principal | None" = None) -> Note:
    """
    Overwrite an owned note and send it back to review.

    Media are replaced wholesale: existing rows are deleted and the new list
    inserted in the same transaction as the content update.
    """
    title, content, location, media = _clean_payload(payload)

    with atomic(s):
        note = get_owned_note(s, note_id, owner_id)
        if note is None or note.is_deleted:
            raise NotFoundError("Note not found.")

        previous_status = note.status
        now = datetime.utcnow()
        note.title = title
        note.content = content
        note.location = location
        note.status = NoteStatus.PENDING
        note.rejection_reason = None
        note.updated_at = now
        # delete-orphan cascade removes the old rows on flush
        note.media = _media_rows(media, now)
        s.flush()

        record_event(
            s,
            actor=actor,
            action="note.edit",
            entity_type="Note",
            entity_id=str(note.id),
            metadata={
                "owner_id": owner_id,
                "previous_status": previous_status.value,
                "media_count": len(media),
            },
        )

    return get_note_by_id(s, note_id)  # type: ignore[return-value]


def soft_delete_note(s: Session, note_id: int, owner_id: int, *, actor: "Principal | None" = None) -> Note:
    """Hide an owned note from every listing. Deleting twice is a no-op."""
    with atomic(s):
        note = get_owned_note(s, note_id, owner_id)
        if note is None:
            raise NotFoundError("Note not found.")
        if not note.is_deleted:
            note.is_deleted = True
            record_event(
                s,
                actor=actor,
                action="note.delete",
                entity_type="Note",
                entity_id=str(note.id),
                metadata={"owner_id": owner_id, "status": note.status.value},
            )
    return note


def list_notes_by_owner(s: Session, owner_id: int, status: NoteStatus | None = None) -> list[Note]:
    stmt = (
        select(Note)
        .options(joinedload(Note.owner), selectinload(Note.media))
        .where(Note.user_id == owner_id, Note.is_deleted.is_(False))
    )
    if status is not None:
        stmt = stmt.where(Note.status == status)
    stmt = stmt.order_by(Note.created_at.desc(), Note.id.desc())
    return list(s.execute(stmt).scalars().all())
