"""
Read-side views over notes: public feed, review queue, popular destinations.

Soft-deleted notes are excluded from every query here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload, selectinload

from app.travelnotes.errors import ForbiddenError, ValidationError
from app.travelnotes.models import User
from app.travelnotes.modules.notes.models import Note, NoteStatus
from app.travelnotes.rbac import Principal, can_moderate


@dataclass(frozen=True)
class ReviewPage:
    items: list[Note]
    page: int
    page_size: int
    total_items: int
    total_pages: int

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


@dataclass(frozen=True)
class Destination:
    location: str | None
    count: int


def _newest_first(stmt):
    return stmt.order_by(Note.created_at.desc(), Note.id.desc())


def list_published(s: Session, limit: int = 20, offset: int = 0, search: str | None = None) -> list[Note]:
    """
    Approved, non-deleted notes for public browsing, newest first.

    `search` matches title, author nickname or location, ignoring case.
    """
    stmt = (
        select(Note)
        .join(User, Note.user_id == User.id)
        .options(joinedload(Note.owner), selectinload(Note.media))
        .where(Note.status == NoteStatus.APPROVED, Note.is_deleted.is_(False))
    )
    search = (search or "").strip()
    if search:
        stmt = stmt.where(
            or_(
                Note.title.icontains(search, autoescape=True),
                User.nickname.icontains(search, autoescape=True),
                Note.location.icontains(search, autoescape=True),
            )
        )
    stmt = _newest_first(stmt).limit(max(limit, 0)).offset(max(offset, 0))
    return list(s.execute(stmt).scalars().all())


def _search_clause(search: str, case_sensitive: bool):
    if case_sensitive:
        return or_(
            Note.title.contains(search, autoescape=True),
            User.nickname.contains(search, autoescape=True),
        )
    return or_(
        Note.title.icontains(search, autoescape=True),
        User.nickname.icontains(search, autoescape=True),
    )


def list_for_review(
    s: Session,
    principal: Principal | None,
    status: NoteStatus | None = None,
    page: int = 1,
    page_size: int = 10,
    search: str | None = None,
    *,
    case_sensitive: bool = True,
) -> ReviewPage:
    """
    Review queue for auditors/admins: optional status filter and title/nickname
    search, newest first, with a separate COUNT for pagination.
    """
    if principal is None or not can_moderate(principal.role):
        raise ForbiddenError("Only auditors and admins can open the review queue.")
    if page_size < 1:
        raise ValidationError("Page size must be at least 1.")
    page = max(page, 1)

    conditions = [Note.is_deleted.is_(False)]
    if status is not None:
        conditions.append(Note.status == status)
    search = (search or "").strip()
    if search:
        conditions.append(_search_clause(search, case_sensitive))

    total = s.execute(
        select(func.count(Note.id)).select_from(Note).join(User, Note.user_id == User.id).where(*conditions)
    ).scalar_one()

    stmt = (
        select(Note)
        .join(User, Note.user_id == User.id)
        .options(joinedload(Note.owner), selectinload(Note.media))
        .where(*conditions)
    )
    stmt = _newest_first(stmt).offset((page - 1) * page_size).limit(page_size)
    items = list(s.execute(stmt).scalars().all())

    return ReviewPage(
        items=items,
        page=page,
        page_size=page_size,
        total_items=int(total or 0),
        total_pages=math.ceil((total or 0) / page_size),
    )


def popular_destinations(s: Session, limit: int = 6) -> list[Destination]:
    """Approved, non-deleted notes grouped by location, most notes first."""
    count_col = func.count(Note.id).label("note_count")
    rows = s.execute(
        select(Note.location, count_col)
        .where(Note.status == NoteStatus.APPROVED, Note.is_deleted.is_(False))
        .group_by(Note.location)
        .order_by(count_col.desc(), Note.location.asc())
        .limit(limit)
    ).all()
    return [Destination(location=loc, count=int(cnt)) for loc, cnt in rows]
