"""Tests for the moderation workflow and the single-note visibility rule."""
import pytest
from werkzeug.security import generate_password_hash

from app.travelnotes import create_app
from app.travelnotes.db import session_scope
from app.travelnotes.errors import ForbiddenError, NotFoundError, ValidationError
from app.travelnotes.models import Base, Role, User
from app.travelnotes.modules.listing.service import list_published
from app.travelnotes.modules.moderation.service import (
    admin_soft_delete,
    get_note_for_review,
    get_visible_note,
    parse_status,
    set_status,
)
from app.travelnotes.modules.notes.models import NoteStatus
from app.travelnotes.modules.notes.service import create_note, get_note_by_id, soft_delete_note
from app.travelnotes.rbac import Principal, can_delete_any, can_moderate, can_view_unpublished


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


@pytest.fixture()
def people(app):
    """Principals for an owner, a stranger, an auditor and an admin."""
    out = {}
    with session_scope(app) as s:
        for username, role in (
            ("owner", Role.USER),
            ("stranger", Role.USER),
            ("auditor", Role.AUDITOR),
            ("admin", Role.ADMIN),
        ):
            u = User(
                username=username,
                password_hash=generate_password_hash("pw"),
                nickname=username.capitalize(),
                role=role,
            )
            s.add(u)
            s.flush()
            out[username] = Principal(id=u.id, role=role)
    return out


@pytest.fixture()
def note_id(app, people):
    with session_scope(app) as s:
        note = create_note(
            s,
            people["owner"].id,
            {
                "title": "Lijiang",
                "content": "Old town by the canals.",
                "media": [
                    {"type": "image", "url": "/upload/a.jpg"},
                    {"type": "image", "url": "/upload/b.jpg"},
                ],
            },
            actor=people["owner"],
        )
        return note.id


def test_role_checks_cover_every_role():
    assert [can_moderate(r) for r in (Role.USER, Role.AUDITOR, Role.ADMIN)] == [False, True, True]
    assert [can_delete_any(r) for r in (Role.USER, Role.AUDITOR, Role.ADMIN)] == [False, False, True]
    assert [can_view_unpublished(r) for r in (Role.USER, Role.AUDITOR, Role.ADMIN)] == [False, False, True]
    with pytest.raises(ValueError):
        can_moderate("superuser")  # type: ignore[arg-type]


def test_parse_status():
    assert parse_status(None) is None
    assert parse_status("") is None
    assert parse_status("all") is None
    assert parse_status(" Approved ") is NoteStatus.APPROVED
    with pytest.raises(ValidationError):
        parse_status("archived")


def test_approve_then_published(app, people, note_id):
    with session_scope(app) as s:
        note = set_status(s, people["auditor"], note_id, "approved")
        assert note.status is NoteStatus.APPROVED
        assert note.rejection_reason is None

    with session_scope(app) as s:
        assert [n.id for n in list_published(s)] == [note_id]
        anon_view = get_visible_note(s, None, note_id)
        assert anon_view.title == "Lijiang"


def test_users_cannot_moderate(app, people, note_id):
    with session_scope(app) as s:
        with pytest.raises(ForbiddenError):
            set_status(s, people["owner"], note_id, NoteStatus.APPROVED)
        with pytest.raises(ForbiddenError):
            set_status(s, None, note_id, NoteStatus.APPROVED)
        assert get_note_by_id(s, note_id).status is NoteStatus.PENDING


def test_reject_without_reason_changes_nothing(app, people, note_id):
    with session_scope(app) as s:
        before = get_note_by_id(s, note_id).updated_at
        for blank in (None, "", "   "):
            with pytest.raises(ValidationError):
                set_status(s, people["auditor"], note_id, NoteStatus.REJECTED, rejection_reason=blank)

    with session_scope(app) as s:
        note = get_note_by_id(s, note_id)
        assert note.status is NoteStatus.PENDING
        assert note.rejection_reason is None
        assert note.updated_at == before


def test_reject_stores_reason_verbatim_and_approve_clears_it(app, people, note_id):
    reason = "  Photos do not match the text.  "
    with session_scope(app) as s:
        set_status(s, people["auditor"], note_id, NoteStatus.REJECTED, rejection_reason=reason)

    with session_scope(app) as s:
        note = get_note_by_id(s, note_id)
        assert note.status is NoteStatus.REJECTED
        assert note.rejection_reason == reason

        note = set_status(s, people["admin"], note_id, NoteStatus.APPROVED, rejection_reason="ignored")
        assert note.rejection_reason is None


def test_reopen_to_pending_clears_reason(app, people, note_id):
    with session_scope(app) as s:
        set_status(s, people["auditor"], note_id, NoteStatus.REJECTED, rejection_reason="Too short")
        note = set_status(s, people["auditor"], note_id, NoteStatus.PENDING)
        assert note.status is NoteStatus.PENDING
        assert note.rejection_reason is None


def test_set_status_on_missing_or_deleted_note(app, people, note_id):
    with session_scope(app) as s:
        with pytest.raises(NotFoundError):
            set_status(s, people["auditor"], 999, NoteStatus.APPROVED)
        soft_delete_note(s, note_id, people["owner"].id)
        with pytest.raises(NotFoundError):
            set_status(s, people["auditor"], note_id, NoteStatus.APPROVED)


def test_only_admin_can_delete_any_note(app, people, note_id):
    with session_scope(app) as s:
        with pytest.raises(ForbiddenError):
            admin_soft_delete(s, people["auditor"], note_id)
        with pytest.raises(ForbiddenError):
            admin_soft_delete(s, people["owner"], note_id)
        assert get_note_by_id(s, note_id).is_deleted is False

        with pytest.raises(NotFoundError):
            admin_soft_delete(s, people["admin"], 999)


def test_admin_delete_hides_approved_note(app, people, note_id):
    with session_scope(app) as s:
        set_status(s, people["auditor"], note_id, NoteStatus.APPROVED)
        assert [n.id for n in list_published(s)] == [note_id]

        admin_soft_delete(s, people["admin"], note_id, reason="Spam")
        admin_soft_delete(s, people["admin"], note_id)

    with session_scope(app) as s:
        assert list_published(s) == []
        note = get_visible_note(s, people["admin"], note_id)
        assert note.is_deleted is True
        assert note.status is NoteStatus.APPROVED
        for who in (None, people["owner"], people["auditor"]):
            with pytest.raises(NotFoundError):
                get_visible_note(s, who, note_id)


@pytest.mark.parametrize("status", [NoteStatus.PENDING, NoteStatus.REJECTED])
def test_unpublished_note_visibility(app, people, note_id, status):
    with session_scope(app) as s:
        if status is NoteStatus.REJECTED:
            set_status(s, people["auditor"], note_id, status, rejection_reason="No")

    with session_scope(app) as s:
        assert get_visible_note(s, people["owner"], note_id).id == note_id
        assert get_visible_note(s, people["admin"], note_id).id == note_id
        for who in (None, people["stranger"], people["auditor"]):
            with pytest.raises(ForbiddenError):
                get_visible_note(s, who, note_id)
        with pytest.raises(NotFoundError):
            get_visible_note(s, people["admin"], 999)


def test_review_detail_for_moderators(app, people, note_id):
    with session_scope(app) as s:
        assert get_note_for_review(s, people["auditor"], note_id).status is NoteStatus.PENDING
        with pytest.raises(ForbiddenError):
            get_note_for_review(s, people["owner"], note_id)

        admin_soft_delete(s, people["admin"], note_id)
        assert get_note_for_review(s, people["admin"], note_id).is_deleted is True
        with pytest.raises(NotFoundError):
            get_note_for_review(s, people["auditor"], note_id)
