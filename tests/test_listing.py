"""Tests for the public feed, the review queue and popular destinations."""
import pytest
from werkzeug.security import generate_password_hash

from app.travelnotes import create_app
from app.travelnotes.db import session_scope
from app.travelnotes.errors import ForbiddenError, ValidationError
from app.travelnotes.models import Base, Role, User
from app.travelnotes.modules.listing.service import list_for_review, list_published, popular_destinations
from app.travelnotes.modules.moderation.service import admin_soft_delete, set_status
from app.travelnotes.modules.notes.models import NoteStatus
from app.travelnotes.modules.notes.service import create_note, soft_delete_note
from app.travelnotes.rbac import Principal


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
def seeded(app):
    """
    Two travellers and a handful of notes in every state:

    Wanderer: Lijiang Old Town (approved), Lijiang by night (approved),
              Zhangjiajie (rejected), Deleted draft (deleted)
    Backpacker: Sanya beach (approved), Harbin ice festival (pending),
                Somewhere quiet (approved, no location)
    """
    with session_scope(app) as s:
        wanderer = User(username="u1", password_hash=generate_password_hash("pw"), nickname="Wanderer")
        backpacker = User(username="u2", password_hash=generate_password_hash("pw"), nickname="Backpacker")
        admin = User(username="admin", password_hash=generate_password_hash("pw"), nickname="Admin", role=Role.ADMIN)
        s.add_all([wanderer, backpacker, admin])
        s.flush()
        moderator = Principal(id=admin.id, role=Role.ADMIN)

        def add(owner, title, location, status=NoteStatus.PENDING, reason=None):
            note = create_note(
                s,
                owner.id,
                {
                    "title": title,
                    "content": f"About {title}.",
                    "location": location,
                    "media": [{"type": "image", "url": f"/upload/{len(title)}.jpg"}],
                },
            )
            if status is not NoteStatus.PENDING:
                set_status(s, moderator, note.id, status, rejection_reason=reason)
            return note.id

        ids = {
            "lijiang": add(wanderer, "Lijiang Old Town", "Lijiang", NoteStatus.APPROVED),
            "sanya": add(backpacker, "Sanya beach", "Sanya", NoteStatus.APPROVED),
            "lijiang_night": add(wanderer, "Lijiang by night", "Lijiang", NoteStatus.APPROVED),
            "zhangjiajie": add(wanderer, "Zhangjiajie", "Zhangjiajie", NoteStatus.REJECTED, "Off topic"),
            "harbin": add(backpacker, "Harbin ice festival", "Harbin"),
            "quiet": add(backpacker, "Somewhere quiet", None, NoteStatus.APPROVED),
            "deleted": add(wanderer, "Deleted draft", "Lijiang", NoteStatus.APPROVED),
        }
        admin_soft_delete(s, moderator, ids["deleted"])
        ids["admin"] = moderator
        ids["backpacker_id"] = backpacker.id
        return ids


def test_list_published_only_approved_newest_first(app, seeded):
    with session_scope(app) as s:
        notes = list_published(s)
        assert [n.id for n in notes] == [seeded["quiet"], seeded["lijiang_night"], seeded["sanya"], seeded["lijiang"]]
        assert all(n.status is NoteStatus.APPROVED and not n.is_deleted for n in notes)
        assert notes[0].owner.nickname == "Backpacker"
        assert notes[0].cover.url.startswith("/upload/")

        assert [n.id for n in list_published(s, limit=2, offset=1)] == [seeded["lijiang_night"], seeded["sanya"]]


def test_list_published_search_ignores_case(app, seeded):
    with session_scope(app) as s:
        assert [n.id for n in list_published(s, search="lijiang")] == [seeded["lijiang_night"], seeded["lijiang"]]
        assert [n.id for n in list_published(s, search="BACKPACKER")] == [seeded["quiet"], seeded["sanya"]]
        assert [n.id for n in list_published(s, search="sanya")] == [seeded["sanya"]]
        assert list_published(s, search="%") == []
        assert list_published(s, search="Harbin") == []
        assert len(list_published(s, search="  ")) == 4


def test_review_queue_requires_moderator(app, seeded):
    with session_scope(app) as s:
        with pytest.raises(ForbiddenError):
            list_for_review(s, None)
        with pytest.raises(ForbiddenError):
            list_for_review(s, Principal(id=1, role=Role.USER))
        assert list_for_review(s, Principal(id=1, role=Role.AUDITOR)).total_items == 6


def test_review_queue_pagination(app, seeded):
    admin = seeded["admin"]
    with session_scope(app) as s:
        first = list_for_review(s, admin, page=1, page_size=4)
        assert first.total_items == 6
        assert first.total_pages == 2
        assert len(first.items) == 4
        assert first.has_next and not first.has_prev
        assert first.items[0].id == seeded["quiet"]

        second = list_for_review(s, admin, page=2, page_size=4)
        assert len(second.items) == 2
        assert second.has_prev and not second.has_next
        assert {n.id for n in first.items}.isdisjoint({n.id for n in second.items})

        beyond = list_for_review(s, admin, page=5, page_size=4)
        assert beyond.items == []
        assert beyond.total_pages == 2

        clamped = list_for_review(s, admin, page=0, page_size=4)
        assert clamped.page == 1

        with pytest.raises(ValidationError):
            list_for_review(s, admin, page_size=0)


def test_review_queue_status_filter_excludes_deleted(app, seeded):
    admin = seeded["admin"]
    with session_scope(app) as s:
        approved = list_for_review(s, admin, status=NoteStatus.APPROVED)
        assert approved.total_items == 4
        assert seeded["deleted"] not in {n.id for n in approved.items}

        pending = list_for_review(s, admin, status=NoteStatus.PENDING)
        assert [n.id for n in pending.items] == [seeded["harbin"]]

        rejected = list_for_review(s, admin, status=NoteStatus.REJECTED)
        assert rejected.items[0].rejection_reason == "Off topic"


def test_review_queue_search_title_and_nickname(app, seeded):
    admin = seeded["admin"]
    with session_scope(app) as s:
        by_title = list_for_review(s, admin, search="Lijiang")
        assert {n.id for n in by_title.items} == {seeded["lijiang"], seeded["lijiang_night"]}

        by_nickname = list_for_review(s, admin, search="Backpack")
        assert by_nickname.total_items == 3

        combined = list_for_review(s, admin, status=NoteStatus.PENDING, search="Backpacker")
        assert [n.id for n in combined.items] == [seeded["harbin"]]


def test_review_queue_search_case_and_wildcards(app, seeded):
    admin = seeded["admin"]
    with session_scope(app) as s:
        assert list_for_review(s, admin, search="lijiang").total_items == 0
        assert list_for_review(s, admin, search="lijiang", case_sensitive=False).total_items == 2
        assert list_for_review(s, admin, search="%").total_items == 0
        assert list_for_review(s, admin, search="_").total_items == 0


def test_popular_destinations(app, seeded):
    with session_scope(app) as s:
        destinations = popular_destinations(s)
        assert (destinations[0].location, destinations[0].count) == ("Lijiang", 2)
        assert {(d.location, d.count) for d in destinations} == {("Lijiang", 2), ("Sanya", 1), (None, 1)}

        assert len(popular_destinations(s, limit=1)) == 1


def test_deleted_notes_never_listed(app, seeded):
    admin = seeded["admin"]
    with session_scope(app) as s:
        soft_delete_note(s, seeded["sanya"], seeded["backpacker_id"])
        assert seeded["sanya"] not in {n.id for n in list_published(s)}
        assert seeded["sanya"] not in {n.id for n in list_for_review(s, admin, page_size=50).items}
        assert ("Sanya", 1) not in {(d.location, d.count) for d in popular_destinations(s)}
