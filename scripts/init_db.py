"""
Seed staff accounts (and optionally demo notes) in an idempotent way.

Does NOT overwrite an existing user's password.

Usage:
  python scripts/init_db.py            # admin + auditor
  python scripts/init_db.py --demo     # also demo travellers and notes
"""

import argparse
import os
import sys
from pathlib import Path

from sqlalchemy import select
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.travelnotes.models import Role, User  # noqa: E402
from app.travelnotes.modules.moderation.service import set_status  # noqa: E402
from app.travelnotes.modules.notes.models import Note, NoteStatus  # noqa: E402
from app.travelnotes.modules.notes.service import create_note  # noqa: E402
from app.travelnotes.rbac import principal_for  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402

DEMO_PASSWORD = "password123"

DEMO_NOTES = [
    {
        "owner": "user1",
        "title": "Lijiang Old Town",
        "location": "Yunnan, Lijiang",
        "content": (
            "Cobbled lanes, canals running between Naxi courtyards and the Mu Mansion at the centre "
            "of town. Spring and autumn are the best seasons to visit."
        ),
        "media": [
            {"type": "image", "url": "https://images.unsplash.com/photo-1580637250481-b78db3e6f84b?q=80&w=1000"},
            {"type": "image", "url": "https://images.unsplash.com/photo-1590123252271-df638a5d3b0d?q=80&w=1000"},
            {"type": "video", "url": "https://interactive-examples.mdn.mozilla.net/media/cc0-videos/flower.mp4"},
        ],
        "status": NoteStatus.APPROVED,
        "reason": None,
    },
    {
        "owner": "user2",
        "title": "Beach days in Sanya",
        "location": "Hainan, Sanya",
        "content": (
            "Five days between Yalong Bay, Dadonghai and Haitang Bay. Bring sunscreen and haggle "
            "at the seafood market."
        ),
        "media": [
            {"type": "image", "url": "https://images.unsplash.com/photo-1510414842594-a61c69b5ae57?q=80&w=1000"},
            {"type": "image", "url": "https://images.unsplash.com/photo-1570077188670-e3a8d69ac5ff?q=80&w=1000"},
        ],
        "status": NoteStatus.PENDING,
        "reason": None,
    },
    {
        "owner": "user1",
        "title": "Zhangjiajie sandstone peaks",
        "location": "Hunan, Zhangjiajie",
        "content": "Four days hiking Golden Whip Stream and the glass skywalk at Tianmen Mountain.",
        "media": [
            {"type": "image", "url": "https://images.unsplash.com/photo-1513977055326-8ae6272d90a7?q=80&w=1000"},
        ],
        "status": NoteStatus.REJECTED,
        "reason": "The photos do not match the text; please revise and resubmit.",
    },
]


def _ensure_user(s, *, username: str, password: str, nickname: str, role: Role, avatar_url: str | None = None) -> User:
    user = s.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if not user:
        user = User(
            username=username,
            password_hash=generate_password_hash(password),
            nickname=nickname,
            avatar_url=avatar_url,
            role=role,
            is_active=True,
        )
        s.add(user)
        s.flush()
    elif user.role is not role:
        user.role = role
    return user


def seed_demo(s, moderator: User) -> int:
    """Demo travellers and notes in each review state. Returns the number of notes created."""
    owners = {
        "user1": _ensure_user(
            s,
            username="user1",
            password=DEMO_PASSWORD,
            nickname="Wanderer",
            role=Role.USER,
            avatar_url="https://i.pravatar.cc/150?u=user1",
        ),
        "user2": _ensure_user(
            s,
            username="user2",
            password=DEMO_PASSWORD,
            nickname="Backpacker",
            role=Role.USER,
            avatar_url="https://i.pravatar.cc/150?u=user2",
        ),
    }
    s.commit()

    created = 0
    for demo in DEMO_NOTES:
        owner = owners[demo["owner"]]
        exists = s.execute(
            select(Note.id).where(Note.user_id == owner.id, Note.title == demo["title"])
        ).first()
        if exists:
            continue
        note = create_note(s, owner.id, demo, actor=principal_for(owner))
        if demo["status"] is not NoteStatus.PENDING:
            set_status(s, principal_for(moderator), note.id, demo["status"], rejection_reason=demo["reason"])
        created += 1
    return created


def seed_only(*, database_url: str | None = None, demo: bool = False) -> None:
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    auditor_username = (os.environ.get("AUDITOR_USERNAME") or "auditor").strip()
    auditor_password = os.environ.get("AUDITOR_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///travelnotes.db").strip()

    with script_session(db_url) as s:
        admin = _ensure_user(
            s, username=admin_username, password=admin_password, nickname="Administrator", role=Role.ADMIN
        )
        _ensure_user(s, username=auditor_username, password=auditor_password, nickname="Auditor", role=Role.AUDITOR)
        s.commit()
        if demo:
            created = seed_demo(s, admin)
            print(f"Demo notes created: {created}")

    print("Initialized database (seed_only).")
    print(f"Admin username: {admin_username}")
    print(f"Auditor username: {auditor_username}")
    print("Passwords: (from ADMIN_PASSWORD / AUDITOR_PASSWORD)")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed staff accounts and optional demo data.")
    parser.add_argument("--demo", action="store_true", help="also create demo travellers and notes")
    args = parser.parse_args()
    seed_only(database_url=None, demo=args.demo)


if __name__ == "__main__":
    main()
