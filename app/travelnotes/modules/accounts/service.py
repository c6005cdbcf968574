from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.travelnotes.audit import record_event
from app.travelnotes.db import atomic
from app.travelnotes.errors import ValidationError
from app.travelnotes.models import Role, User
from app.travelnotes.rbac import Principal, principal_for

USERNAME_MAX_LENGTH = 255
PASSWORD_MIN_LENGTH = 6


def validate_registration_payload(payload: dict) -> list[str]:
    errors = []
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    nickname = (payload.get("nickname") or "").strip()
    if not username or not password:
        errors.append("Username and password are required.")
    if username and len(username) > USERNAME_MAX_LENGTH:
        errors.append(f"Username must be at most {USERNAME_MAX_LENGTH} characters.")
    if password and len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters.")
    if not nickname:
        errors.append("Nickname is required.")
    return errors


def get_user_by_username(s: Session, username: str) -> User | None:
    return s.execute(select(User).where(User.username == username)).scalar_one_or_none()


def _nickname_taken(s: Session, nickname: str, exclude_user_id: int | None = None) -> bool:
    stmt = select(User.id).where(User.nickname == nickname)
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    return s.execute(stmt).first() is not None


def register_user(s: Session, payload: dict, role: Role = Role.USER) -> User:
    """Create an account. Username and nickname must both be unused."""
    errors = validate_registration_payload(payload)
    if errors:
        raise ValidationError(" ".join(errors))

    username = (payload.get("username") or "").strip()
    nickname = (payload.get("nickname") or "").strip()

    with atomic(s):
        if get_user_by_username(s, username) is not None:
            raise ValidationError("That username is already taken.")
        if _nickname_taken(s, nickname):
            raise ValidationError("That nickname is already taken.")

        now = datetime.utcnow()
        user = User(
            username=username,
            password_hash=generate_password_hash(payload.get("password") or ""),
            nickname=nickname,
            avatar_url=(payload.get("avatar_url") or "").strip() or None,
            role=role,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        s.add(user)
        s.flush()
        record_event(
            s,
            actor=principal_for(user),
            action="auth.register",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"username": username, "role": role.value},
        )
    return user


def authenticate(s: Session, username: str, password: str) -> User | None:
    user = get_user_by_username(s, (username or "").strip())
    if not user or not user.is_active or not check_password_hash(user.password_hash, password or ""):
        return None
    return user


def update_profile(s: Session, principal: Principal, payload: dict) -> User:
    """Change nickname and avatar. A blank avatar keeps the current one."""
    nickname = (payload.get("nickname") or "").strip()
    if not nickname:
        raise ValidationError("Nickname is required.")

    with atomic(s):
        user = s.get(User, principal.id)
        if user is None:
            raise ValidationError("Account no longer exists.")
        if _nickname_taken(s, nickname, exclude_user_id=user.id):
            raise ValidationError("That nickname is already taken.")

        changes = {}
        if nickname != user.nickname:
            changes["nickname"] = {"old": user.nickname, "new": nickname}
            user.nickname = nickname
        avatar_url = (payload.get("avatar_url") or "").strip()
        if avatar_url and avatar_url != user.avatar_url:
            changes["avatar_url"] = {"old": user.avatar_url, "new": avatar_url}
            user.avatar_url = avatar_url
        user.updated_at = datetime.utcnow()

        record_event(
            s,
            actor=principal,
            action="user.profile_update",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"changes": changes},
        )
    return user
