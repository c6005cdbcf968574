from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for

from app.travelnotes.models import Role, User


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as seen by the note services."""

    id: int
    role: Role


def principal_for(user: User | None) -> Principal | None:
    if not user or not user.is_active:
        return None
    return Principal(id=user.id, role=user.role)


def current_principal() -> Principal | None:
    return getattr(g, "principal", None)


def can_moderate(role: Role) -> bool:
    """Approve/reject notes and open the review queue."""
    if role is Role.ADMIN or role is Role.AUDITOR:
        return True
    if role is Role.USER:
        return False
    raise ValueError(f"Unknown role: {role!r}")


def can_delete_any(role: Role) -> bool:
    """Logically delete any note regardless of owner."""
    if role is Role.ADMIN:
        return True
    if role is Role.AUDITOR or role is Role.USER:
        return False
    raise ValueError(f"Unknown role: {role!r}")


def can_view_unpublished(role: Role) -> bool:
    """See notes that are not approved (or are deleted) without owning them."""
    if role is Role.ADMIN:
        return True
    if role is Role.AUDITOR or role is Role.USER:
        return False
    raise ValueError(f"Unknown role: {role!r}")


def _redirect_to_login():
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", next=nxt))


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if current_principal() is None:
            return _redirect_to_login()
        return fn(*args, **kwargs)

    return wrapped


def require_role(*roles: Role) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            principal = current_principal()
            # Unauthenticated -> redirect to login
            if principal is None:
                return _redirect_to_login()
            # Authenticated but unauthorized -> 403
            if principal.role not in roles:
                g.missing_role = ", ".join(r.value for r in roles)
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
