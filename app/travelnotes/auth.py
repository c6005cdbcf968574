from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy.exc import SQLAlchemyError

from app.travelnotes.audit import record_event
from app.travelnotes.db import db_session
from app.travelnotes.errors import TravelNotesError, ValidationError
from app.travelnotes.models import User
from app.travelnotes.modules.accounts.service import authenticate, register_user
from app.travelnotes.rbac import can_moderate, current_principal, principal_for
from app.travelnotes.security import safe_local_path

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user and g.principal from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.principal = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except (SQLAlchemyError, ValueError) as e:
        current_app.logger.error("load_current_user failed (clearing session): %s", e)
        session.pop("user_id", None)
        return

    if not user or not user.is_active:
        session.pop("user_id", None)
        return
    g.current_user = user
    g.principal = principal_for(user)


@bp.get("/login")
def login_get():
    if current_principal() is not None:
        return redirect(url_for("routes.index"))
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    username = (request.form.get("username") or "").strip()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))

    _record_attempt(ip)

    s = db_session()
    user = authenticate(s, username, password)
    if user is None:
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=username,
            reason="Invalid credentials",
        )
        s.commit()
        flash("Invalid username or password.", "danger")
        return redirect(url_for("auth.login_get", next=nxt) if nxt else url_for("auth.login_get"))

    session.clear()
    session["user_id"] = user.id
    _login_attempts[ip].clear()
    record_event(s, actor=principal_for(user), action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("Login ok user=%s role=%s request_id=%s", user.id, user.role.value, g.request_id)

    target = safe_local_path(nxt)
    if target:
        return redirect(target)
    if can_moderate(user.role):
        return redirect(url_for("moderation.review_queue"))
    return redirect(url_for("routes.index"))


@bp.get("/register")
def register_get():
    return render_template("auth/register.html")


@bp.post("/register")
def register_post():
    s = db_session()
    payload = {
        "username": request.form.get("username"),
        "password": request.form.get("password"),
        "nickname": request.form.get("nickname"),
    }
    try:
        user = register_user(s, payload)
    except ValidationError as e:
        flash(e.message, "danger")
        return render_template(
            "auth/register.html",
            username=payload["username"] or "",
            nickname=payload["nickname"] or "",
        ), 400
    except TravelNotesError as e:
        flash(e.message, "danger")
        return redirect(url_for("auth.register_get"))

    session.clear()
    session["user_id"] = user.id
    flash("Welcome aboard! Your account has been created.", "success")
    return redirect(url_for("routes.index"))


@bp.get("/logout")
def logout():
    s = db_session()
    principal = current_principal()
    if principal:
        record_event(s, actor=principal, action="auth.logout", entity_type="User", entity_id=str(principal.id))
        s.commit()
    session.pop("user_id", None)
    return redirect(url_for("auth.login_get"))
