from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for

from app.travelnotes.db import db_session
from app.travelnotes.errors import NotFoundError, ValidationError
from app.travelnotes.models import Role
from app.travelnotes.modules.listing.service import list_for_review
from app.travelnotes.modules.moderation.service import admin_soft_delete, get_note_for_review, parse_status, set_status
from app.travelnotes.modules.notes.models import NoteStatus
from app.travelnotes.rbac import Principal, current_principal, require_role
from app.travelnotes.security import safe_local_path

bp = Blueprint("moderation", __name__)


def _principal() -> Principal:
    p = current_principal()
    if p is None:
        raise RuntimeError("No current principal")
    return p


def _back_to_queue():
    # Keep the reviewer's filters when the form carried them along.
    nxt = safe_local_path(request.form.get("next"))
    if nxt:
        return redirect(nxt)
    return redirect(url_for("moderation.review_queue"))


# ---------- Review queue ----------
@bp.get("/")
@require_role(Role.AUDITOR, Role.ADMIN)
def review_queue():
    s = db_session()
    status_filter = (request.args.get("status") or "").strip()
    search = (request.args.get("q") or "").strip()
    try:
        page = int(request.args.get("page", "1"))
    except ValueError:
        page = 1

    try:
        status = parse_status(status_filter)
    except ValidationError as e:
        flash(e.message, "danger")
        status, status_filter = None, ""

    result = list_for_review(
        s,
        _principal(),
        status=status,
        page=page,
        page_size=current_app.config.get("REVIEW_PAGE_SIZE", 10),
        search=search,
        case_sensitive=current_app.config.get("REVIEW_SEARCH_CASE_SENSITIVE", True),
    )
    return render_template(
        "admin/review.html",
        result=result,
        status_filter=status_filter,
        search=search,
        statuses=list(NoteStatus),
    )


@bp.get("/notes/<int:note_id>")
@require_role(Role.AUDITOR, Role.ADMIN)
def note_detail(note_id: int):
    s = db_session()
    try:
        note = get_note_for_review(s, _principal(), note_id)
    except NotFoundError:
        abort(404)
    return render_template("admin/note_detail.html", note=note)


# ---------- Actions ----------
@bp.post("/notes/<int:note_id>/approve")
@require_role(Role.AUDITOR, Role.ADMIN)
def approve(note_id: int):
    s = db_session()
    try:
        set_status(s, _principal(), note_id, NoteStatus.APPROVED)
    except NotFoundError:
        abort(404)
    flash("Note approved.", "success")
    return _back_to_queue()


@bp.post("/notes/<int:note_id>/reject")
@require_role(Role.AUDITOR, Role.ADMIN)
def reject(note_id: int):
    s = db_session()
    reason = request.form.get("reason") or ""
    try:
        set_status(s, _principal(), note_id, NoteStatus.REJECTED, rejection_reason=reason)
    except NotFoundError:
        abort(404)
    except ValidationError as e:
        flash(e.message, "danger")
        return _back_to_queue()
    flash("Note rejected.", "success")
    return _back_to_queue()


@bp.post("/notes/<int:note_id>/delete")
@require_role(Role.ADMIN)
def delete(note_id: int):
    s = db_session()
    reason = (request.form.get("reason") or "").strip() or None
    try:
        admin_soft_delete(s, _principal(), note_id, reason=reason)
    except NotFoundError:
        abort(404)
    flash("Note deleted.", "success")
    return _back_to_queue()
