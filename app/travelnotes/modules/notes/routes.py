from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.travelnotes.db import db_session
from app.travelnotes.errors import NotFoundError, ValidationError
from app.travelnotes.modules.moderation.service import parse_status
from app.travelnotes.modules.notes.service import (
    create_note,
    get_note_by_id,
    get_owned_note,
    list_notes_by_owner,
    media_from_form,
    soft_delete_note,
    update_note,
    validate_note_payload,
)
from app.travelnotes.rbac import Principal, current_principal, login_required

bp = Blueprint("notes", __name__)


def _principal() -> Principal:
    p = current_principal()
    if p is None:
        raise RuntimeError("No current principal")
    return p


def _payload_from_form() -> dict:
    return {
        "title": request.form.get("title"),
        "content": request.form.get("content"),
        "location": request.form.get("location"),
        "media": media_from_form(request.form.getlist("mediaUrls[]"), request.form.getlist("mediaTypes[]")),
    }


def _form_errors(payload: dict) -> list[str]:
    errors = validate_note_payload(payload)
    if not payload["media"]:
        errors.append("Add at least one photo or video.")
    return errors


# ---------- Publish ----------
@bp.get("/publish")
@login_required
def publish_get():
    return render_template("notes/form.html", note=None, form={})


@bp.post("/publish")
@login_required
def publish_post():
    s = db_session()
    p = _principal()
    payload = _payload_from_form()

    errors = _form_errors(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("notes/form.html", note=None, form=payload), 400

    try:
        note = create_note(s, p.id, payload, actor=p)
    except ValidationError as e:
        flash(e.message, "danger")
        return render_template("notes/form.html", note=None, form=payload), 400

    flash("Note submitted for review.", "success")
    return redirect(url_for("routes.note_detail", note_id=note.id))


# ---------- Edit ----------
@bp.get("/notes/<int:note_id>/edit")
@login_required
def edit_get(note_id: int):
    s = db_session()
    p = _principal()
    note = get_owned_note(s, note_id, p.id)
    if note is None or note.is_deleted:
        abort(404)
    note = get_note_by_id(s, note_id)
    return render_template("notes/form.html", note=note, form={})


@bp.post("/notes/<int:note_id>/edit")
@login_required
def edit_post(note_id: int):
    s = db_session()
    p = _principal()
    note = get_owned_note(s, note_id, p.id)
    if note is None or note.is_deleted:
        abort(404)
    payload = _payload_from_form()

    errors = _form_errors(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("notes/form.html", note=note, form=payload), 400

    try:
        update_note(s, note_id, p.id, payload, actor=p)
    except NotFoundError:
        abort(404)
    except ValidationError as e:
        flash(e.message, "danger")
        return render_template("notes/form.html", note=note, form=payload), 400

    flash("Note updated and sent back for review.", "success")
    return redirect(url_for("routes.note_detail", note_id=note_id))


# ---------- My notes ----------
@bp.get("/my-notes")
@login_required
def my_notes():
    s = db_session()
    p = _principal()
    status_filter = (request.args.get("status") or "").strip()
    try:
        status = parse_status(status_filter)
    except ValidationError as e:
        flash(e.message, "danger")
        status, status_filter = None, ""
    notes = list_notes_by_owner(s, p.id, status=status)
    return render_template("notes/my_notes.html", notes=notes, status_filter=status_filter)


@bp.post("/my-notes/<int:note_id>/delete")
@login_required
def delete_post(note_id: int):
    s = db_session()
    p = _principal()
    try:
        soft_delete_note(s, note_id, p.id, actor=p)
    except NotFoundError:
        abort(404)
    flash("Note deleted.", "success")
    return redirect(url_for("notes.my_notes"))
