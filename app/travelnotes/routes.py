from flask import Blueprint, abort, current_app, render_template, request

from app.travelnotes.db import db_session
from app.travelnotes.errors import ForbiddenError, NotFoundError
from app.travelnotes.modules.listing.service import list_published, popular_destinations
from app.travelnotes.modules.moderation.service import get_visible_note
from app.travelnotes.rbac import current_principal

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    s = db_session()
    q = (request.args.get("q") or "").strip()
    notes = list_published(s, limit=current_app.config.get("PUBLISHED_PAGE_SIZE", 20), search=q)
    destinations = popular_destinations(s, limit=current_app.config.get("POPULAR_DESTINATIONS_LIMIT", 6))
    return render_template("public/index.html", notes=notes, destinations=destinations, q=q)


@bp.get("/notes/<int:note_id>")
def note_detail(note_id: int):
    s = db_session()
    principal = current_principal()
    try:
        note = get_visible_note(s, principal, note_id)
    except NotFoundError:
        abort(404)
    except ForbiddenError:
        abort(403)
    is_owner = principal is not None and principal.id == note.user_id
    return render_template("notes/detail.html", note=note, is_owner=is_owner)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Liveness probe. No DB access."""
    return "ok", 200
