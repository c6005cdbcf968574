from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request, send_file

from app.travelnotes.errors import ValidationError
from app.travelnotes.modules.media.service import (
    guess_content_type,
    key_for_filename,
    parse_media_kind,
    store_upload,
)
from app.travelnotes.rbac import current_principal
from app.travelnotes.storage import StorageError, storage_from_config

bp = Blueprint("media", __name__)


@bp.post("/api/upload")
def upload():
    principal = current_principal()
    if principal is None:
        return jsonify({"error": "Unauthorized"}), 401

    if not (request.content_type or "").startswith("multipart/form-data"):
        return jsonify({"error": "Content type must be multipart/form-data"}), 400

    f = request.files.get("file")
    if not f or not f.filename:
        return jsonify({"error": "No file uploaded"}), 400

    try:
        kind = parse_media_kind(request.form.get("fileType"))
        stored = store_upload(
            storage_from_config(current_app.config),
            f.read(),
            (f.mimetype or "").strip(),
            kind,
        )
    except ValidationError as e:
        return jsonify({"error": e.message}), 400
    except (StorageError, OSError):
        current_app.logger.exception("Upload failed (user=%s)", principal.id)
        return jsonify({"error": "File upload failed"}), 500

    return jsonify({"success": True, "url": stored.url, "type": stored.kind.value})


@bp.get("/upload/<path:filename>")
def serve_upload(filename: str):
    key = key_for_filename(filename)
    if key is None:
        abort(404)
    storage = storage_from_config(current_app.config)
    if not storage.exists(key):
        abort(404)
    try:
        fobj = storage.open(key)
    except StorageError:
        abort(404)
    return send_file(fobj, mimetype=guess_content_type(filename), max_age=31536000)
