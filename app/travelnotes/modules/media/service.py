from __future__ import annotations

import logging
import mimetypes
import re
import uuid
from dataclasses import dataclass

from werkzeug.utils import secure_filename

from app.travelnotes.errors import ValidationError
from app.travelnotes.modules.notes.models import MediaKind
from app.travelnotes.storage import Storage

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = "upload"
IMAGE_TYPES = {"image/jpeg": ".jpg", "image/png": ".png"}
DEFAULT_VIDEO_EXT = ".mp4"


@dataclass(frozen=True)
class StoredMedia:
    kind: MediaKind
    key: str
    url: str
    content_type: str
    size_bytes: int


def parse_media_kind(raw: str | None) -> MediaKind:
    value = (raw or "image").strip().lower()
    try:
        return MediaKind(value)
    except ValueError:
        raise ValidationError("fileType must be 'image' or 'video'.") from None


def extension_for(kind: MediaKind, content_type: str) -> str:
    """Pick the stored file extension from the declared kind and MIME type."""
    content_type = (content_type or "").strip().lower()
    if kind is MediaKind.IMAGE:
        ext = IMAGE_TYPES.get(content_type)
        if not ext:
            raise ValidationError("Only JPEG and PNG files are allowed for images.")
        return ext
    if kind is MediaKind.VIDEO:
        if not content_type.startswith("video/"):
            raise ValidationError("Only video files are allowed for videos.")
        m = re.search(r"/([a-z0-9]+)$", content_type)
        return f".{m.group(1)}" if m else DEFAULT_VIDEO_EXT
    raise ValueError(f"Unknown media kind: {kind!r}")


def media_url(filename: str) -> str:
    return f"/{UPLOAD_PREFIX}/{filename}"


def key_for_filename(filename: str) -> str | None:
    """Storage key for a served filename, or None if the name is not one we issued."""
    safe = secure_filename(filename or "")
    if not safe or safe != filename:
        return None
    return f"{UPLOAD_PREFIX}/{safe}"


def guess_content_type(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


def store_upload(storage: Storage, data: bytes, content_type: str, kind: MediaKind) -> StoredMedia:
    """
    Persist an uploaded photo/video under a random name and return its URL.

    The note transaction that later references this URL is independent of
    this write; nothing reconciles uploads that end up unreferenced.
    """
    if not data:
        raise ValidationError("No file uploaded.")
    ext = extension_for(kind, content_type)
    filename = f"{uuid.uuid4()}{ext}"
    key = f"{UPLOAD_PREFIX}/{filename}"
    storage.put_bytes(key, data, content_type=content_type)
    logger.info("Stored %s upload key=%s size=%d", kind.value, key, len(data))
    return StoredMedia(
        kind=kind,
        key=key,
        url=media_url(filename),
        content_type=content_type,
        size_bytes=len(data),
    )
