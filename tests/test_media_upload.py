import io

import pytest
from werkzeug.security import generate_password_hash

from app.travelnotes import create_app
from app.travelnotes.auth import _login_attempts
from app.travelnotes.db import session_scope
from app.travelnotes.errors import ValidationError
from app.travelnotes.models import Base, Role, User
from app.travelnotes.modules.media.service import extension_for, key_for_filename, store_upload
from app.travelnotes.modules.notes.models import MediaKind
from app.travelnotes.storage import LocalStorage, StorageError

CSRF = "test-csrf-token"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    _login_attempts.clear()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add(User(username="alice", password_hash=generate_password_hash("pw"), nickname="Alice", role=Role.USER))

    return app.test_client()


def _login(client):
    client.post("/auth/login", data={"username": "alice", "password": "pw"})
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def _upload(client, data: bytes, filename: str, mimetype: str, kind: str = "image"):
    return client.post(
        "/api/upload",
        data={"file": (io.BytesIO(data), filename, mimetype), "fileType": kind},
        content_type="multipart/form-data",
        headers={"X-CSRF-Token": CSRF},
    )


def test_upload_requires_login(client):
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF
    r = _upload(client, PNG_BYTES, "photo.png", "image/png")
    assert r.status_code == 401
    assert r.json == {"error": "Unauthorized"}


def test_upload_image_and_serve_it_back(client):
    _login(client)
    r = _upload(client, PNG_BYTES, "photo.png", "image/png")
    assert r.status_code == 200
    body = r.json
    assert body["success"] is True
    assert body["type"] == "image"
    assert body["url"].startswith("/upload/")
    assert body["url"].endswith(".png")

    served = client.get(body["url"])
    assert served.status_code == 200
    assert served.data == PNG_BYTES
    assert served.mimetype == "image/png"


def test_upload_video_uses_mime_subtype(client):
    _login(client)
    r = _upload(client, b"\x00\x00\x00\x18ftypmp42", "clip.webm", "video/webm", kind="video")
    assert r.status_code == 200
    assert r.json["url"].endswith(".webm")
    assert r.json["type"] == "video"


@pytest.mark.parametrize(
    "filename,mimetype,kind",
    [
        ("anim.gif", "image/gif", "image"),
        ("photo.png", "image/png", "video"),
        ("photo.png", "image/png", "audio"),
    ],
)
def test_upload_rejects_wrong_types(client, filename, mimetype, kind):
    _login(client)
    r = _upload(client, PNG_BYTES, filename, mimetype, kind=kind)
    assert r.status_code == 400
    assert "error" in r.json


def test_upload_without_file_or_token(client):
    _login(client)
    r = client.post(
        "/api/upload",
        data={"fileType": "image"},
        content_type="multipart/form-data",
        headers={"X-CSRF-Token": CSRF},
    )
    assert r.status_code == 400
    assert r.json["error"] == "No file uploaded"

    r = client.post(
        "/api/upload",
        data={"file": (io.BytesIO(PNG_BYTES), "photo.png", "image/png")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]


def test_serve_missing_or_unsafe_names(client):
    assert client.get("/upload/does-not-exist.png").status_code == 404
    assert client.get("/upload/../test.db").status_code == 404


def test_extension_rules():
    assert extension_for(MediaKind.IMAGE, "image/jpeg") == ".jpg"
    assert extension_for(MediaKind.IMAGE, "IMAGE/PNG") == ".png"
    assert extension_for(MediaKind.VIDEO, "video/mp4") == ".mp4"
    assert extension_for(MediaKind.VIDEO, "video/x-matroska") == ".mp4"
    with pytest.raises(ValidationError):
        extension_for(MediaKind.VIDEO, "application/octet-stream")


def test_store_upload_and_storage_guards(tmp_path):
    storage = LocalStorage(root=tmp_path)
    stored = store_upload(storage, b"jpeg-bytes", "image/jpeg", MediaKind.IMAGE)
    assert stored.key.startswith("upload/")
    assert stored.url == "/" + stored.key
    assert storage.exists(stored.key)
    assert key_for_filename(stored.url.rsplit("/", 1)[1]) == stored.key
    assert key_for_filename("../secret.txt") is None

    with pytest.raises(ValidationError):
        store_upload(storage, b"", "image/jpeg", MediaKind.IMAGE)
    with pytest.raises(StorageError):
        storage.put_bytes("../outside.bin", b"x")
    with pytest.raises(StorageError):
        storage.open("upload/missing.jpg")
