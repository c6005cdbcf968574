import secrets
from urllib.parse import urlsplit

from flask import Request, session


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from header or form (multipart uploads included)."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(token, expected))


def safe_local_path(target: str | None) -> str | None:
    """
    Return `target` if it is a path on this site, else None.

    Browsers treat `\\` as `/` and drop tabs/newlines, so `/\\evil.com` and
    `/\\t/evil.com` both become `//evil.com`; anything carrying those is refused.
    """
    target = (target or "").strip()
    if not target.startswith("/") or "\\" in target:
        return None
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in target):
        return None
    parts = urlsplit(target)
    if parts.scheme or parts.netloc:
        return None
    return target
