import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, flash, g, jsonify, redirect, render_template, request, session, url_for

from app.travelnotes.config import load_config
from app.travelnotes.db import init_db, teardown_db_session
from app.travelnotes.auth import bp as auth_bp, load_current_user
from app.travelnotes.errors import TravelNotesError
from app.travelnotes.routes import bp as routes_bp
from app.travelnotes.modules.accounts.routes import bp as accounts_bp
from app.travelnotes.modules.media.routes import bp as media_bp
from app.travelnotes.modules.moderation.admin import bp as moderation_bp
from app.travelnotes.modules.notes.routes import bp as notes_bp

logger = logging.getLogger(__name__)


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=7)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    # CSRF protection (minimal)
    from app.travelnotes.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_roles() -> dict:
        from app.travelnotes.rbac import can_delete_any, can_moderate, current_principal

        def is_moderator() -> bool:
            p = current_principal()
            return p is not None and can_moderate(p.role)

        def is_admin() -> bool:
            p = current_principal()
            return p is not None and can_delete_any(p.role)

        return {
            "current_user": getattr(g, "current_user", None),
            "is_moderator": is_moderator,
            "is_admin": is_admin,
        }

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/register/logout carry no session-bound state yet.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                if _wants_json():
                    return jsonify({"error": "CSRF token missing or invalid."}), 400
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(notes_bp)
    app.register_blueprint(accounts_bp)
    app.register_blueprint(media_bp)
    app.register_blueprint(moderation_bp, url_prefix="/admin")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(TravelNotesError)
    def _err_domain(e: TravelNotesError):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        if e.status_code >= 500:
            app.logger.exception("%s (request_id=%s)", type(e).__name__, rid)
        else:
            app.logger.warning("%s: %s (request_id=%s)", type(e).__name__, e.message, rid)
        if _wants_json():
            return jsonify({"error": e.message}), e.status_code
        template = {400: "errors/400.html", 403: "errors/403.html", 404: "errors/404.html"}.get(
            e.status_code, "errors/500.html"
        )
        return render_template(template, message=e.message), e.status_code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if _wants_json():
            return jsonify({"error": "Internal server error"}), 500
        return render_template("errors/500.html"), 500

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"error": "Not found"}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_role", None)
        if missing:
            app.logger.warning("Forbidden: missing_role=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_role=missing), 403

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        limit_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        if _wants_json():
            return jsonify({"error": f"File too large. Maximum size is {limit_mb}MB."}), 413
        flash(f"File too large. Maximum size is {limit_mb}MB.", "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer), 302
        return redirect(url_for("routes.index")), 302

    logger.info("create_app() complete; app ready to serve")

    return app
