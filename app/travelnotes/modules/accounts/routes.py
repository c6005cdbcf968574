from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.travelnotes.db import db_session
from app.travelnotes.errors import ValidationError
from app.travelnotes.modules.accounts.service import update_profile
from app.travelnotes.rbac import current_principal, login_required

bp = Blueprint("accounts", __name__)


@bp.get("/settings")
@login_required
def settings_get():
    return render_template("account/settings.html", user=g.current_user)


@bp.post("/settings")
@login_required
def settings_post():
    s = db_session()
    payload = {
        "nickname": request.form.get("nickname"),
        "avatar_url": request.form.get("avatar_url"),
    }
    try:
        update_profile(s, current_principal(), payload)
    except ValidationError as e:
        flash(e.message, "danger")
        return redirect(url_for("accounts.settings_get"))

    flash("Profile updated.", "success")
    return redirect(url_for("accounts.settings_get"))
