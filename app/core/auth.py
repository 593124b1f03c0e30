from __future__ import annotations

import structlog
from flask import Blueprint, jsonify, request, session
from flask_login import login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from app.core.i18n import SUPPORTED_LANGS, translate
from app.core.models import User

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")
logger = structlog.get_logger(__name__)


def _credentials() -> tuple[str, str]:
    data = request.get_json(silent=True) or request.form
    return (data.get("email") or "").strip().lower(), data.get("password") or ""


@auth_bp.post("/login")
def login_post():
    email, password = _credentials()
    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        logger.info("login_failed", email=email)
        error = {
            "type": "auth",
            "code": "credenciales_invalidas",
            "message": translate("error.credenciales_invalidas"),
        }
        return jsonify({"ok": False, "error": error}), 401
    login_user(user)
    logger.info("login_succeeded", user_id=user.id, role=user.role.value)
    return jsonify({"ok": True, "user": {"id": user.id, "nombre": user.nombre, "role": user.role.value}})


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True})


@auth_bp.post("/lang")
def set_lang():
    data = request.get_json(silent=True) or request.form
    lang = data.get("lang", "es")
    if lang not in SUPPORTED_LANGS:
        lang = "es"
    session["lang"] = lang
    return jsonify({"ok": True, "lang": lang})
