from flask import Blueprint

etapas_bp = Blueprint("etapas", __name__, url_prefix="/api")

from app.etapas import routes  # noqa: E402,F401
