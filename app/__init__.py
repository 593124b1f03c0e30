from __future__ import annotations

from datetime import date

import click
from flask import Flask, jsonify

from app.core.auth import auth_bp
from app.core.config import Config
from app.core.context import load_actor_context
from app.core.extensions import db, login_manager, migrate
from app.core.i18n import translate
from app.core.logging import configure_logging
from app.core.models import User, seed_demo_data
from app.etapas import etapas_bp


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    configure_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_JSON", True))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.before_request(load_actor_context)

    app.register_blueprint(auth_bp)
    app.register_blueprint(etapas_bp)

    register_cli(app)
    register_routes(app)
    return app


def _http_error(kind: str, code: str, status: int):
    error = {"type": kind, "code": code, "message": translate(f"error.{code}")}
    return jsonify({"ok": False, "error": error}), status


def register_routes(app: Flask) -> None:
    @app.get("/health")
    def health():
        return jsonify({"ok": True})

    @app.errorhandler(401)
    def unauthorized(_error):
        return _http_error("auth", "no_autenticado", 401)

    @app.errorhandler(403)
    def forbidden(_error):
        return _http_error("permission", "sin_permisos", 403)

    @app.errorhandler(404)
    def not_found(_error):
        return _http_error("not_found", "no_encontrado", 404)


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo users and cases."""
        if reset:
            db.drop_all()
            db.create_all()
        if not User.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing users found.")

    @app.cli.command("etapas-marcar-vencidas")
    @click.option("--fecha", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Reference date (YYYY-MM-DD).")
    def mark_overdue(fecha) -> None:
        """Flag open payments of stages scheduled before the reference date."""
        from app.etapas.services import mark_overdue_payments

        today = fecha.date() if fecha else date.today()
        count = mark_overdue_payments(today)
        click.echo(f"Etapas marcadas como vencidas: {count} (fecha={today.isoformat()})")


@login_manager.unauthorized_handler
def unauthorized_request():
    return _http_error("auth", "no_autenticado", 401)


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))
