from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app import create_app
from app.core.config import Config
from app.core.extensions import db
from app.core.models import Case, User, seed_demo_data

DEMO_PASSWORDS = {
    "admin@estudio.local": "admin123",
    "abogado@estudio.local": "abogado123",
    "analista@estudio.local": "analista123",
    "cliente@estudio.local": "cliente123",
}


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    LOG_JSON = False
    LOG_LEVEL = "WARNING"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def users(app):
    return {
        "admin": User.query.filter_by(email="admin@estudio.local").first(),
        "abogado": User.query.filter_by(email="abogado@estudio.local").first(),
        "analista": User.query.filter_by(email="analista@estudio.local").first(),
        "cliente": User.query.filter_by(email="cliente@estudio.local").first(),
    }


@pytest.fixture
def civil_case(app):
    return Case.query.filter_by(numero_causa="C-1234-2024").first()


@pytest.fixture
def laboral_case(app):
    return Case.query.filter_by(numero_causa="O-88-2024").first()


@pytest.fixture
def login(client):
    def _login(email: str):
        return client.post(
            "/auth/login",
            json={"email": email, "password": DEMO_PASSWORDS[email]},
        )

    return _login
