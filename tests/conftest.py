from __future__ import annotations

from typing import Iterator
import uuid

import pytest
from sqlalchemy.pool import StaticPool

from licencias import create_app
from licencias.config import Config
from licencias.extensions import db, portal
from licencias.models import User
from licencias.security import hash_secret


class TestConfig(Config):
    TESTING = True
    WTF_CSRF_ENABLED = False
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite+pysqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }
    APP_NAMESPACE = "test-app"
    APP_URL = "http://localhost:5000"
    APP_TIMEZONE = "UTC"
    ALLOW_ANONYMOUS_SIGN_IN = False
    ATTACHMENT_REQUIRED_FORMS = ()
    EXPORT_FORMATS = ("txt", "xlsx", "pdf")
    EMPLOYEE_ROSTER = ("Juan Perez", "Maria Lopez")


EMPLOYEE_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
ADMIN_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
OTHER_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")


def build_app(config_object: type[Config] = TestConfig):
    app = create_app(config_object)
    with app.app_context():
        db.create_all()
        db.session.add_all(
            [
                User(id=EMPLOYEE_ID, email="employee@example.com", password_hash=hash_secret("password123")),
                User(id=ADMIN_ID, email="admin@example.com", password_hash=hash_secret("password123")),
                User(id=OTHER_ID, email="other@example.com", password_hash=hash_secret("password123")),
            ]
        )
        db.session.commit()

        services = portal()
        services.store.create(
            services.settings.admins_collection,
            {"email": "admin@example.com"},
            doc_id=str(ADMIN_ID),
        )
    return app


@pytest.fixture()
def app() -> Iterator:
    app = build_app()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
    app.extensions["licencias"].controller.shutdown()


@pytest.fixture()
def client(app):
    return app.test_client()


def login(client, email: str, password: str = "password123"):
    return client.post(
        "/login",
        data={"email": email, "password": password},
        follow_redirects=False,
    )


@pytest.fixture()
def employee_client(app):
    client = app.test_client()
    response = login(client, "employee@example.com")
    assert response.status_code == 302
    return client


@pytest.fixture()
def admin_client(app):
    client = app.test_client()
    response = login(client, "admin@example.com")
    assert response.status_code == 302
    return client
