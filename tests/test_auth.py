from __future__ import annotations

import logging
import re

from flask import url_for
from sqlalchemy import select

from licencias.extensions import db, portal
from licencias.models import User
from licencias.security import PASSWORD_RESET_SALT, issue_token, verify_secret

from conftest import EMPLOYEE_ID, TestConfig, build_app


class AnonymousConfig(TestConfig):
    ALLOW_ANONYMOUS_SIGN_IN = True


def _login(client, email: str, password: str = "password123"):
    return client.post("/login", data={"email": email, "password": password}, follow_redirects=False)


def test_login_redirects_home_and_shows_actor_id(client):
    response = _login(client, "employee@example.com")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/inicio")

    home = client.get("/inicio")
    assert home.status_code == 200
    assert str(EMPLOYEE_ID) in home.get_data(as_text=True)


def test_login_with_bad_password_is_rejected(client):
    response = _login(client, "employee@example.com", "wrong-password")
    assert response.status_code == 401
    assert "Error de autenticación: Credenciales inválidas." in response.get_data(as_text=True)


def test_login_follows_safe_next_only(client):
    response = client.post(
        "/login?next=/licencias/sick",
        data={"email": "employee@example.com", "password": "password123"},
    )
    assert response.headers["Location"].endswith("/licencias/sick")

    client.post("/logout")
    response = client.post(
        "/login?next=https://evil.example.com/",
        data={"email": "employee@example.com", "password": "password123"},
    )
    assert response.headers["Location"].endswith("/inicio")


def test_signed_in_user_visiting_login_goes_home(client):
    _login(client, "employee@example.com")
    response = client.get("/login")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/inicio")


def test_register_creates_account_and_allows_sign_in(client, app):
    response = client.post(
        "/register",
        data={"email": "New.User@Example.com", "password": "supersecret"},
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert "Usuario registrado con éxito." in response.get_data(as_text=True)

    with app.app_context():
        user = db.session.execute(select(User).where(User.email == "new.user@example.com")).scalar_one()
        assert verify_secret(user.password_hash, "supersecret")

    assert _login(client, "new.user@example.com", "supersecret").status_code == 302


def test_register_rejects_duplicate_email(client):
    response = client.post("/register", data={"email": "employee@example.com", "password": "supersecret"})
    assert response.status_code == 400
    assert "Ya existe una cuenta con ese correo electrónico." in response.get_data(as_text=True)


def test_register_rejects_short_password(client):
    response = client.post("/register", data={"email": "short@example.com", "password": "abc"})
    assert response.status_code == 400


def test_password_reset_message_is_neutral_for_unknown_email(client, caplog):
    caplog.set_level(logging.INFO, logger="licencias.auth_backend")
    known = client.post("/password/forgot", data={"email": "employee@example.com"}, follow_redirects=True)
    unknown = client.post("/password/forgot", data={"email": "nobody@example.com"}, follow_redirects=True)

    expected = "Si el correo está registrado, recibirás un enlace para recuperar tu contraseña."
    assert expected in known.get_data(as_text=True)
    assert expected in unknown.get_data(as_text=True)
    assert any("/password/reset/" in record.getMessage() for record in caplog.records)


def test_password_reset_link_updates_password(client, app, caplog):
    caplog.set_level(logging.INFO, logger="licencias.auth_backend")
    client.post("/password/forgot", data={"email": "employee@example.com"})
    link = next(record.getMessage() for record in caplog.records if "/password/reset/" in record.getMessage())
    token = re.search(r"/password/reset/(\S+)", link).group(1)

    response = client.post(
        f"/password/reset/{token}",
        data={"new_password": "brand-new-pass", "confirm_password": "brand-new-pass"},
        follow_redirects=True,
    )
    assert "Contraseña actualizada." in response.get_data(as_text=True)
    assert _login(client, "employee@example.com", "brand-new-pass").status_code == 302


def test_password_reset_rejects_forged_token(client, app):
    forged = issue_token("another-secret", PASSWORD_RESET_SALT, str(EMPLOYEE_ID))
    response = client.post(
        f"/password/reset/{forged}",
        data={"new_password": "brand-new-pass", "confirm_password": "brand-new-pass"},
    )
    assert response.status_code == 400
    assert "El enlace de recuperación no es válido o ha expirado." in response.get_data(as_text=True)


def test_sign_in_token_link_authenticates(client, app):
    with app.app_context():
        user = db.session.get(User, EMPLOYEE_ID)
        token = portal().controller.auth.issue_sign_in_token(user)

    response = client.get(f"/login/token/{token}")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/inicio")
    assert client.get("/inicio").status_code == 200


def test_invalid_sign_in_token_returns_to_login(client):
    response = client.get("/login/token/not-a-token", follow_redirects=True)
    assert "El enlace de acceso no es válido o ha expirado." in response.get_data(as_text=True)


def test_anonymous_sign_in_is_disabled_by_default(client):
    assert client.post("/login/anonymous").status_code == 404
    assert "Ingresar como invitado" not in client.get("/login").get_data(as_text=True)


def test_anonymous_sign_in_when_enabled():
    app = build_app(AnonymousConfig)
    client = app.test_client()
    assert "Ingresar como invitado" in client.get("/login").get_data(as_text=True)

    response = client.post("/login/anonymous")
    assert response.status_code == 302
    home = client.get("/inicio")
    assert home.status_code == 200
    assert ">Invitado</span>" in home.get_data(as_text=True)
    with app.app_context():
        anonymous = db.session.execute(select(User).where(User.is_anonymous_account.is_(True))).scalar_one()
        assert anonymous.email is None
        db.drop_all()
    app.extensions["licencias"].controller.shutdown()


def test_logout_clears_session_and_portal_state(client):
    _login(client, "employee@example.com")
    with client.session_transaction() as session:
        session["last_submission"] = {"ticket_id": "abc", "form_type": "sick"}

    response = client.post("/logout", follow_redirects=True)
    assert "Sesión cerrada correctamente." in response.get_data(as_text=True)
    with client.session_transaction() as session:
        assert "last_submission" not in session
    assert client.get("/inicio").status_code == 302


def test_reset_link_points_to_reset_route(app):
    with app.test_request_context():
        assert url_for("auth.reset_password", token="abc").endswith("/password/reset/abc")
