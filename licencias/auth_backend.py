"""Account authentication backed by the users table and Flask-Login."""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from flask import current_app, url_for
from flask_login import login_user, logout_user, user_logged_in, user_logged_out
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from licencias.config import PortalSettings
from licencias.errors import AuthError
from licencias.extensions import db
from licencias.models import User
from licencias.security import (
    PASSWORD_RESET_SALT,
    SIGN_IN_TOKEN_SALT,
    hash_secret,
    issue_token,
    read_token,
    verify_secret,
)


logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
BACKEND_UNAVAILABLE = "No se pudo contactar el servicio de autenticación. Inténtalo nuevamente."

SessionListener = Callable[[User | None], None]


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


class AuthBackend:
    def __init__(self, settings: PortalSettings) -> None:
        self.settings = settings

    def sign_in(self, email: str, password: str, remember: bool = False) -> User:
        user = self._user_by_email(normalize_email(email))
        if user is None or not user.password_hash or not verify_secret(user.password_hash, password or ""):
            raise AuthError("Credenciales inválidas.")
        if not user.is_active:
            raise AuthError("El usuario está deshabilitado.")
        login_user(user, remember=remember)
        return user

    def register(self, email: str, password: str) -> User:
        normalized = normalize_email(email)
        if not normalized or "@" not in normalized:
            raise AuthError("Correo electrónico inválido.")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres.")
        if self._user_by_email(normalized) is not None:
            raise AuthError("Ya existe una cuenta con ese correo electrónico.")

        user = User(email=normalized, password_hash=hash_secret(password), is_active=True)
        try:
            db.session.add(user)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise AuthError("Ya existe una cuenta con ese correo electrónico.") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("User registration failed.", exc_info=True)
            raise AuthError(BACKEND_UNAVAILABLE) from exc
        return user

    def sign_out(self) -> None:
        logout_user()

    def sign_in_anonymously(self) -> User:
        if not self.settings.allow_anonymous_sign_in:
            raise AuthError("El acceso anónimo no está habilitado.")
        user = User(email=None, password_hash=None, is_active=True, is_anonymous_account=True)
        try:
            db.session.add(user)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Anonymous account creation failed.", exc_info=True)
            raise AuthError(BACKEND_UNAVAILABLE) from exc
        login_user(user)
        return user

    def issue_sign_in_token(self, user: User) -> str:
        return issue_token(current_app.config["SECRET_KEY"], SIGN_IN_TOKEN_SALT, user.get_id())

    def sign_in_with_token(self, token: str) -> User:
        user_id = read_token(
            current_app.config["SECRET_KEY"],
            SIGN_IN_TOKEN_SALT,
            token,
            self.settings.sign_in_token_max_age,
        )
        user = self._user_by_id(user_id)
        if user is None or not user.is_active:
            raise AuthError("El enlace de acceso no es válido o ha expirado.")
        login_user(user)
        return user

    def send_password_reset(self, email: str) -> None:
        """Deliver a reset link. Delivery is simulated by writing it to the log."""
        normalized = normalize_email(email)
        if not normalized or "@" not in normalized:
            raise AuthError("Correo electrónico inválido.")
        user = self._user_by_email(normalized)
        if user is None or not user.password_hash:
            logger.info("Password reset requested for unknown account %s.", normalized)
            return
        token = issue_token(current_app.config["SECRET_KEY"], PASSWORD_RESET_SALT, user.get_id())
        reset_url = url_for("auth.reset_password", token=token, _external=True)
        logger.info("Simulated e-mail to %s: password reset link %s", normalized, reset_url)

    def reset_password(self, token: str, new_password: str) -> User:
        user_id = read_token(
            current_app.config["SECRET_KEY"],
            PASSWORD_RESET_SALT,
            token,
            self.settings.password_reset_max_age,
        )
        user = self._user_by_id(user_id)
        if user is None or not user.is_active:
            raise AuthError("El enlace de recuperación no es válido o ha expirado.")
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres.")
        user.password_hash = hash_secret(new_password)
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Password reset failed.", exc_info=True)
            raise AuthError(BACKEND_UNAVAILABLE) from exc
        return user

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        def on_login(_sender: object, user: User | None = None, **_extra: object) -> None:
            listener(user)

        def on_logout(_sender: object, user: User | None = None, **_extra: object) -> None:
            listener(None)

        app = current_app._get_current_object()
        user_logged_in.connect(on_login, sender=app, weak=False)
        user_logged_out.connect(on_logout, sender=app, weak=False)

        def unsubscribe() -> None:
            user_logged_in.disconnect(on_login, sender=app)
            user_logged_out.disconnect(on_logout, sender=app)

        return unsubscribe

    def _user_by_email(self, email: str) -> User | None:
        if not email:
            return None
        try:
            return db.session.execute(select(User).where(User.email == email)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("User lookup failed.", exc_info=True)
            raise AuthError(BACKEND_UNAVAILABLE) from exc

    def _user_by_id(self, user_id: str | None) -> User | None:
        if not user_id:
            return None
        try:
            parsed = uuid.UUID(user_id)
        except ValueError:
            return None
        try:
            return db.session.get(User, parsed)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("User lookup failed.", exc_info=True)
            raise AuthError(BACKEND_UNAVAILABLE) from exc
