"""Session controller: authentication state, admin resolution and notices."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from flask import flash, g, has_request_context
from flask_login import current_user

from licencias.auth_backend import AuthBackend
from licencias.config import PortalSettings, load_settings
from licencias.errors import AuthError, ConfigurationError, StoreError
from licencias.store import DocumentStore


logger = logging.getLogger(__name__)

SESSION_CACHE_KEY = "portal_session"


class SessionPhase(str, enum.Enum):
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZING = "INITIALIZING"
    READY = "READY"
    CONFIG_ERROR = "CONFIG_ERROR"


@dataclass(frozen=True)
class PortalSession:
    phase: SessionPhase
    actor_id: str | None = None
    is_admin: bool = False
    is_anonymous: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.phase == SessionPhase.READY and self.actor_id is not None


@dataclass(frozen=True)
class Notice:
    """User-facing outcome of an action: exactly one of message/error is set."""

    message: str = ""
    error: str = ""

    def __post_init__(self) -> None:
        if bool(self.message) == bool(self.error):
            raise ValueError("A notice carries either a message or an error.")

    @classmethod
    def success(cls, text: str) -> "Notice":
        return cls(message=text)

    @classmethod
    def failure(cls, text: str) -> "Notice":
        return cls(error=text)

    @property
    def ok(self) -> bool:
        return not self.error

    @property
    def text(self) -> str:
        return self.message or self.error

    @property
    def category(self) -> str:
        return "success" if self.ok else "danger"

    def flash(self) -> None:
        flash(self.text, self.category)


def flash_notice(notice: Notice) -> None:
    if has_request_context():
        notice.flash()


class SessionController:
    def __init__(
        self,
        config: Mapping[str, Any],
        *,
        store: DocumentStore | None = None,
        auth: AuthBackend | None = None,
        on_notice: Callable[[Notice], None] = flash_notice,
    ) -> None:
        self._config = config
        self._on_notice = on_notice
        self.phase = SessionPhase.UNINITIALIZED
        self.settings: PortalSettings | None = None
        self.configuration_error: ConfigurationError | None = None
        self.store = store
        self.auth = auth
        self._unsubscribe_auth: Callable[[], None] | None = None

    def initialize(self) -> PortalSession:
        if self.phase == SessionPhase.READY:
            return PortalSession(phase=self.phase)
        if self.phase == SessionPhase.CONFIG_ERROR and self.configuration_error is not None:
            raise self.configuration_error

        self.phase = SessionPhase.INITIALIZING
        try:
            self.settings = load_settings(self._config)
        except ConfigurationError as exc:
            self.phase = SessionPhase.CONFIG_ERROR
            self.configuration_error = exc
            logger.error("Portal configuration is invalid: %s", exc.message)
            raise

        if self.store is None:
            self.store = DocumentStore()
        if self.auth is None:
            self.auth = AuthBackend(self.settings)
        self._unsubscribe_auth = self.auth.on_session_change(self._on_session_change)
        self.phase = SessionPhase.READY
        return PortalSession(phase=self.phase)

    def shutdown(self) -> None:
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None

    def current_session(self) -> PortalSession:
        if self.phase != SessionPhase.READY:
            return PortalSession(phase=self.phase)
        if has_request_context():
            cached = g.get(SESSION_CACHE_KEY)
            if cached is not None:
                return cached

        if not has_request_context() or not current_user.is_authenticated:
            session = PortalSession(phase=SessionPhase.READY)
        else:
            actor_id = current_user.get_id()
            session = PortalSession(
                phase=SessionPhase.READY,
                actor_id=actor_id,
                is_admin=self.resolve_admin_status(actor_id),
                is_anonymous=bool(getattr(current_user, "is_anonymous_account", False)),
            )

        if has_request_context():
            g.setdefault(SESSION_CACHE_KEY, session)
        return session

    def resolve_admin_status(self, actor_id: str | None) -> bool:
        """Admin privilege comes only from an externally provisioned registry entry."""
        if not actor_id or self.store is None or self.settings is None:
            return False
        try:
            entry = self.store.get(self.settings.admin_entry_path(actor_id))
        except StoreError:
            self._on_notice(Notice.failure("Error al verificar estado de administrador."))
            return False
        return entry is not None

    def sign_in(self, email: str, password: str, remember: bool = False) -> Notice:
        return self._run_auth(
            lambda: self._auth().sign_in(email, password, remember=remember),
            "Inicio de sesión exitoso.",
            "Error de autenticación",
        )

    def register(self, email: str, password: str) -> Notice:
        return self._run_auth(
            lambda: self._auth().register(email, password),
            "Usuario registrado con éxito. Ahora puedes iniciar sesión.",
            "Error de registro",
        )

    def sign_out(self) -> Notice:
        return self._run_auth(
            lambda: self._auth().sign_out(),
            "Sesión cerrada correctamente.",
            "Error al cerrar sesión",
        )

    def request_password_reset(self, email: str) -> Notice:
        return self._run_auth(
            lambda: self._auth().send_password_reset(email),
            "Si el correo está registrado, recibirás un enlace para recuperar tu contraseña.",
            "Error al enviar el correo",
        )

    def reset_password(self, token: str, new_password: str) -> Notice:
        return self._run_auth(
            lambda: self._auth().reset_password(token, new_password),
            "Contraseña actualizada. Ya puedes iniciar sesión.",
            "Error al actualizar la contraseña",
        )

    def sign_in_anonymously(self) -> Notice:
        return self._run_auth(
            lambda: self._auth().sign_in_anonymously(),
            "Ingresaste como invitado.",
            "Error de autenticación",
        )

    def sign_in_with_token(self, token: str) -> Notice:
        return self._run_auth(
            lambda: self._auth().sign_in_with_token(token),
            "Inicio de sesión exitoso.",
            "Error de autenticación",
        )

    def _auth(self) -> AuthBackend:
        if self.phase != SessionPhase.READY or self.auth is None:
            raise AuthError("El servicio de autenticación no está inicializado.")
        return self.auth

    def _run_auth(self, action: Callable[[], object], success_text: str, failure_prefix: str) -> Notice:
        try:
            action()
        except AuthError as exc:
            logger.info("%s: %s", failure_prefix, exc.message)
            return Notice.failure(f"{failure_prefix}: {exc.message}")
        if has_request_context():
            g.pop(SESSION_CACHE_KEY, None)
        return Notice.success(success_text)

    def _on_session_change(self, user: object | None) -> None:
        if has_request_context():
            g.pop(SESSION_CACHE_KEY, None)
        actor_id = user.get_id() if user is not None else None
        logger.info("Session changed: actor=%s", actor_id or "-")
