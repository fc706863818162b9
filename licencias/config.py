"""Application configuration."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from licencias.errors import ConfigurationError


FORM_TYPES = ("sick", "vacation", "personal", "study")
EXPORT_FORMAT_CHOICES = ("txt", "xlsx", "pdf")
NAMESPACE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str = "") -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(chunk.strip() for chunk in raw.split(",") if chunk.strip())


class Config:
    ENV = os.getenv("ENV", "development")
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "licencias_session")
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = ENV == "production"

    WTF_CSRF_TIME_LIMIT = None
    MAX_CONTENT_LENGTH = 6 * 1024 * 1024
    APP_URL = os.getenv("APP_URL", "http://localhost:5000")
    APP_TIMEZONE = os.getenv("APP_TIMEZONE", "America/Argentina/Buenos_Aires")

    APP_NAMESPACE = os.getenv("APP_NAMESPACE", "default-app-id")
    ALLOW_ANONYMOUS_SIGN_IN = _env_flag("ALLOW_ANONYMOUS_SIGN_IN")
    ATTACHMENT_REQUIRED_FORMS = _env_list("ATTACHMENT_REQUIRED_FORMS")
    EXPORT_FORMATS = _env_list("EXPORT_FORMATS", "txt,xlsx,pdf")
    PASSWORD_RESET_MAX_AGE = int(os.getenv("PASSWORD_RESET_MAX_AGE", "3600"))
    SIGN_IN_TOKEN_MAX_AGE = int(os.getenv("SIGN_IN_TOKEN_MAX_AGE", "300"))
    EMPLOYEE_ROSTER = _env_list("EMPLOYEE_ROSTER", "Juan Perez,Maria Lopez,Carlos Gomez")


@dataclass(frozen=True)
class PortalSettings:
    """Deployment settings resolved once at startup and injected everywhere."""

    database_url: str
    namespace: str
    timezone: str
    allow_anonymous_sign_in: bool
    attachment_required_forms: frozenset[str]
    export_formats: tuple[str, ...]
    password_reset_max_age: int
    sign_in_token_max_age: int

    @property
    def requests_collection(self) -> str:
        return f"{self.namespace}/public/data/allLicencias"

    @property
    def admins_collection(self) -> str:
        return f"{self.namespace}/public/data/admins"

    def admin_entry_path(self, actor_id: str) -> str:
        return f"{self.admins_collection}/{actor_id}"

    def uploads_prefix(self, actor_id: str, form_type: str) -> str:
        return f"{self.namespace}/uploads/{actor_id}/{form_type}"


def load_settings(config: Mapping[str, Any]) -> PortalSettings:
    """Validate backend configuration without connecting to it."""
    database_url = (config.get("SQLALCHEMY_DATABASE_URI") or "").strip()
    if not database_url:
        raise ConfigurationError(
            "La configuración del backend no se ha cargado. Revisa la variable DATABASE_URL."
        )
    try:
        make_url(database_url)
    except ArgumentError as exc:
        raise ConfigurationError(
            "La configuración del backend está mal formada. Revisa la variable DATABASE_URL."
        ) from exc

    namespace = str(config.get("APP_NAMESPACE") or "").strip()
    if not NAMESPACE_PATTERN.match(namespace):
        raise ConfigurationError("APP_NAMESPACE debe contener solo letras, números, guiones o guiones bajos.")

    required_forms = frozenset(config.get("ATTACHMENT_REQUIRED_FORMS") or ())
    unknown_forms = required_forms - set(FORM_TYPES)
    if unknown_forms:
        raise ConfigurationError(
            f"ATTACHMENT_REQUIRED_FORMS contiene tipos desconocidos: {', '.join(sorted(unknown_forms))}."
        )

    export_formats = tuple(config.get("EXPORT_FORMATS") or ())
    unknown_formats = set(export_formats) - set(EXPORT_FORMAT_CHOICES)
    if unknown_formats:
        raise ConfigurationError(
            f"EXPORT_FORMATS contiene formatos desconocidos: {', '.join(sorted(unknown_formats))}."
        )

    return PortalSettings(
        database_url=database_url,
        namespace=namespace,
        timezone=str(config.get("APP_TIMEZONE") or "UTC"),
        allow_anonymous_sign_in=bool(config.get("ALLOW_ANONYMOUS_SIGN_IN")),
        attachment_required_forms=required_forms,
        export_formats=export_formats,
        password_reset_max_age=int(config.get("PASSWORD_RESET_MAX_AGE") or 3600),
        sign_in_token_max_age=int(config.get("SIGN_IN_TOKEN_MAX_AGE") or 300),
    )
