"""Flask extension instances and portal service lookup."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from flask import current_app
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

if TYPE_CHECKING:
    from licencias.services import PortalServices


db = SQLAlchemy()
login_manager = LoginManager()
csrf = CSRFProtect()

login_manager.login_view = "auth.login"
login_manager.login_message_category = "warning"

PORTAL_EXTENSION_KEY = "licencias"


def portal() -> "PortalServices":
    return current_app.extensions[PORTAL_EXTENSION_KEY]


@login_manager.user_loader
def load_user(user_id: str):
    from licencias.models import User

    try:
        parsed = uuid.UUID(user_id)
    except ValueError:
        return None
    user = db.session.get(User, parsed)
    if user is None or not user.is_active:
        return None
    return user
