"""Audit logging helper."""

from __future__ import annotations

import uuid
from typing import Any

from flask import current_app
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from licencias.extensions import db, portal
from licencias.models import AuditLog


def log_audit(
    action: str,
    entity_type: str,
    entity_id: str | None,
    payload: dict[str, Any] | None = None,
) -> None:
    actor_user_id: uuid.UUID | None = None
    if current_user.is_authenticated:
        try:
            actor_user_id = uuid.UUID(current_user.get_id())
        except ValueError:
            actor_user_id = None

    try:
        db.session.add(
            AuditLog(
                namespace=portal().settings.namespace,
                actor_user_id=actor_user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                payload_json=payload or {},
            )
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Audit log write failed for %s.", action, exc_info=True)
