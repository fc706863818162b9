"""Attachment downloads."""

from __future__ import annotations

import io

from flask import Blueprint, abort, send_file

from licencias.errors import StorageError
from licencias.extensions import portal


bp = Blueprint("files", __name__)


@bp.get("/files/<path:object_path>")
def download(object_path: str):
    services = portal()
    try:
        stored = services.storage.fetch(object_path)
    except StorageError:
        abort(502)
    if stored is None:
        abort(404)

    portal_session = services.session()
    owner = str(stored.owner_user_id) if stored.owner_user_id is not None else None
    if not portal_session.is_admin and owner != portal_session.actor_id:
        abort(403)

    return send_file(
        io.BytesIO(stored.blob),
        mimetype=stored.mime_type,
        as_attachment=False,
        download_name=stored.filename,
    )
