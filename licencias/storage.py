"""Attachment object storage backed by the database."""

from __future__ import annotations

import logging
import mimetypes
import uuid
from dataclasses import dataclass
from urllib.parse import urlparse

from flask import current_app, url_for
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from licencias.errors import StorageError
from licencias.extensions import db
from licencias.models import StoredObject


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObjectRef:
    path: str


class ObjectStorage:
    def upload(
        self,
        path: str,
        payload: bytes,
        *,
        mime_type: str | None = None,
        owner_user_id: uuid.UUID | None = None,
    ) -> ObjectRef:
        path = path.strip("/")
        filename = path.rsplit("/", 1)[-1]
        resolved_mime = mime_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        try:
            db.session.add(
                StoredObject(
                    path=path,
                    filename=filename,
                    mime_type=resolved_mime,
                    blob=payload,
                    owner_user_id=owner_user_id,
                )
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Object upload failed for %s.", path, exc_info=True)
            raise StorageError() from exc
        return ObjectRef(path=path)

    def get_download_url(self, ref: ObjectRef) -> str:
        return url_for("files.download", object_path=ref.path, _external=True)

    def path_for_download_url(self, url: str | None) -> str | None:
        """Map a download URL back to its object path. URLs of other endpoints give None."""
        if not url:
            return None
        adapter = current_app.url_map.bind("localhost")
        try:
            endpoint, args = adapter.match(urlparse(url).path, method="GET")
        except HTTPException:
            return None
        if endpoint != "files.download":
            return None
        return args["object_path"]

    def fetch(self, path: str) -> StoredObject | None:
        try:
            return db.session.get(StoredObject, path.strip("/"))
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Object lookup failed for %s.", path, exc_info=True)
            raise StorageError() from exc

    def delete(self, path: str) -> None:
        try:
            stored = db.session.get(StoredObject, path.strip("/"))
            if stored is None:
                return
            db.session.delete(stored)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Object delete failed for %s.", path, exc_info=True)
            raise StorageError() from exc
