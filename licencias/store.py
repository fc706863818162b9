"""Path-addressed document store with in-process change listeners."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from licencias.errors import StoreError
from licencias.extensions import db
from licencias.models import Document


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredDocument:
    id: str
    data: dict[str, Any] = field(default_factory=dict)


SnapshotListener = Callable[[list[StoredDocument]], None]
Unsubscribe = Callable[[], None]


def split_path(path: str) -> tuple[str, str]:
    collection, _, doc_id = path.strip("/").rpartition("/")
    if not collection or not doc_id:
        raise StoreError(f"Ruta de documento inválida: {path}")
    return collection, doc_id


class DocumentStore:
    def __init__(self) -> None:
        self._listeners: dict[str, list[SnapshotListener]] = {}
        self._lock = threading.Lock()

    def create(self, collection: str, record: dict[str, Any], doc_id: str | None = None) -> str:
        collection = collection.strip("/")
        new_id = doc_id or uuid.uuid4().hex
        try:
            db.session.add(Document(collection=collection, doc_id=new_id, data=dict(record)))
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Document create failed in %s.", collection, exc_info=True)
            raise StoreError() from exc
        self._notify(collection)
        return new_id

    def get(self, path: str) -> dict[str, Any] | None:
        collection, doc_id = split_path(path)
        try:
            document = db.session.get(Document, (collection, doc_id))
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Document lookup failed for %s.", path, exc_info=True)
            raise StoreError() from exc
        if document is None:
            return None
        return dict(document.data)

    def delete(self, path: str) -> None:
        collection, doc_id = split_path(path)
        try:
            document = db.session.get(Document, (collection, doc_id))
            if document is None:
                return
            db.session.delete(document)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Document delete failed for %s.", path, exc_info=True)
            raise StoreError() from exc
        self._notify(collection)

    def snapshot(self, collection: str) -> list[StoredDocument]:
        stmt = select(Document).where(Document.collection == collection.strip("/"))
        try:
            rows = db.session.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Snapshot query failed for %s.", collection, exc_info=True)
            raise StoreError() from exc
        return [StoredDocument(id=row.doc_id, data=dict(row.data)) for row in rows]

    def subscribe(self, collection: str, listener: SnapshotListener) -> Unsubscribe:
        """Register ``listener`` and deliver the current snapshot right away.

        The returned callable removes the listener; calling it again is a no-op.
        """
        collection = collection.strip("/")
        with self._lock:
            self._listeners.setdefault(collection, []).append(listener)

        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            removed = True
            with self._lock:
                listeners = self._listeners.get(collection, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(collection, None)

        try:
            listener(self.snapshot(collection))
        except StoreError:
            unsubscribe()
            raise
        return unsubscribe

    def listener_count(self, collection: str) -> int:
        with self._lock:
            return len(self._listeners.get(collection.strip("/"), []))

    def _notify(self, collection: str) -> None:
        with self._lock:
            listeners = list(self._listeners.get(collection, []))
        if not listeners:
            return
        try:
            documents = self.snapshot(collection)
        except StoreError:
            return
        for listener in listeners:
            try:
                listener(documents)
            except Exception:
                logger.warning("Snapshot listener failed for %s.", collection, exc_info=True)
