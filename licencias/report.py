"""Admin report: live request list, exports and guarded deletion."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, MutableMapping

from licencias.config import PortalSettings
from licencias.errors import DeleteError, ExportError, NothingToExport, StorageError, StoreError
from licencias.messaging import format_submitted_at
from licencias.report_export import REPORT_TITLE, to_pdf_bytes, to_text_bytes, to_xlsx_bytes
from licencias.storage import ObjectStorage
from licencias.store import DocumentStore, StoredDocument
from licencias.workflow import LeaveRequestRecord


logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    "Ticket ID",
    "Tipo",
    "Nombre",
    "DNI",
    "Email",
    "Celular",
    "Fecha Inicio",
    "Fecha Fin",
    "Días",
    "Adjunto",
    "Fecha Envío",
]
PENDING_DELETE_KEY = "pending_delete_ticket"
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class ReportEntry:
    ticket_id: str
    record: LeaveRequestRecord


def entries_from_documents(documents: list[StoredDocument]) -> list[ReportEntry]:
    entries = [ReportEntry(ticket_id=doc.id, record=LeaveRequestRecord.from_document(doc.data)) for doc in documents]
    # The store gives no ordering guarantee.
    return sorted(entries, key=lambda entry: entry.record.submitted_at or _OLDEST, reverse=True)


def loaded_message(entries: list[ReportEntry]) -> str:
    return f"Se han cargado {len(entries)} solicitudes."


class ReportFeed:
    """Subscription to every submitted request, newest first.

    Use as a context manager so the store listener is removed exactly once
    when the owning view goes away.
    """

    def __init__(self, store: DocumentStore, collection: str) -> None:
        self._store = store
        self._collection = collection
        self._unsubscribe: Callable[[], None] | None = None
        self.entries: list[ReportEntry] = []
        self.updates = 0

    @property
    def is_open(self) -> bool:
        return self._unsubscribe is not None

    @property
    def status_message(self) -> str:
        return loaded_message(self.entries)

    def open(self) -> "ReportFeed":
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self._collection, self._on_snapshot)
        return self

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> "ReportFeed":
        return self.open()

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def _on_snapshot(self, documents: list[StoredDocument]) -> None:
        self.entries = entries_from_documents(documents)
        self.updates += 1


def project_row(entry: ReportEntry, timezone_name: str) -> list[str]:
    record = entry.record
    return [
        entry.ticket_id,
        record.form_type,
        record.display_name,
        record.dni,
        record.email,
        record.celular,
        record.start_date or "-",
        record.fecha_fin or "-",
        str(record.cantidad_dias) if record.cantidad_dias else "-",
        record.archivo_adjunto or "No",
        format_submitted_at(record, timezone_name),
    ]


@dataclass(frozen=True)
class ExportFile:
    filename: str
    mimetype: str
    payload: bytes


@dataclass(frozen=True)
class ExportFormat:
    extension: str
    mimetype: str
    render: Callable[[list[str], list[list[str]], datetime], bytes]


EXPORT_RENDERERS: dict[str, ExportFormat] = {
    "txt": ExportFormat(
        "txt",
        "text/plain; charset=utf-8",
        lambda headers, rows, _generated_at: to_text_bytes(headers, rows),
    ),
    "xlsx": ExportFormat(
        "xlsx",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        lambda headers, rows, generated_at: to_xlsx_bytes(headers, rows, generated_at=generated_at),
    ),
    "pdf": ExportFormat(
        "pdf",
        "application/pdf",
        lambda headers, rows, generated_at: to_pdf_bytes(REPORT_TITLE, headers, rows, generated_at=generated_at),
    ),
}


def export_entries(
    entries: list[ReportEntry],
    export_format: str,
    settings: PortalSettings,
    generated_at: datetime | None = None,
    renderers: dict[str, ExportFormat] | None = None,
) -> ExportFile:
    if not entries:
        raise NothingToExport()

    available = EXPORT_RENDERERS if renderers is None else renderers
    renderer = available.get(export_format)
    if renderer is None or export_format not in settings.export_formats:
        raise ExportError(f"El formato de exportación '{export_format}' no está disponible.")

    generated_at = generated_at or datetime.now(timezone.utc)
    rows = [project_row(entry, settings.timezone) for entry in entries]
    try:
        payload = renderer.render(list(REPORT_COLUMNS), rows, generated_at)
    except Exception as exc:
        logger.warning("Export renderer %s failed.", export_format, exc_info=True)
        raise ExportError(f"No se pudo generar el archivo {export_format.upper()}.") from exc

    stamp = generated_at.strftime("%Y-%m-%dT%H-%M-%SZ")
    return ExportFile(
        filename=f"solicitudes_licencias_{stamp}.{renderer.extension}",
        mimetype=renderer.mimetype,
        payload=payload,
    )


class DeleteConfirmation:
    """Two-step deletion: a ticket must be requested before it can be confirmed."""

    def __init__(
        self,
        state: MutableMapping[str, Any],
        store: DocumentStore,
        collection: str,
        storage: ObjectStorage | None = None,
    ) -> None:
        self._state = state
        self._store = store
        self._collection = collection
        self._storage = storage

    @property
    def pending(self) -> str | None:
        return self._state.get(PENDING_DELETE_KEY)

    def request(self, ticket_id: str) -> None:
        self._state[PENDING_DELETE_KEY] = ticket_id

    def cancel(self) -> None:
        self._state.pop(PENDING_DELETE_KEY, None)

    def confirm(self, ticket_id: str) -> LeaveRequestRecord:
        """Delete the pending ticket. The pending entry is cleared whatever the outcome."""
        pending = self.pending
        self.cancel()
        if pending != ticket_id:
            raise DeleteError("Debes confirmar la eliminación de la solicitud antes de borrarla.")
        path = f"{self._collection}/{ticket_id}"
        try:
            data = self._store.get(path)
            if data is None:
                raise DeleteError(f"La solicitud #{ticket_id} ya no existe.")
            self._store.delete(path)
        except StoreError as exc:
            raise DeleteError(f"Error al eliminar la solicitud #{ticket_id}.") from exc
        record = LeaveRequestRecord.from_document(data)
        self._discard_attachment(ticket_id, record.archivo_adjunto)
        return record

    def _discard_attachment(self, ticket_id: str, url: str | None) -> None:
        if self._storage is None:
            return
        path = self._storage.path_for_download_url(url)
        if path is None:
            return
        try:
            self._storage.delete(path)
        except StorageError:
            logger.warning("Attachment %s of deleted request %s was left behind.", path, ticket_id, exc_info=True)
