"""Leave request submission workflow.

A submission goes through the same steps for every form type: session
check, required-field and range validation, optional attachment upload and
finally one store write. Nothing touches the store or the object storage
until the input has been validated, and a failed store write removes the
attachment that was uploaded for it.
"""

from __future__ import annotations

import logging
import mimetypes
import uuid
from dataclasses import dataclass, fields as dataclass_fields
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from licencias.config import FORM_TYPES, PortalSettings
from licencias.errors import (
    InvalidFields,
    MissingAttachment,
    NotAuthenticated,
    StorageError,
    StoreError,
    StoreWriteError,
    UploadError,
)
from licencias.session import PortalSession
from licencias.storage import ObjectRef, ObjectStorage
from licencias.store import DocumentStore


logger = logging.getLogger(__name__)

COMMON_FIELDS = ("dni", "categoria", "oficina", "email", "celular")
FORM_FIELDS: dict[str, tuple[str, ...]] = {
    "sick": (
        "nombre_completo_empleado",
        "tipo_licencia_enfermedad",
        "fecha_inicio",
        "fecha_fin",
        "cantidad_dias",
    ),
    "vacation": (
        "nombre",
        "apellido",
        "fecha_inicio",
        "fecha_fin",
        "tipo_licencia_vacaciones",
        "anio_vacaciones",
    ),
    "personal": ("nombre", "apellido", "fecha_inasistencia_rp", "cantidad_dias"),
    "study": ("nombre", "apellido", "fecha_inasistencia_estudio"),
}
INTEGER_RANGES: dict[tuple[str, str], tuple[int, int]] = {
    ("sick", "cantidad_dias"): (1, 15),
    ("personal", "cantidad_dias"): (1, 2),
    ("vacation", "anio_vacaciones"): (2020, 2030),
}
ATTACHMENT_FORMS = frozenset({"sick", "study"})

ATTACHMENT_ALLOWED_EXTENSIONS = {".pdf", ".jpg", ".jpeg", ".png", ".webp"}
ATTACHMENT_ALLOWED_MIME = {"application/pdf", "image/jpeg", "image/png", "image/webp"}
ATTACHMENT_MAX_BYTES = 5 * 1024 * 1024

DOCUMENT_KEYS = {
    "form_type": "formType",
    "user_id": "userId",
    "timestamp": "timestamp",
    "dni": "dni",
    "categoria": "categoria",
    "oficina": "oficina",
    "email": "email",
    "celular": "celular",
    "nombre": "nombre",
    "apellido": "apellido",
    "nombre_completo_empleado": "nombreCompletoEmpleado",
    "tipo_licencia_enfermedad": "tipoLicenciaEnfermedad",
    "fecha_inicio": "fechaInicio",
    "fecha_fin": "fechaFin",
    "cantidad_dias": "cantidadDias",
    "tipo_licencia_vacaciones": "tipoLicenciaVacaciones",
    "anio_vacaciones": "anioVacaciones",
    "fecha_inasistencia_rp": "fechaInasistenciaRP",
    "fecha_inasistencia_estudio": "fechaInasistenciaEstudio",
    "archivo_adjunto": "archivoAdjunto",
}

FIELD_LABELS = {
    "dni": "DNI",
    "categoria": "Categoría",
    "oficina": "Oficina",
    "email": "Correo electrónico",
    "celular": "Celular",
    "nombre": "Nombre",
    "apellido": "Apellido",
    "nombre_completo_empleado": "Nombre del empleado",
    "tipo_licencia_enfermedad": "Tipo de licencia",
    "fecha_inicio": "Fecha de inicio",
    "fecha_fin": "Fecha de fin",
    "cantidad_dias": "Cantidad de días",
    "tipo_licencia_vacaciones": "Tipo de licencia (vacaciones)",
    "anio_vacaciones": "Año",
    "fecha_inasistencia_rp": "Fecha de inasistencia",
    "fecha_inasistencia_estudio": "Día de inasistencia",
}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def required_fields(form_type: str) -> tuple[str, ...]:
    if form_type not in FORM_FIELDS:
        raise InvalidFields({"form_type": "Tipo de solicitud desconocido."})
    return COMMON_FIELDS + FORM_FIELDS[form_type]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _normalize(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, str):
        return value.strip()
    return value


def validate_fields(form_type: str, fields: Mapping[str, Any]) -> dict[str, str]:
    """Return a field -> message map; empty when the input is acceptable."""
    errors: dict[str, str] = {}
    for name in required_fields(form_type):
        if _is_blank(fields.get(name)):
            errors[name] = f"{FIELD_LABELS.get(name, name)} es obligatorio."

    for (range_form, name), (low, high) in INTEGER_RANGES.items():
        if range_form != form_type or name in errors:
            continue
        try:
            number = int(fields.get(name))
        except (TypeError, ValueError):
            errors[name] = f"{FIELD_LABELS[name]} debe ser un número."
            continue
        if not low <= number <= high:
            errors[name] = f"{FIELD_LABELS[name]} debe estar entre {low} y {high}."
    return errors


@dataclass(frozen=True)
class Attachment:
    filename: str
    mime_type: str
    payload: bytes


def attachment_from_upload(file_storage: FileStorage | None) -> Attachment | None:
    """Validate an uploaded certificate; None when no file was chosen."""
    if file_storage is None or not (file_storage.filename or "").strip():
        return None

    filename = secure_filename((file_storage.filename or "").strip())
    if not filename:
        raise UploadError("Nombre de adjunto inválido.")

    extension = Path(filename).suffix.lower()
    if extension not in ATTACHMENT_ALLOWED_EXTENSIONS:
        raise UploadError("El adjunto debe ser PDF o imagen JPG/PNG/WEBP.")

    mime_type = (file_storage.mimetype or "").strip().lower()
    guessed_mime = (mimetypes.guess_type(filename)[0] or "").lower()
    if mime_type not in ATTACHMENT_ALLOWED_MIME and guessed_mime in ATTACHMENT_ALLOWED_MIME:
        mime_type = guessed_mime
    if mime_type not in ATTACHMENT_ALLOWED_MIME:
        raise UploadError("Tipo de adjunto no permitido. Solo PDF o imagen.")

    payload = file_storage.read()
    if not payload:
        raise UploadError("El adjunto no puede estar vacío.")
    if len(payload) > ATTACHMENT_MAX_BYTES:
        raise UploadError("El adjunto supera el máximo permitido de 5MB.")
    return Attachment(filename=filename, mime_type=mime_type, payload=payload)


def _is_download_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))


@dataclass(frozen=True)
class LeaveRequestRecord:
    form_type: str
    user_id: str
    timestamp: str
    dni: str
    categoria: str
    oficina: str
    email: str
    celular: str
    nombre: str = ""
    apellido: str = ""
    nombre_completo_empleado: str | None = None
    tipo_licencia_enfermedad: str | None = None
    fecha_inicio: str | None = None
    fecha_fin: str | None = None
    cantidad_dias: int | None = None
    tipo_licencia_vacaciones: str | None = None
    anio_vacaciones: int | None = None
    fecha_inasistencia_rp: str | None = None
    fecha_inasistencia_estudio: str | None = None
    archivo_adjunto: str | None = None

    @property
    def display_name(self) -> str:
        return self.nombre_completo_empleado or f"{self.nombre} {self.apellido}".strip()

    @property
    def start_date(self) -> str | None:
        return self.fecha_inicio or self.fecha_inasistencia_rp or self.fecha_inasistencia_estudio

    @property
    def submitted_at(self) -> datetime | None:
        try:
            parsed = datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))
        except (AttributeError, ValueError):
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {}
        for attribute, key in DOCUMENT_KEYS.items():
            value = getattr(self, attribute)
            if value is None and attribute != "archivo_adjunto":
                continue
            document[key] = value
        if self.form_type not in ATTACHMENT_FORMS:
            document.pop("archivoAdjunto", None)
        return document

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "LeaveRequestRecord":
        known = {item.name for item in dataclass_fields(cls)}
        values: dict[str, Any] = {}
        for attribute, key in DOCUMENT_KEYS.items():
            if attribute in known and key in data:
                values[attribute] = data[key]
        for name in ("form_type", "user_id", "timestamp", *COMMON_FIELDS):
            values.setdefault(name, "")
        for name in ("cantidad_dias", "anio_vacaciones"):
            if values.get(name) in ("", None):
                values[name] = None
            else:
                try:
                    values[name] = int(values[name])
                except (TypeError, ValueError):
                    values[name] = None
        attachment = values.get("archivo_adjunto")
        if attachment and not _is_download_url(attachment):
            logger.warning("Ignoring filename-only attachment %r; only download URLs are supported.", attachment)
            values["archivo_adjunto"] = None
        return cls(**values)


def build_record(
    form_type: str,
    fields: Mapping[str, Any],
    *,
    actor_id: str,
    timestamp: str,
    attachment_url: str | None = None,
) -> LeaveRequestRecord:
    values = {name: _normalize(fields.get(name)) for name in required_fields(form_type)}
    for (range_form, name) in INTEGER_RANGES:
        if range_form == form_type:
            values[name] = int(values[name])

    if form_type == "sick":
        full_name = values["nombre_completo_empleado"]
        first, _, rest = full_name.partition(" ")
        values["nombre"] = first
        values["apellido"] = rest.strip()

    return LeaveRequestRecord(
        form_type=form_type,
        user_id=actor_id,
        timestamp=timestamp,
        archivo_adjunto=attachment_url if form_type in ATTACHMENT_FORMS else None,
        **values,
    )


@dataclass(frozen=True)
class SubmissionResult:
    ticket_id: str
    record: LeaveRequestRecord


class LeaveWorkflow:
    def __init__(
        self,
        settings: PortalSettings,
        store: DocumentStore,
        storage: ObjectStorage,
        clock: Callable[[], str] = utc_timestamp,
    ) -> None:
        self.settings = settings
        self.store = store
        self.storage = storage
        self._clock = clock

    def submit(
        self,
        form_type: str,
        fields: Mapping[str, Any],
        session: PortalSession,
        attachment: Attachment | None = None,
    ) -> SubmissionResult:
        if not session.is_authenticated or not session.actor_id:
            raise NotAuthenticated()
        if form_type not in FORM_TYPES:
            raise InvalidFields({"form_type": "Tipo de solicitud desconocido."})

        field_errors = validate_fields(form_type, fields)
        if field_errors:
            raise InvalidFields(field_errors)

        if attachment is not None and form_type not in ATTACHMENT_FORMS:
            raise InvalidFields({"archivo_adjunto": "Este tipo de solicitud no admite adjuntos."})
        if attachment is None and form_type in self.settings.attachment_required_forms:
            raise MissingAttachment()

        uploaded: ObjectRef | None = None
        attachment_url: str | None = None
        if attachment is not None:
            uploaded, attachment_url = self._upload(form_type, attachment, session.actor_id)

        record = build_record(
            form_type,
            fields,
            actor_id=session.actor_id,
            timestamp=self._clock(),
            attachment_url=attachment_url,
        )
        try:
            ticket_id = self.store.create(self.settings.requests_collection, record.to_document())
        except StoreError as exc:
            if uploaded is not None:
                self._discard(uploaded)
            raise StoreWriteError() from exc

        logger.info("Leave request %s submitted (%s) by %s.", ticket_id, form_type, session.actor_id)
        return SubmissionResult(ticket_id=ticket_id, record=record)

    def _upload(self, form_type: str, attachment: Attachment, actor_id: str) -> tuple[ObjectRef, str]:
        path = f"{self.settings.uploads_prefix(actor_id, form_type)}/{uuid.uuid4().hex}-{attachment.filename}"
        try:
            owner = uuid.UUID(actor_id)
        except ValueError:
            owner = None
        try:
            ref = self.storage.upload(path, attachment.payload, mime_type=attachment.mime_type, owner_user_id=owner)
            return ref, self.storage.get_download_url(ref)
        except StorageError as exc:
            raise UploadError() from exc

    def _discard(self, ref: ObjectRef) -> None:
        try:
            self.storage.delete(ref.path)
        except StorageError:
            logger.warning("Orphan attachment left at %s.", ref.path, exc_info=True)
