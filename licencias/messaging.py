"""Receipt text and deep links for WhatsApp / e-mail clients."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from urllib.parse import quote, urlencode
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from licencias.workflow import LeaveRequestRecord


logger = logging.getLogger(__name__)

WHATSAPP_BASE_URL = "https://wa.me/"


def format_submitted_at(record: LeaveRequestRecord, timezone_name: str) -> str:
    submitted_at = record.submitted_at
    if submitted_at is None:
        return record.timestamp or "-"
    try:
        tz = ZoneInfo(timezone_name)
    except ZoneInfoNotFoundError:
        tz = ZoneInfo("UTC")
    return submitted_at.astimezone(tz).strftime("%d/%m/%Y %H:%M:%S")


def receipt_text(record: LeaveRequestRecord, ticket_id: str, timezone_name: str) -> str:
    lines = [
        "*Confirmación de Solicitud de Licencia*",
        "",
        f"*Número de Ticket:* {ticket_id}",
        f"*Tipo de Solicitud:* {record.form_type}",
        f"*Nombre:* {record.display_name}",
        f"*DNI:* {record.dni}",
        f"*Correo Electrónico:* {record.email}",
        f"*Fecha de Envío:* {format_submitted_at(record, timezone_name)}",
    ]
    if record.fecha_inicio:
        lines.append(f"*Fecha de Inicio:* {record.fecha_inicio}")
    if record.fecha_fin:
        lines.append(f"*Fecha de Fin:* {record.fecha_fin}")
    if record.fecha_inasistencia_rp:
        lines.append(f"*Fecha de Inasistencia:* {record.fecha_inasistencia_rp}")
    if record.fecha_inasistencia_estudio:
        lines.append(f"*Día de Inasistencia:* {record.fecha_inasistencia_estudio}")
    if record.cantidad_dias:
        lines.append(f"*Cantidad de Días:* {record.cantidad_dias}")
    if record.archivo_adjunto:
        lines.append(f"*Archivo Adjunto:* {record.archivo_adjunto}")
    lines.append(f"*ID de Usuario:* {record.user_id}")
    lines.extend(["", "Gracias por usar nuestro servicio.", ""])
    return "\n".join(lines)


def _phone_digits(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def whatsapp_share_url(text: str) -> str:
    return f"{WHATSAPP_BASE_URL}?{urlencode({'text': text}, quote_via=quote)}"


def whatsapp_contact_url(record: LeaveRequestRecord, ticket_id: str) -> str:
    message = (
        f"Hola {record.display_name}, te escribimos en relación a tu solicitud de licencia (Ticket #{ticket_id})."
    )
    return f"{WHATSAPP_BASE_URL}{_phone_digits(record.celular)}?{urlencode({'text': message}, quote_via=quote)}"


def confirmation_subject(ticket_id: str) -> str:
    return f"Confirmación de Solicitud de Licencia - Ticket #{ticket_id}"


def mailto_url(record: LeaveRequestRecord, ticket_id: str, body: str) -> str:
    query = urlencode({"subject": confirmation_subject(ticket_id), "body": body}, quote_via=quote)
    return f"mailto:{quote(record.email, safe='@')}?{query}"


def simulate_confirmation_email(record: LeaveRequestRecord, ticket_id: str, body: str) -> None:
    """There is no mail delivery; the message goes to the log instead."""
    logger.info(
        "Simulated e-mail to %s | %s\n%s",
        record.email,
        confirmation_subject(ticket_id),
        body,
    )


def receipt_filename(ticket_id: str, now: datetime) -> str:
    return f"comprobante_licencia_{ticket_id}_{now.strftime('%Y%m%dT%H%M%S')}.txt"
