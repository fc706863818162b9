"""Administrator report: list, export, delete and contact."""

from __future__ import annotations

import io

from flask import Blueprint, abort, flash, redirect, render_template, send_file, session, url_for

from licencias.audit import log_audit
from licencias.errors import DeleteError, ExportError, NothingToExport, StoreError
from licencias.extensions import portal
from licencias.messaging import whatsapp_contact_url
from licencias.report import (
    REPORT_COLUMNS,
    DeleteConfirmation,
    ReportEntry,
    export_entries,
    loaded_message,
    project_row,
)
from licencias.workflow import LeaveRequestRecord


bp = Blueprint("admin", __name__)


def _load_entries() -> tuple[list[ReportEntry], str | None]:
    """Return the current entries and an error message when the store failed."""
    try:
        with portal().report_feed() as feed:
            return list(feed.entries), None
    except StoreError:
        return [], "Error al cargar las solicitudes."


def _delete_confirmation() -> DeleteConfirmation:
    services = portal()
    return DeleteConfirmation(session, services.store, services.settings.requests_collection, services.storage)


@bp.get("/admin/licencias")
def report():
    services = portal()
    entries, error = _load_entries()
    if error:
        flash(error, "danger")
    timezone_name = services.settings.timezone
    rows = [(entry, project_row(entry, timezone_name)) for entry in entries]
    return (
        render_template(
            "admin/report.html",
            columns=REPORT_COLUMNS,
            rows=rows,
            status_message=loaded_message(entries),
            ticket_ids=[entry.ticket_id for entry in entries],
            pending_delete=_delete_confirmation().pending,
            export_formats=services.settings.export_formats,
        ),
        502 if error else 200,
    )


@bp.get("/admin/licencias/data")
def report_data():
    entries, error = _load_entries()
    if error:
        return {"error": error, "tickets": [], "rows": []}, 502
    timezone_name = portal().settings.timezone
    return {
        "message": loaded_message(entries),
        "tickets": [entry.ticket_id for entry in entries],
        "columns": REPORT_COLUMNS,
        "rows": [dict(zip(REPORT_COLUMNS, project_row(entry, timezone_name))) for entry in entries],
    }


@bp.post("/admin/licencias/export/<export_format>")
def export(export_format: str):
    entries, error = _load_entries()
    if error:
        flash(error, "danger")
        return redirect(url_for("admin.report"))

    try:
        exported = export_entries(entries, export_format, portal().settings)
    except NothingToExport as exc:
        flash(exc.message, "warning")
        return redirect(url_for("admin.report"))
    except ExportError as exc:
        flash(exc.message, "danger")
        return redirect(url_for("admin.report"))

    log_audit("LEAVE_REQUESTS_EXPORTED", "leave_request", None, {"format": export_format, "rows": len(entries)})
    return send_file(
        io.BytesIO(exported.payload),
        mimetype=exported.mimetype,
        as_attachment=True,
        download_name=exported.filename,
    )


@bp.post("/admin/licencias/<ticket_id>/delete")
def delete_request(ticket_id: str):
    _delete_confirmation().request(ticket_id)
    return redirect(url_for("admin.report"))


@bp.post("/admin/licencias/<ticket_id>/delete/confirm")
def delete_confirm(ticket_id: str):
    try:
        _delete_confirmation().confirm(ticket_id)
    except DeleteError as exc:
        flash(exc.message, "danger")
        return redirect(url_for("admin.report"))

    log_audit("LEAVE_REQUEST_DELETED", "leave_request", ticket_id, {})
    flash(f"Solicitud #{ticket_id} eliminada con éxito.", "success")
    return redirect(url_for("admin.report"))


@bp.post("/admin/licencias/delete/cancel")
def delete_cancel():
    _delete_confirmation().cancel()
    return redirect(url_for("admin.report"))


@bp.get("/admin/licencias/<ticket_id>/whatsapp")
def whatsapp(ticket_id: str):
    services = portal()
    try:
        data = services.store.get(f"{services.settings.requests_collection}/{ticket_id}")
    except StoreError:
        flash("Error al cargar la solicitud.", "danger")
        return redirect(url_for("admin.report"))
    if data is None:
        abort(404)
    return redirect(whatsapp_contact_url(LeaveRequestRecord.from_document(data), ticket_id))
