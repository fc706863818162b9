"""Employee portal: home, leave forms and submission receipt."""

from __future__ import annotations

import io
from datetime import datetime, timezone

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, send_file, session, url_for

from licencias.audit import log_audit
from licencias.errors import InvalidFields, MissingAttachment, NotAuthenticated, StoreError, SubmitError, UploadError
from licencias.extensions import portal
from licencias.forms import LEAVE_FORMS, LeaveFormBase, SickLeaveForm
from licencias.messaging import (
    mailto_url,
    receipt_filename,
    receipt_text,
    simulate_confirmation_email,
    whatsapp_share_url,
)
from licencias.navigation import SUBMISSION_SESSION_KEY, submission_from_session
from licencias.report import PENDING_DELETE_KEY
from licencias.workflow import LeaveRequestRecord, attachment_from_upload


bp = Blueprint("portal", __name__)


def _build_form(form_type: str) -> LeaveFormBase:
    form_class = LEAVE_FORMS.get(form_type)
    if form_class is None:
        abort(404)
    form = form_class()
    if isinstance(form, SickLeaveForm):
        form.set_roster(list(current_app.config.get("EMPLOYEE_ROSTER") or ()))
    return form


def _attach_field_errors(form: LeaveFormBase, field_errors: dict[str, str]) -> None:
    for name, message in field_errors.items():
        field = form._fields.get(name)
        if field is None and name == "nombre_completo_empleado":
            field = form._fields.get("otro_nombre_empleado")
        if field is not None:
            field.errors = list(field.errors or []) + [message]


def _render_form(form: LeaveFormBase, status: int = 200):
    required = portal().settings.attachment_required_forms
    return (
        render_template(
            "portal/form.html",
            form=form,
            attachment_required=form.form_type in required,
        ),
        status,
    )


def _current_receipt() -> tuple[str, LeaveRequestRecord] | None:
    receipt = submission_from_session(session)
    if receipt is None:
        return None
    services = portal()
    try:
        data = services.store.get(f"{services.settings.requests_collection}/{receipt.ticket_id}")
    except StoreError:
        flash("No se pudo cargar la solicitud enviada.", "danger")
        return None
    if data is None:
        return None
    return receipt.ticket_id, LeaveRequestRecord.from_document(data)


@bp.get("/inicio")
def home():
    forms = [(form_type, form_class.title) for form_type, form_class in LEAVE_FORMS.items()]
    return render_template("portal/home.html", forms=forms)


@bp.route("/licencias/<form_type>", methods=["GET", "POST"])
def leave_form(form_type: str):
    form = _build_form(form_type)
    if request.method == "GET":
        return _render_form(form)

    if not form.validate_on_submit():
        flash("Solicitud inválida. Revisa los campos marcados.", "danger")
        return _render_form(form, 400)

    services = portal()
    attachment = None
    if form.has_attachment:
        try:
            attachment = attachment_from_upload(form.archivo_adjunto.data)
        except UploadError as exc:
            form.archivo_adjunto.errors = list(form.archivo_adjunto.errors or []) + [exc.message]
            flash(exc.message, "danger")
            return _render_form(form, 400)

    try:
        result = services.workflow.submit(form.form_type, form.workflow_fields(), services.session(), attachment)
    except NotAuthenticated as exc:
        flash(exc.message, "danger")
        return redirect(url_for("auth.login"))
    except InvalidFields as exc:
        _attach_field_errors(form, exc.field_errors)
        flash(exc.message, "danger")
        return _render_form(form, 400)
    except MissingAttachment as exc:
        form.archivo_adjunto.errors = list(form.archivo_adjunto.errors or []) + [exc.message]
        flash(exc.message, "danger")
        return _render_form(form, 400)
    except SubmitError as exc:
        flash(exc.message, "danger")
        return _render_form(form, 502)

    session[SUBMISSION_SESSION_KEY] = {"ticket_id": result.ticket_id, "form_type": form.form_type}
    log_audit(
        "LEAVE_REQUEST_SUBMITTED",
        "leave_request",
        result.ticket_id,
        {"form_type": form.form_type, "has_attachment": bool(result.record.archivo_adjunto)},
    )
    body = receipt_text(result.record, result.ticket_id, services.settings.timezone)
    simulate_confirmation_email(result.record, result.ticket_id, body)
    flash(f"Solicitud enviada con éxito. Número de ticket: {result.ticket_id}", "success")
    return redirect(url_for("portal.success"))


@bp.get("/licencias/enviada")
def success():
    current = _current_receipt()
    if current is None:
        session.pop(SUBMISSION_SESSION_KEY, None)
        return redirect(url_for("portal.home"))

    ticket_id, record = current
    body = receipt_text(record, ticket_id, portal().settings.timezone)
    return render_template(
        "portal/success.html",
        ticket_id=ticket_id,
        record=record,
        receipt=body,
        whatsapp_url=whatsapp_share_url(body),
        email_url=mailto_url(record, ticket_id, body),
    )


@bp.get("/licencias/enviada/comprobante.txt")
def receipt_download():
    current = _current_receipt()
    if current is None:
        abort(404)

    ticket_id, record = current
    body = receipt_text(record, ticket_id, portal().settings.timezone)
    return send_file(
        io.BytesIO(body.encode("utf-8")),
        mimetype="text/plain; charset=utf-8",
        as_attachment=True,
        download_name=receipt_filename(ticket_id, datetime.now(timezone.utc)),
    )


@bp.post("/volver")
def back():
    session.pop(SUBMISSION_SESSION_KEY, None)
    session.pop(PENDING_DELETE_KEY, None)
    return redirect(url_for("portal.home"))
