from __future__ import annotations

import dataclasses
import io
import zipfile
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from licencias.errors import DeleteError, ExportError, NothingToExport, StorageError, StoreError
from licencias.extensions import db, portal
from licencias.models import AuditLog
from licencias.report import (
    REPORT_COLUMNS,
    DeleteConfirmation,
    ExportFormat,
    ReportEntry,
    entries_from_documents,
    export_entries,
    project_row,
)
from licencias.workflow import LeaveRequestRecord

from conftest import EMPLOYEE_ID


GENERATED_AT = datetime(2024, 5, 10, 15, 30, tzinfo=timezone.utc)


def _record(timestamp: str, **overrides) -> LeaveRequestRecord:
    values = {
        "form_type": "personal",
        "user_id": str(EMPLOYEE_ID),
        "timestamp": timestamp,
        "dni": "30111222",
        "categoria": "Administrativo",
        "oficina": "Central",
        "email": "employee@example.com",
        "celular": "+54 9 11 5555-0000",
        "nombre": "Ana",
        "apellido": "García",
        "fecha_inasistencia_rp": "2024-05-02",
        "cantidad_dias": 1,
    }
    values.update(overrides)
    return LeaveRequestRecord(**values)


def _seed(app, *records: LeaveRequestRecord) -> list[str]:
    with app.app_context():
        services = portal()
        return [services.store.create(services.settings.requests_collection, record.to_document()) for record in records]


def _entries(app):
    with app.app_context():
        services = portal()
        return entries_from_documents(services.store.snapshot(services.settings.requests_collection))


def test_report_requires_sign_in(client):
    response = client.get("/admin/licencias")
    assert response.status_code == 302
    assert "/login?next=/admin/licencias" in response.headers["Location"]


def test_report_is_hidden_from_non_admins(employee_client, app):
    _seed(app, _record("2024-05-01T10:00:00.000Z"))
    for response in (
        employee_client.get("/admin/licencias"),
        employee_client.get("/admin/licencias/data"),
        employee_client.post("/admin/licencias/export/txt"),
    ):
        assert response.status_code == 302
        assert response.headers["Location"].endswith("/inicio")


def test_report_lists_newest_first(admin_client, app):
    t1, t3, t2 = _seed(
        app,
        _record("2024-05-01T10:00:00.000Z"),
        _record("2024-05-03T10:00:00.000Z"),
        _record("2024-05-02T10:00:00.000Z"),
    )
    payload = admin_client.get("/admin/licencias/data").get_json()
    assert payload["message"] == "Se han cargado 3 solicitudes."
    assert [row["Ticket ID"] for row in payload["rows"]] == [t3, t2, t1]
    assert payload["tickets"] == [t3, t2, t1]

    html = admin_client.get("/admin/licencias").get_data(as_text=True)
    assert html.index(t3) < html.index(t2) < html.index(t1)


def test_report_page_closes_its_subscription(admin_client, app):
    _seed(app, _record("2024-05-01T10:00:00.000Z"))
    assert admin_client.get("/admin/licencias").status_code == 200
    with app.app_context():
        services = portal()
        assert services.store.listener_count(services.settings.requests_collection) == 0


def test_report_feed_receives_live_updates(app):
    with app.app_context():
        services = portal()
        with services.report_feed() as feed:
            assert feed.entries == []
            ticket = services.store.create(
                services.settings.requests_collection, _record("2024-05-01T10:00:00.000Z").to_document()
            )
            assert [entry.ticket_id for entry in feed.entries] == [ticket]
            assert feed.updates == 2
        assert not feed.is_open
        assert services.store.listener_count(services.settings.requests_collection) == 0


def test_projection_shows_attachment_url_or_no():
    with_attachment = _record(
        "2024-05-01T10:00:00.000Z",
        form_type="study",
        fecha_inasistencia_rp=None,
        cantidad_dias=None,
        fecha_inasistencia_estudio="2024-06-10",
        archivo_adjunto="https://files.example.com/cert.pdf",
    )
    row = dict(zip(REPORT_COLUMNS, project_row(ReportEntry("t1", with_attachment), "UTC")))
    assert row["Adjunto"] == "https://files.example.com/cert.pdf"
    assert row["Fecha Inicio"] == "2024-06-10"
    assert row["Días"] == "-"
    assert row["Fecha Envío"] == "01/05/2024 10:00:00"

    plain = project_row(ReportEntry("t2", _record("2024-05-01T10:00:00.000Z")), "UTC")
    assert dict(zip(REPORT_COLUMNS, plain))["Adjunto"] == "No"


def test_text_export_is_stable_and_carries_attachment_url(app):
    url = "http://localhost/files/test-app/uploads/u/study/abc-cert.pdf"
    _seed(
        app,
        _record("2024-05-01T10:00:00.000Z"),
        _record("2024-05-02T10:00:00.000Z", form_type="study", fecha_inasistencia_estudio="2024-05-03",
                fecha_inasistencia_rp=None, cantidad_dias=None, archivo_adjunto=url),
    )
    entries = _entries(app)
    with app.app_context():
        settings = portal().settings
        first = export_entries(entries, "txt", settings, generated_at=GENERATED_AT)
        second = export_entries(entries, "txt", settings, generated_at=GENERATED_AT)

    assert first == second
    assert first.filename == "solicitudes_licencias_2024-05-10T15-30-00Z.txt"
    lines = first.payload.decode("utf-8").split("\n")
    assert lines[0] == "\t".join(REPORT_COLUMNS)
    assert len(lines) == 3
    assert lines[1].split("\t")[9] == url
    assert lines[2].split("\t")[9] == "No"


def test_export_without_entries_is_rejected(app):
    with app.app_context():
        with pytest.raises(NothingToExport) as excinfo:
            export_entries([], "txt", portal().settings)
    assert excinfo.value.message == "No hay solicitudes para exportar."


def test_export_respects_enabled_formats_and_renderer_failures(app):
    _seed(app, _record("2024-05-01T10:00:00.000Z"))
    entries = _entries(app)
    with app.app_context():
        settings = portal().settings
        with pytest.raises(ExportError):
            export_entries(entries, "pdf", dataclasses.replace(settings, export_formats=("txt",)))
        with pytest.raises(ExportError):
            export_entries(entries, "csv", settings)

        def broken(_headers, _rows, _generated_at):
            raise RuntimeError("boom")

        with pytest.raises(ExportError) as excinfo:
            export_entries(entries, "txt", settings, renderers={"txt": ExportFormat("txt", "text/plain", broken)})
    assert excinfo.value.message == "No se pudo generar el archivo TXT."


def test_export_routes_return_files(admin_client, app):
    [ticket] = _seed(app, _record("2024-05-01T10:00:00.000Z"))

    txt = admin_client.post("/admin/licencias/export/txt")
    assert txt.status_code == 200
    assert txt.mimetype == "text/plain"
    assert ticket in txt.get_data(as_text=True)
    assert "solicitudes_licencias_" in txt.headers["Content-Disposition"]
    assert admin_client.post("/admin/licencias/export/txt").data == txt.data

    xlsx = admin_client.post("/admin/licencias/export/xlsx")
    assert xlsx.status_code == 200
    with zipfile.ZipFile(io.BytesIO(xlsx.data)) as workbook:
        sheet = workbook.read("xl/worksheets/sheet1.xml").decode("utf-8")
    assert ticket in sheet
    assert "Ticket ID" in sheet

    pdf = admin_client.post("/admin/licencias/export/pdf")
    assert pdf.status_code == 200
    assert pdf.data.startswith(b"%PDF-1.4")
    assert pdf.data.rstrip().endswith(b"%%EOF")

    with app.app_context():
        exports = db.session.execute(select(AuditLog).where(AuditLog.action == "LEAVE_REQUESTS_EXPORTED")).scalars().all()
        assert sorted(audit.payload_json["format"] for audit in exports) == ["pdf", "txt", "txt", "xlsx"]


def test_empty_export_route_shows_message(admin_client):
    response = admin_client.post("/admin/licencias/export/txt", follow_redirects=True)
    assert response.status_code == 200
    assert "No hay solicitudes para exportar." in response.get_data(as_text=True)


def test_delete_without_confirmation_keeps_record(admin_client, app):
    [ticket] = _seed(app, _record("2024-05-01T10:00:00.000Z"))
    response = admin_client.post(f"/admin/licencias/{ticket}/delete/confirm", follow_redirects=True)
    assert "Debes confirmar la eliminación de la solicitud antes de borrarla." in response.get_data(as_text=True)
    assert [entry.ticket_id for entry in _entries(app)] == [ticket]


def test_delete_request_then_confirm_removes_record(admin_client, app):
    keep, remove = _seed(app, _record("2024-05-01T10:00:00.000Z"), _record("2024-05-02T10:00:00.000Z"))

    page = admin_client.post(f"/admin/licencias/{remove}/delete", follow_redirects=True)
    assert f"¿Confirmas eliminar la solicitud #{remove}?" in page.get_data(as_text=True)
    assert len(_entries(app)) == 2

    response = admin_client.post(f"/admin/licencias/{remove}/delete/confirm", follow_redirects=True)
    assert f"Solicitud #{remove} eliminada con éxito." in response.get_data(as_text=True)
    assert [entry.ticket_id for entry in _entries(app)] == [keep]

    with app.app_context():
        audit = db.session.execute(select(AuditLog).where(AuditLog.action == "LEAVE_REQUEST_DELETED")).scalar_one()
        assert audit.entity_id == remove


def test_delete_cancel_clears_pending_ticket(admin_client, app):
    [ticket] = _seed(app, _record("2024-05-01T10:00:00.000Z"))
    admin_client.post(f"/admin/licencias/{ticket}/delete")
    admin_client.post("/admin/licencias/delete/cancel")

    with admin_client.session_transaction() as session:
        assert "pending_delete_ticket" not in session
    response = admin_client.post(f"/admin/licencias/{ticket}/delete/confirm")
    assert response.status_code == 302
    assert len(_entries(app)) == 1


def test_delete_confirmation_rules(app, monkeypatch):
    [ticket] = _seed(app, _record("2024-05-01T10:00:00.000Z"))
    with app.app_context():
        services = portal()
        state: dict = {}
        confirmation = DeleteConfirmation(state, services.store, services.settings.requests_collection)

        confirmation.request("other-ticket")
        with pytest.raises(DeleteError):
            confirmation.confirm(ticket)
        assert confirmation.pending is None

        confirmation.request("missing-ticket")
        with pytest.raises(DeleteError) as missing:
            confirmation.confirm("missing-ticket")
        assert missing.value.message == "La solicitud #missing-ticket ya no existe."

        def failing_delete(_path):
            raise StoreError()

        monkeypatch.setattr(services.store, "delete", failing_delete)
        confirmation.request(ticket)
        with pytest.raises(DeleteError) as failed:
            confirmation.confirm(ticket)
        assert failed.value.message == f"Error al eliminar la solicitud #{ticket}."
        assert state == {}


def test_whatsapp_contact_link(admin_client, app):
    [ticket] = _seed(app, _record("2024-05-01T10:00:00.000Z"))
    response = admin_client.get(f"/admin/licencias/{ticket}/whatsapp")
    assert response.status_code == 302
    assert response.headers["Location"].startswith("https://wa.me/5491155550000?text=Hola%20Ana%20Garc")
    assert admin_client.get("/admin/licencias/unknown/whatsapp").status_code == 404


def test_admin_home_links_to_report(admin_client):
    assert "Ver reporte de solicitudes" in admin_client.get("/inicio").get_data(as_text=True)


def test_report_data_changes_when_a_request_is_replaced(admin_client, app):
    first, second = _seed(app, _record("2024-05-01T10:00:00.000Z"), _record("2024-05-02T10:00:00.000Z"))
    before = admin_client.get("/admin/licencias/data").get_json()["tickets"]

    admin_client.post(f"/admin/licencias/{first}/delete")
    admin_client.post(f"/admin/licencias/{first}/delete/confirm")
    [third] = _seed(app, _record("2024-05-03T10:00:00.000Z"))

    after = admin_client.get("/admin/licencias/data").get_json()["tickets"]
    assert len(after) == len(before)
    assert after == [third, second]
    assert after != before


def _seed_with_certificate(app) -> tuple[str, str, str]:
    path = "test-app/uploads/employee/study/cert.pdf"
    with app.test_request_context():
        storage = portal().storage
        url = storage.get_download_url(storage.upload(path, b"%PDF-1.4 cert", owner_user_id=EMPLOYEE_ID))
    record = _record(
        "2024-05-01T10:00:00.000Z",
        form_type="study",
        fecha_inasistencia_rp=None,
        fecha_inasistencia_estudio="2024-06-10",
        cantidad_dias=None,
        archivo_adjunto=url,
    )
    [ticket] = _seed(app, record)
    return ticket, path, url


def test_confirmed_delete_discards_the_certificate(admin_client, app):
    ticket, path, url = _seed_with_certificate(app)
    assert admin_client.get(url.replace("http://localhost", "")).status_code == 200

    admin_client.post(f"/admin/licencias/{ticket}/delete")
    admin_client.post(f"/admin/licencias/{ticket}/delete/confirm")

    assert _entries(app) == []
    with app.app_context():
        assert portal().storage.fetch(path) is None
    assert admin_client.get(url.replace("http://localhost", "")).status_code == 404


def test_certificate_cleanup_failure_still_deletes_the_request(app, monkeypatch, caplog):
    ticket, path, _url = _seed_with_certificate(app)
    with app.test_request_context():
        services = portal()

        def failing_delete(_path):
            raise StorageError()

        monkeypatch.setattr(services.storage, "delete", failing_delete)
        state: dict = {}
        confirmation = DeleteConfirmation(
            state, services.store, services.settings.requests_collection, services.storage
        )
        confirmation.request(ticket)
        record = confirmation.confirm(ticket)

        assert record.form_type == "study"
        assert services.store.get(f"{services.settings.requests_collection}/{ticket}") is None
        assert services.storage.fetch(path) is not None
    assert f"Attachment {path} of deleted request {ticket} was left behind." in caplog.text


def test_attachment_lookup_ignores_foreign_urls(app):
    with app.test_request_context():
        storage = portal().storage
        assert storage.path_for_download_url(None) is None
        assert storage.path_for_download_url("https://example.com/elsewhere.pdf") is None
        assert storage.path_for_download_url("http://localhost/inicio") is None
        assert storage.path_for_download_url("http://localhost/files/a/b.pdf") == "a/b.pdf"
