"""Report renderers (text, XLSX, PDF) without third-party deps."""

from __future__ import annotations

import io
import textwrap
import zipfile
from datetime import datetime, timezone
from html import escape as xml_escape
from typing import Any


REPORT_TITLE = "Reporte de Solicitudes de Licencias"
TEXT_DELIMITER = "\t"


def to_text_bytes(headers: list[str], rows: list[list[Any]], delimiter: str = TEXT_DELIMITER) -> bytes:
    lines = [delimiter.join(headers)]
    for row in rows:
        lines.append(delimiter.join(_single_line(_stringify(value)) for value in row))
    return "\n".join(lines).encode("utf-8")


def to_xlsx_bytes(
    headers: list[str],
    rows: list[list[Any]],
    sheet_name: str = "Solicitudes",
    generated_at: datetime | None = None,
) -> bytes:
    sheet_rows: list[str] = []
    all_rows = [headers] + [[_stringify(value) for value in row] for row in rows]
    for row_index, row_values in enumerate(all_rows, start=1):
        cells = []
        for col_index, value in enumerate(row_values, start=1):
            ref = f"{_xlsx_col(col_index)}{row_index}"
            cells.append(f'<c r="{ref}" t="inlineStr"><is><t>{xml_escape(_truncate(value, 32767))}</t></is></c>')
        sheet_rows.append(f'<row r="{row_index}">{"".join(cells)}</row>')

    stamp = (generated_at or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
    parts = {
        "[Content_Types].xml": (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
            '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
            '<Default Extension="xml" ContentType="application/xml"/>'
            '<Override PartName="/xl/workbook.xml" '
            'ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml"/>'
            '<Override PartName="/xl/worksheets/sheet1.xml" '
            'ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"/>'
            '<Override PartName="/docProps/core.xml" '
            'ContentType="application/vnd.openxmlformats-package.core-properties+xml"/>'
            "</Types>"
        ),
        "_rels/.rels": (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
            '<Relationship Id="rId1" '
            'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
            'Target="xl/workbook.xml"/>'
            '<Relationship Id="rId2" '
            'Type="http://schemas.openxmlformats.org/package/2006/relationships/metadata/core-properties" '
            'Target="docProps/core.xml"/>'
            "</Relationships>"
        ),
        "docProps/core.xml": (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            '<cp:coreProperties xmlns:cp="http://schemas.openxmlformats.org/package/2006/metadata/core-properties" '
            'xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:dcterms="http://purl.org/dc/terms/" '
            'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">'
            f"<dc:title>{xml_escape(REPORT_TITLE)}</dc:title>"
            f'<dcterms:created xsi:type="dcterms:W3CDTF">{stamp}</dcterms:created>'
            "</cp:coreProperties>"
        ),
        "xl/workbook.xml": (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            '<workbook xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main" '
            'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships">'
            f'<sheets><sheet name="{xml_escape(_truncate(sheet_name, 31))}" sheetId="1" r:id="rId1"/></sheets>'
            "</workbook>"
        ),
        "xl/_rels/workbook.xml.rels": (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
            '<Relationship Id="rId1" '
            'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/worksheet" '
            'Target="worksheets/sheet1.xml"/>'
            "</Relationships>"
        ),
        "xl/worksheets/sheet1.xml": (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            '<worksheet xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main">'
            f"<sheetData>{''.join(sheet_rows)}</sheetData>"
            "</worksheet>"
        ),
    }

    out = io.BytesIO()
    with zipfile.ZipFile(out, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in parts.items():
            zf.writestr(name, content)
    return out.getvalue()


def to_pdf_bytes(title: str, headers: list[str], rows: list[list[Any]], generated_at: datetime | None = None) -> bytes:
    """Landscape A4 pages with one wrapped text line per report row."""
    stamp = (generated_at or datetime.now(timezone.utc)).strftime("%d/%m/%Y %H:%M")
    text_lines = [title, f"Generado: {stamp}", "", " | ".join(headers)]
    text_lines.append("-" * min(150, len(text_lines[-1])))
    for row in rows:
        line = " | ".join(_single_line(_stringify(value)) for value in row)
        text_lines.extend(textwrap.wrap(line, width=140, subsequent_indent="    ") or [""])

    page_width, page_height = 842, 595
    top = page_height - 40
    line_height = 12
    per_page = max(1, (top - 40) // line_height)
    pages = [text_lines[i : i + per_page] for i in range(0, len(text_lines), per_page)]

    objects: list[bytes] = [b"", b""]
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Courier /Encoding /WinAnsiEncoding >>")
    catalog_id, pages_id, font_id = 1, 2, 3
    page_ids: list[int] = []
    for page_lines in pages:
        commands = [b"BT", b"/F1 8 Tf", f"30 {top} Td".encode("latin-1"), f"{line_height} TL".encode("latin-1")]
        for line in page_lines:
            escaped = _pdf_escape(_truncate(line, 160))
            commands.append(f"({escaped}) Tj T*".encode("cp1252", "replace"))
        commands.append(b"ET")
        stream = b"\n".join(commands)
        objects.append(f"<< /Length {len(stream)} >>\nstream\n".encode("latin-1") + stream + b"\nendstream")
        contents_id = len(objects)
        objects.append(
            (
                f"<< /Type /Page /Parent {pages_id} 0 R /MediaBox [0 0 {page_width} {page_height}] "
                f"/Contents {contents_id} 0 R /Resources << /Font << /F1 {font_id} 0 R >> >> >>"
            ).encode("latin-1")
        )
        page_ids.append(len(objects))

    kids = " ".join(f"{page_id} 0 R" for page_id in page_ids)
    objects[pages_id - 1] = f"<< /Type /Pages /Kids [{kids}] /Count {len(page_ids)} >>".encode("latin-1")
    objects[catalog_id - 1] = f"<< /Type /Catalog /Pages {pages_id} 0 R >>".encode("latin-1")

    pdf = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n"
    offsets = []
    for index, obj in enumerate(objects, start=1):
        offsets.append(len(pdf))
        pdf += f"{index} 0 obj\n".encode("latin-1") + obj + b"\nendobj\n"

    xref_offset = len(pdf)
    pdf += f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n".encode("latin-1")
    pdf += b"".join(f"{offset:010d} 00000 n \n".encode("latin-1") for offset in offsets)
    pdf += f"trailer\n<< /Size {len(objects) + 1} /Root {catalog_id} 0 R >>\nstartxref\n{xref_offset}\n%%EOF\n".encode(
        "latin-1"
    )
    return pdf


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _single_line(value: str) -> str:
    return " ".join(value.split())


def _truncate(value: str, max_len: int) -> str:
    if len(value) <= max_len:
        return value
    return value[: max_len - 3] + "..."


def _xlsx_col(index: int) -> str:
    chars: list[str] = []
    value = index
    while value > 0:
        value, remainder = divmod(value - 1, 26)
        chars.append(chr(65 + remainder))
    return "".join(reversed(chars))


def _pdf_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
