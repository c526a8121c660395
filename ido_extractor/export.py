from __future__ import annotations

import io
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Sequence

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from ido_extractor.domain.contracts import ColumnPatch, ExportResult
from ido_extractor.domain.defaults import SUPPORTED_FORMATS
from ido_extractor.errors import ValidationError
from ido_extractor.filters import format_number


logger = logging.getLogger("ido_extractor.export")

MIME_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
PATCH_MODES = {"add", "modify"}


def apply_column_patches(items: Sequence[Dict[str, Any]], patches: Iterable[ColumnPatch]) -> List[Dict[str, Any]]:
    rows = [dict(item) for item in items]
    for patch in patches:
        name = str(patch.name or "").strip()
        if not name:
            continue
        mode = str(patch.mode or "add").strip().lower()
        if mode not in PATCH_MODES:
            raise ValidationError(
                code="invalid_payload",
                message_key="invalid_payload",
                details=f"Unknown column mode: {patch.mode}",
            )
        if mode == "modify" and rows and not any(name in row for row in rows):
            raise ValidationError(
                code="unknown_column",
                message_key="unknown_column",
                details=f"Column {name} is not present in the result",
                payload={"column": name},
            )
        for row in rows:
            row[name] = patch.value
    return rows


def collect_headers(items: Sequence[Dict[str, Any]]) -> List[str]:
    headers: List[str] = []
    seen = set()
    for item in items:
        for key in item.keys():
            if key not in seen:
                seen.add(key)
                headers.append(key)
    return headers


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, float):
        return format_number(value)
    return str(value)


def _escape_csv_value(value: Any) -> str:
    text = _cell_text(value)
    if "," in text or '"' in text or "\n" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def to_csv(items: Sequence[Dict[str, Any]]) -> str:
    if not items:
        return ""
    headers = collect_headers(items)
    lines = [",".join(_escape_csv_value(header) for header in headers)]
    for item in items:
        lines.append(",".join(_escape_csv_value(item.get(header)) for header in headers))
    return "\n".join(lines)


def _xlsx_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        value = json.dumps(value, ensure_ascii=False)
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    if isinstance(value, (bool, int, float)):
        return value
    return ILLEGAL_CHARACTERS_RE.sub("", str(value))


def to_xlsx(items: Sequence[Dict[str, Any]]) -> bytes:
    headers = collect_headers(items)
    wb = Workbook(write_only=True)
    ws = wb.create_sheet(title="Data")
    ws.append(headers)
    for item in items:
        ws.append([_xlsx_value(item.get(header)) for header in headers])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def normalize_format(output_format: str | None) -> str:
    fmt = str(output_format or "csv").strip().lower()
    if fmt not in SUPPORTED_FORMATS:
        raise ValidationError(
            code="unsupported_format",
            message_key="unsupported_format",
            details=f"Unsupported format: {output_format}",
            payload={"supported_formats": list(SUPPORTED_FORMATS)},
        )
    return fmt


def export_filename(job_name: str, output_format: str, now: datetime | None = None) -> str:
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    timestamp = moment.strftime("%Y-%m-%dT%H-%M-%S")
    safe_name = str(job_name or "export").strip().replace("/", "_").replace("\\", "_") or "export"
    return f"{safe_name}_{timestamp}.{output_format.lower()}"


def export_data(
    items: Sequence[Dict[str, Any]],
    job_name: str,
    output_format: str = "csv",
    output_dir: str | None = None,
    *,
    now: datetime | None = None,
) -> ExportResult:
    if not items:
        raise ValidationError(code="no_data_to_export", message_key="no_data_to_export")
    fmt = normalize_format(output_format)
    target_dir = os.path.abspath(output_dir or os.getcwd())
    os.makedirs(target_dir, exist_ok=True)

    file_name = export_filename(job_name, fmt, now)
    file_path = os.path.join(target_dir, file_name)
    if fmt == "csv":
        with open(file_path, "w", encoding="utf-8", newline="") as handle:
            handle.write(to_csv(items))
    else:
        with open(file_path, "wb") as handle:
            handle.write(to_xlsx(items))

    size_bytes = os.path.getsize(file_path)
    logger.info(
        "export_written",
        extra={"job_name": job_name, "format": fmt, "record_count": len(items), "size_bytes": size_bytes},
    )
    return ExportResult(
        file_path=file_path,
        file_name=file_name,
        record_count=len(items),
        mime_type=MIME_TYPES[fmt],
        size_bytes=size_bytes,
    )
