from __future__ import annotations

import os

from flask import Blueprint, current_app, jsonify, request, send_file

from ido_extractor.application.execution_service import ExecutionService, column_patches_from_payload
from ido_extractor.auth import current_user_id
from ido_extractor.db import get_db
from ido_extractor.domain.contracts import JobRunInput
from ido_extractor.errors import ValidationError
from ido_extractor.export import MIME_TYPES
from ido_extractor.routes.connection_routes import active_client


execution_bp = Blueprint("executions", __name__)
_execution_service = ExecutionService()


def _export_root() -> str:
    return str(current_app.config["EXPORT_DIR"])


def _parse_int(value, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@execution_bp.route("/api/jobs/<string:job_name>/run", methods=["POST"])
def job_run_api(job_name: str):
    owner_id = current_user_id()
    payload = request.get_json(silent=True) or {}
    filter_values = payload.get("filters") or {}
    if not isinstance(filter_values, dict):
        raise ValidationError(code="invalid_payload", message_key="invalid_payload", payload={"field": "filters"})

    client = active_client()
    result = _execution_service.run_job(
        get_db(),
        owner_id,
        client,
        JobRunInput(
            job_name=job_name,
            filter_values={str(key): "" if value is None else str(value) for key, value in filter_values.items()},
            column_patches=column_patches_from_payload(payload.get("column_patches")),
            output_format=(str(payload.get("output_format") or "").strip() or None),
            output_dir=(str(payload.get("output_dir") or "").strip() or None),
            store_snapshot=bool(payload.get("store_snapshot", False)),
        ),
        default_output_dir=_export_root(),
    )
    return jsonify(result)


@execution_bp.route("/api/executions", methods=["GET"])
def executions_api():
    limit = _parse_int(request.args.get("limit"), default=50)
    return jsonify({"items": _execution_service.list_history(get_db(), current_user_id(), limit)})


@execution_bp.route("/api/executions/<int:execution_id>/download", methods=["GET"])
def execution_download_api(execution_id: int):
    path = _execution_service.resolve_download(get_db(), current_user_id(), execution_id, _export_root())
    extension = os.path.splitext(path)[1].lstrip(".").lower()
    return send_file(
        path,
        mimetype=MIME_TYPES.get(extension, "application/octet-stream"),
        as_attachment=True,
        download_name=os.path.basename(path),
    )
