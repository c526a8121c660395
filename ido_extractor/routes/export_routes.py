from __future__ import annotations

from flask import Blueprint, jsonify, request

from ido_extractor.application.export_data_service import ExportDataService
from ido_extractor.auth import current_user_id
from ido_extractor.db import get_db


export_bp = Blueprint("exports", __name__)
_export_data_service = ExportDataService()


@export_bp.route("/api/exports", methods=["GET"])
def exports_api():
    return jsonify({"items": _export_data_service.list_exports(get_db(), current_user_id())})


@export_bp.route("/api/exports/<int:export_id>", methods=["GET", "DELETE"])
def export_detail_api(export_id: int):
    owner_id = current_user_id()
    db = get_db()
    if request.method == "DELETE":
        _export_data_service.delete_export(db, owner_id, export_id)
        db.commit()
        return jsonify({"status": "deleted", "id": export_id})
    return jsonify(_export_data_service.get_export(db, owner_id, export_id))


@export_bp.route("/api/exports/<int:export_id>/share", methods=["POST"])
def export_share_api(export_id: int):
    owner_id = current_user_id()
    payload = request.get_json(silent=True) or {}
    try:
        expires_in_hours = int(payload.get("expires_in_hours") or 0)
    except (TypeError, ValueError):
        expires_in_hours = 0
    db = get_db()
    is_shared = bool(payload.get("is_shared", True))
    _export_data_service.share_export(
        db,
        owner_id,
        export_id,
        is_shared=is_shared,
        expires_in_hours=expires_in_hours or None,
    )
    db.commit()
    return jsonify({"id": export_id, "is_shared": is_shared})
