from __future__ import annotations

from flask import Blueprint, jsonify, request

from ido_extractor.application.configuration_service import ConfigurationService
from ido_extractor.auth import current_user_id
from ido_extractor.db import get_db
from ido_extractor.errors import ValidationError
from ido_extractor.ui_strings import success_message


configuration_bp = Blueprint("configurations", __name__)
_configuration_service = ConfigurationService()


@configuration_bp.route("/api/configurations", methods=["GET", "POST"])
def configurations_api():
    owner_id = current_user_id()
    db = get_db()
    if request.method == "GET":
        return jsonify({"items": _configuration_service.list_configurations(db, owner_id)})

    payload = request.get_json(silent=True) or {}
    config_data = payload.get("config") or {}
    if not isinstance(config_data, dict):
        raise ValidationError(
            code="invalid_payload",
            message_key="invalid_payload",
            payload={"field": "config"},
        )
    config_id = _configuration_service.save_configuration(
        db,
        owner_id,
        str(payload.get("username") or ""),
        config_data,
        str(payload.get("encryption_password") or ""),
    )
    db.commit()
    return jsonify({"id": config_id, "message": success_message("configuration_saved")}), 201


@configuration_bp.route("/api/configurations/<int:config_id>", methods=["DELETE"])
def configuration_delete_api(config_id: int):
    owner_id = current_user_id()
    db = get_db()
    _configuration_service.delete_configuration(db, owner_id, config_id)
    db.commit()
    return jsonify({"message": success_message("configuration_deleted")})
