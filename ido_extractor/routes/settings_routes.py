from __future__ import annotations

from flask import Blueprint, jsonify, request

from ido_extractor.application.settings_service import SettingsService
from ido_extractor.auth import current_user_id
from ido_extractor.db import get_db
from ido_extractor.errors import NotFoundError, ValidationError
from ido_extractor.ui_strings import success_message


settings_bp = Blueprint("settings", __name__)
_settings_service = SettingsService()
_MISSING = object()


@settings_bp.route("/api/settings", methods=["GET"])
def settings_api():
    return jsonify({"settings": _settings_service.get_settings(get_db(), current_user_id())})


@settings_bp.route("/api/settings/<string:key>", methods=["GET", "PUT"])
def setting_detail_api(key: str):
    owner_id = current_user_id()
    db = get_db()
    if request.method == "GET":
        value = _settings_service.get_setting(db, owner_id, key, _MISSING)
        if value is _MISSING:
            raise NotFoundError(code="not_found", message_key="unexpected_error", payload={"key": key})
        return jsonify({"key": key, "value": value})

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or "value" not in payload:
        raise ValidationError(code="invalid_payload", message_key="invalid_payload", payload={"field": "value"})
    _settings_service.save_setting(db, owner_id, key, payload["value"])
    db.commit()
    return jsonify({"key": key, "value": payload["value"], "message": success_message("setting_saved")})
