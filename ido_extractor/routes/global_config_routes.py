from __future__ import annotations

from flask import Blueprint, jsonify, request

from ido_extractor.application.global_config_service import global_config_service
from ido_extractor.auth import current_user_id
from ido_extractor.db import get_db
from ido_extractor.errors import ValidationError
from ido_extractor.policies import ADMIN_READ_ROLES, ADMIN_WRITE_ROLES, require_roles
from ido_extractor.ui_strings import EXECUTION_STATUSES, FRIENDLY_TERMS, success_message


global_config_bp = Blueprint("global_config", __name__)


@global_config_bp.route("/api/config/public", methods=["GET"])
def public_config_api():
    service = global_config_service()
    db = get_db()
    return jsonify(
        {
            "app": service.get_app_info(db),
            "config": service.get_public_configs(db),
            "execution_statuses": EXECUTION_STATUSES,
            "terms": FRIENDLY_TERMS,
        }
    )


@global_config_bp.route("/api/admin/config", methods=["GET"])
def admin_config_list_api():
    current_user_id()
    require_roles(*ADMIN_READ_ROLES)
    return jsonify({"items": global_config_service().list_configs(get_db())})


@global_config_bp.route("/api/admin/config/<string:key>", methods=["PUT", "DELETE"])
def admin_config_detail_api(key: str):
    actor_id = current_user_id()
    require_roles(*ADMIN_WRITE_ROLES)
    db = get_db()
    service = global_config_service()

    if request.method == "DELETE":
        service.delete_config(db, key)
        db.commit()
        return jsonify({"message": success_message("global_config_deleted")})

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or "value" not in payload:
        raise ValidationError(code="invalid_payload", message_key="invalid_payload", payload={"field": "value"})
    service.set_config(
        db,
        key,
        payload["value"],
        description=(str(payload.get("description") or "").strip() or None),
        is_public=bool(payload.get("is_public", False)),
        actor_id=actor_id,
    )
    db.commit()
    return jsonify({"key": key, "value": payload["value"], "message": success_message("global_config_saved")})
