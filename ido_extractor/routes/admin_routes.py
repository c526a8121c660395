from __future__ import annotations

from flask import Blueprint, jsonify, request

from ido_extractor.application.admin_service import AdminService
from ido_extractor.auth import current_user_id
from ido_extractor.db import get_db
from ido_extractor.errors import ValidationError
from ido_extractor.policies import ADMIN_READ_ROLES, ADMIN_WRITE_ROLES, require_roles
from ido_extractor.ui_strings import success_message


admin_bp = Blueprint("admin", __name__)
_admin_service = AdminService()


@admin_bp.route("/api/admin/users", methods=["GET"])
def admin_users_api():
    current_user_id()
    require_roles(*ADMIN_READ_ROLES)
    return jsonify({"items": _admin_service.list_profiles(get_db())})


@admin_bp.route("/api/admin/users/<int:user_id>", methods=["PATCH"])
def admin_user_update_api(user_id: int):
    actor_id = current_user_id()
    require_roles(*ADMIN_WRITE_ROLES)
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload.get("is_active"), bool):
        raise ValidationError(code="invalid_payload", message_key="invalid_payload", payload={"field": "is_active"})
    db = get_db()
    _admin_service.set_user_active(db, actor_id, user_id, payload["is_active"])
    db.commit()
    return jsonify({"user_id": user_id, "is_active": payload["is_active"], "message": success_message("user_status_updated")})


@admin_bp.route("/api/admin/admins", methods=["GET", "POST"])
def admin_admins_api():
    actor_id = current_user_id()
    if request.method == "GET":
        require_roles(*ADMIN_READ_ROLES)
        return jsonify({"items": _admin_service.list_admins(get_db())})

    require_roles("super_admin")
    payload = request.get_json(silent=True) or {}
    db = get_db()
    result = _admin_service.add_admin(db, actor_id, str(payload.get("email") or ""), str(payload.get("role") or ""))
    db.commit()
    return jsonify({**result, "message": success_message("admin_added")}), 201


@admin_bp.route("/api/admin/admins/<int:user_id>", methods=["DELETE"])
def admin_admin_delete_api(user_id: int):
    actor_id = current_user_id()
    require_roles("super_admin")
    db = get_db()
    _admin_service.remove_admin(db, actor_id, user_id)
    db.commit()
    return jsonify({"message": success_message("admin_removed")})
