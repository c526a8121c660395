from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, session

from ido_extractor.application.auth_service import AuthService
from ido_extractor.application.global_config_service import global_config_service
from ido_extractor.db import get_db
from ido_extractor.domain.contracts import AuthLoginInput, AuthRegisterInput, AuthUser
from ido_extractor.errors import AppError
from ido_extractor.errors import PermissionError as AppPermissionError
from ido_extractor.errors import NotFoundError
from ido_extractor.ido.registry import IDO_SESSION_KEY, connection_registry
from ido_extractor.policies import is_admin_role, normalize_role


auth_bp = Blueprint("auth", __name__)
_auth_service = AuthService()

PUBLIC_PATHS = {
    "/api/auth/login",
    "/api/auth/register",
    "/api/auth/logout",
    "/api/config/public",
    "/health",
    "/metrics",
}
MAINTENANCE_EXEMPT_PREFIXES = ("/api/auth/", "/api/config/public", "/api/admin/")


class MaintenanceError(AppError):
    default_code = "maintenance_mode"
    default_message_key = "maintenance_mode"
    default_http_status = 503
    default_critical = False


def current_user_id() -> int:
    raw = session.get("user_id")
    try:
        user_id = int(raw)
    except (TypeError, ValueError):
        user_id = 0
    if user_id <= 0:
        raise AppPermissionError(
            code="auth_required",
            message_key="auth_required",
            http_status=401,
            critical=False,
        )
    return user_id


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _require_login():
        if not app.config.get("AUTH_ENABLED", True):
            return None

        path = request.path or "/"
        if path in PUBLIC_PATHS or not path.startswith("/api/"):
            return None
        if session.get("user_id"):
            return None

        raise AppPermissionError(
            code="auth_required",
            message_key="auth_required",
            http_status=401,
            critical=False,
        )

    @app.before_request
    def _maintenance_guard():
        path = request.path or "/"
        if not path.startswith("/api/") or path.startswith(MAINTENANCE_EXEMPT_PREFIXES):
            return None
        if is_admin_role(session.get("user_role")):
            return None
        if global_config_service().is_maintenance_mode(get_db()):
            raise MaintenanceError()
        return None


def _end_session() -> None:
    # An IDO session never outlives the app session that opened it.
    connection_registry().remove(session.get(IDO_SESSION_KEY))
    session.clear()


def _start_session(user: AuthUser) -> None:
    _end_session()
    session["user_id"] = int(user.id)
    session["user_email"] = user.email
    session["display_name"] = user.display_name
    session["user_role"] = normalize_role(user.role, default="user")


def _user_payload(user: AuthUser) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "display_name": user.display_name,
        "role": normalize_role(user.role, default="user"),
    }


@auth_bp.route("/api/auth/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    db = get_db()
    user = _auth_service.login(
        db,
        AuthLoginInput(
            email=str(payload.get("email") or ""),
            password=str(payload.get("password") or ""),
        ),
    )
    db.commit()
    _start_session(user)
    current_app.logger.info("user_logged_in", extra={"user_id": user.id})
    return jsonify({"user": _user_payload(user)})


@auth_bp.route("/api/auth/register", methods=["POST"])
def register():
    payload = request.get_json(silent=True) or {}
    db = get_db()
    user = _auth_service.register(
        db,
        AuthRegisterInput(
            email=str(payload.get("email") or ""),
            password=str(payload.get("password") or ""),
            full_name=(str(payload.get("full_name") or "").strip() or None),
            company=(str(payload.get("company") or "").strip() or None),
        ),
        registration_enabled=global_config_service().is_registration_enabled(db),
    )
    db.commit()
    _start_session(user)
    return jsonify({"user": _user_payload(user)}), 201


@auth_bp.route("/api/auth/logout", methods=["POST"])
def logout():
    _end_session()
    return jsonify({"status": "logged_out"})


@auth_bp.route("/api/auth/me", methods=["GET"])
def me():
    user_id = current_user_id()
    payload = _auth_service.current_user_payload(get_db(), user_id)
    if payload is None:
        _end_session()
        raise NotFoundError(code="user_not_found", message_key="user_not_found")
    session["user_role"] = payload["role"]
    return jsonify({"user": payload})
