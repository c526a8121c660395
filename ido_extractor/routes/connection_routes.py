from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, session

from ido_extractor.application.connection_service import ConnectionService
from ido_extractor.auth import current_user_id
from ido_extractor.db import get_db
from ido_extractor.ido.client import IdoClient
from ido_extractor.ido.registry import IDO_SESSION_KEY
from ido_extractor.ui_strings import success_message


connection_bp = Blueprint("connection", __name__)

SESSION_KEY = IDO_SESSION_KEY


def connection_service() -> ConnectionService:
    return ConnectionService.from_config(current_app.config)


def active_client() -> IdoClient:
    """Client of the caller's live IDO session; 409 ``ido_not_connected`` when there is none."""
    return connection_service().current_client(session.get(SESSION_KEY), current_user_id())


@connection_bp.route("/api/connection/connect", methods=["POST"])
def connect():
    owner_id = current_user_id()
    payload = request.get_json(silent=True) or {}
    service = connection_service()
    service.disconnect(session.pop(SESSION_KEY, None))
    result = service.connect(
        get_db(),
        owner_id,
        str(payload.get("username") or ""),
        str(payload.get("encryption_password") or ""),
    )
    session[SESSION_KEY] = result.pop("connection_id")
    return jsonify({"message": success_message("connected"), "connected": True, **result})


@connection_bp.route("/api/connection/status", methods=["GET"])
def status():
    return jsonify(connection_service().status(session.get(SESSION_KEY), current_user_id()))


@connection_bp.route("/api/connection/test", methods=["POST"])
def test():
    result = connection_service().test(session.get(SESSION_KEY), current_user_id())
    return jsonify({"message": success_message("connection_ok"), **result})


@connection_bp.route("/api/connection/disconnect", methods=["POST"])
def disconnect():
    current_user_id()
    connection_service().disconnect(session.pop(SESSION_KEY, None))
    return jsonify({"message": success_message("disconnected"), "connected": False})


@connection_bp.route("/api/connection/cache/clear", methods=["POST"])
def clear_cache():
    client = active_client()
    payload = request.get_json(silent=True) or {}
    ido_name = str(payload.get("ido_name") or "").strip()
    if ido_name:
        removed = client.clear_cache_for_ido(ido_name)
    else:
        removed = None
        client.clear_cache()
    return jsonify({"message": success_message("cache_cleared"), "removed": removed})
