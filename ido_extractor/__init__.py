import os

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from ido_extractor.config import Config
from ido_extractor.db import close_db, init_db
from ido_extractor.db_migrations import register_db_cli
from ido_extractor.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
    prometheus_metrics_text,
)
from ido_extractor.security import apply_security_headers, enforce_rate_limit


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_json_logging(app)

    _ensure_directories(app)
    _register_error_handlers(app)
    _register_security(app)
    _register_auth(app)
    _register_blueprints(app)
    _register_health(app)
    register_db_cli(app)
    _register_jobs_cli(app)
    _maybe_init_schema(app)
    _reset_global_config_cache()

    app.teardown_appcontext(close_db)
    return app


def _ensure_directories(app: Flask) -> None:
    for key in ("DATABASE_DIR", "EXPORT_DIR", "IDO_CACHE_PATH"):
        directory = app.config.get(key)
        if directory:
            os.makedirs(directory, exist_ok=True)


def _maybe_init_schema(app: Flask) -> None:
    auto_init = bool(app.config.get("DB_AUTO_INIT", False))
    if app.testing:
        # Tests stay self-contained without an external migration step.
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("DB_AUTO_INIT ignored outside development.")
        return

    with app.app_context():
        init_db()


def _reset_global_config_cache() -> None:
    from ido_extractor.application.global_config_service import global_config_service

    global_config_service().clear_cache()


def _register_blueprints(app: Flask) -> None:
    from ido_extractor.routes.admin_routes import admin_bp
    from ido_extractor.routes.configuration_routes import configuration_bp
    from ido_extractor.routes.connection_routes import connection_bp
    from ido_extractor.routes.execution_routes import execution_bp
    from ido_extractor.routes.export_routes import export_bp
    from ido_extractor.routes.global_config_routes import global_config_bp
    from ido_extractor.routes.job_routes import job_bp
    from ido_extractor.routes.settings_routes import settings_bp

    app.register_blueprint(configuration_bp)
    app.register_blueprint(connection_bp)
    app.register_blueprint(job_bp)
    app.register_blueprint(execution_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(global_config_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(export_bp)


def _register_auth(app: Flask) -> None:
    from ido_extractor.auth import register_auth

    register_auth(app)


def _register_jobs_cli(app: Flask) -> None:
    from ido_extractor.cli import register_jobs_cli

    register_jobs_cli(app)


def _register_error_handlers(app: Flask) -> None:
    from ido_extractor.errors import AppError, IntegrationError, SystemError, classify_ido_failure
    from ido_extractor.ido.client import IdoError

    @app.before_request
    def _ensure_request_id() -> None:
        ensure_request_id()
        mark_request_start()

    @app.after_request
    def _append_request_id(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        response = observe_response(response)
        return apply_security_headers(response)

    def _log_error(error: AppError, request_id: str) -> None:
        log_method = app.logger.error if error.critical else app.logger.warning
        log_method(
            "application_error",
            extra={
                "request_id": request_id,
                "error_code": error.code,
                "http_status": error.http_status,
                "message_key": error.message_key,
                "details": error.details,
                "request_path": request.path,
                "http_method": request.method,
            },
            exc_info=error.critical,
        )

    @app.errorhandler(AppError)
    def _handle_app_error(exc: AppError):
        request_id = ensure_request_id()
        _log_error(exc, request_id)
        return jsonify(exc.to_response_payload(request_id)), exc.http_status

    @app.errorhandler(IdoError)
    def _handle_ido_error(exc: IdoError):
        request_id = ensure_request_id()
        code, message_key, http_status = classify_ido_failure(str(exc), exc.status_code)
        mapped = IntegrationError(
            code=code,
            message_key=message_key,
            http_status=http_status,
            critical=False,
            details=str(exc),
        )
        _log_error(mapped, request_id)
        return jsonify(mapped.to_response_payload(request_id)), mapped.http_status

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc

        request_id = ensure_request_id()
        mapped = SystemError(
            code="unexpected_error",
            message_key="unexpected_error",
            http_status=500,
            critical=True,
            details=str(exc),
        )
        app.logger.exception(
            "unexpected_exception",
            extra={
                "request_id": request_id,
                "error_code": mapped.code,
                "request_path": request.path,
                "http_method": request.method,
            },
        )
        return jsonify(mapped.to_response_payload(request_id)), mapped.http_status


def _register_security(app: Flask) -> None:
    @app.before_request
    def _rate_limit_guard():
        return enforce_rate_limit()


def _active_connections(app: Flask) -> int:
    from ido_extractor.ido.registry import connection_registry

    ttl_seconds = int(app.config.get("IDO_CONNECTION_TTL_SECONDS", 3600) or 3600)
    return connection_registry().active_count(ttl_seconds=ttl_seconds)


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        from ido_extractor.db import get_db

        db_path = app.config.get("DB_PATH") or "unknown"
        backend = "postgres" if str(db_path).startswith("postgres") else "sqlite"
        payload = {
            "status": "ok",
            "db": backend,
            "env": app.config.get("ENV", "unknown"),
            "metrics": {
                "http": metrics_snapshot(),
            },
            "ido": {"active_connections": _active_connections(app)},
        }
        try:
            get_db().execute("SELECT 1").fetchone()
        except Exception:
            app.logger.warning("health_db_unreachable", exc_info=True)
            payload["status"] = "degraded"
        return payload, 200

    @app.route("/metrics")
    def metrics():
        return Response(
            prometheus_metrics_text(active_connections=_active_connections(app)),
            mimetype="text/plain; version=0.0.4",
        )
