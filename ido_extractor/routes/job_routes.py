from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ido_extractor.application.job_service import JobService, available_columns
from ido_extractor.auth import current_user_id
from ido_extractor.db import get_db
from ido_extractor.domain.contracts import Job
from ido_extractor.routes.connection_routes import active_client
from ido_extractor.ui_strings import success_message


job_bp = Blueprint("jobs", __name__)
_job_service = JobService()


def _job_payload(job: Job, owner_id: int) -> dict:
    payload = job.to_payload()
    payload["owned"] = job.user_id == owner_id
    return payload


def _filter_option_kwargs() -> dict:
    return {"distinct_record_cap": int(current_app.config.get("IDO_DISTINCT_RECORD_CAP", 1000) or 1000)}


@job_bp.route("/api/jobs", methods=["GET", "POST"])
def jobs_api():
    owner_id = current_user_id()
    db = get_db()
    if request.method == "GET":
        return jsonify({"items": [_job_payload(job, owner_id) for job in _job_service.list_jobs(db, owner_id)]})

    job = _job_service.save_job(db, owner_id, request.get_json(silent=True) or {})
    db.commit()
    return jsonify({"job": _job_payload(job, owner_id), "message": success_message("job_saved")}), 201


@job_bp.route("/api/jobs/default", methods=["POST"])
def job_seed_default_api():
    owner_id = current_user_id()
    db = get_db()
    created = _job_service.ensure_default_job(db, owner_id)
    db.commit()
    return jsonify({"created": created}), 201 if created else 200


@job_bp.route("/api/jobs/<string:job_name>", methods=["GET", "DELETE"])
def job_detail_api(job_name: str):
    owner_id = current_user_id()
    db = get_db()
    if request.method == "DELETE":
        _job_service.delete_job(db, owner_id, job_name)
        db.commit()
        return jsonify({"message": success_message("job_deleted")})
    return jsonify({"job": _job_payload(_job_service.get_job(db, owner_id, job_name), owner_id)})


@job_bp.route("/api/jobs/<string:job_name>/columns", methods=["GET"])
def job_columns_api(job_name: str):
    job = _job_service.get_job(get_db(), current_user_id(), job_name)
    return jsonify({"job_name": job.job_name, "columns": available_columns(job)})


@job_bp.route("/api/jobs/<string:job_name>/filter-options", methods=["GET"])
def job_filter_options_api(job_name: str):
    owner_id = current_user_id()
    client = active_client()
    return jsonify(_job_service.filter_options(get_db(), owner_id, job_name, client, **_filter_option_kwargs()))


@job_bp.route("/api/jobs/<string:job_name>/filter-options/refresh", methods=["POST"])
def job_filter_options_refresh_api(job_name: str):
    owner_id = current_user_id()
    client = active_client()
    return jsonify(
        _job_service.refresh_filter_options(get_db(), owner_id, job_name, client, **_filter_option_kwargs())
    )
