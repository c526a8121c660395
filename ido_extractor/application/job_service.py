from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Mapping

from ido_extractor.application.global_config_service import GlobalConfigService, global_config_service
from ido_extractor.domain.contracts import FilterableField, Job
from ido_extractor.domain.defaults import DEFAULT_JOB
from ido_extractor.errors import NotFoundError, ValidationError
from ido_extractor.filters import FIELD_TYPES, INPUT_TYPES, normalize_operator
from ido_extractor.ido.client import IdoClient, IdoError
from ido_extractor.infrastructure.repositories.base import BaseRepository
from ido_extractor.infrastructure.repositories.job_repository import JobRepository


logger = logging.getLogger("ido_extractor.jobs")

_MAX_JOB_NAME_LENGTH = 100


def _invalid_job(reason: str, field_name: str | None = None) -> ValidationError:
    payload: Dict[str, Any] = {"reason": reason}
    if field_name:
        payload["field"] = field_name
    return ValidationError(
        code="invalid_job_definition",
        message_key="invalid_job_definition",
        details=reason,
        payload=payload,
    )


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def parse_filterable_field(raw: Mapping[str, Any]) -> FilterableField:
    if not isinstance(raw, Mapping):
        raise _invalid_job("Each filterable field must be an object.")
    name = str(raw.get("name") or "").strip()
    if not name:
        raise _invalid_job("Filterable field name is required.")
    field_type = str(raw.get("type") or "string").strip().lower()
    if field_type not in FIELD_TYPES:
        raise _invalid_job(f"Unsupported field type {field_type!r}.", name)
    operator = normalize_operator(raw.get("operator") or "=")
    if operator is None:
        raise _invalid_job(f"Unsupported operator {raw.get('operator')!r}.", name)
    input_type = str(raw.get("input_type") or "text").strip().lower()
    if input_type not in INPUT_TYPES:
        raise _invalid_job(f"Unsupported input type {input_type!r}.", name)
    cache_duration = None
    if raw.get("cache_duration") not in (None, ""):
        cache_duration = _positive_int(raw.get("cache_duration"))
        if cache_duration is None:
            raise _invalid_job("cache_duration must be a positive integer.", name)
    return FilterableField(
        name=name,
        prompt=str(raw.get("prompt") or name).strip(),
        type=field_type,
        operator=operator,
        input_type=input_type,
        cache_duration=cache_duration,
    )


def row_to_job(row: Mapping[str, Any]) -> Job:
    query_params = BaseRepository.load_json(row.get("query_params"), {})
    fields_raw = BaseRepository.load_json(row.get("filterable_fields"), [])
    fields = []
    for item in fields_raw if isinstance(fields_raw, list) else []:
        try:
            fields.append(parse_filterable_field(item))
        except ValidationError:
            logger.warning("job_field_skipped", extra={"job_name": row.get("job_name"), "field": item})
    return Job(
        id=int(row["id"]) if row.get("id") is not None else None,
        user_id=int(row["user_id"]) if row.get("user_id") is not None else None,
        job_name=str(row["job_name"]),
        ido_name=str(row["ido_name"]),
        properties=str(query_params.get("properties") or ""),
        record_cap=_positive_int(query_params.get("recordCap")) or 100,
        output_format=str(row.get("output_format") or "csv"),
        filterable_fields=fields,
        is_template=bool(row.get("is_template")),
        is_shared=bool(row.get("is_shared")),
        created_at=BaseRepository.timestamp(row.get("created_at")),
        updated_at=BaseRepository.timestamp(row.get("updated_at")),
    )


def available_columns(job: Job) -> List[str]:
    return [name.strip() for name in job.properties.split(",") if name.strip()]


class JobService:
    def __init__(self, global_config: GlobalConfigService | None = None) -> None:
        self.global_config = global_config or global_config_service()

    def normalize_payload(self, db, payload: Mapping[str, Any]) -> Dict[str, Any]:
        job_name = str(payload.get("job_name") or "").strip()
        if not job_name or len(job_name) > _MAX_JOB_NAME_LENGTH:
            raise _invalid_job("job_name is required.", "job_name")
        ido_name = str(payload.get("ido_name") or "").strip()
        if not ido_name:
            raise _invalid_job("ido_name is required.", "ido_name")

        query_params = payload.get("query_params") or {}
        if not isinstance(query_params, Mapping):
            raise _invalid_job("query_params must be an object.", "query_params")
        properties = ",".join(
            name.strip() for name in str(query_params.get("properties") or "").split(",") if name.strip()
        )
        if not properties:
            raise _invalid_job("query_params.properties is required.", "properties")
        record_cap = _positive_int(query_params.get("recordCap", 100))
        if record_cap is None:
            raise _invalid_job("query_params.recordCap must be a positive integer.", "recordCap")
        record_cap = min(record_cap, self.global_config.get_max_record_cap(db))

        output_format = str(payload.get("output_format") or "csv").strip().lower()
        if output_format not in self.global_config.get_supported_formats(db):
            raise ValidationError(
                code="unsupported_format",
                message_key="unsupported_format",
                details=f"Unsupported format: {output_format}",
            )

        raw_fields = payload.get("filterable_fields") or []
        if not isinstance(raw_fields, list):
            raise _invalid_job("filterable_fields must be a list.", "filterable_fields")
        fields = [parse_filterable_field(item) for item in raw_fields]
        names = [item.name for item in fields]
        if len(set(names)) != len(names):
            raise _invalid_job("Filterable field names must be unique.", "filterable_fields")

        return {
            "job_name": job_name,
            "ido_name": ido_name,
            "query_params": {"properties": properties, "recordCap": record_cap},
            "output_format": output_format,
            "filterable_fields": [item.to_payload() for item in fields],
            "is_template": bool(payload.get("is_template", False)),
            "is_shared": bool(payload.get("is_shared", False)),
        }

    def list_jobs(self, db, owner_id: int) -> List[Job]:
        return [row_to_job(row) for row in JobRepository(owner_id=owner_id).list_visible(db)]

    def get_job(self, db, owner_id: int, job_name: str) -> Job:
        repository = JobRepository(owner_id=owner_id)
        row = repository.get_own(db, job_name) or repository.get_shared_template(db, job_name)
        if not row:
            raise NotFoundError(code="job_not_found", message_key="job_not_found", payload={"job_name": job_name})
        return row_to_job(row)

    def save_job(self, db, owner_id: int, payload: Mapping[str, Any]) -> Job:
        normalized = self.normalize_payload(db, payload)
        repository = JobRepository(owner_id=owner_id)
        repository.upsert(db, normalized)
        logger.info("job_saved", extra={"owner_id": owner_id, "job_name": normalized["job_name"]})
        return row_to_job(repository.get_own(db, normalized["job_name"]))

    def delete_job(self, db, owner_id: int, job_name: str) -> None:
        if not JobRepository(owner_id=owner_id).delete(db, job_name):
            raise NotFoundError(code="job_not_found", message_key="job_not_found", payload={"job_name": job_name})

    def ensure_default_job(self, db, owner_id: int) -> bool:
        repository = JobRepository(owner_id=owner_id)
        if repository.get_own(db, DEFAULT_JOB["job_name"]):
            return False
        repository.upsert(db, copy.deepcopy(DEFAULT_JOB))
        return True

    def filter_options(
        self,
        db,
        owner_id: int,
        job_name: str,
        client: IdoClient,
        *,
        distinct_record_cap: int = 1000,
        default_cache_duration: int | None = None,
    ) -> Dict[str, Any]:
        job = self.get_job(db, owner_id, job_name)
        if default_cache_duration is None:
            default_cache_duration = int(self.global_config.get_config(db, "cache_duration", 300) or 300)

        options: Dict[str, List[str]] = {}
        warnings: List[Dict[str, str]] = []
        for field in job.filterable_fields:
            if field.input_type != "dropdown":
                continue
            try:
                options[field.name] = client.get_distinct_values(
                    job.ido_name,
                    field.name,
                    distinct_record_cap,
                    field.cache_duration or default_cache_duration,
                )
            except IdoError as exc:
                logger.warning(
                    "filter_options_failed",
                    extra={"job_name": job.job_name, "field": field.name, "error": str(exc)},
                )
                options[field.name] = []
                warnings.append({"field": field.name, "message": str(exc)})
        return {"job_name": job.job_name, "options": options, "warnings": warnings}

    def refresh_filter_options(self, db, owner_id: int, job_name: str, client: IdoClient, **kwargs) -> Dict[str, Any]:
        job = self.get_job(db, owner_id, job_name)
        client.clear_cache_for_ido(job.ido_name)
        return self.filter_options(db, owner_id, job_name, client, **kwargs)
