from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List

from ido_extractor.application.export_data_service import ExportDataService
from ido_extractor.application.global_config_service import GlobalConfigService, global_config_service
from ido_extractor.application.job_service import JobService, available_columns
from ido_extractor.application.settings_service import SettingsService
from ido_extractor.domain.contracts import ColumnPatch, JobRunInput
from ido_extractor.errors import AppError, NotFoundError, PermissionError as AppPermissionError
from ido_extractor.errors import IntegrationError, ValidationError
from ido_extractor.export import apply_column_patches, export_data, normalize_format
from ido_extractor.filters import build_filters_from_values
from ido_extractor.ido.client import IdoClient, IdoError
from ido_extractor.infrastructure.repositories.execution_repository import ExecutionHistoryRepository
from ido_extractor.observability import observe_job_execution


logger = logging.getLogger("ido_extractor.executions")

OUTPUT_DIR_SETTING = "output_dir"
NO_DATA_MESSAGE = "No data received from API"


class RunLog:
    def __init__(self) -> None:
        self.entries: List[Dict[str, str]] = []

    def add(self, entry_type: str, message: str) -> None:
        self.entries.append(
            {
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                "type": entry_type,
                "message": message,
            }
        )


def column_patches_from_payload(raw: Any) -> List[ColumnPatch]:
    if raw in (None, ""):
        return []
    if not isinstance(raw, list):
        raise ValidationError(
            code="invalid_payload",
            message_key="invalid_payload",
            details="column_patches must be a list.",
            payload={"field": "column_patches"},
        )
    patches = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError(
                code="invalid_payload",
                message_key="invalid_payload",
                payload={"field": "column_patches"},
            )
        patches.append(
            ColumnPatch(
                name=str(item.get("name") or "").strip(),
                value="" if item.get("value") is None else str(item.get("value")),
                mode=str(item.get("mode") or "add").strip().lower(),
            )
        )
    return patches


def _failure_message(exc: Exception) -> str:
    if isinstance(exc, AppError):
        return exc.details or exc.user_message()
    return str(exc) or exc.__class__.__name__


class ExecutionService:
    def __init__(
        self,
        job_service: JobService | None = None,
        settings_service: SettingsService | None = None,
        export_data_service: ExportDataService | None = None,
        global_config: GlobalConfigService | None = None,
    ) -> None:
        self.global_config = global_config or global_config_service()
        self.job_service = job_service or JobService(self.global_config)
        self.settings_service = settings_service or SettingsService()
        self.export_data_service = export_data_service or ExportDataService()

    def run_job(self, db, owner_id: int, client: IdoClient, run_input: JobRunInput, *, default_output_dir: str) -> Dict[str, Any]:
        history = ExecutionHistoryRepository(owner_id=owner_id)
        log = RunLog()
        filters_applied = {
            key: str(value).strip()
            for key, value in (run_input.filter_values or {}).items()
            if str(value or "").strip()
        }

        job = self.job_service.get_job(db, owner_id, run_input.job_name)
        log.add("info", f"Starting job: {job.job_name}")

        try:
            output_format = normalize_format(run_input.output_format or job.output_format)
            filter_expression = build_filters_from_values(job.filterable_fields, filters_applied)
        except AppError as exc:
            log.add("error", _failure_message(exc))
            history.record_failure(db, job.job_name, filters_applied, _failure_message(exc))
            db.commit()
            observe_job_execution("error")
            exc.payload.setdefault("log", log.entries)
            raise

        if filter_expression:
            log.add("info", f"Applied filters: {filter_expression}")
        else:
            log.add("info", "No filters applied - fetching all records")

        execution_id = history.start(db, job.job_name, filters_applied)
        db.commit()
        started = time.perf_counter()

        def _elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        def _record_failure(message: str) -> None:
            log.add("error", f"Export failed: {message}")
            db.rollback()
            history.finish(
                db,
                execution_id,
                status="error",
                error_message=message,
                execution_time_ms=_elapsed_ms(),
            )
            db.commit()
            observe_job_execution("error")

        try:
            record_cap = min(job.record_cap, self.global_config.get_max_record_cap(db))
            additional = {"filter": filter_expression} if filter_expression else None
            log.add("info", "Executing API request...")
            payload = client.load_collection(job.ido_name, job.properties, record_cap, additional)

            items = payload.get("Items")
            if not isinstance(items, list):
                raise IntegrationError(
                    code="ido_unavailable",
                    message_key="ido_unavailable",
                    http_status=502,
                    critical=False,
                    details=NO_DATA_MESSAGE,
                )
            items = [item for item in items if isinstance(item, dict)]
            if not items:
                log.add("warning", "No records found matching the criteria")
                history.finish(
                    db,
                    execution_id,
                    status="success",
                    record_count=0,
                    execution_time_ms=_elapsed_ms(),
                )
                db.commit()
                observe_job_execution("no_data")
                logger.info("job_no_data", extra={"job_name": job.job_name, "execution_id": execution_id})
                return {
                    "status": "no_data",
                    "execution_id": execution_id,
                    "job_name": job.job_name,
                    "record_count": 0,
                    "filter": filter_expression,
                    "log": log.entries,
                }

            log.add("success", f"Retrieved {len(items)} records from API")
            patched = apply_column_patches(items, run_input.column_patches)
            for patch in run_input.column_patches:
                if not str(patch.name or "").strip():
                    continue
                verb = "Modified column" if patch.mode == "modify" else "Added custom column"
                log.add("info", f"{verb}: {patch.name.strip()}")

            output_dir = self.resolve_output_dir(db, owner_id, run_input.output_dir, default_output_dir)
            log.add("info", "Exporting data...")
            result = export_data(patched, job.job_name, output_format, output_dir)
            log.add("success", f"Successfully exported {result.record_count} records")
            log.add("info", f"File saved: {result.file_path}")

            elapsed_ms = _elapsed_ms()
            history.finish(
                db,
                execution_id,
                status="success",
                record_count=result.record_count,
                file_path=result.file_path,
                execution_time_ms=elapsed_ms,
            )
            self.settings_service.save_setting(db, owner_id, OUTPUT_DIR_SETTING, output_dir)

            snapshot_id = None
            if run_input.store_snapshot:
                snapshot_id = self.export_data_service.snapshot(
                    db,
                    owner_id,
                    job_name=job.job_name,
                    items=patched,
                    metadata={
                        "filter": filter_expression,
                        "filters_applied": filters_applied,
                        "columns": available_columns(job),
                        "format": output_format,
                        "file_name": result.file_name,
                        "execution_id": execution_id,
                    },
                    file_size_bytes=result.size_bytes,
                )
            db.commit()
        except (AppError, IdoError, OSError) as exc:
            message = _failure_message(exc)
            _record_failure(message)
            logger.warning(
                "job_failed",
                extra={"job_name": job.job_name, "execution_id": execution_id, "error": message},
            )
            if isinstance(exc, AppError):
                exc.payload.setdefault("log", log.entries)
                exc.payload.setdefault("execution_id", execution_id)
            raise
        except Exception as exc:
            _record_failure(_failure_message(exc))
            logger.exception("job_crashed", extra={"job_name": job.job_name, "execution_id": execution_id})
            raise

        observe_job_execution("success", result.record_count)
        logger.info(
            "job_completed",
            extra={
                "job_name": job.job_name,
                "execution_id": execution_id,
                "record_count": result.record_count,
                "execution_time_ms": elapsed_ms,
            },
        )
        return {
            "status": "success",
            "execution_id": execution_id,
            "job_name": job.job_name,
            "record_count": result.record_count,
            "file_path": result.file_path,
            "file_name": result.file_name,
            "mime_type": result.mime_type,
            "size_bytes": result.size_bytes,
            "execution_time_ms": elapsed_ms,
            "filter": filter_expression,
            "snapshot_id": snapshot_id,
            "log": log.entries,
        }

    def resolve_output_dir(self, db, owner_id: int, requested: str | None, default_output_dir: str) -> str:
        """Exports always land under the owner's own directory below ``default_output_dir``."""
        base = os.path.abspath(os.path.join(default_output_dir, f"user_{int(owner_id)}"))
        candidate = str(requested or "").strip() or self.settings_service.get_setting(
            db, owner_id, OUTPUT_DIR_SETTING, None
        )
        if not candidate:
            return base
        resolved = os.path.abspath(os.path.join(base, str(candidate)))
        if os.path.commonpath([base, resolved]) != base:
            raise AppPermissionError(
                code="permission_denied",
                message_key="permission_denied",
                details="Output directory must stay inside the export directory.",
            )
        return resolved

    def list_history(self, db, owner_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        repository = ExecutionHistoryRepository(owner_id=owner_id)
        bounded = max(1, min(500, int(limit or 50)))
        return [
            {
                "id": int(row["id"]),
                "job_name": row["job_name"],
                "filters_applied": repository.load_json(row["filters_applied"], {}),
                "record_count": int(row["record_count"] or 0),
                "file_path": row["file_path"],
                "status": row["status"],
                "error_message": row["error_message"],
                "execution_time_ms": row["execution_time_ms"],
                "executed_at": repository.timestamp(row["executed_at"]),
            }
            for row in repository.list(db, bounded)
        ]

    def resolve_download(self, db, owner_id: int, execution_id: int, default_output_dir: str) -> str:
        row = ExecutionHistoryRepository(owner_id=owner_id).get(db, execution_id)
        if not row or not row["file_path"]:
            raise NotFoundError(code="export_not_found", message_key="export_not_found")
        base = os.path.abspath(os.path.join(default_output_dir, f"user_{int(owner_id)}"))
        path = os.path.abspath(row["file_path"])
        if os.path.commonpath([base, path]) != base:
            raise AppPermissionError(code="permission_denied", message_key="permission_denied")
        if not os.path.isfile(path):
            raise NotFoundError(code="export_not_found", message_key="export_not_found")
        return path
