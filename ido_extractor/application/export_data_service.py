from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from ido_extractor.errors import NotFoundError
from ido_extractor.infrastructure.repositories.export_data_repository import ExportDataRepository


def _expiry_timestamp(hours: int | None) -> str | None:
    if not hours or int(hours) <= 0:
        return None
    moment = datetime.now(timezone.utc) + timedelta(hours=int(hours))
    # Same text layout as CURRENT_TIMESTAMP so SQLite compares it correctly.
    return moment.strftime("%Y-%m-%d %H:%M:%S")


class ExportDataService:
    """Stored snapshots of exported rows, shareable with other users until they expire."""

    def snapshot(
        self,
        db,
        owner_id: int,
        *,
        job_name: str,
        items: List[Dict[str, Any]],
        metadata: Dict[str, Any],
        file_size_bytes: int | None,
    ) -> int:
        return ExportDataRepository(owner_id=owner_id).create(
            db,
            job_name=job_name,
            items=items,
            metadata=metadata,
            file_size_bytes=file_size_bytes,
        )

    def list_exports(self, db, owner_id: int) -> List[Dict[str, Any]]:
        repository = ExportDataRepository(owner_id=owner_id)
        result = []
        for row in repository.list_own(db):
            result.append(
                {
                    "id": int(row["id"]),
                    "job_name": row["job_name"],
                    "metadata": repository.load_json(row["metadata"], {}),
                    "file_size_bytes": row["file_size_bytes"],
                    "is_shared": bool(row["is_shared"]),
                    "expires_at": repository.timestamp(row["expires_at"]),
                    "created_at": repository.timestamp(row["created_at"]),
                }
            )
        return result

    def get_export(self, db, owner_id: int, export_id: int) -> Dict[str, Any]:
        repository = ExportDataRepository(owner_id=owner_id)
        row = repository.get_visible(db, export_id)
        if not row:
            raise NotFoundError(code="export_not_found", message_key="export_not_found")
        return {
            "id": int(row["id"]),
            "job_name": row["job_name"],
            "items": repository.load_json(row["export_data"], []),
            "metadata": repository.load_json(row["metadata"], {}),
            "file_size_bytes": row["file_size_bytes"],
            "is_shared": bool(row["is_shared"]),
            "owned": int(row["user_id"]) == int(owner_id),
            "expires_at": repository.timestamp(row["expires_at"]),
            "created_at": repository.timestamp(row["created_at"]),
        }

    def share_export(self, db, owner_id: int, export_id: int, *, is_shared: bool, expires_in_hours: int | None) -> None:
        expires_at = _expiry_timestamp(expires_in_hours) if is_shared else None
        if not ExportDataRepository(owner_id=owner_id).set_shared(db, export_id, is_shared, expires_at):
            raise NotFoundError(code="export_not_found", message_key="export_not_found")

    def delete_export(self, db, owner_id: int, export_id: int) -> None:
        if not ExportDataRepository(owner_id=owner_id).delete(db, export_id):
            raise NotFoundError(code="export_not_found", message_key="export_not_found")
