from __future__ import annotations

from typing import Any, Dict, List

from ido_extractor.infrastructure.repositories.base import BaseRepository


class ExportDataRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        job_name: str,
        items: List[Dict[str, Any]],
        metadata: Dict[str, Any],
        file_size_bytes: int | None,
        is_shared: bool = False,
        expires_at: str | None = None,
    ) -> int:
        row = db.execute(
            """
            INSERT INTO export_data (user_id, job_name, export_data, metadata, file_size_bytes, is_shared, expires_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                self.owner_id,
                job_name,
                self.dump_json(items),
                self.dump_json(metadata),
                file_size_bytes,
                1 if is_shared else 0,
                expires_at,
            ),
        ).fetchone()
        return self.inserted_id(row)

    def list_own(self, db) -> List[dict]:
        rows = db.execute(
            self.enforce_owner_scope(
                """
                SELECT id, user_id, job_name, metadata, file_size_bytes, is_shared, expires_at, created_at
                FROM export_data
                ORDER BY created_at DESC, id DESC
                """
            ),
            self.scoped_params(),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_visible(self, db, export_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT id, user_id, job_name, export_data, metadata, file_size_bytes, is_shared, expires_at, created_at
            FROM export_data
            WHERE id = ?
              AND (
                  user_id = ?
                  OR (is_shared = 1 AND (expires_at IS NULL OR expires_at > CURRENT_TIMESTAMP))
              )
            LIMIT 1
            """,
            (int(export_id), self.owner_id),
        ).fetchone()
        return dict(row) if row else None

    def set_shared(self, db, export_id: int, is_shared: bool, expires_at: str | None) -> bool:
        cursor = db.execute(
            self.enforce_owner_scope("UPDATE export_data SET is_shared = ?, expires_at = ? WHERE id = ?"),
            self.scoped_params((1 if is_shared else 0, expires_at, int(export_id))),
        )
        return int(cursor.rowcount or 0) > 0

    def delete(self, db, export_id: int) -> bool:
        cursor = db.execute(
            self.enforce_owner_scope("DELETE FROM export_data WHERE id = ?"),
            self.scoped_params((int(export_id),)),
        )
        return int(cursor.rowcount or 0) > 0
