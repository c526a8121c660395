from __future__ import annotations

from typing import Any, Dict, List

from ido_extractor.infrastructure.repositories.base import BaseRepository


_HISTORY_COLUMNS = """
    id, job_name, filters_applied, record_count, file_path, status, error_message,
    execution_time_ms, executed_at
"""


class ExecutionHistoryRepository(BaseRepository):
    def start(self, db, job_name: str, filters_applied: Dict[str, Any]) -> int:
        row = db.execute(
            """
            INSERT INTO execution_history (user_id, job_name, filters_applied, status)
            VALUES (?, ?, ?, 'running')
            RETURNING id
            """,
            (self.owner_id, job_name, self.dump_json(filters_applied)),
        ).fetchone()
        return self.inserted_id(row)

    def record_failure(self, db, job_name: str, filters_applied: Dict[str, Any], error_message: str) -> int:
        row = db.execute(
            """
            INSERT INTO execution_history (user_id, job_name, filters_applied, status, error_message, execution_time_ms)
            VALUES (?, ?, ?, 'error', ?, 0)
            RETURNING id
            """,
            (self.owner_id, job_name, self.dump_json(filters_applied), error_message),
        ).fetchone()
        return self.inserted_id(row)

    def finish(
        self,
        db,
        execution_id: int,
        *,
        status: str,
        record_count: int = 0,
        file_path: str | None = None,
        error_message: str | None = None,
        execution_time_ms: int | None = None,
    ) -> None:
        db.execute(
            self.enforce_owner_scope(
                """
                UPDATE execution_history
                SET status = ?, record_count = ?, file_path = ?, error_message = ?, execution_time_ms = ?
                WHERE id = ?
                """
            ),
            self.scoped_params(
                (status, int(record_count), file_path, error_message, execution_time_ms, int(execution_id))
            ),
        )

    def get(self, db, execution_id: int) -> dict | None:
        row = db.execute(
            self.enforce_owner_scope(
                f"""
                SELECT {_HISTORY_COLUMNS}
                FROM execution_history
                WHERE id = ?
                LIMIT 1
                """
            ),
            self.scoped_params((int(execution_id),)),
        ).fetchone()
        return dict(row) if row else None

    def list(self, db, limit: int = 50) -> List[dict]:
        rows = db.execute(
            f"""
            SELECT {_HISTORY_COLUMNS}
            FROM execution_history
            WHERE user_id = ?
            ORDER BY executed_at DESC, id DESC
            LIMIT ?
            """,
            (self.owner_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
