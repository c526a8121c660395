from __future__ import annotations

from typing import Any, Dict, List

from ido_extractor.infrastructure.repositories.base import BaseRepository


_JOB_COLUMNS = """
    id, user_id, job_name, ido_name, query_params, output_format, filterable_fields,
    is_template, is_shared, created_at, updated_at
"""


class JobRepository(BaseRepository):
    def list_visible(self, db) -> List[dict]:
        own = db.execute(
            self.enforce_owner_scope(
                f"""
                SELECT {_JOB_COLUMNS}
                FROM jobs
                ORDER BY created_at DESC, id DESC
                """
            ),
            self.scoped_params(),
        ).fetchall()
        shared = db.execute(
            f"""
            SELECT {_JOB_COLUMNS}
            FROM jobs
            WHERE is_template = 1 AND is_shared = 1 AND (user_id IS NULL OR user_id <> ?)
            ORDER BY job_name, id
            """,
            (self.owner_id,),
        ).fetchall()
        own_rows = self.rows_to_dicts(own)
        own_names = {row["job_name"] for row in own_rows}
        shared_rows = [row for row in self.rows_to_dicts(shared) if row["job_name"] not in own_names]
        return own_rows + shared_rows

    def get_own(self, db, job_name: str) -> dict | None:
        row = db.execute(
            self.enforce_owner_scope(
                f"""
                SELECT {_JOB_COLUMNS}
                FROM jobs
                WHERE job_name = ?
                LIMIT 1
                """
            ),
            self.scoped_params((job_name,)),
        ).fetchone()
        return dict(row) if row else None

    def get_shared_template(self, db, job_name: str) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_JOB_COLUMNS}
            FROM jobs
            WHERE job_name = ? AND is_template = 1 AND is_shared = 1
            ORDER BY CASE WHEN user_id IS NULL THEN 0 ELSE 1 END, id
            LIMIT 1
            """,
            (job_name,),
        ).fetchone()
        return dict(row) if row else None

    def upsert(self, db, job: Dict[str, Any]) -> int:
        row = db.execute(
            """
            INSERT INTO jobs (
                user_id, job_name, ido_name, query_params, output_format, filterable_fields, is_template, is_shared
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, job_name) DO UPDATE SET
                ido_name = excluded.ido_name,
                query_params = excluded.query_params,
                output_format = excluded.output_format,
                filterable_fields = excluded.filterable_fields,
                is_template = excluded.is_template,
                is_shared = excluded.is_shared
            RETURNING id
            """,
            (
                self.owner_id,
                job["job_name"],
                job["ido_name"],
                self.dump_json(job["query_params"]),
                job["output_format"],
                self.dump_json(job["filterable_fields"]),
                1 if job.get("is_template") else 0,
                1 if job.get("is_shared") else 0,
            ),
        ).fetchone()
        return self.inserted_id(row)

    def delete(self, db, job_name: str) -> bool:
        cursor = db.execute(
            self.enforce_owner_scope("DELETE FROM jobs WHERE job_name = ?"),
            self.scoped_params((job_name,)),
        )
        return int(cursor.rowcount or 0) > 0
