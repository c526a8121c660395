from __future__ import annotations

from typing import List

from ido_extractor.domain.contracts import EncryptedPayload
from ido_extractor.infrastructure.repositories.base import BaseRepository


class ConfigurationRepository(BaseRepository):
    def username_taken_by_other_owner(self, db, username: str) -> bool:
        row = db.execute(
            """
            SELECT 1
            FROM user_configurations
            WHERE username = ? AND user_id <> ?
            LIMIT 1
            """,
            (username, self.owner_id),
        ).fetchone()
        return bool(row)

    def find_by_username(self, db, username: str) -> dict | None:
        row = db.execute(
            self.enforce_owner_scope(
                """
                SELECT id, username, encrypted_data, salt, iv, created_at, updated_at
                FROM user_configurations
                WHERE username = ?
                LIMIT 1
                """
            ),
            self.scoped_params((username,)),
        ).fetchone()
        return dict(row) if row else None

    def upsert(self, db, username: str, payload: EncryptedPayload) -> int:
        row = db.execute(
            """
            INSERT INTO user_configurations (user_id, username, encrypted_data, salt, iv)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (user_id, username) DO UPDATE SET
                encrypted_data = excluded.encrypted_data,
                salt = excluded.salt,
                iv = excluded.iv
            RETURNING id
            """,
            (self.owner_id, username, payload.encrypted, payload.salt, payload.iv),
        ).fetchone()
        return self.inserted_id(row)

    def list(self, db) -> List[dict]:
        rows = db.execute(
            self.enforce_owner_scope(
                """
                SELECT id, username, created_at, updated_at
                FROM user_configurations
                ORDER BY updated_at DESC, id DESC
                """
            ),
            self.scoped_params(),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def delete(self, db, config_id: int) -> bool:
        cursor = db.execute(
            self.enforce_owner_scope("DELETE FROM user_configurations WHERE id = ?"),
            self.scoped_params((int(config_id),)),
        )
        return int(cursor.rowcount or 0) > 0
