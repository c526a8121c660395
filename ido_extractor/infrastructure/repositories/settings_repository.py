from __future__ import annotations

from typing import Any, Dict

from ido_extractor.infrastructure.repositories.base import BaseRepository


class SettingsRepository(BaseRepository):
    def all(self, db) -> Dict[str, Any]:
        rows = db.execute(
            self.enforce_owner_scope(
                """
                SELECT setting_key, setting_value
                FROM user_settings
                ORDER BY setting_key
                """
            ),
            self.scoped_params(),
        ).fetchall()
        return {row["setting_key"]: self.load_json(row["setting_value"], None) for row in rows}

    def get(self, db, key: str) -> tuple[bool, Any]:
        row = db.execute(
            self.enforce_owner_scope(
                """
                SELECT setting_value
                FROM user_settings
                WHERE setting_key = ?
                LIMIT 1
                """
            ),
            self.scoped_params((key,)),
        ).fetchone()
        if not row:
            return False, None
        return True, self.load_json(row["setting_value"], None)

    def upsert(self, db, key: str, value: Any) -> None:
        db.execute(
            """
            INSERT INTO user_settings (user_id, setting_key, setting_value)
            VALUES (?, ?, ?)
            ON CONFLICT (user_id, setting_key) DO UPDATE SET
                setting_value = excluded.setting_value
            """,
            (self.owner_id, key, self.dump_json(value)),
        )
