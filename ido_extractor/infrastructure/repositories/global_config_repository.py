from __future__ import annotations

import json
from typing import Any, Iterable, List


def _decode(value: Any) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return value


class GlobalConfigRepository:
    """Application-wide settings. Not owner scoped: writes are gated by admin roles upstream."""

    def get(self, db, key: str) -> tuple[bool, Any]:
        row = db.execute(
            "SELECT config_value FROM global_config WHERE config_key = ? LIMIT 1",
            (key,),
        ).fetchone()
        if not row:
            return False, None
        return True, _decode(row["config_value"])

    def get_many(self, db, keys: Iterable[str]) -> dict:
        wanted = [str(key) for key in keys if str(key).strip()]
        if not wanted:
            return {}
        placeholders = ",".join("?" for _ in wanted)
        rows = db.execute(
            f"SELECT config_key, config_value FROM global_config WHERE config_key IN ({placeholders})",
            tuple(wanted),
        ).fetchall()
        return {row["config_key"]: _decode(row["config_value"]) for row in rows}

    def list_all(self, db, *, public_only: bool = False) -> List[dict]:
        query = """
            SELECT config_key, config_value, description, is_public, created_at, updated_at, created_by
            FROM global_config
        """
        if public_only:
            query += " WHERE is_public = 1"
        query += " ORDER BY config_key"
        rows = db.execute(query).fetchall()
        result = []
        for row in rows:
            item = dict(row)
            item["config_value"] = _decode(item["config_value"])
            item["is_public"] = bool(item["is_public"])
            result.append(item)
        return result

    def upsert(
        self,
        db,
        key: str,
        value: Any,
        *,
        description: str | None,
        is_public: bool,
        created_by: int | None,
    ) -> None:
        db.execute(
            """
            INSERT INTO global_config (config_key, config_value, description, is_public, created_by)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (config_key) DO UPDATE SET
                config_value = excluded.config_value,
                description = COALESCE(excluded.description, global_config.description),
                is_public = excluded.is_public
            """,
            (key, json.dumps(value), description, 1 if is_public else 0, created_by),
        )

    def delete(self, db, key: str) -> bool:
        cursor = db.execute("DELETE FROM global_config WHERE config_key = ?", (key,))
        return int(cursor.rowcount or 0) > 0
