from __future__ import annotations

import json
import re
from typing import Any, Iterable


class OwnerScopeRequiredError(ValueError):
    """Raised when a user-owned repository is instantiated without an owner."""


class BaseRepository:
    """Owner-scoped data access: every query on a user-owned table filters on ``user_id``."""

    def __init__(self, *, owner_id: int | str | None = None) -> None:
        try:
            scope = int(str(owner_id).strip()) if owner_id is not None else 0
        except ValueError:
            scope = 0
        if scope <= 0:
            raise OwnerScopeRequiredError("owner_id is required for repository access")
        self.owner_id = scope

    def build_owner_clause(
        self,
        *,
        table_alias: str | None = None,
        column_name: str = "user_id",
    ) -> str:
        prefix = f"{table_alias.strip()}." if table_alias and str(table_alias).strip() else ""
        return f"{prefix}{column_name} = ?"

    def enforce_owner_scope(
        self,
        query: str,
        *,
        table_alias: str | None = None,
        column_name: str = "user_id",
    ) -> str:
        raw_query = str(query or "").strip()
        if not raw_query:
            return raw_query

        clause = self.build_owner_clause(table_alias=table_alias, column_name=column_name)
        marker = re.search(r"\b(group\s+by|order\s+by|limit|offset|returning)\b", raw_query, flags=re.IGNORECASE)
        if marker:
            head = raw_query[: marker.start()].rstrip()
            tail = raw_query[marker.start() :]
        else:
            head = raw_query
            tail = ""

        if re.search(r"\bwhere\b", head, flags=re.IGNORECASE):
            scoped_head = f"{head} AND {clause}"
        else:
            scoped_head = f"{head} WHERE {clause}"
        return f"{scoped_head} {tail}".strip()

    def scoped_params(self, params: Iterable[Any] | None = None) -> tuple[Any, ...]:
        values = tuple(params or ())
        return (*values, self.owner_id)

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]

    @staticmethod
    def inserted_id(row: Any) -> int:
        return int(row["id"] if isinstance(row, dict) else row[0])

    @staticmethod
    def load_json(value: Any, default: Any) -> Any:
        if value is None or value == "":
            return default
        if isinstance(value, (dict, list)):
            return value
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return default

    @staticmethod
    def dump_json(value: Any) -> str:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))

    @staticmethod
    def timestamp(value: Any) -> str | None:
        if value is None:
            return None
        if hasattr(value, "isoformat"):
            return value.isoformat()
        return str(value)
