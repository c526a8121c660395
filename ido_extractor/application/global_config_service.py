from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Iterable, List

from ido_extractor.domain.defaults import SUPPORTED_FORMATS
from ido_extractor.errors import NotFoundError, ValidationError
from ido_extractor.infrastructure.repositories.global_config_repository import GlobalConfigRepository


DEFAULT_CACHE_TTL_SECONDS = 300
_MAX_KEY_LENGTH = 100


class GlobalConfigService:
    def __init__(
        self,
        repository: GlobalConfigRepository | None = None,
        *,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.repository = repository or GlobalConfigRepository()
        self.ttl_seconds = max(1, int(ttl_seconds))
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._cache: Dict[str, tuple[float, Any]] = {}

    def _cached(self, key: str) -> tuple[bool, Any]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return False, None
            expires_at, value = entry
            if self._clock() >= expires_at:
                self._cache.pop(key, None)
                return False, None
            return True, value

    def _remember(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = (self._clock() + self.ttl_seconds, value)

    def clear_cache(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(key, None)

    def get_config(self, db, key: str, default: Any = None) -> Any:
        hit, value = self._cached(key)
        if hit:
            return value
        found, value = self.repository.get(db, key)
        if not found:
            return default
        self._remember(key, value)
        return value

    def get_configs(self, db, keys: Iterable[str]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        missing: List[str] = []
        for key in keys:
            hit, value = self._cached(key)
            if hit:
                result[key] = value
            else:
                missing.append(key)
        if missing:
            for key, value in self.repository.get_many(db, missing).items():
                self._remember(key, value)
                result[key] = value
        return result

    def get_public_configs(self, db) -> Dict[str, Any]:
        return {row["config_key"]: row["config_value"] for row in self.repository.list_all(db, public_only=True)}

    def list_configs(self, db) -> List[dict]:
        return self.repository.list_all(db)

    def set_config(
        self,
        db,
        key: str,
        value: Any,
        *,
        description: str | None = None,
        is_public: bool = False,
        actor_id: int | None = None,
    ) -> None:
        normalized = str(key or "").strip()
        if not normalized or len(normalized) > _MAX_KEY_LENGTH:
            raise ValidationError(code="field_required", message_key="field_required", details="config_key")
        self.repository.upsert(
            db,
            normalized,
            value,
            description=description,
            is_public=bool(is_public),
            created_by=actor_id,
        )
        self.clear_cache(normalized)

    def delete_config(self, db, key: str) -> None:
        if not self.repository.delete(db, key):
            raise NotFoundError(code="global_config_not_found", message_key="global_config_not_found")
        self.clear_cache(key)

    def is_maintenance_mode(self, db) -> bool:
        return bool(self.get_config(db, "maintenance_mode", False))

    def is_registration_enabled(self, db) -> bool:
        return bool(self.get_config(db, "user_registration_enabled", True))

    def get_max_record_cap(self, db) -> int:
        try:
            return max(1, int(self.get_config(db, "max_record_cap", 10000)))
        except (TypeError, ValueError):
            return 10000

    def get_supported_formats(self, db) -> List[str]:
        formats = self.get_config(db, "supported_formats", list(SUPPORTED_FORMATS))
        if not isinstance(formats, list):
            return list(SUPPORTED_FORMATS)
        # Only formats the exporter can actually write.
        return [fmt for fmt in (str(item).lower() for item in formats) if fmt in SUPPORTED_FORMATS]

    def get_default_api_config(self, db) -> Dict[str, Any]:
        values = self.get_configs(
            db,
            ["default_base_url", "default_config_name", "default_timeout", "max_record_cap"],
        )
        return {
            "base_url": values.get("default_base_url") or "",
            "config_name": values.get("default_config_name") or "SL",
            "timeout": values.get("default_timeout") or 30,
            "max_record_cap": values.get("max_record_cap") or 10000,
        }

    def get_app_info(self, db) -> Dict[str, Any]:
        values = self.get_configs(db, ["app_name", "app_version"])
        return {
            "name": values.get("app_name") or "IDO Data Extractor",
            "version": values.get("app_version") or "1.0.0",
        }


_GLOBAL_CONFIG = GlobalConfigService()


def global_config_service() -> GlobalConfigService:
    return _GLOBAL_CONFIG


def reset_global_config_cache_for_tests() -> None:
    _GLOBAL_CONFIG.clear_cache()
