from __future__ import annotations

from typing import Any, Dict

from ido_extractor.errors import ValidationError
from ido_extractor.infrastructure.repositories.settings_repository import SettingsRepository


_MAX_KEY_LENGTH = 100


class SettingsService:
    def get_settings(self, db, owner_id: int) -> Dict[str, Any]:
        return SettingsRepository(owner_id=owner_id).all(db)

    def get_setting(self, db, owner_id: int, key: str, default: Any = None) -> Any:
        found, value = SettingsRepository(owner_id=owner_id).get(db, key)
        return value if found else default

    def save_setting(self, db, owner_id: int, key: str, value: Any) -> None:
        normalized = str(key or "").strip()
        if not normalized or len(normalized) > _MAX_KEY_LENGTH:
            raise ValidationError(
                code="field_required",
                message_key="field_required",
                details="setting_key",
                payload={"field": "setting_key"},
            )
        SettingsRepository(owner_id=owner_id).upsert(db, normalized, value)
