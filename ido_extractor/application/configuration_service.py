from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping

from ido_extractor.application.global_config_service import GlobalConfigService, global_config_service
from ido_extractor.domain.contracts import ApiConfig, StoredCredentials, UserCredentials
from ido_extractor.encryption import DecryptionError, decrypt, encrypt
from ido_extractor.errors import ConflictError, NotFoundError, ValidationError
from ido_extractor.infrastructure.repositories.configuration_repository import ConfigurationRepository


logger = logging.getLogger("ido_extractor.configuration")


def _lenient_int(value: Any, default: int) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def _required(value: Any, field_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(
            code="field_required",
            message_key="field_required",
            details=f"{field_name} is required",
            payload={"field": field_name},
        )
    return text


def credentials_from_payload(payload: Mapping[str, Any]) -> StoredCredentials:
    api = payload.get("api") or {}
    user = payload.get("user") or {}
    logging_section = payload.get("logging") or {}
    return StoredCredentials(
        api=ApiConfig(
            base_url=str(api.get("base_url") or ""),
            config=str(api.get("config") or ""),
            timeout=_lenient_int(api.get("timeout"), 30),
            retry_count=_lenient_int(api.get("retry_count"), 3),
            retry_delay=_lenient_int(api.get("retry_delay"), 1),
        ),
        user=UserCredentials(
            username=str(user.get("username") or ""),
            password=str(user.get("password") or ""),
        ),
        logging_level=str(logging_section.get("level") or "INFO"),
    )


class ConfigurationService:
    def __init__(self, global_config: GlobalConfigService | None = None) -> None:
        self.global_config = global_config or global_config_service()

    def build_credentials(self, db, username: str, config_data: Mapping[str, Any]) -> StoredCredentials:
        defaults = self.global_config.get_default_api_config(db)
        base_url = _required(config_data.get("base_url") or defaults["base_url"], "base_url")
        config_name = _required(config_data.get("config") or defaults["config_name"], "config")
        password = _required(config_data.get("password"), "password")
        return StoredCredentials(
            api=ApiConfig(
                base_url=base_url.rstrip("/"),
                config=config_name,
                timeout=_lenient_int(config_data.get("timeout"), _lenient_int(defaults["timeout"], 30)) or 30,
                retry_count=_lenient_int(config_data.get("retry_count"), 3),
                retry_delay=_lenient_int(config_data.get("retry_delay"), 1),
            ),
            user=UserCredentials(username=username, password=password),
        )

    def save_configuration(
        self,
        db,
        owner_id: int,
        username: str,
        config_data: Mapping[str, Any],
        encryption_password: str,
    ) -> int:
        normalized_username = _required(username, "username")
        if not str(encryption_password or ""):
            raise ValidationError(code="encryption_password_required", message_key="encryption_password_required")

        repository = ConfigurationRepository(owner_id=owner_id)
        if repository.username_taken_by_other_owner(db, normalized_username):
            raise ConflictError(
                code="configuration_username_taken",
                message_key="configuration_username_taken",
            )

        credentials = self.build_credentials(db, normalized_username, config_data)
        payload = encrypt(json.dumps(credentials.to_payload()), encryption_password)
        config_id = repository.upsert(db, normalized_username, payload)
        logger.info("configuration_saved", extra={"owner_id": owner_id, "configuration_id": config_id})
        return config_id

    def load_configuration(self, db, owner_id: int, username: str, encryption_password: str) -> StoredCredentials:
        normalized_username = _required(username, "username")
        if not str(encryption_password or ""):
            raise ValidationError(code="encryption_password_required", message_key="encryption_password_required")

        row = ConfigurationRepository(owner_id=owner_id).find_by_username(db, normalized_username)
        if not row:
            raise NotFoundError(code="configuration_not_found", message_key="configuration_not_found")

        try:
            plaintext = decrypt(row["encrypted_data"], row["salt"], row["iv"], encryption_password)
            payload = json.loads(plaintext)
        except (DecryptionError, ValueError) as exc:
            logger.warning("configuration_decrypt_failed", extra={"owner_id": owner_id})
            raise ValidationError(
                code="invalid_encryption_password",
                message_key="invalid_encryption_password",
            ) from exc
        if not isinstance(payload, dict):
            raise ValidationError(code="invalid_encryption_password", message_key="invalid_encryption_password")
        return credentials_from_payload(payload)

    def list_configurations(self, db, owner_id: int) -> List[Dict[str, Any]]:
        repository = ConfigurationRepository(owner_id=owner_id)
        return [
            {
                "id": int(row["id"]),
                "username": row["username"],
                "created_at": repository.timestamp(row["created_at"]),
                "updated_at": repository.timestamp(row["updated_at"]),
            }
            for row in repository.list(db)
        ]

    def delete_configuration(self, db, owner_id: int, config_id: int) -> None:
        if not ConfigurationRepository(owner_id=owner_id).delete(db, config_id):
            raise NotFoundError(code="configuration_not_found", message_key="configuration_not_found")
