from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict

from ido_extractor.application.configuration_service import ConfigurationService
from ido_extractor.domain.contracts import ApiConfig, UserCredentials
from ido_extractor.errors import ConflictError, IntegrationError, ValidationError
from ido_extractor.ido.cache import ValueCache
from ido_extractor.ido.client import IdoClient
from ido_extractor.ido.registry import ConnectionRegistry, connection_registry


logger = logging.getLogger("ido_extractor.connection")

ClientFactory = Callable[..., IdoClient]


class ConnectionService:
    def __init__(
        self,
        configuration_service: ConfigurationService | None = None,
        *,
        registry: ConnectionRegistry | None = None,
        client_factory: ClientFactory | None = None,
        verify_ssl: bool = True,
        cache_dir: str | None = None,
        ttl_seconds: int = 3600,
    ) -> None:
        self.configuration_service = configuration_service or ConfigurationService()
        self.registry = registry or connection_registry()
        self.client_factory = client_factory or IdoClient
        self.verify_ssl = verify_ssl
        self.cache_dir = cache_dir
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_config(cls, config: Dict[str, Any], **kwargs) -> "ConnectionService":
        return cls(
            verify_ssl=bool(config.get("IDO_VERIFY_SSL", True)),
            cache_dir=config.get("IDO_CACHE_PATH"),
            ttl_seconds=int(config.get("IDO_CONNECTION_TTL_SECONDS", 3600) or 3600),
            **kwargs,
        )

    def _cache_for(self, owner_id: int) -> ValueCache:
        if not self.cache_dir:
            return ValueCache()
        return ValueCache(os.path.join(self.cache_dir, f"ido_cache_user_{int(owner_id)}.json"))

    def open_client(self, db, owner_id: int, username: str, encryption_password: str) -> IdoClient:
        credentials = self.configuration_service.load_configuration(db, owner_id, username, encryption_password)
        if credentials.user.username != str(username or "").strip():
            raise ValidationError(code="username_mismatch", message_key="username_mismatch")

        client = self.client_factory(
            ApiConfig(
                base_url=credentials.api.base_url,
                config=credentials.api.config,
                timeout=credentials.api.timeout,
                retry_count=credentials.api.retry_count,
                retry_delay=credentials.api.retry_delay,
            ),
            UserCredentials(username=credentials.user.username, password=credentials.user.password),
            cache=self._cache_for(owner_id),
            verify_ssl=self.verify_ssl,
        )
        success, error = client.test_connection()
        if not success:
            raise IntegrationError(
                code="ido_connection_failed",
                message_key="ido_connection_failed",
                details=error,
                payload={"reason": error},
            )
        logger.info("ido_connected", extra={"owner_id": owner_id, "ido_config": credentials.api.config})
        return client

    def connect(self, db, owner_id: int, username: str, encryption_password: str) -> Dict[str, Any]:
        client = self.open_client(db, owner_id, username, encryption_password)
        connection_id = self.registry.register(owner_id, client, client.user.username)
        return {
            "connection_id": connection_id,
            "username": client.user.username,
            "base_url": client.base_url,
            "config": client.api.config,
        }

    def current_client(self, connection_id: str | None, owner_id: int) -> IdoClient:
        client = self.registry.get(connection_id, owner_id, ttl_seconds=self.ttl_seconds)
        if client is None:
            raise ConflictError(code="ido_not_connected", message_key="ido_not_connected")
        return client

    def status(self, connection_id: str | None, owner_id: int) -> Dict[str, Any]:
        client = self.registry.get(connection_id, owner_id, ttl_seconds=self.ttl_seconds)
        if client is None:
            return {"connected": False}
        return {
            "connected": True,
            "username": client.user.username,
            "base_url": client.base_url,
            "config": client.api.config,
        }

    def test(self, connection_id: str | None, owner_id: int) -> Dict[str, Any]:
        client = self.current_client(connection_id, owner_id)
        success, error = client.test_connection()
        if not success:
            raise IntegrationError(
                code="ido_connection_failed",
                message_key="ido_connection_failed",
                details=error,
                payload={"reason": error},
            )
        return {"connected": True}

    def disconnect(self, connection_id: str | None) -> bool:
        removed = self.registry.remove(connection_id)
        if removed:
            logger.info("ido_disconnected")
        return removed
