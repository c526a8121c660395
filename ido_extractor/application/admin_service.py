from __future__ import annotations

import logging
from typing import Any, Dict, List

from ido_extractor.errors import NotFoundError, PermissionError as AppPermissionError
from ido_extractor.errors import ValidationError
from ido_extractor.infrastructure.repositories.auth_repository import AdminRepository, AuthRepository
from ido_extractor.infrastructure.repositories.base import BaseRepository
from ido_extractor.policies import ADMIN_ROLES


logger = logging.getLogger("ido_extractor.admin")


class AdminService:
    def __init__(
        self,
        repository: AdminRepository | None = None,
        auth_repository: AuthRepository | None = None,
    ) -> None:
        self.repository = repository or AdminRepository()
        self.auth_repository = auth_repository or AuthRepository()

    def list_profiles(self, db) -> List[Dict[str, Any]]:
        profiles = self.repository.list_profiles(db)
        for item in profiles:
            item["last_login"] = BaseRepository.timestamp(item.get("last_login"))
            item["created_at"] = BaseRepository.timestamp(item.get("created_at"))
        return profiles

    def set_user_active(self, db, actor_id: int, user_id: int, is_active: bool) -> None:
        if int(actor_id) == int(user_id) and not is_active:
            raise ValidationError(
                code="action_invalid",
                message_key="action_invalid",
                details="Administrators cannot deactivate their own account.",
            )
        if not self.auth_repository.find_user_by_id(db, user_id):
            raise NotFoundError(code="user_not_found", message_key="user_not_found")
        if not self.repository.set_active(db, user_id, is_active):
            self.auth_repository.ensure_profile(db, user_id, full_name=None)
            self.repository.set_active(db, user_id, is_active)
        logger.info("user_status_updated", extra={"actor_id": actor_id, "user_id": user_id, "is_active": is_active})

    def list_admins(self, db) -> List[Dict[str, Any]]:
        admins = self.repository.list_admins(db)
        for item in admins:
            item["permissions"] = BaseRepository.load_json(item.get("permissions"), {})
            item["created_at"] = BaseRepository.timestamp(item.get("created_at"))
        return admins

    def add_admin(self, db, actor_id: int, email: str, role: str) -> Dict[str, Any]:
        normalized_role = str(role or "").strip().lower()
        if normalized_role not in ADMIN_ROLES:
            raise ValidationError(
                code="invalid_payload",
                message_key="invalid_payload",
                details=f"Unsupported admin role: {role}",
                payload={"field": "role"},
            )
        user = self.auth_repository.find_user_by_email(db, str(email or "").strip().lower())
        if not user:
            raise NotFoundError(code="user_not_found", message_key="user_not_found")
        user_id = int(user["id"])
        self.repository.upsert_admin(db, user_id, normalized_role, int(actor_id))
        logger.info("admin_added", extra={"actor_id": actor_id, "user_id": user_id, "role": normalized_role})
        return {"user_id": user_id, "email": user["email"], "role": normalized_role}

    def remove_admin(self, db, actor_id: int, user_id: int) -> None:
        if int(actor_id) == int(user_id):
            raise AppPermissionError(
                code="permission_denied",
                message_key="permission_denied",
                details="Administrators cannot remove their own role.",
            )
        if not self.repository.remove_admin(db, user_id):
            raise NotFoundError(code="admin_not_found", message_key="admin_not_found")
        logger.info("admin_removed", extra={"actor_id": actor_id, "user_id": user_id})
