from __future__ import annotations

import logging
from typing import Iterable

from werkzeug.security import check_password_hash

from ido_extractor.domain.contracts import AuthLoginInput, AuthRegisterInput, AuthUser
from ido_extractor.errors import PermissionError as AppPermissionError
from ido_extractor.errors import ValidationError
from ido_extractor.infrastructure.repositories.auth_repository import AdminRepository, AuthRepository
from ido_extractor.policies import ADMIN_ROLES, normalize_role


logger = logging.getLogger("ido_extractor.auth")


class AuthService:
    def __init__(
        self,
        repository: AuthRepository | None = None,
        admin_repository: AdminRepository | None = None,
    ) -> None:
        self.repository = repository or AuthRepository()
        self.admin_repository = admin_repository or AdminRepository()

    def login(self, db, auth_input: AuthLoginInput) -> AuthUser:
        email = (auth_input.email or "").strip().lower()
        password = auth_input.password or ""
        if not email or not password:
            raise ValidationError(code="auth_missing_credentials", message_key="auth_missing_credentials")

        db_user = self.repository.find_user_by_email(db, email)
        if not db_user or not check_password_hash(db_user["password_hash"], password):
            raise ValidationError(
                code="auth_invalid_credentials",
                message_key="auth_invalid_credentials",
                http_status=401,
            )

        user_id = int(db_user["id"])
        profile = self.repository.get_profile(db, user_id)
        if profile is not None and not profile["is_active"]:
            raise AppPermissionError(code="account_inactive", message_key="account_inactive")
        if profile is None:
            self.repository.ensure_profile(db, user_id, full_name=db_user.get("display_name"))
        self.repository.touch_last_login(db, user_id)

        return AuthUser(
            id=user_id,
            email=db_user["email"],
            display_name=db_user.get("display_name") or db_user["email"].split("@")[0],
            role=self.resolve_role(db, user_id),
        )

    def register(self, db, auth_input: AuthRegisterInput, *, registration_enabled: bool = True) -> AuthUser:
        if not registration_enabled:
            raise AppPermissionError(code="registration_disabled", message_key="registration_disabled")

        email = (auth_input.email or "").strip().lower()
        password = auth_input.password or ""
        full_name = (auth_input.full_name or "").strip() or None
        company = (auth_input.company or "").strip() or None
        if not email or not password:
            raise ValidationError(code="auth_missing_credentials", message_key="auth_missing_credentials")

        if self.repository.email_exists(db, email):
            raise ValidationError(
                code="email_already_registered",
                message_key="email_already_registered",
                http_status=400,
                critical=False,
            )

        user_id = self.repository.create_user(db, email=email, password=password, display_name=full_name)
        self.repository.ensure_profile(db, user_id, full_name=full_name, company=company)
        logger.info("user_registered", extra={"user_id": user_id})
        return AuthUser(
            id=user_id,
            email=email,
            display_name=full_name or email.split("@")[0],
            role="user",
        )

    def resolve_role(self, db, user_id: int) -> str:
        return normalize_role(self.admin_repository.get_role(db, user_id), default="user")

    def current_user_payload(self, db, user_id: int) -> dict | None:
        user = self.repository.find_user_by_id(db, user_id)
        if not user:
            return None
        return {
            "id": int(user["id"]),
            "email": user["email"],
            "display_name": user.get("display_name") or user["email"].split("@")[0],
            "role": self.resolve_role(db, user_id),
            "profile": self.repository.get_profile(db, user_id),
        }

    def seed_bootstrap_users(self, db, raw_users: object) -> int:
        seeded = 0
        for entry in self.parse_users(raw_users):
            existing = self.repository.find_user_by_email(db, entry["email"])
            if existing:
                user_id = int(existing["id"])
            else:
                user_id = self.repository.create_user(
                    db,
                    email=entry["email"],
                    password=entry["password"],
                    display_name=entry["display_name"],
                )
                seeded += 1
            self.repository.ensure_profile(db, user_id, full_name=entry["display_name"])
            if entry["role"] in ADMIN_ROLES:
                self.admin_repository.upsert_admin(db, user_id, entry["role"], None)
        return seeded

    @staticmethod
    def parse_users(raw_users: object) -> Iterable[dict]:
        """Parse ``email:password[:display_name[:role]]`` entries separated by commas, semicolons or newlines."""
        if not raw_users:
            return []
        if isinstance(raw_users, str):
            entries = []
            for chunk in raw_users.replace("\n", ",").replace(";", ",").split(","):
                entry = chunk.strip()
                if entry:
                    entries.append(entry)
        elif isinstance(raw_users, (list, tuple, set)):
            entries = [str(item).strip() for item in raw_users if str(item).strip()]
        else:
            return []

        users = []
        for entry in entries:
            parts = [part.strip() for part in entry.split(":")]
            if len(parts) < 2 or not parts[0] or not parts[1]:
                continue
            email, password = parts[0].lower(), parts[1]
            display_name = parts[2] if len(parts) > 2 and parts[2] else email.split("@")[0]
            role = normalize_role(parts[3] if len(parts) > 3 else "user", default="user")
            users.append(
                {
                    "email": email,
                    "password": password,
                    "display_name": display_name,
                    "role": role,
                }
            )
        return users
