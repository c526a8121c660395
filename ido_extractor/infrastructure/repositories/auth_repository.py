from __future__ import annotations

from typing import List

from werkzeug.security import generate_password_hash


class AuthRepository:
    def find_user_by_email(self, db, email: str) -> dict | None:
        row = db.execute(
            """
            SELECT id, email, password_hash, display_name
            FROM auth_users
            WHERE email = ?
            """,
            (email,),
        ).fetchone()
        if not row:
            return None
        return dict(row)

    def find_user_by_id(self, db, user_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT id, email, display_name, created_at
            FROM auth_users
            WHERE id = ?
            """,
            (int(user_id),),
        ).fetchone()
        return dict(row) if row else None

    def email_exists(self, db, email: str) -> bool:
        row = db.execute(
            "SELECT 1 FROM auth_users WHERE email = ?",
            (email,),
        ).fetchone()
        return bool(row)

    def create_user(
        self,
        db,
        *,
        email: str,
        password: str,
        display_name: str | None,
    ) -> int:
        password_hash = generate_password_hash(password)
        row = db.execute(
            """
            INSERT INTO auth_users (email, password_hash, display_name)
            VALUES (?, ?, ?)
            RETURNING id
            """,
            (email, password_hash, display_name),
        ).fetchone()
        return int(row["id"] if isinstance(row, dict) else row[0])

    def ensure_profile(self, db, user_id: int, *, full_name: str | None, company: str | None = None) -> None:
        db.execute(
            """
            INSERT INTO user_profiles (user_id, full_name, company)
            VALUES (?, ?, ?)
            ON CONFLICT (user_id) DO NOTHING
            """,
            (int(user_id), full_name, company),
        )

    def get_profile(self, db, user_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT user_id, full_name, company, department, phone, is_active, last_login, created_at, updated_at
            FROM user_profiles
            WHERE user_id = ?
            """,
            (int(user_id),),
        ).fetchone()
        if not row:
            return None
        profile = dict(row)
        profile["is_active"] = bool(profile["is_active"])
        return profile

    def touch_last_login(self, db, user_id: int) -> None:
        db.execute(
            "UPDATE user_profiles SET last_login = CURRENT_TIMESTAMP WHERE user_id = ?",
            (int(user_id),),
        )


class AdminRepository:
    def get_role(self, db, user_id: int) -> str | None:
        row = db.execute(
            "SELECT role FROM admin_users WHERE user_id = ?",
            (int(user_id),),
        ).fetchone()
        return str(row["role"]) if row else None

    def upsert_admin(self, db, user_id: int, role: str, created_by: int | None) -> None:
        db.execute(
            """
            INSERT INTO admin_users (user_id, role, created_by)
            VALUES (?, ?, ?)
            ON CONFLICT (user_id) DO UPDATE SET role = excluded.role
            """,
            (int(user_id), role, created_by),
        )

    def remove_admin(self, db, user_id: int) -> bool:
        cursor = db.execute("DELETE FROM admin_users WHERE user_id = ?", (int(user_id),))
        return int(cursor.rowcount or 0) > 0

    def list_admins(self, db) -> List[dict]:
        rows = db.execute(
            """
            SELECT a.user_id, u.email, u.display_name, a.role, a.permissions, a.created_at, a.created_by
            FROM admin_users a
            JOIN auth_users u ON u.id = a.user_id
            ORDER BY a.created_at DESC, a.id DESC
            """
        ).fetchall()
        return [dict(row) for row in rows]

    def list_profiles(self, db) -> List[dict]:
        rows = db.execute(
            """
            SELECT u.id AS user_id, u.email, u.display_name, p.full_name, p.company, p.department,
                   p.is_active, p.last_login, u.created_at, a.role AS admin_role
            FROM auth_users u
            LEFT JOIN user_profiles p ON p.user_id = u.id
            LEFT JOIN admin_users a ON a.user_id = u.id
            ORDER BY u.created_at DESC, u.id DESC
            """
        ).fetchall()
        profiles = []
        for row in rows:
            item = dict(row)
            item["is_active"] = bool(item["is_active"]) if item["is_active"] is not None else True
            profiles.append(item)
        return profiles

    def set_active(self, db, user_id: int, is_active: bool) -> bool:
        cursor = db.execute(
            "UPDATE user_profiles SET is_active = ? WHERE user_id = ?",
            (1 if is_active else 0, int(user_id)),
        )
        return int(cursor.rowcount or 0) > 0
