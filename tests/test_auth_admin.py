import unittest

from ido_extractor.ui_strings import error_message
from tests.helpers.api import build_temp_app, login, login_admin, register, teardown_temp_app
from tests.helpers.temp_db import TempDbSandbox


class AuthApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="auth_api")
        self.app = build_temp_app(self._temp_db)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        teardown_temp_app(self.app, self._temp_db)

    def test_register_login_me_logout(self) -> None:
        response = register(self.client, "Ana@Test.local", full_name="Ana Lima", company="Acme")
        self.assertEqual(response.status_code, 201)
        user = response.get_json()["user"]
        self.assertEqual(user["email"], "ana@test.local")
        self.assertEqual(user["display_name"], "Ana Lima")
        self.assertEqual(user["role"], "user")

        me = self.client.get("/api/auth/me").get_json()["user"]
        self.assertEqual(me["profile"]["company"], "Acme")
        self.assertTrue(me["profile"]["is_active"])

        self.assertEqual(self.client.post("/api/auth/logout").status_code, 200)
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

        self.assertEqual(login(self.client, "ana@test.local", "user-pass").status_code, 200)
        me = self.client.get("/api/auth/me").get_json()["user"]
        self.assertIsNotNone(me["profile"]["last_login"])

    def test_duplicate_and_incomplete_registration(self) -> None:
        register(self.client, "ana@test.local")
        duplicate = register(self.app.test_client(), "ana@test.local")
        self.assertEqual(duplicate.status_code, 400)
        self.assertEqual(duplicate.get_json()["error"], "email_already_registered")

        missing = self.client.post("/api/auth/register", json={"email": "x@test.local"})
        self.assertEqual(missing.get_json()["error"], "auth_missing_credentials")

    def test_invalid_credentials(self) -> None:
        register(self.client, "ana@test.local")
        response = login(self.app.test_client(), "ana@test.local", "wrong")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["message"], error_message("auth_invalid_credentials"))

    def test_bootstrap_admin_can_log_in(self) -> None:
        response = login_admin(self.client)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["user"]["role"], "super_admin")

    def test_public_config_is_open_and_filtered(self) -> None:
        response = self.client.get("/api/config/public")
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["app"], {"name": "IDO Data Extractor", "version": "1.0.0"})
        self.assertEqual(body["config"]["supported_formats"], ["csv", "xlsx"])
        self.assertNotIn("default_base_url", body["config"])
        self.assertEqual([item["key"] for item in body["execution_statuses"]], ["running", "success", "error"])
        self.assertEqual(body["terms"]["ido"], "IDO collection")

    def test_auth_can_be_disabled_for_the_gate(self) -> None:
        teardown_temp_app(self.app, self._temp_db)
        self._temp_db = TempDbSandbox(prefix="auth_disabled")
        self.app = build_temp_app(self._temp_db, AUTH_ENABLED=False)
        client = self.app.test_client()

        self.assertEqual(client.get("/api/config/public").status_code, 200)
        # Owner-scoped data still needs a signed-in user.
        self.assertEqual(client.get("/api/jobs").get_json()["error"], "auth_required")


class AdminApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="admin_api")
        self.app = build_temp_app(self._temp_db)
        self.admin = self.app.test_client()
        self.admin_id = login_admin(self.admin).get_json()["user"]["id"]
        self.user = self.app.test_client()
        self.user_id = register(self.user, "ana@test.local").get_json()["user"]["id"]

    def tearDown(self) -> None:
        teardown_temp_app(self.app, self._temp_db)

    def _set_config(self, key, value, **extra):
        response = self.admin.put(f"/api/admin/config/{key}", json={"value": value, **extra})
        self.assertEqual(response.status_code, 200)

    def test_regular_users_cannot_reach_admin_routes(self) -> None:
        for method, path in (
            ("get", "/api/admin/users"),
            ("get", "/api/admin/config"),
            ("get", "/api/admin/admins"),
            ("put", "/api/admin/config/maintenance_mode"),
        ):
            with self.subTest(path=path):
                response = getattr(self.user, method)(path, json={"value": True})
                self.assertEqual(response.status_code, 403)
                self.assertEqual(response.get_json()["error"], "permission_denied")

    def test_deactivated_user_cannot_log_in(self) -> None:
        response = self.admin.patch(f"/api/admin/users/{self.user_id}", json={"is_active": False})
        self.assertEqual(response.status_code, 200)

        users = {item["email"]: item for item in self.admin.get("/api/admin/users").get_json()["items"]}
        self.assertFalse(users["ana@test.local"]["is_active"])
        self.assertEqual(users["admin@test.local"]["admin_role"], "super_admin")

        blocked = login(self.app.test_client(), "ana@test.local", "user-pass")
        self.assertEqual(blocked.status_code, 403)
        self.assertEqual(blocked.get_json()["error"], "account_inactive")

        self.admin.patch(f"/api/admin/users/{self.user_id}", json={"is_active": True})
        self.assertEqual(login(self.app.test_client(), "ana@test.local", "user-pass").status_code, 200)

    def test_user_status_edge_cases(self) -> None:
        self_response = self.admin.patch(f"/api/admin/users/{self.admin_id}", json={"is_active": False})
        self.assertEqual(self_response.status_code, 400)
        self.assertEqual(self.admin.patch("/api/admin/users/9999", json={"is_active": False}).status_code, 404)
        self.assertEqual(self.admin.patch(f"/api/admin/users/{self.user_id}", json={"is_active": "no"}).status_code, 400)

    def test_registration_can_be_disabled(self) -> None:
        self._set_config("user_registration_enabled", False, is_public=True)
        response = register(self.app.test_client(), "late@test.local")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"], "registration_disabled")

    def test_maintenance_mode_blocks_non_admins(self) -> None:
        self._set_config("maintenance_mode", True, is_public=True)

        blocked = self.user.get("/api/jobs")
        self.assertEqual(blocked.status_code, 503)
        self.assertEqual(blocked.get_json()["error"], "maintenance_mode")
        self.assertEqual(self.admin.get("/api/jobs").status_code, 200)
        self.assertEqual(self.user.get("/api/config/public").get_json()["config"]["maintenance_mode"], True)
        self.assertEqual(self.user.get("/api/auth/me").status_code, 200)

        self._set_config("maintenance_mode", False, is_public=True)
        self.assertEqual(self.user.get("/api/jobs").status_code, 200)

    def test_global_config_management(self) -> None:
        self._set_config("default_base_url", "https://erp.example.com", description="ERP host")
        items = {item["config_key"]: item for item in self.admin.get("/api/admin/config").get_json()["items"]}
        self.assertEqual(items["default_base_url"]["config_value"], "https://erp.example.com")
        self.assertNotIn("default_base_url", self.user.get("/api/config/public").get_json()["config"])

        self.assertEqual(self.admin.delete("/api/admin/config/default_base_url").status_code, 200)
        missing = self.admin.delete("/api/admin/config/default_base_url")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.get_json()["error"], "global_config_not_found")

        invalid = self.admin.put("/api/admin/config/app_name", json={"description": "no value"})
        self.assertEqual(invalid.status_code, 400)

    def test_super_admin_manages_admin_roles(self) -> None:
        response = self.admin.post("/api/admin/admins", json={"email": "ana@test.local", "role": "moderator"})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()["role"], "moderator")

        # The role is picked up on the next /me call.
        self.assertEqual(self.user.get("/api/auth/me").get_json()["user"]["role"], "moderator")
        self.assertEqual(self.user.get("/api/admin/users").status_code, 200)
        self.assertEqual(self.user.patch(f"/api/admin/users/{self.admin_id}", json={"is_active": False}).status_code, 403)
        self.assertEqual(
            self.user.post("/api/admin/admins", json={"email": "ana@test.local", "role": "admin"}).status_code,
            403,
        )

        admins = {item["email"]: item for item in self.admin.get("/api/admin/admins").get_json()["items"]}
        self.assertEqual(admins["ana@test.local"]["created_by"], self.admin_id)
        self.assertEqual(admins["ana@test.local"]["permissions"], {})

        self.assertEqual(self.admin.delete(f"/api/admin/admins/{self.user_id}").status_code, 200)
        self.assertEqual(self.admin.delete(f"/api/admin/admins/{self.user_id}").get_json()["error"], "admin_not_found")
        self.assertEqual(self.admin.delete(f"/api/admin/admins/{self.admin_id}").status_code, 403)

    def test_add_admin_validation(self) -> None:
        bad_role = self.admin.post("/api/admin/admins", json={"email": "ana@test.local", "role": "owner"})
        self.assertEqual(bad_role.status_code, 400)
        unknown = self.admin.post("/api/admin/admins", json={"email": "ghost@test.local", "role": "admin"})
        self.assertEqual(unknown.status_code, 404)
        self.assertEqual(unknown.get_json()["error"], "user_not_found")


if __name__ == "__main__":
    unittest.main()
