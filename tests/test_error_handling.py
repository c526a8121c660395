import unittest
from unittest.mock import patch

from ido_extractor.errors import IntegrationError, SystemError, ValidationError, classify_ido_failure
from ido_extractor.ido.client import IdoError
from ido_extractor.ui_strings import error_message
from tests.helpers.api import build_temp_app, register, teardown_temp_app
from tests.helpers.temp_db import TempDbSandbox


class ErrorPermissionTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_perm")
        self.app = build_temp_app(self._temp_db, TESTING=False, DB_AUTO_INIT=False)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        teardown_temp_app(self.app, self._temp_db)

    def test_permission_error_for_unauthenticated_api(self) -> None:
        response = self.client.get("/api/jobs")
        self.assertEqual(response.status_code, 401)

        payload = response.get_json()
        self.assertEqual(payload.get("error"), "auth_required")
        self.assertEqual(payload.get("message"), error_message("auth_required"))
        self.assertTrue((payload.get("request_id") or "").strip())
        self.assertNotIn("Traceback", response.get_data(as_text=True))

    def test_incoming_request_id_is_echoed(self) -> None:
        response = self.client.get("/api/executions", headers={"X-Request-Id": "req-abc-123"})
        self.assertEqual(response.headers.get("X-Request-Id"), "req-abc-123")
        self.assertEqual(response.get_json().get("request_id"), "req-abc-123")


class ErrorHandlingApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_api")
        self.app = build_temp_app(self._temp_db)
        self.client = self.app.test_client()
        register(self.client, "owner@test.local")

    def tearDown(self) -> None:
        teardown_temp_app(self.app, self._temp_db)

    def test_validation_error_carries_field_details(self) -> None:
        response = self.client.post("/api/jobs", json={"job_name": "Broken"})
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload.get("error"), "invalid_job_definition")
        self.assertEqual(payload.get("message"), error_message("invalid_job_definition"))
        self.assertEqual(payload.get("field"), "ido_name")
        self.assertEqual(payload.get("details"), "ido_name is required.")

    def test_ido_errors_are_mapped_to_integration_errors(self) -> None:
        with patch(
            "ido_extractor.application.connection_service.ConnectionService.test",
            side_effect=IdoError("IDO HTTP 403: forbidden", status_code=403),
        ):
            response = self.client.post("/api/connection/test")

        self.assertEqual(response.status_code, 502)
        payload = response.get_json()
        self.assertEqual(payload.get("error"), "ido_auth_failed")
        self.assertEqual(payload.get("message"), error_message("ido_auth_failed"))
        self.assertIn("forbidden", payload.get("details") or "")

    def test_stack_trace_not_exposed_for_unhandled_error(self) -> None:
        with patch(
            "ido_extractor.routes.job_routes._job_service.list_jobs",
            side_effect=RuntimeError("stack_secret_token"),
        ):
            response = self.client.get("/api/jobs")

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload.get("error"), "unexpected_error")
        self.assertEqual(payload.get("message"), error_message("unexpected_error"))
        body = response.get_data(as_text=True)
        self.assertNotIn("Traceback", body)
        self.assertNotIn("stack_secret_token", body)

    def test_unknown_routes_keep_http_status(self) -> None:
        response = self.client.get("/api/does-not-exist")
        self.assertEqual(response.status_code, 404)


class ErrorPayloadTest(unittest.TestCase):
    def test_critical_details_are_hidden(self) -> None:
        payload = SystemError(details="db password leaked").to_response_payload("rid-1")
        self.assertEqual(payload["error"], "system_error")
        self.assertNotIn("details", payload)

        payload = ValidationError(code="invalid_payload", details="bad body", payload={"field": "x"}).to_response_payload("rid-2")
        self.assertEqual(payload["details"], "bad body")
        self.assertEqual(payload["field"], "x")
        self.assertEqual(payload["request_id"], "rid-2")

    def test_integration_error_defaults(self) -> None:
        error = IntegrationError()
        self.assertEqual(error.http_status, 502)
        self.assertFalse(error.critical)
        self.assertEqual(error.code, "integration_error")
        self.assertEqual(error.message_key, "ido_unavailable")

    def test_classify_ido_failure(self) -> None:
        self.assertEqual(classify_ido_failure("IDO HTTP 401: nope"), ("ido_auth_failed", "ido_auth_failed", 502))
        self.assertEqual(classify_ido_failure("whatever", 404), ("ido_request_rejected", "ido_request_rejected", 422))
        self.assertEqual(classify_ido_failure("IDO HTTP 429: slow down"), ("ido_unavailable", "ido_unavailable", 502))
        self.assertEqual(classify_ido_failure("IDO connection error: timed out"), ("ido_unavailable", "ido_unavailable", 502))


if __name__ == "__main__":
    unittest.main()
