import json
import logging
import unittest

from ido_extractor.observability import (
    JsonLogFormatter,
    bind_request_id,
    observe_ido_cache_hit,
    observe_ido_request,
    observe_job_execution,
    reset_metrics_for_tests,
    set_log_request_id,
)
from tests.helpers.api import build_temp_app, teardown_temp_app
from tests.helpers.temp_db import TempDbSandbox


def _record(msg: str = "worker_log", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="ido_extractor",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class ObservabilityPrometheusTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="observability_metrics")
        self.app = build_temp_app(self._temp_db, AUTH_ENABLED=False)
        self.client = self.app.test_client()
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        teardown_temp_app(self.app, self._temp_db)

    def test_metrics_endpoint_exposes_prometheus_metrics(self) -> None:
        self.client.get("/api/unknown")
        observe_ido_request("load_collection", "success", 120.0)
        observe_ido_request("load_collection", "error", 30.0)
        observe_ido_cache_hit()
        observe_job_execution("success", 42)

        response = self.client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        content_type = response.headers.get("Content-Type") or ""
        self.assertIn("text/plain", content_type)

        payload = response.get_data(as_text=True)
        self.assertIn("http_request_total", payload)
        self.assertIn("http_request_duration_ms_bucket", payload)
        self.assertIn('ido_request_total{operation="load_collection",outcome="error"} 1', payload)
        self.assertIn("ido_request_duration_ms_count 2", payload)
        self.assertIn("ido_cache_hits_total 1", payload)
        self.assertIn("ido_active_connections 0", payload)
        self.assertIn('job_execution_total{status="success"} 1', payload)
        self.assertIn("job_records_exported_total 42", payload)

    def test_health_summarizes_metrics(self) -> None:
        observe_job_execution("error")
        payload = self.client.get("/health").get_json()
        jobs = payload["metrics"]["http"]["jobs"]
        self.assertEqual(jobs["by_status"], {"error": 1})
        self.assertEqual(jobs["records_exported_total"], 0)

    def test_log_formatter_includes_request_id_outside_request_context(self) -> None:
        set_log_request_id("worker-req-123")
        parsed = json.loads(JsonLogFormatter().format(_record()))
        self.assertEqual(parsed.get("request_id"), "worker-req-123")
        self.assertEqual(parsed.get("message"), "worker_log")

    def test_bound_request_id_is_restored(self) -> None:
        set_log_request_id("outer")
        with bind_request_id("cli-run") as bound:
            self.assertEqual(bound, "cli-run")
            inner = json.loads(JsonLogFormatter().format(_record()))
        outer = json.loads(JsonLogFormatter().format(_record()))
        self.assertEqual(inner["request_id"], "cli-run")
        self.assertEqual(outer["request_id"], "outer")

    def test_log_formatter_keeps_extra_fields(self) -> None:
        parsed = json.loads(JsonLogFormatter().format(_record("job_completed", job_name="Open_Lots", record_count=3)))
        self.assertEqual(parsed["job_name"], "Open_Lots")
        self.assertEqual(parsed["record_count"], 3)
        self.assertEqual(parsed["level"], "info")


if __name__ == "__main__":
    unittest.main()
