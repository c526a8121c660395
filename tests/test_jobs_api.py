import unittest

from ido_extractor.domain.defaults import DEFAULT_JOB_NAME
from ido_extractor.ido.client import IdoError
from tests.helpers.api import build_temp_app, connect, register, save_configuration, teardown_temp_app
from tests.helpers.ido_stub import FakeIdoServer
from tests.helpers.temp_db import TempDbSandbox


LOTS_JOB = {
    "job_name": "Open_Lots",
    "ido_name": "SLLots",
    "query_params": {"properties": "Lot, Item ,Qty", "recordCap": 50},
    "output_format": "xlsx",
    "filterable_fields": [
        {"name": "Item", "prompt": "Item", "input_type": "dropdown", "cache_duration": 60},
        {"name": "Qty", "prompt": "Minimum qty", "type": "number", "operator": ">="},
    ],
}


class JobsApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="jobs_api")
        self.app = build_temp_app(self._temp_db)
        self.client = self.app.test_client()
        register(self.client, "owner@test.local")

    def tearDown(self) -> None:
        teardown_temp_app(self.app, self._temp_db)

    def test_template_job_is_visible_but_not_owned(self) -> None:
        items = self.client.get("/api/jobs").get_json()["items"]
        template = next(item for item in items if item["job_name"] == DEFAULT_JOB_NAME)
        self.assertTrue(template["is_template"])
        self.assertFalse(template["owned"])

        detail = self.client.get(f"/api/jobs/{DEFAULT_JOB_NAME}").get_json()["job"]
        self.assertEqual(detail["ido_name"], "OPSIT_RS_QCInspIps")

        # Templates cannot be deleted through a user scope.
        self.assertEqual(self.client.delete(f"/api/jobs/{DEFAULT_JOB_NAME}").status_code, 404)

    def test_create_normalizes_and_lists_job(self) -> None:
        response = self.client.post("/api/jobs", json=LOTS_JOB)
        self.assertEqual(response.status_code, 201)
        job = response.get_json()["job"]
        self.assertTrue(job["owned"])
        self.assertEqual(job["query_params"], {"properties": "Lot,Item,Qty", "recordCap": 50})
        self.assertEqual(job["filterable_fields"][1]["operator"], ">=")
        self.assertEqual(job["filterable_fields"][1]["input_type"], "text")

        columns = self.client.get("/api/jobs/Open_Lots/columns").get_json()
        self.assertEqual(columns["columns"], ["Lot", "Item", "Qty"])

        names = [item["job_name"] for item in self.client.get("/api/jobs").get_json()["items"]]
        self.assertIn("Open_Lots", names)

    def test_saving_same_name_updates_in_place(self) -> None:
        first = self.client.post("/api/jobs", json=LOTS_JOB).get_json()["job"]
        second = self.client.post("/api/jobs", json={**LOTS_JOB, "output_format": "csv"}).get_json()["job"]
        self.assertEqual(first["id"], second["id"])
        self.assertEqual(second["output_format"], "csv")

    def test_record_cap_is_limited_by_global_config(self) -> None:
        payload = {**LOTS_JOB, "query_params": {"properties": "Lot", "recordCap": 999999}}
        job = self.client.post("/api/jobs", json=payload).get_json()["job"]
        self.assertEqual(job["query_params"]["recordCap"], 10000)

    def test_invalid_definitions_are_rejected(self) -> None:
        cases = [
            ({**LOTS_JOB, "job_name": " "}, "job_name"),
            ({**LOTS_JOB, "query_params": {"properties": ""}}, "properties"),
            ({**LOTS_JOB, "query_params": {"properties": "Lot", "recordCap": 0}}, "recordCap"),
            ({**LOTS_JOB, "filterable_fields": [{"name": "Lot", "operator": "DROP"}]}, "Lot"),
            ({**LOTS_JOB, "filterable_fields": [{"name": "Lot"}, {"name": "Lot"}]}, "filterable_fields"),
        ]
        for payload, field_name in cases:
            with self.subTest(field=field_name):
                response = self.client.post("/api/jobs", json=payload)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.get_json()["error"], "invalid_job_definition")
                self.assertEqual(response.get_json()["field"], field_name)

        response = self.client.post("/api/jobs", json={**LOTS_JOB, "output_format": "pdf"})
        self.assertEqual(response.get_json()["error"], "unsupported_format")

    def test_jobs_are_private_to_their_owner(self) -> None:
        self.client.post("/api/jobs", json=LOTS_JOB)
        other = self.app.test_client()
        register(other, "other@test.local")

        self.assertEqual(other.get("/api/jobs/Open_Lots").status_code, 404)
        self.assertEqual(other.delete("/api/jobs/Open_Lots").status_code, 404)
        other_names = [item["job_name"] for item in other.get("/api/jobs").get_json()["items"]]
        self.assertNotIn("Open_Lots", other_names)

        self.assertEqual(self.client.delete("/api/jobs/Open_Lots").status_code, 200)
        self.assertEqual(self.client.get("/api/jobs/Open_Lots").get_json()["error"], "job_not_found")

    def test_seed_default_job_is_idempotent(self) -> None:
        self.assertEqual(self.client.post("/api/jobs/default").status_code, 201)
        self.assertEqual(self.client.post("/api/jobs/default").status_code, 200)
        owned = [
            item
            for item in self.client.get("/api/jobs").get_json()["items"]
            if item["job_name"] == DEFAULT_JOB_NAME and item["owned"]
        ]
        self.assertEqual(len(owned), 1)

    def test_requires_login(self) -> None:
        anonymous = self.app.test_client()
        response = anonymous.get("/api/jobs")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "auth_required")


class FilterOptionsApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="filter_options_api")
        self.app = build_temp_app(self._temp_db)
        self.client = self.app.test_client()
        register(self.client, "owner@test.local")
        save_configuration(self.client)
        self.client.post("/api/jobs", json=LOTS_JOB)
        self.server = FakeIdoServer()
        self.server.collections["SLLots"] = [
            {"Lot": "L1", "Item": "B-2"},
            {"Lot": "L2", "Item": "A-1"},
            {"Lot": "L3", "Item": "B-2"},
        ]

    def tearDown(self) -> None:
        teardown_temp_app(self.app, self._temp_db)

    def test_requires_active_connection(self) -> None:
        response = self.client.get("/api/jobs/Open_Lots/filter-options")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "ido_not_connected")

    def test_dropdown_fields_get_distinct_values(self) -> None:
        with self.server.patch():
            connect(self.client)
            body = self.client.get("/api/jobs/Open_Lots/filter-options").get_json()
            load_calls = len([url for url in self.server.calls if "/load/" in url])
            self.client.get("/api/jobs/Open_Lots/filter-options")
            cached_calls = len([url for url in self.server.calls if "/load/" in url])
            self.client.post("/api/jobs/Open_Lots/filter-options/refresh")
            refreshed_calls = len([url for url in self.server.calls if "/load/" in url])

        self.assertEqual(body["options"], {"Item": ["A-1", "B-2"]})
        self.assertEqual(body["warnings"], [])
        self.assertEqual(cached_calls, load_calls)
        self.assertEqual(refreshed_calls, load_calls + 1)

    def test_ido_failure_degrades_to_empty_options(self) -> None:
        with self.server.patch():
            connect(self.client)
            self.server.fail_load_with = IdoError("IDO HTTP 500: down", status_code=500)
            body = self.client.get("/api/jobs/Open_Lots/filter-options").get_json()

        self.assertEqual(body["options"], {"Item": []})
        self.assertEqual(body["warnings"][0]["field"], "Item")


if __name__ == "__main__":
    unittest.main()
