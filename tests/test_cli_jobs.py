import json
import os
import unittest

import click

from ido_extractor.cli import parse_assignments, parse_column_patches
from tests.helpers.api import build_temp_app, register, save_configuration, teardown_temp_app
from tests.helpers.ido_stub import FakeIdoServer
from tests.helpers.temp_db import TempDbSandbox


class CliParsingTest(unittest.TestCase):
    def test_assignments_keep_everything_after_first_equals(self) -> None:
        self.assertEqual(parse_assignments(["Lot=L-1", "Note=a=b", "Empty="], "--filter"), {"Lot": "L-1", "Note": "a=b", "Empty": ""})
        with self.assertRaises(click.BadParameter):
            parse_assignments(["novalue"], "--filter")
        with self.assertRaises(click.BadParameter):
            parse_assignments(["=x"], "--filter")

    def test_column_patches_keep_mode(self) -> None:
        patches = parse_column_patches(["Site=MAIN"], ["Item=X"])
        self.assertEqual([(p.name, p.value, p.mode) for p in patches], [("Site", "MAIN", "add"), ("Item", "X", "modify")])


class JobsCliTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="jobs_cli")
        self.app = build_temp_app(self._temp_db)
        client = self.app.test_client()
        register(client, "owner@test.local")
        save_configuration(client)
        client.post(
            "/api/jobs",
            json={
                "job_name": "Open_Lots",
                "ido_name": "SLLots",
                "query_params": {"properties": "Lot,Qty", "recordCap": 10},
                "filterable_fields": [{"name": "Lot", "prompt": "Lot"}],
            },
        )
        self.runner = self.app.test_cli_runner()
        self.server = FakeIdoServer()
        self.server.collections["SLLots"] = [{"Lot": "L1", "Qty": 1}, {"Lot": "L2", "Qty": 2}]

    def tearDown(self) -> None:
        teardown_temp_app(self.app, self._temp_db)

    def test_list_shows_own_and_template_jobs(self) -> None:
        result = self.runner.invoke(args=["jobs", "list", "--email", "owner@test.local"])
        self.assertEqual(result.exit_code, 0, msg=result.output)
        lines = result.output.strip().splitlines()
        self.assertIn("Open_Lots\tSLLots\tcsv\town", lines)
        self.assertIn("Staging_Area_Label\tOPSIT_RS_QCInspIps\tcsv\ttemplate", lines)

    def test_unknown_user_fails(self) -> None:
        result = self.runner.invoke(args=["jobs", "list", "--email", "ghost@test.local"])
        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("No application user", result.output)

    def test_seed_default(self) -> None:
        first = self.runner.invoke(args=["jobs", "seed-default", "--email", "owner@test.local"])
        second = self.runner.invoke(args=["jobs", "seed-default", "--email", "owner@test.local"])
        self.assertIn("Default job created.", first.output)
        self.assertIn("Default job already present.", second.output)

    def test_run_exports_and_prints_log(self) -> None:
        with self.server.patch():
            result = self.runner.invoke(
                args=[
                    "jobs",
                    "run",
                    "Open_Lots",
                    "--email",
                    "owner@test.local",
                    "--username",
                    "svc",
                    "--encryption-password",
                    "vault-pw",
                    "--filter",
                    "Lot=L1",
                    "--add-column",
                    "Site=MAIN",
                    "--format",
                    "xlsx",
                ]
            )

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertIn("[info] Applied filters: Lot = 'L1'", result.output)
        self.assertIn("[info] Added custom column: Site", result.output)
        summary = json.loads(result.output.strip().splitlines()[-1])
        self.assertEqual(summary["status"], "success")
        self.assertEqual(summary["record_count"], 2)
        self.assertTrue(summary["file_name"].endswith(".xlsx"))
        self.assertTrue(os.path.isfile(summary["file_path"]))
        self.assertNotIn("log", summary)

    def test_run_reports_bad_encryption_password(self) -> None:
        with self.server.patch():
            result = self.runner.invoke(
                args=["jobs", "run", "Open_Lots", "--email", "owner@test.local", "--username", "svc"],
                input="wrong\n",
            )
        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("Invalid encryption password", result.output)


if __name__ == "__main__":
    unittest.main()
