import os
import tempfile
import unittest

from ido_extractor.config import Config
from tests.helpers.temp_db import TempDbSandbox, assert_safe_temp_db_path, open_sqlite_temp_connection


class TempDbHelperTest(unittest.TestCase):
    def test_temp_db_create_and_cleanup(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_sanity")
        db_path = sandbox.db_path
        temp_dir = sandbox.temp_dir

        self.assertTrue(os.path.exists(temp_dir))
        self.assertTrue(db_path.startswith(os.path.realpath(tempfile.gettempdir())))

        conn = open_sqlite_temp_connection(db_path)
        try:
            conn.execute("CREATE TABLE IF NOT EXISTS sanity (id INTEGER PRIMARY KEY, value TEXT)")
            conn.execute("INSERT INTO sanity (value) VALUES ('ok')")
            row = conn.execute("SELECT COUNT(*) FROM sanity").fetchone()
            self.assertEqual(int(row[0]), 1)
        finally:
            conn.close()

        sandbox.cleanup()
        self.assertFalse(os.path.exists(db_path))
        self.assertFalse(os.path.exists(temp_dir))

    def test_make_config_points_every_path_into_the_sandbox(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_config")
        self.addCleanup(sandbox.cleanup)

        config = sandbox.make_config(Config, TESTING=True)
        self.assertTrue(issubclass(config, Config))
        self.assertTrue(config.TESTING)
        for value in (config.DB_PATH, config.EXPORT_DIR, config.IDO_CACHE_PATH):
            self.assertTrue(value.startswith(sandbox.temp_dir))
        self.assertFalse(config.RATE_LIMIT_ENABLED)

    def test_disallow_workspace_paths(self) -> None:
        workspace_db = os.path.join(os.getcwd(), "ido_extractor_test.db")
        with self.assertRaises(ValueError):
            assert_safe_temp_db_path(workspace_db)


if __name__ == "__main__":
    unittest.main()
