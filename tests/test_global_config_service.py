import unittest

from ido_extractor.application.global_config_service import GlobalConfigService
from ido_extractor.errors import NotFoundError, ValidationError


class _FakeRepository:
    def __init__(self, values: dict) -> None:
        self.values = dict(values)
        self.reads = 0

    def get(self, db, key):
        self.reads += 1
        if key in self.values:
            return True, self.values[key]
        return False, None

    def get_many(self, db, keys):
        self.reads += 1
        return {key: self.values[key] for key in keys if key in self.values}

    def list_all(self, db, *, public_only=False):
        return [{"config_key": key, "config_value": value} for key, value in sorted(self.values.items())]

    def upsert(self, db, key, value, *, description, is_public, created_by):
        self.values[key] = value

    def delete(self, db, key):
        return self.values.pop(key, None) is not None


class GlobalConfigServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.now = [100.0]
        self.repository = _FakeRepository(
            {
                "maintenance_mode": False,
                "max_record_cap": 500,
                "supported_formats": ["CSV", "xlsx", "pdf"],
                "default_config_name": "PROD",
            }
        )
        self.service = GlobalConfigService(self.repository, ttl_seconds=60, clock=lambda: self.now[0])

    def test_values_are_cached_until_ttl_expires(self) -> None:
        self.assertFalse(self.service.is_maintenance_mode(None))
        self.repository.values["maintenance_mode"] = True
        self.now[0] += 59
        self.assertFalse(self.service.is_maintenance_mode(None))
        self.assertEqual(self.repository.reads, 1)

        self.now[0] += 1
        self.assertTrue(self.service.is_maintenance_mode(None))
        self.assertEqual(self.repository.reads, 2)

    def test_set_and_delete_invalidate_the_key(self) -> None:
        self.assertEqual(self.service.get_max_record_cap(None), 500)
        self.service.set_config(None, "max_record_cap", 50)
        self.assertEqual(self.service.get_max_record_cap(None), 50)

        self.service.delete_config(None, "max_record_cap")
        self.assertEqual(self.service.get_max_record_cap(None), 10000)
        with self.assertRaises(NotFoundError):
            self.service.delete_config(None, "max_record_cap")

    def test_blank_keys_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self.service.set_config(None, "  ", 1)

    def test_typed_accessors_fall_back_on_bad_values(self) -> None:
        self.assertEqual(self.service.get_supported_formats(None), ["csv", "xlsx"])
        self.repository.values["supported_formats"] = "csv"
        self.repository.values["max_record_cap"] = "lots"
        self.service.clear_cache()
        self.assertEqual(self.service.get_supported_formats(None), ["csv", "xlsx"])
        self.assertEqual(self.service.get_max_record_cap(None), 10000)
        self.assertTrue(self.service.is_registration_enabled(None))

    def test_default_api_config_reads_missing_keys_once(self) -> None:
        defaults = self.service.get_default_api_config(None)
        self.assertEqual(defaults["config_name"], "PROD")
        self.assertEqual(defaults["base_url"], "")
        self.assertEqual(defaults["timeout"], 30)
        reads = self.repository.reads
        self.service.get_default_api_config(None)
        # Only keys that were missing in storage are asked for again.
        self.assertEqual(self.repository.reads, reads + 1)


if __name__ == "__main__":
    unittest.main()
