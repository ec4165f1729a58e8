# -*- coding: utf-8 -*-
"""
Smoke tests for the TRRCMS import pipeline.
These tests verify basic functionality end to end on a throwaway SQLite file.
"""

import sys
import tempfile
import unittest
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


class TestModels(unittest.TestCase):
    """Test model classes."""

    def test_building_code(self):
        """Test Building code generation."""
        from models.building import Building

        building = Building(
            governorate_code="01",
            district_code="02",
            subdistrict_code="03",
            community_code="001",
            neighborhood_code="002",
            building_number="00001",
        )

        self.assertEqual(building.building_id, "01020300100200001")
        self.assertEqual(building.building_id_display, "01-02-03-001-002-00001")
        self.assertTrue(building.has_valid_code)

    def test_unit_key(self):
        """Test the composite property key."""
        from models.unit import make_unit_key

        self.assertEqual(make_unit_key("01020300100200001", " A-12 "), "01020300100200001|a-12")
        self.assertIsNone(make_unit_key("", "A-12"))

    def test_person_identifier(self):
        """Test Person reviewer label."""
        from models.person import Person

        person = Person.from_payload(
            {"first_name": "محمد", "father_name": "أحمد", "family_name": "الحلبي", "national_id": "12345678901"},
            "p-1"
        )

        self.assertEqual(person.full_name, "محمد أحمد الحلبي")
        self.assertIn("12345678901", person.identifier)

    def test_pair_key_is_order_independent(self):
        """Test conflict pair keys."""
        from models.conflict import make_pair_key

        self.assertEqual(make_pair_key("person", "a", "b"), make_pair_key("person", "b", "a"))


class TestDatabase(unittest.TestCase):
    """Test database operations."""

    @classmethod
    def setUpClass(cls):
        """Set up test database."""
        from repositories.database import Database

        cls.tmp_dir = tempfile.TemporaryDirectory()
        cls.db = Database(Path(cls.tmp_dir.name) / "smoke.db")
        cls.db.initialize()

    @classmethod
    def tearDownClass(cls):
        """Clean up test database."""
        cls.db.close()
        cls.tmp_dir.cleanup()

    def test_database_tables_exist(self):
        """Test that all required tables are created."""
        tables = ["import_packages", "staging_records", "conflicts", "audit_log",
                  "buildings", "property_units", "persons", "claims"]

        for table in tables:
            result = self.db.fetch_one(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
                (table,)
            )
            self.assertIsNotNone(result, f"Table {table} should exist")

    def test_transaction_rollback(self):
        """Test that a failed transaction leaves no trace."""
        with self.assertRaises(RuntimeError):
            with self.db.transaction() as cursor:
                self.db.run(cursor, "INSERT INTO audit_log (action) VALUES (?)", ("smoke",))
                raise RuntimeError("abort")

        row = self.db.fetch_one("SELECT COUNT(*) as count FROM audit_log WHERE action = ?", ("smoke",))
        self.assertEqual(row["count"], 0)


class TestPipeline(unittest.TestCase):
    """Submit, validate, detect and commit one small package."""

    @classmethod
    def setUpClass(cls):
        from repositories.database import Database
        from services.current_user import CurrentUserProvider
        from services.import_service import ImportService

        cls.tmp_dir = tempfile.TemporaryDirectory()
        cls.db = Database(Path(cls.tmp_dir.name) / "pipeline.db")
        cls.db.initialize()
        cls.service = ImportService(
            cls.db, CurrentUserProvider("smoke"), archive_base_path=str(Path(cls.tmp_dir.name) / "archives")
        )

    @classmethod
    def tearDownClass(cls):
        cls.db.close()
        cls.tmp_dir.cleanup()

    def test_small_package(self):
        """Test the whole pipeline on one building and one unit."""
        from models.import_package import ImportStatus

        package = self.service.submit_package({
            "file_name": "smoke.uhc",
            "records": {
                "buildings": [{
                    "original_id": "b-1", "governorate_code": "01", "district_code": "02",
                    "subdistrict_code": "03", "community_code": "001", "neighborhood_code": "002",
                    "building_number": "00009",
                }],
                "property_units": [{"original_id": "u-1", "original_building_id": "b-1", "unit_identifier": "1"}],
            },
        })
        self.service.run_validation(package.package_id)
        self.service.run_detection(package.package_id)
        report = self.service.commit_package(package.package_id, approve_all_valid=True)

        self.assertEqual(self.service.get_package(package.package_id).status, ImportStatus.COMPLETED)
        self.assertEqual(report.total_committed, 2)


class TestConfig(unittest.TestCase):
    """Test configuration."""

    def test_config_values(self):
        """Test Config values are set."""
        from app.config import Config

        self.assertEqual(Config.PERSON_HIGH_CONFIDENCE_THRESHOLD, 90)
        self.assertEqual(Config.PERSON_MEDIUM_CONFIDENCE_THRESHOLD, 70)
        self.assertIsNotNone(Config.DB_PATH)

    def test_vocabularies(self):
        """Test code lists are registered by domain."""
        from app.config import Vocabularies

        self.assertIn(1, Vocabularies.codes("building_type"))
        self.assertIn("claim_source", Vocabularies.BY_DOMAIN)


def run_tests():
    """Run all smoke tests."""
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    # Add test classes
    suite.addTests(loader.loadTestsFromTestCase(TestModels))
    suite.addTests(loader.loadTestsFromTestCase(TestDatabase))
    suite.addTests(loader.loadTestsFromTestCase(TestPipeline))
    suite.addTests(loader.loadTestsFromTestCase(TestConfig))

    # Run tests
    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return result.wasSuccessful()


if __name__ == "__main__":
    success = run_tests()
    sys.exit(0 if success else 1)
