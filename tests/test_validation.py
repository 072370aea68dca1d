"""
Tests for post-import verification.
"""

from pathlib import Path

from wp_migrate.importer.urls import SiteUrls
from wp_migrate.importer.validation import (
    ValidationCheck,
    ValidationResult,
    check_content_dir,
    check_core_tables,
    check_site_urls,
    check_table_prefix,
    validate_import,
)

from conftest import DEST_URL, SOURCE_URL, FakeWordPress

DEST_URLS = SiteUrls(home=DEST_URL, siteurl=DEST_URL)


class TestChecks:
    """Tests for individual checks."""

    def test_core_tables_present(self, fake_wp: FakeWordPress):
        check = check_core_tables(fake_wp, "wp_")
        assert check.passed
        assert check.message == "3/3 present for prefix wp_"

    def test_core_tables_missing(self, fake_wp: FakeWordPress):
        del fake_wp.tables["wp_users"]

        check = check_core_tables(fake_wp, "wp_")

        assert not check.passed
        assert check.details == "Missing: wp_users"

    def test_table_prefix_mismatch(self, fake_wp: FakeWordPress):
        check = check_table_prefix(fake_wp, "custom_")
        assert not check.passed
        assert check.details == "Expected custom_"

    def test_site_urls(self, fake_wp: FakeWordPress):
        assert check_site_urls(fake_wp, DEST_URLS).passed
        assert not check_site_urls(fake_wp, SiteUrls(home=SOURCE_URL, siteurl=SOURCE_URL)).passed

    def test_content_dir(self, wp_site: Path, tmp_path: Path):
        assert check_content_dir(wp_site / "wp-content").passed
        assert not check_content_dir(tmp_path / "missing").passed

    def test_content_dir_without_wordpress_dirs(self, tmp_path: Path):
        (tmp_path / "empty").mkdir()
        check = check_content_dir(tmp_path / "empty")
        assert not check.passed
        assert "No plugins/" in check.details


class TestValidateImport:
    """Tests for validate_import function."""

    def test_all_pass(self, fake_wp: FakeWordPress, wp_site: Path):
        result = validate_import(fake_wp, wp_site / "wp-content", "wp_", DEST_URLS)

        assert result.passed
        assert len(result.checks) == 4
        assert result.summary == "All checks passed"

    def test_urls_skipped_without_expectation(self, fake_wp: FakeWordPress, wp_site: Path):
        result = validate_import(fake_wp, wp_site / "wp-content", "wp_")
        assert [c.name for c in result.checks] == ["Core tables", "Table prefix", "wp-content"]

    def test_failure_summary(self, fake_wp: FakeWordPress, wp_site: Path):
        result = validate_import(fake_wp, wp_site / "wp-content", "custom_", DEST_URLS)

        assert not result.passed
        assert result.summary == "Failed: Core tables, Table prefix"

    def test_command_failure_is_a_failed_check(self, fake_wp: FakeWordPress, wp_site: Path):
        fake_wp.fail("list_tables")

        result = validate_import(fake_wp, wp_site / "wp-content", "wp_", DEST_URLS)

        assert not result.passed
        assert result.checks[0].name == "WordPress"


class TestValidationResult:
    """Tests for ValidationResult."""

    def test_str(self):
        result = ValidationResult(
            passed=False,
            checks=[
                ValidationCheck(name="Core tables", passed=True, message="3/3"),
                ValidationCheck(name="Table prefix", passed=False, message="wp_", details="Expected x_"),
            ],
        )
        text = str(result)
        assert "✓ Core tables: 3/3" in text
        assert "✗ Table prefix: wp_" in text
        assert "→ Expected x_" in text
        assert "Some checks failed." in text
