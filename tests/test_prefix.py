"""
Tests for table prefix resolution.
"""

from pathlib import Path

import pytest

from wp_migrate.errors import ImportPhaseError, PrefixResolutionError
from wp_migrate.prefix import (
    PrefixResolution,
    candidate_prefixes,
    derive_candidates,
    find_prefix,
    has_core_tables,
    resolve_prefix,
)

from conftest import FakeWordPress, site_tables


class TestCandidates:
    """Tests for candidate ordering and core table probing."""

    def test_has_core_tables(self):
        assert has_core_tables("wp_", ["wp_options", "wp_posts", "wp_users"])
        assert not has_core_tables("wp_", ["wp_options", "wp_posts"])

    def test_derive_from_options_tables(self):
        tables = ["wp_options", "custom_options", "wp_2_options", "wp_posts", "bad-options"]
        assert derive_candidates(tables) == ["custom_", "wp_", "wp_2_"]

    def test_order_configured_hints_derived(self):
        tables = ["b_options", "a_options"]
        assert candidate_prefixes("wp_", tables, hints=["hint_"]) == ["wp_", "hint_", "a_", "b_"]

    def test_deduplicates_and_drops_invalid(self):
        assert candidate_prefixes("wp_", ["wp_options"], hints=["wp_", "bad;", ""]) == ["wp_"]

    def test_find_prefers_configured(self):
        tables = list(site_tables("wp_", "x")) + list(site_tables("alt_", "x"))
        assert find_prefix("wp_", tables) == "wp_"

    def test_find_falls_back_to_consistent_prefix(self):
        tables = list(site_tables("custom_", "x"))
        assert find_prefix("wp_", tables) == "custom_"

    def test_find_rejects_partial_prefix(self):
        """A prefix with only some core tables is not accepted."""
        tables = ["half_options", "half_posts"]
        assert find_prefix("wp_", tables) is None


class TestResolvePrefix:
    """Tests for resolve_prefix function."""

    def test_configured_prefix_matches(self, fake_wp: FakeWordPress):
        result = resolve_prefix(fake_wp)

        assert result == PrefixResolution(configured="wp_", resolved="wp_")
        assert result.changed is False
        assert fake_wp.called("set_table_prefix") == []

    def test_updates_configuration_to_imported_prefix(self, tmp_path: Path):
        """Imported custom_ tables win over the configured wp_ prefix."""
        wp = FakeWordPress(tmp_path)
        wp.tables = site_tables("custom_", "https://source.example")

        result = resolve_prefix(wp)

        assert result.changed is True
        assert result.resolved == "custom_"
        assert wp.prefix == "custom_"
        assert all(t.startswith("custom_") for t in wp.list_tables())

    def test_hint_considered_before_derived(self, tmp_path: Path):
        wp = FakeWordPress(tmp_path)
        wp.tables = {**site_tables("a_", "x"), **site_tables("jp_", "x")}

        assert resolve_prefix(wp, hints=["jp_"]).resolved == "jp_"

    def test_no_consistent_prefix_raises(self, tmp_path: Path):
        wp = FakeWordPress(tmp_path)
        wp.tables = {"custom_options": [], "custom_posts": []}

        with pytest.raises(PrefixResolutionError) as exc_info:
            resolve_prefix(wp)

        assert isinstance(exc_info.value, ImportPhaseError)
        assert "custom_options" in str(exc_info.value)
        assert exc_info.value.candidates == ["wp_", "custom_"]

    def test_configuration_update_not_applied(self, tmp_path: Path):
        """A wp-config.php that does not take the new prefix is an import failure."""
        wp = FakeWordPress(tmp_path)
        wp.tables = site_tables("custom_", "x")
        wp.set_table_prefix = lambda prefix: None

        with pytest.raises(ImportPhaseError) as exc_info:
            resolve_prefix(wp)
        assert "custom_" in str(exc_info.value)
