"""
Tests for adapter registry and format detection.
"""

import zipfile
from pathlib import Path

import pytest

from wp_migrate.archive.base import Archive
from wp_migrate.archive.registry import AdapterRegistry, default_adapters, normalize_name
from wp_migrate.errors import ValidationError


class TestRegistryOrder:
    """Tests for default adapter order."""

    def test_native_first(self):
        assert [a.name for a in default_adapters()] == [
            "wpmigrate",
            "duplicator",
            "jetpack",
            "solidbackups",
            "solidbackups_nextgen",
        ]

    def test_every_adapter_declares_interface(self):
        for adapter in default_adapters():
            assert adapter.display_name
            assert adapter.required_tools
            assert adapter.layout_hint


class TestGet:
    """Tests for AdapterRegistry.get."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("duplicator", "duplicator"),
            ("Jetpack", "jetpack"),
            ("native", "wpmigrate"),
            ("wp-migrate", "wpmigrate"),
            ("backupbuddy", "solidbackups"),
            ("solidbackups-nextgen", "solidbackups_nextgen"),
            ("solid-backups", "solidbackups"),
            ("Solid-Backups-NextGen", "solidbackups_nextgen"),
        ],
    )
    def test_names_and_aliases(self, name: str, expected: str):
        assert AdapterRegistry().get(name).name == expected

    def test_unknown_lists_available(self):
        with pytest.raises(ValidationError) as exc_info:
            AdapterRegistry().get("updraft")
        message = str(exc_info.value)
        assert "Unknown archive type: updraft" in message
        assert "duplicator" in message and "solidbackups_nextgen" in message

    def test_normalize_name(self):
        assert normalize_name(" NextGen ") == "solidbackups_nextgen"


class TestDetect:
    """Tests for AdapterRegistry.detect."""

    def test_detects_every_format(self, all_archives):
        registry = AdapterRegistry()
        for name, path in all_archives.items():
            assert registry.detect(Archive.from_path(path)).name == name

    def test_native_archive_detected_as_native(self, native_archive: Path):
        """wpmigrate-backup.json with format_version 1.0 is the native format."""
        adapter = AdapterRegistry().detect(Archive.from_path(native_archive))
        assert adapter.name == "wpmigrate"

    def test_override_binds_without_probing_others(self, duplicator_archive: Path):
        archive = Archive.from_path(duplicator_archive, archive_type="duplicator")
        assert AdapterRegistry().detect(archive).name == "duplicator"

    def test_wrong_override_fails_clearly(self, native_archive: Path):
        archive = Archive.from_path(native_archive, archive_type="jetpack")
        with pytest.raises(ValidationError) as exc_info:
            AdapterRegistry().detect(archive)
        assert "not a valid Jetpack Backup backup" in str(exc_info.value)
        assert exc_info.value.tried == ["Jetpack Backup"]

    def test_unrecognized_lists_formats_tried(self, tmp_path: Path):
        archive = tmp_path / "random.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("readme.txt", "hello")

        with pytest.raises(ValidationError) as exc_info:
            AdapterRegistry().detect(Archive.from_path(archive))

        assert "Unable to detect archive format" in str(exc_info.value)
        assert len(exc_info.value.tried) == 5
        assert "Solid Backups NextGen" in str(exc_info.value)

    def test_custom_adapter_list(self, native_archive: Path):
        registry = AdapterRegistry(default_adapters()[1:])
        with pytest.raises(ValidationError):
            registry.detect(Archive.from_path(native_archive))

    def test_missing_archive(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            Archive.from_path(tmp_path / "missing.zip")
