"""
Tests for snapshot restore.
"""

import shutil
from pathlib import Path

import pytest

from wp_migrate.errors import ConfirmationError, RollbackError, SnapshotError
from wp_migrate.rollback import rollback, rollback_plan
from wp_migrate.snapshot import create_snapshot

from conftest import FakeWordPress, site_tables


def _mutate(wp: FakeWordPress, site: Path) -> None:
    """Simulate a half-finished import."""
    wp.tables = site_tables("custom_", "https://source.example", posts=7)
    wp.prefix = "custom_"
    content = site / "wp-content"
    shutil.rmtree(content / "plugins")
    (content / "themes" / "new-theme").mkdir()
    (content / "themes" / "new-theme" / "style.css").write_text("/* imported */")


@pytest.fixture
def snapshot(fake_wp: FakeWordPress, transport, wp_site: Path, tmp_path: Path):
    return create_snapshot(
        fake_wp, transport, tmp_path / "snapshots", wp_site / "wp-content", stamp="20240501-120000"
    )


class TestRollback:
    """Tests for rollback function."""

    def test_restores_database_and_content(
        self, fake_wp: FakeWordPress, transport, wp_site: Path, snapshot, tree_digest
    ):
        """Snapshot, mutate, rollback gives back the pre-snapshot state."""
        before_rows = fake_wp.row_counts()
        before_dump = fake_wp.dump()
        before_content = tree_digest(wp_site / "wp-content")
        _mutate(fake_wp, wp_site)

        result = rollback(fake_wp, transport, snapshot=snapshot, assume_yes=True)

        assert result.completed
        assert result.restored_database and result.restored_content
        assert fake_wp.row_counts() == before_rows
        assert fake_wp.dump() == before_dump
        assert fake_wp.prefix == "wp_"
        assert tree_digest(wp_site / "wp-content") == before_content

    def test_is_idempotent(self, fake_wp: FakeWordPress, transport, wp_site: Path, snapshot, tree_digest):
        _mutate(fake_wp, wp_site)

        rollback(fake_wp, transport, snapshot=snapshot, assume_yes=True)
        first = (fake_wp.dump(), tree_digest(wp_site / "wp-content"), fake_wp.prefix)
        rollback(fake_wp, transport, snapshot=snapshot, assume_yes=True)
        second = (fake_wp.dump(), tree_digest(wp_site / "wp-content"), fake_wp.prefix)

        assert first == second

    def test_keeps_content_backup(self, fake_wp: FakeWordPress, transport, snapshot):
        rollback(fake_wp, transport, snapshot=snapshot, assume_yes=True)
        assert snapshot.content_backup.is_dir()

    def test_selects_newest_by_default(self, fake_wp: FakeWordPress, transport, wp_site: Path, tmp_path: Path):
        snapshots_dir = tmp_path / "snapshots"
        create_snapshot(fake_wp, transport, snapshots_dir, wp_site / "wp-content", stamp="20240101-000000")
        fake_wp.tables["wp_posts"].append("99, 'Later', 'x'")
        create_snapshot(fake_wp, transport, snapshots_dir, wp_site / "wp-content", stamp="20240201-000000")
        expected = fake_wp.dump()
        _mutate(fake_wp, wp_site)

        result = rollback(fake_wp, transport, snapshots_dir=snapshots_dir, assume_yes=True)

        assert result.snapshot.stamp == "20240201-000000"
        assert fake_wp.dump() == expected

    def test_named_snapshot(self, fake_wp: FakeWordPress, transport, wp_site: Path, tmp_path: Path):
        snapshots_dir = tmp_path / "snapshots"
        create_snapshot(fake_wp, transport, snapshots_dir, wp_site / "wp-content", stamp="20240101-000000")
        expected = fake_wp.dump()
        fake_wp.tables["wp_posts"].append("99, 'Later', 'x'")
        create_snapshot(fake_wp, transport, snapshots_dir, wp_site / "wp-content", stamp="20240201-000000")

        rollback(fake_wp, transport, snapshots_dir=snapshots_dir, stamp="20240101-000000", assume_yes=True)

        assert fake_wp.dump() == expected

    def test_no_snapshots(self, fake_wp: FakeWordPress, transport, tmp_path: Path):
        with pytest.raises(SnapshotError):
            rollback(fake_wp, transport, snapshots_dir=tmp_path / "empty", assume_yes=True)

    def test_dry_run_changes_nothing(self, fake_wp: FakeWordPress, transport, wp_site: Path, snapshot, tree_digest):
        _mutate(fake_wp, wp_site)
        dump = fake_wp.dump()
        content = tree_digest(wp_site / "wp-content")
        fake_wp.calls.clear()

        result = rollback(fake_wp, transport, snapshot=snapshot, dry_run=True)

        assert result.dry_run and not result.completed
        assert len(result.plan) == 4
        assert fake_wp.dump() == dump
        assert tree_digest(wp_site / "wp-content") == content
        assert fake_wp.mutations == []

    def test_requires_confirmation(self, fake_wp: FakeWordPress, transport, snapshot):
        with pytest.raises(ConfirmationError):
            rollback(fake_wp, transport, snapshot=snapshot)

    def test_declined_confirmation(self, fake_wp: FakeWordPress, transport, snapshot):
        prompts = []

        def decline(prompt: str) -> bool:
            prompts.append(prompt)
            return False

        result = rollback(fake_wp, transport, snapshot=snapshot, confirm=decline)

        assert result.cancelled
        assert "20240501-120000" in prompts[0]
        assert fake_wp.mutations == []

    def test_accepted_confirmation(self, fake_wp: FakeWordPress, transport, snapshot):
        result = rollback(fake_wp, transport, snapshot=snapshot, confirm=lambda prompt: True)
        assert result.completed

    def test_failure_raises_with_recovery_instructions(self, fake_wp: FakeWordPress, transport, snapshot):
        fake_wp.fail("import_database")

        with pytest.raises(RollbackError) as exc_info:
            rollback(fake_wp, transport, snapshot=snapshot, assume_yes=True)

        message = str(exc_info.value)
        assert "Manual recovery required" in message
        assert str(snapshot.database) in message
        assert str(snapshot.content_backup) in message
        assert exc_info.value.wp_path == fake_wp.wp_path
        assert fake_wp.maintenance is False


class TestRollbackMaintenance:
    """Tests for maintenance mode during a restore."""

    def test_restore_runs_in_maintenance_mode(self, fake_wp: FakeWordPress, transport, wp_site: Path, snapshot):
        """The site is in maintenance mode from before the reset until after the prefix is restored."""
        _mutate(fake_wp, wp_site)
        fake_wp.calls.clear()

        rollback(fake_wp, transport, snapshot=snapshot, assume_yes=True)

        mutations = fake_wp.mutations
        assert mutations[0] == ("maintenance_mode", True)
        assert mutations[-1] == ("maintenance_mode", False)
        assert ("set_table_prefix", "wp_") in mutations
        assert fake_wp.maintenance is False

    def test_caller_held_lock_not_reentered(self, fake_wp: FakeWordPress, transport, snapshot):
        fake_wp.calls.clear()
        rollback(fake_wp, transport, snapshot=snapshot, assume_yes=True, hold_maintenance=False)
        assert fake_wp.called("maintenance_mode") == []

    def test_enable_failure_touches_nothing(self, fake_wp: FakeWordPress, transport, snapshot):
        """If maintenance mode cannot be enabled the database is never reset."""
        fake_wp.calls.clear()
        fake_wp.fail("maintenance_mode")

        with pytest.raises(RollbackError):
            rollback(fake_wp, transport, snapshot=snapshot, assume_yes=True)

        assert fake_wp.called("reset_database") == []
        assert fake_wp.called("import_database") == []


def test_rollback_plan_without_content_backup(snapshot):
    steps = rollback_plan(snapshot, Path("/site/wp-content"), None)
    assert "no content backup found" in steps[2]
    assert steps[-1] == "Set table prefix to wp_"
