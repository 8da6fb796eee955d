"""
Tests for the server entry point wiring.
"""

from core.config import ServerConfig
from core.context import OperationContext
from storage.models import Metric
from storage.repositories import (
    DatabaseRepository,
    FileRepository,
    MemoryRepository,
    create_repository,
)
from storage.snapshot import SnapshotFile

import app


class TestBackendSelection:
    """create_repository precedence."""

    def test_dsn_selects_database(self, tmp_path):
        repo = create_repository(ServerConfig(
            database_dsn="sqlite://",
            file_storage_path=str(tmp_path / "m.json"),
        ))
        try:
            assert isinstance(repo, DatabaseRepository)
        finally:
            repo.close()

    def test_path_selects_file(self, tmp_path):
        repo = create_repository(ServerConfig(file_storage_path=str(tmp_path / "m.json")))

        assert isinstance(repo, FileRepository)

    def test_fallback_is_memory(self):
        assert isinstance(create_repository(ServerConfig(file_storage_path="")), MemoryRepository)


class TestSnapshotSetup:
    """Restore-on-boot wiring."""

    def test_restores_into_memory(self, tmp_path):
        path = str(tmp_path / "m.json")
        SnapshotFile(path).save([Metric.counter("PollCount", 3)])
        repo = MemoryRepository()

        snapshot = app.setup_snapshots(ServerConfig(file_storage_path=path), repo)

        assert snapshot is not None
        assert repo.get_counter(OperationContext.background(), "PollCount") == (3, True)

    def test_restore_disabled(self, tmp_path):
        path = str(tmp_path / "m.json")
        SnapshotFile(path).save([Metric.counter("PollCount", 3)])
        repo = MemoryRepository()

        app.setup_snapshots(ServerConfig(file_storage_path=path, restore=False), repo)

        assert repo.get_all(OperationContext.background()) == []

    def test_file_backend_gets_no_separate_snapshot(self, tmp_path):
        path = str(tmp_path / "m.json")
        repo = FileRepository(path)
        repo.update_counter(OperationContext.background(), "PollCount", 3)

        assert app.setup_snapshots(ServerConfig(file_storage_path=path), repo) is None
        assert repo.get_counter(OperationContext.background(), "PollCount") == (3, True)

    def test_database_backend_skips_restore(self, tmp_path):
        path = str(tmp_path / "m.json")
        SnapshotFile(path).save([Metric.counter("PollCount", 3)])
        repo = create_repository(ServerConfig(database_dsn="sqlite://"))
        ctx = OperationContext.background()
        try:
            repo.update_counter(ctx, "PollCount", 3)

            snapshot = app.setup_snapshots(ServerConfig(file_storage_path=path), repo)

            assert snapshot is not None
            assert repo.get_counter(ctx, "PollCount") == (3, True)
        finally:
            repo.close()

    def test_no_path_no_snapshot(self):
        assert app.setup_snapshots(ServerConfig(file_storage_path=""), MemoryRepository()) is None

    def test_bad_config_exit_code(self):
        assert app.main(["-i", "never"]) == 2
