"""Tests for the sync coordinator."""

import os
from unittest.mock import Mock

import pytest

from filesink.config.models import Config
from filesink.core.coordinator import SyncCoordinator
from filesink.core.errors import SessionStateError, TransferError, TransferErrorKind
from filesink.core.models import ChangeAction, ChangeEvent
from filesink.core.remote import RemoteSession

T1 = 1_700_000_000_000_000_000
T2 = T1 + 1_000_000_000


def modified(name):
    return ChangeEvent(name, ChangeAction.MODIFIED)


class TestSyncCoordinator:
    """Test change handling and the per-file sync state."""

    @pytest.fixture
    def session(self):
        return Mock(spec=RemoteSession)

    @pytest.fixture
    def coordinator(self, session):
        return SyncCoordinator(session)

    @pytest.fixture
    def config(self, temp_dir):
        return Config(user="alice", host="127.0.0.1", local_dir=str(temp_dir), remote_dir="/srv")

    def write(self, temp_dir, name, mtime_ns, data=b"data"):
        path = temp_dir / name
        path.write_bytes(data)
        os.utime(path, ns=(mtime_ns, mtime_ns))
        return path

    def test_first_modification_uploads(self, coordinator, session, config, temp_dir):
        """A first modification uploads the file and records its mtime."""
        self.write(temp_dir, "report.txt", T1)

        lines = coordinator.on_changes([modified("report.txt")], config)

        session.upload_file.assert_called_once_with(str(temp_dir), "/srv", "report.txt")
        assert coordinator.state == {"report.txt": T1}
        assert lines == ["report.txt: modified, uploaded"]
        assert coordinator.log == lines

    def test_repeat_event_with_same_mtime_is_skipped(self, coordinator, session, config, temp_dir):
        """A repeated notification with an unchanged mtime does not upload again."""
        self.write(temp_dir, "report.txt", T1)

        coordinator.on_changes([modified("report.txt")], config)
        lines = coordinator.on_changes([modified("report.txt")], config)

        assert session.upload_file.call_count == 1
        assert lines == []

    def test_duplicates_within_one_batch(self, coordinator, session, config, temp_dir):
        self.write(temp_dir, "report.txt", T1)

        coordinator.on_changes([modified("report.txt")] * 3, config)

        assert session.upload_file.call_count == 1

    def test_newer_mtime_uploads_again(self, coordinator, session, config, temp_dir):
        self.write(temp_dir, "report.txt", T1)
        coordinator.on_changes([modified("report.txt")], config)

        self.write(temp_dir, "report.txt", T2)
        coordinator.on_changes([modified("report.txt")], config)

        assert session.upload_file.call_count == 2
        assert coordinator.state["report.txt"] == T2

    def test_older_mtime_never_uploads(self, coordinator, session, config, temp_dir):
        self.write(temp_dir, "report.txt", T2)
        coordinator.on_changes([modified("report.txt")], config)

        self.write(temp_dir, "report.txt", T1)
        coordinator.on_changes([modified("report.txt")], config)

        assert session.upload_file.call_count == 1
        assert coordinator.state["report.txt"] == T2

    @pytest.mark.parametrize("action", [
        ChangeAction.ADDED,
        ChangeAction.REMOVED,
        ChangeAction.RENAMED_OLD,
        ChangeAction.RENAMED_NEW,
    ])
    def test_other_actions_are_ignored(self, coordinator, session, config, temp_dir, action):
        self.write(temp_dir, "report.txt", T1)

        lines = coordinator.on_changes([ChangeEvent("report.txt", action)], config)

        session.upload_file.assert_not_called()
        assert lines == []

    def test_vanished_file_is_a_no_op(self, coordinator, session, config):
        lines = coordinator.on_changes([modified("gone.txt")], config)

        session.upload_file.assert_not_called()
        assert lines == []
        assert coordinator.state == {}

    def test_directory_is_a_no_op(self, coordinator, session, config, temp_dir):
        (temp_dir / "subdir").mkdir()

        coordinator.on_changes([modified("subdir")], config)

        session.upload_file.assert_not_called()

    def test_failed_upload_is_logged_with_kind(self, coordinator, session, config, temp_dir):
        self.write(temp_dir, "report.txt", T1)
        session.upload_file.side_effect = TransferError(
            TransferErrorKind.WRITE_FAILED, "write failed", path="/srv/report.txt"
        )

        lines = coordinator.on_changes([modified("report.txt")], config)

        assert lines == ["report.txt: modified, upload failed (write_failed)"]
        assert coordinator.get_stats()["uploads_failed"] == 1

    def test_failed_upload_is_not_retried_for_same_write(self, coordinator, session, config, temp_dir):
        self.write(temp_dir, "report.txt", T1)
        session.upload_file.side_effect = TransferError(TransferErrorKind.OPEN_FAILED, "open failed")

        coordinator.on_changes([modified("report.txt")], config)
        session.upload_file.side_effect = None
        coordinator.on_changes([modified("report.txt")], config)

        assert session.upload_file.call_count == 1
        assert coordinator.state["report.txt"] == T1

    def test_upload_while_disconnected(self, coordinator, session, config, temp_dir):
        self.write(temp_dir, "report.txt", T1)
        session.upload_file.side_effect = SessionStateError("not connected")

        lines = coordinator.on_changes([modified("report.txt")], config)

        assert lines == ["report.txt: modified, upload failed (not connected)"]

    def test_log_is_append_only_until_cleared(self, coordinator, config, temp_dir):
        self.write(temp_dir, "a.txt", T1)
        self.write(temp_dir, "b.txt", T1)
        coordinator.append_log("watching")

        coordinator.on_changes([modified("a.txt")], config)
        coordinator.on_changes([modified("b.txt")], config)

        assert coordinator.log == [
            "watching",
            "a.txt: modified, uploaded",
            "b.txt: modified, uploaded",
        ]

        coordinator.clear_log()
        assert coordinator.log == []

    def test_reset_state_allows_upload_again(self, coordinator, session, config, temp_dir):
        self.write(temp_dir, "report.txt", T1)
        coordinator.on_changes([modified("report.txt")], config)

        coordinator.reset_state()
        coordinator.on_changes([modified("report.txt")], config)

        assert session.upload_file.call_count == 2

    def test_state_copy_is_read_only(self, coordinator, config, temp_dir):
        self.write(temp_dir, "report.txt", T1)
        coordinator.on_changes([modified("report.txt")], config)

        coordinator.state["report.txt"] = 0

        assert coordinator.state["report.txt"] == T1
