"""Shared fixtures."""

import io
import posixpath
import stat
import tempfile
from pathlib import Path
from unittest.mock import Mock

import paramiko
import pytest
import structlog

from filesink.core.remote import Connection, RemoteSession


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo logging configuration done by CLI invocations."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class FakeRemoteFile(io.BytesIO):
    """In-memory remote file; contents land in the store on close."""

    def __init__(self, store, path, fail_write=False):
        super().__init__()
        self.store = store
        self.path = path
        self.fail_write = fail_write

    def write(self, data):
        if self.fail_write:
            raise IOError("Failure")
        return super().write(data)

    def close(self):
        if not self.closed:
            self.store[self.path] = self.getvalue()
        super().close()


class FakeSFTP:
    """Minimal stand-in for paramiko.SFTPClient backed by dicts."""

    def __init__(self, dirs=("/srv",)):
        self.dirs = set(dirs)
        self.files = {}
        self.fail_write = False
        self.closed = False

    def listdir_attr(self, path):
        if path not in self.dirs:
            raise IOError(2, "No such file")
        result = []
        for d in sorted(self.dirs):
            if d != path and posixpath.dirname(d) == path:
                attr = paramiko.SFTPAttributes()
                attr.filename = posixpath.basename(d)
                attr.st_mode = stat.S_IFDIR | 0o755
                attr.st_size = 4096
                result.append(attr)
        for name, data in self.files.items():
            if posixpath.dirname(name) == path:
                attr = paramiko.SFTPAttributes()
                attr.filename = posixpath.basename(name)
                attr.st_mode = stat.S_IFREG | 0o644
                attr.st_size = len(data)
                result.append(attr)
        return result

    def open(self, path, mode="r"):
        if posixpath.dirname(path) not in self.dirs:
            raise IOError(2, "No such file")
        self.files[path] = b""
        return FakeRemoteFile(self.files, path, fail_write=self.fail_write)

    def close(self):
        self.closed = True

    def get_channel(self):
        return Mock()


@pytest.fixture
def fake_sftp():
    return FakeSFTP()


@pytest.fixture
def connected_session(fake_sftp):
    """A RemoteSession wired to an in-memory SFTP server."""
    session = RemoteSession()
    session.connection = Connection(
        host="127.0.0.1",
        user="alice",
        sock=Mock(),
        transport=Mock(),
        sftp=fake_sftp,
    )
    return session
