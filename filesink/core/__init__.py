"""
同步核心

- DirectoryWatcher: 单目录变更监控
- LocalDirectoryView: 本地目录列表
- RemoteSession: SSH/SFTP 会话
- SyncCoordinator: 变更 -> 上传
- FileSinkEngine: 控制循环与导航
"""

from filesink.core.coordinator import SyncCoordinator
from filesink.core.engine import FileSinkEngine
from filesink.core.local_fs import LocalDirectoryView
from filesink.core.monitor import DirectoryWatcher
from filesink.core.remote import Connection, ConnectionState, RemoteSession

__all__ = [
    'SyncCoordinator',
    'FileSinkEngine',
    'LocalDirectoryView',
    'DirectoryWatcher',
    'Connection',
    'ConnectionState',
    'RemoteSession',
]
