"""
目录监控模块

基于 watchdog 监控单个目录（不递归）的文件名与写入时间变化。
watchdog 的 Observer 在后台线程接收系统通知，事件进入有界队列，
控制循环通过 poll() 以非阻塞方式批量取出。

注意:
- 通知只是"需要重新检查"的提示，不是精确的变更记录
- 队列满时新事件被丢弃（与系统通知缓冲区溢出时的行为一致）
"""

import os
import queue
import sys
from pathlib import Path
from typing import Callable, List, Optional, Union
import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from filesink.core.errors import WatcherError, WatcherErrorKind
from filesink.core.models import ChangeAction, ChangeEvent

logger = structlog.get_logger()

DEFAULT_MAX_PENDING_EVENTS = 512


def decode_name(raw: Union[str, bytes]) -> Optional[str]:
    """
    将系统返回的文件名转换为 str

    无法解码的字节串或含孤立代理字符的名称返回 None。
    """
    if isinstance(raw, bytes):
        try:
            return raw.decode(sys.getfilesystemencoding())
        except UnicodeDecodeError:
            return None
    try:
        raw.encode('utf-8')
    except UnicodeEncodeError:
        return None
    return raw


class ChangeHandler(FileSystemEventHandler):
    """把 watchdog 事件转换为 ChangeEvent 并放入队列"""

    def __init__(self, watch_path: str, pending: queue.Queue):
        super().__init__()
        self.watch_path = watch_path
        self.pending = pending
        self.dropped = 0

    def _relative_name(self, raw_path: Union[str, bytes]) -> Optional[str]:
        """只接受被监控目录的直接子项"""
        path = decode_name(raw_path)
        if not path:
            return None
        if os.path.dirname(path) != self.watch_path:
            return None
        return os.path.basename(path) or None

    def _push(self, raw_path: Union[str, bytes], action: ChangeAction):
        name = self._relative_name(raw_path)
        if name is None:
            return
        try:
            self.pending.put_nowait(ChangeEvent(filename=name, action=action))
        except queue.Full:
            self.dropped += 1
            logger.debug("Change buffer full, event dropped", filename=name, action=action.value)

    def on_created(self, event: FileSystemEvent):
        self._push(event.src_path, ChangeAction.ADDED)

    def on_deleted(self, event: FileSystemEvent):
        self._push(event.src_path, ChangeAction.REMOVED)

    def on_modified(self, event: FileSystemEvent):
        self._push(event.src_path, ChangeAction.MODIFIED)

    def on_closed(self, event: FileSystemEvent):
        # inotify 的 CLOSE_WRITE，写入完成后的最终状态
        self._push(event.src_path, ChangeAction.MODIFIED)

    def on_moved(self, event: FileSystemEvent):
        self._push(event.src_path, ChangeAction.RENAMED_OLD)
        self._push(event.dest_path, ChangeAction.RENAMED_NEW)


class DirectoryWatcher:
    """单目录变更监控器"""

    def __init__(
        self,
        max_pending_events: int = DEFAULT_MAX_PENDING_EVENTS,
        observer_factory: Callable = Observer,
        join_timeout: float = 5.0
    ):
        """
        初始化监控器

        Args:
            max_pending_events: 两次 poll 之间最多缓存的事件数
            observer_factory: 创建 watchdog Observer 的工厂
            join_timeout: stop() 等待后台线程退出的秒数
        """
        self.max_pending_events = max_pending_events
        self.observer_factory = observer_factory
        self.join_timeout = join_timeout

        self.watch_path: Optional[str] = None
        self.observer = None
        self.handler: Optional[ChangeHandler] = None
        self.changes: List[ChangeEvent] = []
        self._pending: queue.Queue = queue.Queue(maxsize=max_pending_events)
        self._running = False

    def start(self, path: Union[str, Path]):
        """
        开始监控目录

        Args:
            path: 要监控的目录

        Raises:
            WatcherError: 目录不存在或无法监控
        """
        if self._running:
            logger.warning("Watcher already running", path=self.watch_path)
            return

        watch_path = os.path.abspath(str(path))
        if not os.path.isdir(watch_path):
            raise WatcherError(
                WatcherErrorKind.CANNOT_OPEN_DIRECTORY,
                "cannot open directory for watching",
                path=watch_path
            )

        self._pending = queue.Queue(maxsize=self.max_pending_events)
        handler = ChangeHandler(watch_path, self._pending)
        observer = self.observer_factory()

        try:
            observer.schedule(handler, watch_path, recursive=False)
            observer.start()
        except OSError as e:
            raise WatcherError(
                WatcherErrorKind.CANNOT_OPEN_DIRECTORY,
                f"cannot watch directory ({e})",
                path=watch_path
            )

        self.watch_path = watch_path
        self.handler = handler
        self.observer = observer
        self._running = True

        logger.info("Directory watcher started", path=watch_path)

    def poll(self) -> List[ChangeEvent]:
        """
        取出自上次调用以来的所有事件（非阻塞）

        Returns:
            本轮事件列表，按系统投递顺序；没有事件时为空列表
        """
        self.changes = []
        if not self._running:
            return self.changes

        while True:
            try:
                self.changes.append(self._pending.get_nowait())
            except queue.Empty:
                break

        if self.changes:
            logger.debug("Changes polled", count=len(self.changes))
        return self.changes

    def stop(self):
        """
        停止监控（未启动时调用也是安全的）

        Raises:
            WatcherError: 后台线程无法停止
        """
        if not self._running:
            return

        observer = self.observer
        watch_path = self.watch_path

        self._running = False
        self.observer = None
        self.handler = None
        self.watch_path = None
        self.changes = []

        try:
            observer.stop()
            observer.join(timeout=self.join_timeout)
        except (OSError, RuntimeError) as e:
            raise WatcherError(
                WatcherErrorKind.TEARDOWN_FAILED,
                f"failed to stop watcher ({e})",
                path=watch_path
            )

        if observer.is_alive():
            raise WatcherError(
                WatcherErrorKind.TEARDOWN_FAILED,
                "watcher thread did not exit",
                path=watch_path
            )

        logger.info("Directory watcher stopped", path=watch_path)

    def is_running(self) -> bool:
        """检查是否正在监控"""
        return self._running
