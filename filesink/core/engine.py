"""
filesink 主引擎

功能:
- 持有监控器、远程会话、协调器与配置（无全局状态）
- 本地/远程目录导航
- 启停目录监控
- 控制循环: poll -> 协调器 -> 上传 -> 活动日志
"""

import posixpath
import time
from pathlib import Path
from typing import Callable, List, Optional, Union
import structlog

from filesink.config.models import Config
from filesink.config.parser import ConfigParser
from filesink.core.coordinator import SyncCoordinator
from filesink.core.errors import ConnectError, SessionStateError
from filesink.core.local_fs import LocalDirectoryView
from filesink.core.models import DirectoryListing
from filesink.core.monitor import DirectoryWatcher
from filesink.core.remote import Connection, RemoteSession

logger = structlog.get_logger()

DEFAULT_POLL_INTERVAL = 0.25


class FileSinkEngine:
    """filesink 主引擎"""

    def __init__(
        self,
        config: Config,
        session: Optional[RemoteSession] = None,
        watcher: Optional[DirectoryWatcher] = None,
        coordinator: Optional[SyncCoordinator] = None,
        local_view: Optional[LocalDirectoryView] = None,
        config_path: Optional[Union[str, Path]] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL
    ):
        """
        初始化引擎

        Args:
            config: 当前配置
            session: 远程会话
            watcher: 目录监控器
            coordinator: 同步协调器（默认使用 session 创建）
            local_view: 本地目录视图
            config_path: 配置文件路径，为 None 时不持久化
            poll_interval: 控制循环每轮的等待时间（秒）
        """
        self.config = config
        self.session = session or RemoteSession()
        self.watcher = watcher or DirectoryWatcher()
        self.coordinator = coordinator or SyncCoordinator(self.session)
        self.local_view = local_view or LocalDirectoryView()
        self.config_path = config_path
        self.config_parser = ConfigParser()
        self.poll_interval = poll_interval

        self.local_listing: DirectoryListing = []
        self.remote_listing: DirectoryListing = []

        logger.info(
            "Engine initialized",
            local_dir=config.local_dir,
            remote_dir=config.remote_dir,
            persist=config_path is not None
        )

    @property
    def log(self) -> List[str]:
        return self.coordinator.log

    def save_config(self):
        """把当前配置交给配置文件保存"""
        if self.config_path is not None:
            self.config_parser.save(self.config, self.config_path)

    # ---- 连接 ----

    def connect(self) -> Connection:
        """
        使用配置中的参数连接，成功后刷新本地与远程目录

        Raises:
            ConnectError: 连接失败，状态保持未连接
            DirectoryError: 连接成功但目录无法列出
        """
        conn = self.session.connect(self.config.host, self.config.user, self.config.priv_key)
        self.save_config()

        self.change_local_dir(self.config.local_dir)
        self.change_remote_dir(self.config.remote_dir)
        return conn

    def disconnect(self):
        """停止监控并断开连接"""
        if self.watcher.is_running():
            self.stop_watching()
        self.session.disconnect()
        self.remote_listing = []

    # ---- 本地导航 ----

    def _ensure_not_watching(self):
        if self.watcher.is_running():
            raise SessionStateError("navigation is disabled while the watcher is running")

    def change_local_dir(self, path: Union[str, Path]) -> DirectoryListing:
        """
        切换本地目录

        列表整体替换，失败时保留原列表与配置。
        """
        self._ensure_not_watching()
        path = str(path)
        listing = self.local_view.list(path)

        self.local_listing = listing
        self.config.local_dir = path
        self.save_config()
        logger.info("Local directory changed", path=path, entries=len(listing))
        return listing

    def refresh_local(self) -> DirectoryListing:
        return self.change_local_dir(self.config.local_dir)

    def local_up_one(self) -> DirectoryListing:
        return self.change_local_dir(LocalDirectoryView.parent_of(self.config.local_dir))

    def enter_local(self, name: str) -> DirectoryListing:
        return self.change_local_dir(str(Path(self.config.local_dir) / name))

    # ---- 远程导航 ----

    def change_remote_dir(self, path: str) -> DirectoryListing:
        """
        切换远程目录

        列表整体替换，失败时保留原列表与配置。
        """
        self._ensure_not_watching()
        listing = self.session.list_directory(path)

        self.remote_listing = listing
        self.config.remote_dir = path
        self.save_config()
        logger.info("Remote directory changed", path=path, entries=len(listing))
        return listing

    def refresh_remote(self) -> DirectoryListing:
        return self.change_remote_dir(self.config.remote_dir)

    def remote_up_one(self) -> DirectoryListing:
        """截掉最后一个 '/' 之后的部分；没有 '/' 时不变"""
        current = self.config.remote_dir
        index = current.rfind('/')
        if index < 0:
            return self.remote_listing
        return self.change_remote_dir(current[:index] or '/')

    def enter_remote(self, name: str) -> DirectoryListing:
        return self.change_remote_dir(posixpath.join(self.config.remote_dir, name))

    # ---- 监控 ----

    def start_watching(self):
        """
        开始监控本地目录

        Raises:
            WatcherError: 目录无法监控
        """
        if self.watcher.is_running():
            logger.warning("Watcher already running")
            return

        self.watcher.start(self.config.local_dir)
        self.coordinator.append_log(f"{self.config.local_dir}: watching for changes")

    def stop_watching(self):
        """停止监控并清空同步状态"""
        try:
            self.watcher.stop()
        finally:
            self.coordinator.reset_state()
        self.coordinator.append_log("stopped file watcher")

    def clear_log(self):
        self.coordinator.clear_log()

    def tick(self) -> List[str]:
        """
        控制循环的一轮

        Returns:
            本轮新增的日志行
        """
        changes = self.watcher.poll()
        if not changes:
            return []
        return self.coordinator.on_changes(changes, self.config)

    def run(
        self,
        should_stop: Optional[Callable[[], bool]] = None,
        max_iterations: Optional[int] = None,
        on_log: Optional[Callable[[str], None]] = None
    ):
        """
        运行控制循环

        Args:
            should_stop: 返回 True 时退出
            max_iterations: 最多运行的轮数
            on_log: 每条新日志行的回调
        """
        iterations = 0
        logger.info("Control loop started", interval=self.poll_interval)

        try:
            while True:
                if should_stop is not None and should_stop():
                    break
                if max_iterations is not None and iterations >= max_iterations:
                    break

                for line in self.tick():
                    if on_log is not None:
                        on_log(line)

                iterations += 1
                time.sleep(self.poll_interval)
        except KeyboardInterrupt:
            logger.info("Control loop interrupted")

        logger.info("Control loop stopped", iterations=iterations, stats=self.coordinator.get_stats())

    def close(self):
        """
        停止监控并断开（未连接时忽略）

        停止监控失败时仍会断开连接，之后再抛出 WatcherError。
        """
        try:
            if self.watcher.is_running():
                self.stop_watching()
        finally:
            if self.session.is_connected():
                try:
                    self.session.disconnect()
                except ConnectError as e:
                    logger.error("Disconnect on close failed", error=str(e))
