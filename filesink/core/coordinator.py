"""
同步协调器

功能:
- 将监控事件转换为上传操作
- 按文件记录已上传的修改时间，过滤重复通知
- 维护活动日志
"""

import os
import stat
from pathlib import Path
from typing import Dict, Iterable, List
import structlog

from filesink.config.models import Config
from filesink.core.errors import FileSinkError, SessionStateError
from filesink.core.models import ChangeAction, ChangeEvent
from filesink.core.remote import RemoteSession

logger = structlog.get_logger()


class SyncCoordinator:
    """单向同步协调器"""

    def __init__(self, session: RemoteSession):
        """
        初始化协调器

        Args:
            session: 用于上传的远程会话
        """
        self.session = session
        self.log: List[str] = []
        self._state: Dict[str, int] = {}

        self.stats = {
            'events_seen': 0,
            'uploads_attempted': 0,
            'uploads_failed': 0,
            'duplicates_skipped': 0,
        }

    @property
    def state(self) -> Dict[str, int]:
        """已上传的修改时间（纳秒）副本"""
        return dict(self._state)

    def on_changes(self, changes: Iterable[ChangeEvent], config: Config) -> List[str]:
        """
        处理一批变更事件

        仅 MODIFIED 事件触发上传。修改时间在上传前记录，
        失败的上传不会因为同一次写入的重复通知而被重试。

        Args:
            changes: 本轮 poll 得到的事件
            config: 提供本地与远程目录

        Returns:
            本次新增的日志行
        """
        new_lines: List[str] = []

        for change in changes:
            self.stats['events_seen'] += 1
            if change.action is not ChangeAction.MODIFIED:
                continue

            line = self._handle_modified(change.filename, config)
            if line is not None:
                new_lines.append(line)

        self.log.extend(new_lines)
        return new_lines

    def _handle_modified(self, filename: str, config: Config):
        local_path = Path(config.local_dir) / filename

        # 事件与重命名/删除竞争时视为无操作
        try:
            info = os.stat(local_path)
        except OSError:
            return None
        if not stat.S_ISREG(info.st_mode):
            return None

        modified = info.st_mtime_ns
        last = self._state.get(filename)
        if last is not None and modified <= last:
            self.stats['duplicates_skipped'] += 1
            logger.debug("Duplicate change skipped", filename=filename, mtime_ns=modified)
            return None

        self._state[filename] = modified
        self.stats['uploads_attempted'] += 1

        try:
            self.session.upload_file(config.local_dir, config.remote_dir, filename)
        except SessionStateError as e:
            self.stats['uploads_failed'] += 1
            logger.warning("Upload skipped, not connected", filename=filename, error=str(e))
            return f"{filename}: modified, upload failed (not connected)"
        except FileSinkError as e:
            self.stats['uploads_failed'] += 1
            kind = getattr(e, 'kind', None)
            reason = kind.value if kind is not None else str(e)
            logger.warning("Upload failed", filename=filename, reason=reason, error=str(e))
            return f"{filename}: modified, upload failed ({reason})"

        logger.info("File synced", filename=filename, remote_dir=config.remote_dir)
        return f"{filename}: modified, uploaded"

    def append_log(self, line: str):
        """追加一行活动日志"""
        self.log.append(line)

    def clear_log(self):
        """清空活动日志"""
        self.log.clear()

    def reset_state(self):
        """清空同步状态（停止监控时调用）"""
        self._state.clear()

    def get_stats(self) -> dict:
        """获取统计信息"""
        return dict(self.stats)
