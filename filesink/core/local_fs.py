"""
本地目录视图

列出本地目录的直接子项（不递归），生成排序后的 DirectoryListing。
"""

import os
from pathlib import Path
from typing import List, Union
import structlog

from filesink.core.errors import DirectoryError, DirectoryErrorKind
from filesink.core.models import DirectoryListing, Entry, EntryKind, sorted_listing

logger = structlog.get_logger()


class LocalDirectoryView:
    """本地目录列表"""

    def list(self, path: Union[str, Path]) -> DirectoryListing:
        """
        列出本地目录

        单个条目在枚举与 stat 之间消失或无法读取时跳过该条目，
        不会让整个调用失败。

        Args:
            path: 目录路径

        Returns:
            排序后的条目列表

        Raises:
            DirectoryError: 路径不存在、不是目录、无权限读取或读取出错
        """
        path = str(path)
        entries: List[Entry] = []

        try:
            with os.scandir(path) as it:
                for dir_entry in it:
                    entry = self._make_entry(dir_entry)
                    if entry is not None:
                        entries.append(entry)
        except (FileNotFoundError, NotADirectoryError):
            raise DirectoryError(
                DirectoryErrorKind.NOT_A_DIRECTORY, "not a directory", path=path
            )
        except PermissionError:
            raise DirectoryError(
                DirectoryErrorKind.PERMISSION_DENIED, "permission denied", path=path
            )
        except OSError as e:
            raise DirectoryError(
                DirectoryErrorKind.OPEN_FAILED, f"cannot read directory ({e})", path=path
            )

        listing = sorted_listing(entries)
        logger.debug("Local directory listed", path=path, entries=len(listing))
        return listing

    def _make_entry(self, dir_entry: os.DirEntry):
        """构建单个条目，失败返回 None"""
        try:
            if dir_entry.is_dir():
                return Entry(name=dir_entry.name, kind=EntryKind.DIRECTORY, size=0)
            size = dir_entry.stat().st_size
        except OSError as e:
            logger.debug(
                "Skipping unreadable entry",
                name=dir_entry.name,
                error=str(e)
            )
            return None

        return Entry(name=dir_entry.name, kind=EntryKind.FILE, size=size)

    @staticmethod
    def parent_of(path: Union[str, Path]) -> str:
        """上一级目录，父目录为空时返回 '.'"""
        return str(Path(path).parent) or '.'
