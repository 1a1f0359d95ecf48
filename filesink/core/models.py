"""
核心数据模型

- Entry: 目录中的一个文件或子目录
- DirectoryListing: 按名称字节序排序的 Entry 列表
- ChangeEvent: 一次原始的目录变更通知
- filter_listing: 按名称过滤目录列表
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List


class EntryKind(Enum):
    """条目类型"""
    FILE = "file"
    DIRECTORY = "directory"


class ChangeAction(Enum):
    """变更动作"""
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    RENAMED_OLD = "renamed_old"
    RENAMED_NEW = "renamed_new"


@dataclass(frozen=True)
class Entry:
    """文件系统条目（每次列目录时新建，不会被原地修改）"""
    name: str
    kind: EntryKind
    size: int = 0

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


@dataclass(frozen=True)
class ChangeEvent:
    """目录变更事件，filename 相对于被监控目录"""
    filename: str
    action: ChangeAction


DirectoryListing = List[Entry]


def name_sort_key(name: str) -> bytes:
    """按 UTF-8 字节比较，不可解码的文件名保留原始字节"""
    return name.encode('utf-8', 'surrogateescape')


def sorted_listing(entries: Iterable[Entry]) -> DirectoryListing:
    """
    生成排序后的目录列表

    Args:
        entries: 任意顺序的条目

    Returns:
        按名称字节升序排列的新列表
    """
    return sorted(entries, key=lambda e: name_sort_key(e.name))


def filter_listing(listing: DirectoryListing, pattern: str) -> DirectoryListing:
    """
    按名称过滤目录列表（不区分大小写的子串匹配）

    pattern 以逗号分隔多个词，任一词出现在名称中即保留；以 '-' 开头的词
    表示排除。只有排除词时，其余条目全部保留。空 pattern 不做过滤。

    Args:
        listing: 目录列表
        pattern: 过滤表达式，如 "html,css" 或 "-.tmp"

    Returns:
        过滤后的新列表，保持原有顺序
    """
    terms = [t.strip().lower() for t in pattern.split(',')]
    includes = [t for t in terms if t and not t.startswith('-')]
    excludes = [t[1:] for t in terms if t.startswith('-') and len(t) > 1]

    result = []
    for entry in listing:
        name = entry.name.lower()
        if any(t in name for t in excludes):
            continue
        if includes and not any(t in name for t in includes):
            continue
        result.append(entry)
    return result
