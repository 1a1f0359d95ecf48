"""
异常定义

每一类错误带一个 kind 枚举，调用方据此区分失败原因并写入活动日志。
"""

from enum import Enum
from typing import Optional


class ConnectErrorKind(Enum):
    """连接错误类型"""
    SOCKET_FAILED = "socket_failed"
    HANDSHAKE_FAILED = "handshake_failed"
    AUTH_METHOD_UNSUPPORTED = "auth_method_unsupported"
    AUTH_FAILED = "auth_failed"
    SUBSYSTEM_INIT_FAILED = "subsystem_init_failed"
    SHUTDOWN_FAILED = "shutdown_failed"


class DirectoryErrorKind(Enum):
    """目录错误类型"""
    NOT_A_DIRECTORY = "not_a_directory"
    PERMISSION_DENIED = "permission_denied"
    OPEN_FAILED = "open_failed"


class TransferErrorKind(Enum):
    """传输错误类型"""
    OPEN_FAILED = "open_failed"
    READ_FAILED = "read_failed"
    WRITE_FAILED = "write_failed"


class WatcherErrorKind(Enum):
    """监控错误类型"""
    CANNOT_OPEN_DIRECTORY = "cannot_open_directory"
    TEARDOWN_FAILED = "teardown_failed"


class FileSinkError(Exception):
    """filesink 异常基类"""
    pass


class _KindError(FileSinkError):
    """带 kind 的异常"""

    def __init__(self, kind: Enum, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.path = path

    def __str__(self) -> str:
        text = super().__str__()
        if self.path:
            return f"{text}: {self.path}"
        return text


class ConnectError(_KindError):
    """建立或关闭远程会话失败"""
    pass


class DirectoryError(_KindError):
    """本地或远程目录无法读取"""
    pass


class TransferError(_KindError):
    """单个文件上传失败"""
    pass


class WatcherError(_KindError):
    """目录监控无法启动或关闭"""
    pass


class SessionStateError(FileSinkError):
    """当前状态下不允许的操作（未连接、重复连接、监控中导航等）"""
    pass


class ConfigError(FileSinkError):
    """配置文件无法写入"""
    pass
