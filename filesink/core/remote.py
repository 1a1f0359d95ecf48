"""
远程会话模块

功能:
- 通过 SSH（端口 22）建立公钥认证会话
- 打开 SFTP 子通道
- 列出远程目录、上传单个文件
- 关闭会话

状态机: DISCONNECTED --connect()--> CONNECTED --disconnect()--> DISCONNECTED
"""

import ipaddress
import os
import socket
import stat
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union
import paramiko
import structlog

from filesink.core.errors import (
    ConnectError,
    ConnectErrorKind,
    DirectoryError,
    DirectoryErrorKind,
    SessionStateError,
    TransferError,
    TransferErrorKind,
)
from filesink.core.models import DirectoryListing, Entry, EntryKind, sorted_listing

logger = structlog.get_logger()

SSH_PORT = 22
DEFAULT_TIMEOUT = 15.0
WRITE_CHUNK_SIZE = 32768


class ConnectionState(Enum):
    """连接状态"""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


@dataclass
class Connection:
    """已认证的远程会话，socket、SSH 传输层与 SFTP 客户端作为一个整体管理"""
    host: str
    user: str
    sock: socket.socket
    transport: paramiko.Transport
    sftp: paramiko.SFTPClient


def resolve_host(host: str) -> str:
    """
    解析主机地址

    'localhost' 映射到回环地址，其余必须是 IPv4 字面量（不做 DNS 解析）。

    Raises:
        ConnectError: 地址无法解析
    """
    if host == 'localhost':
        return '127.0.0.1'
    try:
        return str(ipaddress.IPv4Address(host))
    except ValueError:
        raise ConnectError(
            ConnectErrorKind.SOCKET_FAILED,
            "host must be 'localhost' or an IPv4 address",
            path=host
        )


def remote_join(remote_dir: str, name: str) -> str:
    """拼接远程路径，仅当本地分隔符不是 '/' 时才转换分隔符"""
    if os.sep != '/':
        name = name.replace(os.sep, '/')
    return remote_dir + '/' + name


class RemoteSession:
    """远程 SFTP 会话"""

    def __init__(self, port: int = SSH_PORT, timeout: float = DEFAULT_TIMEOUT):
        """
        初始化会话（不连接）

        Args:
            port: SSH 端口
            timeout: socket、握手与 SFTP 通道的超时时间（秒）
        """
        self.port = port
        self.timeout = timeout
        self.connection: Optional[Connection] = None
        self._lock = threading.RLock()

    @property
    def state(self) -> ConnectionState:
        if self.connection is None:
            return ConnectionState.DISCONNECTED
        return ConnectionState.CONNECTED

    def is_connected(self) -> bool:
        return self.connection is not None

    def connect(self, host: str, user: str, private_key_path: str) -> Connection:
        """
        建立认证会话

        任一步骤失败都会关闭已打开的资源，状态保持 DISCONNECTED，不自动重试。

        Args:
            host: 'localhost' 或 IPv4 地址
            user: 远程用户名
            private_key_path: 私钥文件路径

        Returns:
            Connection

        Raises:
            ConnectError: socket、握手、认证方式协商、认证或 SFTP 初始化失败
            SessionStateError: 已经连接
        """
        with self._lock:
            if self.connection is not None:
                raise SessionStateError("already connected, disconnect first")

            address = resolve_host(host)
            logger.info("Connecting", host=host, address=address, port=self.port, user=user)

            try:
                sock = socket.create_connection((address, self.port), timeout=self.timeout)
            except OSError as e:
                logger.warning("Socket connect failed", host=host, error=str(e))
                raise ConnectError(ConnectErrorKind.SOCKET_FAILED, f"cannot connect ({e})", path=host)

            transport = None
            try:
                transport = self._handshake(sock, host)
                self._authenticate(transport, user, private_key_path)
                sftp = self._open_sftp(transport)
            except ConnectError:
                self._close_quietly(transport, sock)
                raise

            self.connection = Connection(
                host=host,
                user=user,
                sock=sock,
                transport=transport,
                sftp=sftp
            )

            logger.info("Connected", host=host, user=user)
            return self.connection

    def _handshake(self, sock: socket.socket, host: str) -> paramiko.Transport:
        transport = None
        try:
            transport = paramiko.Transport(sock)
            transport.banner_timeout = self.timeout
            transport.auth_timeout = self.timeout
            transport.start_client(timeout=self.timeout)
        except (paramiko.SSHException, OSError, EOFError) as e:
            if transport is not None:
                transport.close()
            raise ConnectError(
                ConnectErrorKind.HANDSHAKE_FAILED,
                f"cannot establish ssh session ({e})",
                path=host
            )
        return transport

    def _authenticate(self, transport: paramiko.Transport, user: str, private_key_path: str):
        """仅支持公钥认证，服务器未声明 publickey 时直接失败"""
        try:
            transport.auth_none(user)
        except paramiko.BadAuthenticationType as e:
            if 'publickey' not in e.allowed_types:
                raise ConnectError(
                    ConnectErrorKind.AUTH_METHOD_UNSUPPORTED,
                    "server doesn't support publickey auth"
                )
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise ConnectError(ConnectErrorKind.AUTH_FAILED, f"authentication failed ({e})")
        else:
            # 服务器接受了 none 认证
            logger.warning("Server accepted 'none' authentication", user=user)
            return

        try:
            key = paramiko.PKey.from_path(private_key_path)
        except (OSError, paramiko.SSHException, ValueError) as e:
            raise ConnectError(
                ConnectErrorKind.AUTH_FAILED,
                f"cannot load private key ({e})",
                path=private_key_path
            )

        try:
            transport.auth_publickey(user, key)
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise ConnectError(ConnectErrorKind.AUTH_FAILED, f"authentication failed ({e})")

        if not transport.is_authenticated():
            raise ConnectError(ConnectErrorKind.AUTH_FAILED, "authentication failed")

    def _open_sftp(self, transport: paramiko.Transport) -> paramiko.SFTPClient:
        try:
            sftp = paramiko.SFTPClient.from_transport(transport)
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise ConnectError(
                ConnectErrorKind.SUBSYSTEM_INIT_FAILED,
                f"cannot create sftp session ({e})"
            )
        if sftp is None:
            raise ConnectError(ConnectErrorKind.SUBSYSTEM_INIT_FAILED, "cannot create sftp session")

        sftp.get_channel().settimeout(self.timeout)
        return sftp

    @staticmethod
    def _close_quietly(transport: Optional[paramiko.Transport], sock: socket.socket):
        """连接失败后的清理，清理本身的错误只记录"""
        try:
            if transport is not None:
                transport.close()
            sock.close()
        except OSError as e:
            logger.debug("Cleanup after failed connect raised", error=str(e))

    def disconnect(self):
        """
        关闭 SFTP 通道、SSH 会话与 socket

        即使关闭过程出错，连接也会被丢弃。

        Raises:
            ConnectError: 关闭失败（SHUTDOWN_FAILED）
            SessionStateError: 当前未连接
        """
        with self._lock:
            conn = self.connection
            if conn is None:
                raise SessionStateError("not connected")
            self.connection = None

            errors = []
            try:
                conn.sftp.close()
            except (OSError, paramiko.SSHException) as e:
                errors.append(f"sftp: {e}")
            try:
                conn.transport.close()
            except (OSError, paramiko.SSHException) as e:
                errors.append(f"transport: {e}")
            try:
                conn.sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                # transport.close() 通常已经关闭了 socket
                logger.debug("Socket shutdown skipped", error=str(e))
            try:
                conn.sock.close()
            except OSError as e:
                errors.append(f"socket: {e}")

            if errors:
                logger.error("Disconnect failed", host=conn.host, errors=errors)
                raise ConnectError(
                    ConnectErrorKind.SHUTDOWN_FAILED,
                    "failed to shut down connection (" + "; ".join(errors) + ")",
                    path=conn.host
                )

            logger.info("Disconnected", host=conn.host)

    def _require_connection(self) -> Connection:
        if self.connection is None:
            raise SessionStateError("not connected")
        return self.connection

    def list_directory(self, remote_path: str) -> DirectoryListing:
        """
        列出远程目录

        与逐条读取直到返回非正数的做法不同，枚举中途的传输错误会抛出异常，
        不会返回被截断的列表。paramiko 按 UTF-8 严格解码文件名，
        远程目录中存在无法解码的文件名时同样视为读取失败。

        Args:
            remote_path: 远程目录路径

        Returns:
            排序后的条目列表（不含 '.' 与 '..'），空目录返回空列表

        Raises:
            DirectoryError: 目录无法打开或读取（OPEN_FAILED）
            SessionStateError: 当前未连接
        """
        with self._lock:
            conn = self._require_connection()
            try:
                attrs = conn.sftp.listdir_attr(remote_path)
            except (OSError, paramiko.SSHException, EOFError, UnicodeDecodeError) as e:
                logger.warning("Remote directory listing failed", path=remote_path, error=str(e))
                raise DirectoryError(
                    DirectoryErrorKind.OPEN_FAILED,
                    f"failed to read remote dir ({e})",
                    path=remote_path
                )

        entries: List[Entry] = []
        for attr in attrs:
            if attr.filename in ('.', '..'):
                continue
            if attr.st_mode is not None and stat.S_ISDIR(attr.st_mode):
                entries.append(Entry(name=attr.filename, kind=EntryKind.DIRECTORY, size=0))
            else:
                entries.append(Entry(
                    name=attr.filename,
                    kind=EntryKind.FILE,
                    size=attr.st_size or 0
                ))

        listing = sorted_listing(entries)
        logger.debug("Remote directory listed", path=remote_path, entries=len(listing))
        return listing

    def upload_file(
        self,
        local_dir: Union[str, Path],
        remote_dir: str,
        relative_filename: str
    ) -> bool:
        """
        上传单个文件（整文件读入内存）

        远程路径为 remote_dir + '/' + relative_filename，存在则截断，不存在则创建。

        Args:
            local_dir: 本地目录
            remote_dir: 远程目录
            relative_filename: 相对文件名

        Returns:
            成功返回 True

        Raises:
            TransferError: 本地读取、远程打开或写入失败
            SessionStateError: 当前未连接
        """
        local_path = Path(local_dir) / relative_filename
        remote_path = remote_join(remote_dir, relative_filename)

        try:
            data = local_path.read_bytes()
        except OSError as e:
            raise TransferError(
                TransferErrorKind.READ_FAILED,
                f"cannot read local file ({e})",
                path=str(local_path)
            )

        with self._lock:
            conn = self._require_connection()
            try:
                remote_file = conn.sftp.open(remote_path, 'wb')
            except (OSError, paramiko.SSHException, EOFError) as e:
                raise TransferError(
                    TransferErrorKind.OPEN_FAILED,
                    f"cannot open remote file ({e})",
                    path=remote_path
                )

            try:
                with remote_file:
                    self._write_all(remote_file, data)
            except (OSError, paramiko.SSHException, EOFError) as e:
                raise TransferError(
                    TransferErrorKind.WRITE_FAILED,
                    f"write failed ({e})",
                    path=remote_path
                )

        logger.info("File uploaded", local=str(local_path), remote=remote_path, size=len(data))
        return True

    @staticmethod
    def _write_all(remote_file, data: bytes):
        """按块写入，每次前进实际写入的长度，直到剩余为 0"""
        offset = 0
        while offset < len(data):
            chunk = data[offset:offset + WRITE_CHUNK_SIZE]
            remote_file.write(chunk)
            offset += len(chunk)
