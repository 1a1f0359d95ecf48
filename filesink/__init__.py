"""
filesink - 单向本地到远程文件同步

监控本地目录，文件修改后通过 SFTP 自动推送到远程服务器:
- 单目录变更监控（watchdog）
- SSH 公钥认证 + SFTP 上传（paramiko）
- 按修改时间去重的同步协调
"""

__version__ = "0.1.0"

from filesink.core.engine import FileSinkEngine
from filesink.config.models import Config

__all__ = ["FileSinkEngine", "Config", "__version__"]
