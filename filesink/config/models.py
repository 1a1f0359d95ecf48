"""
配置数据模型
"""

from dataclasses import dataclass


@dataclass
class Config:
    """连接参数与本地/远程目录"""
    user: str = ""
    host: str = ""
    priv_key: str = ""
    local_dir: str = "."
    remote_dir: str = "."
