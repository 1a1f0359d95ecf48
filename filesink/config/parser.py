"""
key=value 配置文件读写

格式: 每行一个 key=value，key 为 user、host、priv_key、local_dir、remote_dir。
无法解析的行被跳过，重复的 key 以最后一次为准。
"""

from dataclasses import fields
from pathlib import Path
from typing import Union
import structlog

from filesink.config.models import Config
from filesink.core.errors import ConfigError

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = "./config.txt"

CONFIG_KEYS = tuple(f.name for f in fields(Config))


class ConfigParser:
    """配置文件解析器"""

    def parse(self, config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> Config:
        """
        解析配置文件

        Args:
            config_path: 配置文件路径，不存在时返回默认配置

        Returns:
            Config 对象
        """
        config = Config()
        path = Path(config_path)

        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            logger.info("Config file not found, using defaults", path=str(path))
            return config
        except OSError as e:
            logger.warning("Config file unreadable, using defaults", path=str(path), error=str(e))
            return config

        for line_no, raw_line in enumerate(raw.splitlines(), start=1):
            # 逐行解码，非 UTF-8 的行按无法解析处理
            try:
                line = raw_line.decode('utf-8')
            except UnicodeDecodeError:
                logger.debug("Skipping undecodable config line", path=str(path), line=line_no)
                continue
            key, sep, value = line.partition('=')
            if not sep or key not in CONFIG_KEYS:
                logger.debug("Skipping config line", path=str(path), line=line_no)
                continue
            setattr(config, key, value)

        # 空目录回退到当前目录
        if not config.local_dir:
            config.local_dir = "."
        if not config.remote_dir:
            config.remote_dir = "."

        logger.info("Configuration loaded", path=str(path), host=config.host, user=config.user)
        return config

    def save(self, config: Config, config_path: Union[str, Path] = DEFAULT_CONFIG_PATH):
        """
        写入配置文件

        Args:
            config: 配置
            config_path: 配置文件路径

        Raises:
            ConfigError: 文件无法写入
        """
        path = Path(config_path)
        content = ''.join(f"{key}={getattr(config, key)}\n" for key in CONFIG_KEYS)

        try:
            path.write_text(content, encoding='utf-8')
        except OSError as e:
            logger.error("Failed to write config", path=str(path), error=str(e))
            raise ConfigError(f"failed to open config file for writing: {path} ({e})")

        logger.debug("Configuration saved", path=str(path))
