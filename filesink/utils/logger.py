"""
日志系统配置
"""

import logging
import sys
from typing import Optional
import structlog

LOG_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
}


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    log_file: Optional[str] = None
):
    """
    配置结构化日志

    诊断日志写到 stderr（或 log_file），与面向用户的活动日志分开。

    Args:
        level: 日志级别 (DEBUG, INFO, WARNING, ERROR)
        log_format: 日志格式 (text, json)
        log_file: 日志文件路径（可选）
    """
    if log_file:
        stream = open(log_file, 'a', encoding='utf-8')
        colors = False
    else:
        stream = sys.stderr
        colors = sys.stderr.isatty()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=colors))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            LOG_LEVELS.get(level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )

    logger = structlog.get_logger()
    logger.debug("Logging configured", level=level, format=log_format, file=log_file)
    return logger
