"""日志模块

提供日志配置与日志记录器获取：
- setup_logger / setup_root_logger: 日志配置
- get_logger: 自动推断模块名的日志记录器
- transaction_logger: 事务引擎使用的日志记录器

使用示例:
    from ytransaction.log import setup_root_logger, get_logger

    setup_root_logger(level="DEBUG")
    logger = get_logger()
"""

from .logger import (
    setup_logger,
    setup_root_logger,
    create_formatter,
    MicrosecondFormatter,
    DEFAULT_LOG_FORMAT,
    transaction_logger,
    logger,
    get_logger,
)

__all__ = [
    "setup_logger",
    "setup_root_logger",
    "create_formatter",
    "MicrosecondFormatter",
    "DEFAULT_LOG_FORMAT",
    "transaction_logger",
    "logger",
    "get_logger",
]
