"""
应用启动

按配置完成：日志 -> 事务上下文 -> 数据库引擎 -> 注册

使用示例:
    from ytransaction import init_transactional
    from ytransaction.config import AppSettings, load_yaml_config

    settings = load_yaml_config("config/settings.yaml", AppSettings)
    engines = init_transactional(settings)

    # 应用关闭时
    for engine in engines.values():
        await engine.dispose()
"""

from typing import Dict

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from ytransaction.config.settings import AppSettings, DatabaseSettings
from ytransaction.log import get_logger, setup_root_logger
from ytransaction.transaction.database import add_transactional_database
from ytransaction.transaction.runtime import initialize_transactional_context

logger = get_logger("ytransaction.bootstrap")


def _is_sqlite_memory_url(url: str) -> bool:
    if not url.startswith("sqlite"):
        return False
    _, _, path = url.partition(":///")
    return path in ("", ":memory:")


def create_engine_from_settings(config: DatabaseSettings) -> AsyncEngine:
    """根据数据库配置创建异步引擎

    SQLite 内存数据库使用 StaticPool（单连接），否则所有连接看到的是不同的库；
    SQLite 文件数据库使用默认连接池；其他数据库应用连接池配置。

    Raises:
        ValueError: 未配置 url
    """
    url = config.url
    if not url:
        raise ValueError("数据库连接URL未配置")

    if url.startswith("sqlite"):
        if _is_sqlite_memory_url(url):
            engine = create_async_engine(
                url,
                echo=config.echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
            logger.info("SQLite内存数据库引擎创建成功（StaticPool）")
        else:
            engine = create_async_engine(url, echo=config.echo)
            logger.info(f"SQLite文件数据库引擎创建成功: {url}")
        return engine

    engine = create_async_engine(
        url,
        echo=config.echo,
        pool_pre_ping=config.pool_pre_ping,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_recycle=config.pool_recycle,
    )
    logger.info(
        f"数据库引擎创建成功 (pool_size={config.pool_size}, max_overflow={config.max_overflow})"
    )
    return engine


def init_transactional(settings: AppSettings) -> Dict[str, AsyncEngine]:
    """按应用配置初始化事务引擎

    Returns:
        数据库名称 -> 已注册的引擎

    Raises:
        DatabaseAlreadyRegisteredError: 配置中的数据库名已被注册
    """
    setup_root_logger(config=settings.logging)
    initialize_transactional_context(settings.transactional)

    engines: Dict[str, AsyncEngine] = {}
    for name, db_config in settings.databases.items():
        engine = create_engine_from_settings(db_config)
        add_transactional_database(engine, name)
        engines[name] = engine

    if not engines:
        logger.warning("未配置任何数据库，事务方法在注册数据库之前无法开启事务")
    return engines
