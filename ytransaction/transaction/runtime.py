"""事务运行时状态

保存初始化后的全局配置；未初始化时事务装饰器拒绝执行
"""

from typing import Optional

from ytransaction.config.settings import TransactionalSettings
from ytransaction.log import get_logger

from .exceptions import NotInitializedError

logger = get_logger("ytransaction.transaction")


class _TransactionalRuntime:
    """全局运行时数据"""

    def __init__(self):
        self.options: Optional[TransactionalSettings] = None

    @property
    def initialized(self) -> bool:
        return self.options is not None


_runtime = _TransactionalRuntime()


def initialize_transactional_context(
    settings: Optional[TransactionalSettings] = None,
    **overrides
) -> TransactionalSettings:
    """初始化事务上下文

    应在应用启动时、任何事务方法被调用之前执行一次；重复调用会覆盖配置。

    Args:
        settings: 事务引擎配置，不传则从环境变量读取（YTX_ 前缀）
        **overrides: 覆盖配置的字段，如 max_hook_handlers=20

    Returns:
        生效的配置

    Raises:
        pydantic.ValidationError: 配置值不合法（如 max_hook_handlers <= 0）

    使用示例:
        from ytransaction.transaction import initialize_transactional_context

        initialize_transactional_context(max_hook_handlers=20)
    """
    if settings is None:
        settings = TransactionalSettings(**overrides)
    elif overrides:
        settings = TransactionalSettings(**{**settings.model_dump(), **overrides})

    _runtime.options = settings
    logger.info(
        f"事务上下文已初始化 (default_database={settings.default_database_name}, "
        f"default_propagation={settings.default_propagation}, "
        f"max_hook_handlers={settings.max_hook_handlers})"
    )
    return settings


def is_transactional_initialized() -> bool:
    """检查事务上下文是否已初始化"""
    return _runtime.initialized


def get_transactional_options() -> TransactionalSettings:
    """获取当前生效的配置

    Raises:
        NotInitializedError: 尚未调用 initialize_transactional_context()
    """
    if _runtime.options is None:
        raise NotInitializedError()
    return _runtime.options
