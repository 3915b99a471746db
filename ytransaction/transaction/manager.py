"""事务管理器

负责开启、提交、回滚数据库事务，并在事务期间登记事务记录
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ytransaction.log import get_logger

from .context import IN_TRANSACTION_KEY, TRANSACTION_ID_KEY, context_scope, get_context_value
from .database import DatabaseRegistry, RegisteredDatabase, database_registry
from .isolation import isolation_level_value
from .state import TransactionState

logger = get_logger("ytransaction.transaction")

T = TypeVar('T')


@dataclass
class TransactionRecord:
    """事务记录

    事务开启时创建，由事务管理器独占；提交或回滚后立即从注册表移除
    """

    id: str
    database_name: str
    handle: Any
    isolation_level: Optional[str] = None
    state: TransactionState = TransactionState.ACTIVE
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def is_active(self) -> bool:
        return not self.state.is_terminal()


def is_in_transaction() -> bool:
    """检查当前上下文是否处于事务中（不在任何作用域中时为 False）"""
    return bool(get_context_value(IN_TRANSACTION_KEY, False))


def get_current_transaction_id() -> Optional[str]:
    """获取当前事务 ID，不在事务中时返回 None"""
    if not is_in_transaction():
        return None
    return get_context_value(TRANSACTION_ID_KEY)


class TransactionManager:
    """事务管理器

    使用示例:
        result = await transaction_manager.run_in_new_transaction(
            "default", IsolationLevel.SERIALIZABLE, create_order
        )
    """

    def __init__(self, registry: DatabaseRegistry = None):
        self._registry = registry or database_registry

    @property
    def registry(self) -> DatabaseRegistry:
        return self._registry

    async def run_in_new_transaction(
        self,
        database_name: str,
        isolation_level: Optional[Any],
        fn: Callable[[], Awaitable[T]]
    ) -> T:
        """在新事务中执行 fn

        fn 成功时提交并返回结果；fn 抛出任何异常（包括取消）时回滚并重新抛出原异常。
        回滚失败只记录日志，调用方看到的仍是原异常。

        Args:
            database_name: 已注册的数据库名称
            isolation_level: 隔离级别，None 表示使用数据库默认
            fn: 无参协程函数，在 in-transaction=True 的新作用域中执行

        Raises:
            DatabaseNotFoundError: 数据库未注册
            开启、提交事务时驱动抛出的异常原样传出
        """
        registered = self._registry.get_registered(database_name)
        transaction_id = uuid.uuid4().hex

        # 开启失败直接抛出，此时还没有任何业务代码执行
        handle = await registered.driver.begin(registered.database, isolation_level)
        record = TransactionRecord(
            id=transaction_id,
            database_name=database_name,
            handle=handle,
            isolation_level=isolation_level_value(isolation_level),
        )
        logger.debug(
            f"事务开始: {transaction_id} (database={database_name}, "
            f"isolation_level={record.isolation_level or 'default'})"
        )

        with self._registry.bind_transaction(record):
            try:
                with context_scope({IN_TRANSACTION_KEY: True, TRANSACTION_ID_KEY: transaction_id}):
                    result = await fn()
            except BaseException as e:
                await self._rollback(registered, record, e)
                raise

            await self._commit(registered, record)
            return result

    async def _commit(self, registered: RegisteredDatabase, record: TransactionRecord) -> None:
        """提交事务

        提交失败时先尽力回滚以释放事务句柄，再抛出提交异常；
        回滚本身的失败只记录日志。
        """
        try:
            await registered.driver.commit(record.handle)
        except Exception as e:
            record.state = TransactionState.FAILED
            logger.error(f"事务提交失败: {record.id}: {e}")
            try:
                await registered.driver.rollback(record.handle)
            except Exception as rollback_error:
                logger.error(f"提交失败后回滚失败: {record.id}: {rollback_error}")
            raise
        record.state = TransactionState.COMMITTED
        logger.debug(f"事务提交成功: {record.id}")

    async def _rollback(
        self,
        registered: RegisteredDatabase,
        record: TransactionRecord,
        error: BaseException
    ) -> None:
        """回滚事务

        驱动抛出的 Exception 只记录日志，由调用方重新抛出原异常；
        回滚期间的取消（asyncio.CancelledError）不拦截，会替代原异常向上传播。
        """
        try:
            await registered.driver.rollback(record.handle)
        except Exception as rollback_error:
            record.state = TransactionState.FAILED
            logger.error(
                f"事务回滚失败: {record.id}: {rollback_error} "
                f"(原始异常: {type(error).__name__}: {error})"
            )
            return
        record.state = TransactionState.ROLLED_BACK
        logger.debug(f"事务已回滚: {record.id} ({type(error).__name__}: {error})")


# 全局实例
transaction_manager = TransactionManager()
