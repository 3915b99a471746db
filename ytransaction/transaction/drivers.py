"""数据库驱动适配

事务引擎只通过 DatabaseDriver 接口开启、提交、回滚事务，
具体的锁和可见性语义由数据库决定。默认实现基于 SQLAlchemy 异步引擎。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from .isolation import isolation_level_value


class DatabaseDriver(ABC):
    """数据库驱动接口

    所有方法在失败时直接抛出驱动自身的异常
    """

    @abstractmethod
    async def begin(self, database: Any, isolation_level: Optional[Any] = None) -> Any:
        """在基础句柄上开启事务，返回事务句柄"""

    @abstractmethod
    async def commit(self, transaction: Any) -> None:
        """提交事务

        提交失败时事务管理器会对同一句柄再调用一次 rollback 以释放事务，
        因此 rollback 必须允许在提交失败（可能已关闭）的句柄上调用。
        """

    @abstractmethod
    async def rollback(self, transaction: Any) -> None:
        """回滚事务"""

    @abstractmethod
    def connect(self, database: Any):
        """非事务访问：返回一个异步上下文管理器，产出可直接执行语句的连接"""


class SQLAlchemyAsyncDriver(DatabaseDriver):
    """SQLAlchemy 异步引擎驱动

    基础句柄为 AsyncEngine，事务句柄为已开启事务的 AsyncConnection。
    提交或回滚后总会关闭连接，连接归还连接池。
    """

    async def begin(self, database: AsyncEngine, isolation_level: Optional[Any] = None) -> AsyncConnection:
        connection = await database.connect()
        try:
            level = isolation_level_value(isolation_level)
            if level is not None:
                connection = await connection.execution_options(isolation_level=level)
            await connection.begin()
        except BaseException:
            await connection.close()
            raise
        return connection

    async def commit(self, transaction: AsyncConnection) -> None:
        try:
            await transaction.commit()
        finally:
            await transaction.close()

    async def rollback(self, transaction: AsyncConnection) -> None:
        if transaction.closed:
            # 提交失败时连接已在 commit 中关闭
            return
        try:
            await transaction.rollback()
        finally:
            await transaction.close()

    @asynccontextmanager
    async def connect(self, database: AsyncEngine) -> AsyncIterator[AsyncConnection]:
        # 每个代码块一个短事务，正常退出时提交
        async with database.begin() as connection:
            yield connection
