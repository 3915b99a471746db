"""事务钩子系统

每个钩子作用域对应一次事务尝试（或一次非事务执行单元），
按注册顺序保存 commit / rollback / end 三类监听器，结束时触发一次后清空。

使用示例:
    from ytransaction.transaction import (
        transactional,
        run_on_transaction_commit,
        run_on_transaction_rollback,
    )

    @transactional()
    async def create_user(name):
        await users_db.get().execute(users.insert().values(name=name))

        run_on_transaction_commit(lambda: send_welcome_email(name))

        @run_on_transaction_rollback
        def on_rollback(error):
            logger.warning(f"用户 {name} 创建失败: {error}")
"""

from __future__ import annotations

import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from ytransaction.log import get_logger

from .context import HOOKS_KEY, has_active_context, get_context_value, set_context_value
from .exceptions import HookExecutionError, NoActiveContextError, NoHookScopeError

logger = get_logger("ytransaction.transaction")

T = TypeVar('T')
F = TypeVar('F', bound=Callable[..., Any])


class TransactionHookType(str, Enum):
    """事务钩子类型"""

    COMMIT = "commit"
    """执行成功（事务已提交）后，不带参数"""

    ROLLBACK = "rollback"
    """执行失败（事务已回滚）后，参数为导致失败的异常"""

    END = "end"
    """结束时总会触发，成功时参数为 None，失败时为异常"""


class TransactionHooks:
    """事务钩子作用域

    管理单个作用域的钩子注册和执行。每类钩子按注册顺序执行，
    commit / rollback 类全部执行完后再执行 end 类；触发后清空，最多触发一次。
    """

    def __init__(self, max_handlers: int = 10):
        self._max_handlers = max_handlers
        self._listeners: Dict[TransactionHookType, List[Callable]] = {
            hook_type: [] for hook_type in TransactionHookType
        }
        self._fired = False

    @property
    def fired(self) -> bool:
        """是否已触发"""
        return self._fired

    def listener_count(self, hook_type: TransactionHookType) -> int:
        """获取指定类型的监听器数量"""
        return len(self._listeners[TransactionHookType(hook_type)])

    def on(self, hook_type: TransactionHookType, listener: F) -> F:
        """注册监听器

        返回 listener 本身，因此也可以作为装饰器使用。
        同类监听器超过 max_handlers 时只告警，不拒绝注册。
        """
        hook_type = TransactionHookType(hook_type)
        if self._fired:
            logger.warning(
                f"钩子作用域已触发，新注册的 {hook_type.value} 监听器不会被执行"
            )

        listeners = self._listeners[hook_type]
        listeners.append(listener)
        if len(listeners) > self._max_handlers:
            logger.warning(
                f"{hook_type.value} 钩子数量 ({len(listeners)}) 超过上限 {self._max_handlers}，"
                f"可能存在监听器泄漏"
            )
        return listener

    def clear(self) -> None:
        """清空所有监听器"""
        for hook_type in TransactionHookType:
            self._listeners[hook_type].clear()

    async def fire(self, error: Optional[BaseException] = None) -> List[HookExecutionError]:
        """触发钩子

        error 为 None 时依次执行 commit、end(None)；否则依次执行 rollback(error)、end(error)。
        监听器抛出的异常会被记录，不影响后续监听器，也不改变事务结果。

        Returns:
            执行过程中发生的异常列表
        """
        if self._fired:
            return []
        self._fired = True

        try:
            if error is None:
                errors = await self._execute(TransactionHookType.COMMIT)
            else:
                errors = await self._execute(TransactionHookType.ROLLBACK, error)
            errors.extend(await self._execute(TransactionHookType.END, error))
        finally:
            self.clear()

        if errors:
            logger.warning(f"{len(errors)} 个事务钩子执行失败")
        return errors

    async def _execute(self, hook_type: TransactionHookType, *args) -> List[HookExecutionError]:
        """按注册顺序执行指定类型的监听器"""
        errors = []
        for listener in list(self._listeners[hook_type]):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                listener_name = getattr(listener, '__name__', repr(listener))
                errors.append(HookExecutionError(listener_name, e))
                logger.error(f"{hook_type.value} 钩子 {listener_name} 执行失败: {e}", exc_info=e)
        return errors

    def __repr__(self) -> str:
        counts = ", ".join(
            f"{hook_type.value}={len(listeners)}"
            for hook_type, listeners in self._listeners.items()
        )
        return f"TransactionHooks({counts}, fired={self._fired})"


def create_hooks_in_context(max_handlers: Optional[int] = None) -> TransactionHooks:
    """创建新的钩子作用域并绑定到当前最内层上下文

    Args:
        max_handlers: 同类监听器数量上限，None 时使用运行时配置

    Raises:
        NoActiveContextError: 当前不在任何作用域中
    """
    if max_handlers is None:
        from .runtime import get_transactional_options
        max_handlers = get_transactional_options().max_hook_handlers

    hooks = TransactionHooks(max_handlers=max_handlers)
    set_context_value(HOOKS_KEY, hooks)
    return hooks


def get_current_hooks() -> TransactionHooks:
    """获取当前作用域的钩子

    Raises:
        NoActiveContextError: 当前不在任何作用域中
        NoHookScopeError: 作用域中没有钩子对象
    """
    if not has_active_context():
        raise NoActiveContextError()

    hooks = get_context_value(HOOKS_KEY)
    if hooks is None:
        raise NoHookScopeError()
    return hooks


async def run_and_trigger_hooks(hooks: TransactionHooks, fn: Callable[[], Awaitable[T]]) -> T:
    """执行 fn，并在其结束后触发钩子

    钩子在返回结果或重新抛出异常之前执行完毕。
    """
    try:
        result = await fn()
    except BaseException as e:
        await hooks.fire(e)
        raise
    await hooks.fire()
    return result


def run_on_transaction_commit(callback: F) -> F:
    """注册当前事务成功提交后执行的回调"""
    return get_current_hooks().on(TransactionHookType.COMMIT, callback)


def run_on_transaction_rollback(callback: F) -> F:
    """注册当前事务回滚后执行的回调，回调参数为导致回滚的异常"""
    return get_current_hooks().on(TransactionHookType.ROLLBACK, callback)


def run_on_transaction_complete(callback: F) -> F:
    """注册当前事务上下文结束时执行的回调，回调参数为异常或 None"""
    return get_current_hooks().on(TransactionHookType.END, callback)
