"""声明式事务

根据声明的传播行为和当前上下文是否处于事务中，为每次调用选择执行策略：
加入当前作用域、开启新事务、挂起当前事务，或直接拒绝。

使用示例:
    from ytransaction.transaction import transactional, TransactionPropagation

    @transactional()
    async def create_order(data):
        ...
        await write_audit_log("order created")

    @transactional(propagation=TransactionPropagation.REQUIRES_NEW)
    async def write_audit_log(action):
        # 独立事务，外层回滚不影响审计日志
        ...

    # 不使用装饰器，直接执行一次
    await run_in_transaction(lambda: create_order(data), isolation_level="SERIALIZABLE")
"""

from __future__ import annotations

import inspect
from functools import wraps
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ytransaction.log import get_logger

from .context import IN_TRANSACTION_KEY, TRANSACTION_ID_KEY, context_scope, has_active_context
from .exceptions import NoTransactionForMandatoryError, TransactionPresentForNeverError
from .hooks import TransactionHooks, create_hooks_in_context, run_and_trigger_hooks
from .manager import get_current_transaction_id, is_in_transaction, transaction_manager
from .propagation import TransactionPropagation, resolve_propagation
from .runtime import get_transactional_options

logger = get_logger("ytransaction.transaction")

T = TypeVar('T')


class _Invocation:
    """一次被包装调用的执行策略集合"""

    def __init__(
        self,
        fn: Callable[..., Any],
        args: tuple,
        kwargs: dict,
        database_name: str,
        isolation_level: Optional[Any],
        name: str
    ):
        self.fn = fn
        self.args = args
        self.kwargs = kwargs
        self.database_name = database_name
        self.isolation_level = isolation_level
        self.name = name

    async def run_original(self) -> Any:
        """在当前作用域中执行，不创建新的钩子作用域"""
        result = self.fn(*self.args, **self.kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def run_with_new_hooks(self, bindings: Optional[Dict[str, Any]] = None) -> Any:
        """在新的子作用域和钩子作用域中以非事务方式执行"""
        with context_scope(bindings):
            hooks = create_hooks_in_context()
            return await run_and_trigger_hooks(hooks, self.run_original)

    async def run_suspended(self) -> Any:
        """挂起当前事务后以非事务方式执行"""
        logger.debug(f"{self.name}: 挂起事务 {get_current_transaction_id()}")
        return await self.run_with_new_hooks({IN_TRANSACTION_KEY: False, TRANSACTION_ID_KEY: None})

    async def run_with_new_transaction(self) -> Any:
        """在新事务中执行

        钩子作用域在事务开启成功后才创建，并在提交或回滚完成后触发。
        """
        hooks: Optional[TransactionHooks] = None

        async def body():
            nonlocal hooks
            hooks = create_hooks_in_context()
            return await self.run_original()

        try:
            result = await transaction_manager.run_in_new_transaction(
                self.database_name, self.isolation_level, body
            )
        except BaseException as e:
            if hooks is not None:
                await hooks.fire(e)
            raise

        await hooks.fire()
        return result


async def _required(invocation: _Invocation, in_transaction: bool) -> Any:
    if in_transaction:
        return await invocation.run_original()
    return await invocation.run_with_new_transaction()


async def _requires_new(invocation: _Invocation, in_transaction: bool) -> Any:
    if in_transaction:
        logger.info(
            f"REQUIRES_NEW: {invocation.name} 调用期间挂起当前事务 "
            f"{get_current_transaction_id()}，开启新事务"
        )
    return await invocation.run_with_new_transaction()


async def _nested(invocation: _Invocation, in_transaction: bool) -> Any:
    # 不支持 savepoint 嵌套事务，按 REQUIRES_NEW 处理
    if in_transaction:
        logger.debug(f"NESTED: {invocation.name} 按 REQUIRES_NEW 开启独立事务")
    return await invocation.run_with_new_transaction()


async def _mandatory(invocation: _Invocation, in_transaction: bool) -> Any:
    if not in_transaction:
        raise NoTransactionForMandatoryError()
    return await invocation.run_original()


async def _never(invocation: _Invocation, in_transaction: bool) -> Any:
    if in_transaction:
        raise TransactionPresentForNeverError()
    return await invocation.run_with_new_hooks()


async def _not_supported(invocation: _Invocation, in_transaction: bool) -> Any:
    if in_transaction:
        return await invocation.run_suspended()
    return await invocation.run_with_new_hooks()


async def _supports(invocation: _Invocation, in_transaction: bool) -> Any:
    if in_transaction:
        return await invocation.run_original()
    return await invocation.run_with_new_hooks()


_PROPAGATION_HANDLERS: Dict[TransactionPropagation, Callable[[_Invocation, bool], Awaitable[Any]]] = {
    TransactionPropagation.REQUIRED: _required,
    TransactionPropagation.REQUIRES_NEW: _requires_new,
    TransactionPropagation.NESTED: _nested,
    TransactionPropagation.MANDATORY: _mandatory,
    TransactionPropagation.NEVER: _never,
    TransactionPropagation.NOT_SUPPORTED: _not_supported,
    TransactionPropagation.SUPPORTS: _supports,
}


def wrap_in_transaction(
    fn: Callable[..., Any],
    *,
    propagation: Optional[Any] = None,
    isolation_level: Optional[Any] = None,
    database_name: Optional[str] = None,
    name: Optional[str] = None
) -> Callable[..., Awaitable[Any]]:
    """包装可调用对象，使每次调用先经过事务传播处理

    包装结果总是协程函数；fn 返回可等待对象时会等待其结果。

    Args:
        fn: 要包装的可调用对象
        propagation: 传播行为（枚举或字符串），None 使用配置默认值
        isolation_level: 隔离级别，None 使用配置默认值
        database_name: 数据库名称，None 使用配置默认值
        name: 日志中使用的名称，默认取 fn 的限定名

    Returns:
        包装后的协程函数

    Raises（调用时）:
        NotInitializedError: 事务上下文未初始化
        UnknownPropagationError: 无法识别的传播行为
        NoTransactionForMandatoryError / TransactionPresentForNeverError: 传播条件不满足
    """
    label = name or getattr(fn, '__qualname__', None) or repr(fn)

    @wraps(fn)
    async def wrapper(*args, **kwargs):
        options = get_transactional_options()
        resolved = resolve_propagation(
            propagation if propagation is not None else options.default_propagation
        )
        handler = _PROPAGATION_HANDLERS[resolved]

        invocation = _Invocation(
            fn,
            args,
            kwargs,
            database_name=database_name or options.default_database_name,
            isolation_level=(
                isolation_level if isolation_level is not None else options.default_isolation_level
            ),
            name=label,
        )

        if not has_active_context():
            # 顶层调用：先建立新的上下文作用域
            with context_scope():
                return await handler(invocation, False)

        return await handler(invocation, is_in_transaction())

    return wrapper


def transactional(
    propagation: Optional[Any] = None,
    isolation_level: Optional[Any] = None,
    database_name: Optional[str] = None
):
    """事务装饰器

    Args:
        propagation: 事务传播行为，默认 REQUIRED（可通过配置修改）
        isolation_level: 事务隔离级别，默认由数据库决定
        database_name: 数据库名称，默认 "default"

    使用示例:
        class UserService:
            @transactional()
            async def create_user(self, name):
                ...

            @transactional(propagation=TransactionPropagation.MANDATORY)
            async def add_role(self, user_id, role):
                # 必须由上层方法开启事务
                ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Awaitable[T]]:
        return wrap_in_transaction(
            func,
            propagation=propagation,
            isolation_level=isolation_level,
            database_name=database_name,
        )

    return decorator


async def run_in_transaction(
    fn: Callable[[], Any],
    *,
    propagation: Optional[Any] = None,
    isolation_level: Optional[Any] = None,
    database_name: Optional[str] = None
) -> Any:
    """按传播行为执行一次 fn

    使用示例:
        user = await run_in_transaction(lambda: service.create_user("tom"))
    """
    return await wrap_in_transaction(
        fn,
        propagation=propagation,
        isolation_level=isolation_level,
        database_name=database_name,
    )()
