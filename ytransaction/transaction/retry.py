"""事务重试装饰器

提供带重试机制的事务装饰器，用于处理死锁、序列化失败等可重试的异常。
重试发生在传播处理之外：每次重试都是一次完整的新调用。
"""

import asyncio
from functools import wraps
from typing import Any, Awaitable, Callable, Tuple, Type, TypeVar

from sqlalchemy.exc import OperationalError

from ytransaction.log import get_logger

from .manager import is_in_transaction
from .propagation import TransactionPropagation, resolve_propagation
from .runtime import get_transactional_options
from .transactional import wrap_in_transaction

logger = get_logger("ytransaction.transaction")

T = TypeVar('T')

# 总是开启新事务的传播行为，失败后可以单独重试
_INDEPENDENT_PROPAGATIONS = (TransactionPropagation.REQUIRES_NEW, TransactionPropagation.NESTED)


def transaction_with_retry(
    max_retries: int = 3,
    retry_delay: float = 0.1,
    retry_on: Tuple[Type[BaseException], ...] = (OperationalError,),
    backoff_multiplier: float = 2.0,
    max_delay: float = 10.0,
    **transaction_options: Any
) -> Callable[[Callable[..., T]], Callable[..., Awaitable[T]]]:
    """带重试机制的事务装饰器

    当遇到指定的异常时，自动重试整个事务。支持指数退避策略。
    已处于事务中时只执行一次，不重试（加入外层事务的调用无法单独重试）；
    传播行为为 REQUIRES_NEW / NESTED 时每次都开启独立事务，在事务中也会重试。

    Args:
        max_retries: 最大重试次数（不包括首次尝试）
        retry_delay: 初始重试间隔（秒）
        retry_on: 需要重试的异常类型元组
        backoff_multiplier: 退避乘数（每次重试后延迟乘以此值）
        max_delay: 最大延迟时间（秒）
        **transaction_options: 传给 wrap_in_transaction 的选项
            （propagation / isolation_level / database_name）

    使用示例:
        @transaction_with_retry(max_retries=5, isolation_level=IsolationLevel.SERIALIZABLE)
        async def transfer_money(from_id, to_id, amount):
            ...
    """
    def _opens_independent_transaction() -> bool:
        propagation = transaction_options.get("propagation")
        if propagation is None:
            propagation = get_transactional_options().default_propagation
        return resolve_propagation(propagation) in _INDEPENDENT_PROPAGATIONS

    def decorator(func: Callable[..., T]) -> Callable[..., Awaitable[T]]:
        wrapped = wrap_in_transaction(func, **transaction_options)

        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            if is_in_transaction() and not _opens_independent_transaction():
                return await wrapped(*args, **kwargs)

            current_delay = retry_delay
            for attempt in range(max_retries + 1):
                try:
                    return await wrapped(*args, **kwargs)
                except retry_on as e:
                    if attempt >= max_retries:
                        logger.error(
                            f"事务重试 {max_retries} 次后仍失败. "
                            f"异常: {type(e).__name__}: {e}"
                        )
                        raise

                    actual_delay = min(current_delay, max_delay)
                    logger.warning(
                        f"事务执行失败 (尝试 {attempt + 1}/{max_retries + 1}), "
                        f"{actual_delay:.2f}s 后重试. "
                        f"异常: {type(e).__name__}: {e}"
                    )
                    await asyncio.sleep(actual_delay)
                    current_delay *= backoff_multiplier

            raise RuntimeError("Unexpected state in transaction_with_retry")

        return wrapper

    return decorator
