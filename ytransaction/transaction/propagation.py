"""事务传播行为

定义当方法在已有事务上下文中被调用时的行为
"""

from enum import Enum
from typing import Any

from .exceptions import UnknownPropagationError


class TransactionPropagation(str, Enum):
    """事务传播行为

    定义嵌套调用时事务的处理方式，类似 Spring 的事务传播机制

    使用示例:
        @transactional(propagation=TransactionPropagation.REQUIRED)
        async def service_a():
            pass

        @transactional(propagation=TransactionPropagation.REQUIRES_NEW)
        async def service_b():
            # 总是在新事务中执行
            pass
    """

    REQUIRED = "required"
    """如果当前有事务则加入，没有则新建（默认）"""

    REQUIRES_NEW = "requires_new"
    """总是新建独立事务，当前事务在调用期间被挂起

    适用场景：
    - 审计日志：无论主事务是否成功，都要记录
    - 独立操作：不受外层事务影响
    """

    SUPPORTS = "supports"
    """如果当前有事务则加入，没有则以非事务方式执行"""

    NOT_SUPPORTED = "not_supported"
    """以非事务方式执行，如果当前有事务则挂起"""

    MANDATORY = "mandatory"
    """必须在事务中执行，否则抛出 NoTransactionForMandatoryError"""

    NEVER = "never"
    """必须不在事务中执行，否则抛出 TransactionPresentForNeverError"""

    NESTED = "nested"
    """等同于 REQUIRES_NEW

    不使用 savepoint，嵌套调用总是开启新的独立事务
    """


def resolve_propagation(value: Any) -> TransactionPropagation:
    """把枚举成员或字符串解析为 TransactionPropagation

    字符串既可以是值（"requires_new"），也可以是名称（"REQUIRES_NEW"），不区分大小写

    Raises:
        UnknownPropagationError: 无法识别的传播行为
    """
    if isinstance(value, TransactionPropagation):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        for member in TransactionPropagation:
            if normalized == member.value:
                return member
    raise UnknownPropagationError(value)
