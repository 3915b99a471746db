"""事务隔离级别

隔离级别的值原样传给数据库驱动，具体语义由数据库决定
"""

from enum import Enum
from typing import Any, Optional


class IsolationLevel(str, Enum):
    """事务隔离级别

    值与 SQLAlchemy 的 isolation_level 执行选项一致
    """

    READ_UNCOMMITTED = "READ UNCOMMITTED"
    """可能出现脏读、不可重复读和幻读"""

    READ_COMMITTED = "READ COMMITTED"
    """防止脏读；可能出现不可重复读和幻读"""

    REPEATABLE_READ = "REPEATABLE READ"
    """防止脏读和不可重复读；可能出现幻读"""

    SERIALIZABLE = "SERIALIZABLE"
    """防止脏读、不可重复读和幻读"""


def isolation_level_value(level: Any) -> Optional[str]:
    """取出隔离级别的字符串值，枚举成员解包为 value，None 保持为 None"""
    if level is None:
        return None
    if isinstance(level, Enum):
        return level.value
    return str(level)
