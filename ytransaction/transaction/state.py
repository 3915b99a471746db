"""事务状态枚举

定义事务记录的生命周期状态
"""

from enum import Enum


class TransactionState(str, Enum):
    """事务状态

    状态转换图:

        ACTIVE → COMMITTED
           ↓
        ROLLED_BACK

        ACTIVE → FAILED（提交或回滚本身失败）

    状态说明:
        - ACTIVE: 事务已开启，尚未结束
        - COMMITTED: 事务已成功提交到数据库
        - ROLLED_BACK: 事务已回滚
        - FAILED: 提交或回滚时数据库驱动抛出异常
    """

    ACTIVE = "active"
    """活跃状态：事务正在进行中"""

    COMMITTED = "committed"
    """已提交状态：事务已成功提交到数据库"""

    ROLLED_BACK = "rolled_back"
    """已回滚状态：事务已被回滚"""

    FAILED = "failed"
    """失败状态：提交或回滚失败"""

    def is_terminal(self) -> bool:
        """判断是否为终态（不可再转换的状态）"""
        return self in (
            TransactionState.COMMITTED,
            TransactionState.ROLLED_BACK,
            TransactionState.FAILED
        )
