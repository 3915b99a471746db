"""
YTransaction - 声明式事务传播库

提供事务传播、上下文传递、事务钩子、数据库句柄解析等功能
"""

from .version import __version__, __author__, __description__

# 导出事务模块
from .transaction import (
    TransactionPropagation,
    IsolationLevel,
    transactional,
    wrap_in_transaction,
    run_in_transaction,
    transaction_with_retry,
    initialize_transactional_context,
    add_transactional_database,
    get_database_by_name,
    remove_database_by_name,
    TransactionalDatabase,
    run_on_transaction_commit,
    run_on_transaction_rollback,
    run_on_transaction_complete,
    is_in_transaction,
    get_current_transaction_id,
    TransactionError,
)

# 导出启动函数
from .bootstrap import create_engine_from_settings, init_transactional

__all__ = [
    "__version__",
    "__author__",
    "__description__",
    "TransactionPropagation",
    "IsolationLevel",
    "transactional",
    "wrap_in_transaction",
    "run_in_transaction",
    "transaction_with_retry",
    "initialize_transactional_context",
    "add_transactional_database",
    "get_database_by_name",
    "remove_database_by_name",
    "TransactionalDatabase",
    "run_on_transaction_commit",
    "run_on_transaction_rollback",
    "run_on_transaction_complete",
    "is_in_transaction",
    "get_current_transaction_id",
    "TransactionError",
    "create_engine_from_settings",
    "init_transactional",
]
