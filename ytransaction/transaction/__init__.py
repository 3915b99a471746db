"""事务管理模块

提供声明式事务功能：
- 事务传播行为（REQUIRED, REQUIRES_NEW, MANDATORY, NEVER, NOT_SUPPORTED, SUPPORTS, NESTED）
- 异步调用链上的上下文传递（基于 contextvars）
- 事务钩子（提交、回滚、结束）
- 按名称注册数据库，并在事务中自动解析为事务句柄

使用示例:
    from ytransaction.transaction import (
        initialize_transactional_context,
        add_transactional_database,
        TransactionalDatabase,
        transactional,
        run_on_transaction_commit,
    )

    initialize_transactional_context()
    add_transactional_database(engine)
    db = TransactionalDatabase()

    @transactional()
    async def create_user(name):
        await db.execute(users.insert().values(name=name))

        @run_on_transaction_commit
        def on_committed():
            send_welcome_email(name)
"""

from .state import TransactionState
from .exceptions import (
    TransactionError,
    NotInitializedError,
    DatabaseNotFoundError,
    DatabaseAlreadyRegisteredError,
    TransactionNotFoundError,
    PropagationError,
    NoTransactionForMandatoryError,
    TransactionPresentForNeverError,
    UnknownPropagationError,
    ContextError,
    NoActiveContextError,
    NoHookScopeError,
    ContextValidationError,
    HookExecutionError,
)
from .propagation import TransactionPropagation, resolve_propagation
from .isolation import IsolationLevel
from .context import (
    IN_TRANSACTION_KEY,
    TRANSACTION_ID_KEY,
    HOOKS_KEY,
    context_scope,
    run_with_context,
    has_active_context,
    get_context,
    get_context_value,
    set_context_value,
    get_validated_context,
)
from .hooks import (
    TransactionHookType,
    TransactionHooks,
    create_hooks_in_context,
    get_current_hooks,
    run_and_trigger_hooks,
    run_on_transaction_commit,
    run_on_transaction_rollback,
    run_on_transaction_complete,
)
from .runtime import (
    initialize_transactional_context,
    is_transactional_initialized,
    get_transactional_options,
)
from .drivers import DatabaseDriver, SQLAlchemyAsyncDriver
from .database import (
    DEFAULT_DATABASE_NAME,
    DatabaseRegistry,
    RegisteredDatabase,
    TransactionalDatabase,
    TransactionalDatabaseInfo,
    database_registry,
    add_transactional_database,
    get_database_by_name,
    remove_database_by_name,
    get_current_database_info,
)
from .manager import (
    TransactionRecord,
    TransactionManager,
    transaction_manager,
    is_in_transaction,
    get_current_transaction_id,
)
from .transactional import wrap_in_transaction, transactional, run_in_transaction
from .retry import transaction_with_retry

__all__ = [
    # 状态
    "TransactionState",

    # 异常
    "TransactionError",
    "NotInitializedError",
    "DatabaseNotFoundError",
    "DatabaseAlreadyRegisteredError",
    "TransactionNotFoundError",
    "PropagationError",
    "NoTransactionForMandatoryError",
    "TransactionPresentForNeverError",
    "UnknownPropagationError",
    "ContextError",
    "NoActiveContextError",
    "NoHookScopeError",
    "ContextValidationError",
    "HookExecutionError",

    # 传播行为 / 隔离级别
    "TransactionPropagation",
    "resolve_propagation",
    "IsolationLevel",

    # 上下文
    "IN_TRANSACTION_KEY",
    "TRANSACTION_ID_KEY",
    "HOOKS_KEY",
    "context_scope",
    "run_with_context",
    "has_active_context",
    "get_context",
    "get_context_value",
    "set_context_value",
    "get_validated_context",

    # 钩子
    "TransactionHookType",
    "TransactionHooks",
    "create_hooks_in_context",
    "get_current_hooks",
    "run_and_trigger_hooks",
    "run_on_transaction_commit",
    "run_on_transaction_rollback",
    "run_on_transaction_complete",

    # 初始化
    "initialize_transactional_context",
    "is_transactional_initialized",
    "get_transactional_options",

    # 数据库
    "DatabaseDriver",
    "SQLAlchemyAsyncDriver",
    "DEFAULT_DATABASE_NAME",
    "DatabaseRegistry",
    "RegisteredDatabase",
    "TransactionalDatabase",
    "TransactionalDatabaseInfo",
    "database_registry",
    "add_transactional_database",
    "get_database_by_name",
    "remove_database_by_name",
    "get_current_database_info",

    # 事务管理器
    "TransactionRecord",
    "TransactionManager",
    "transaction_manager",
    "is_in_transaction",
    "get_current_transaction_id",

    # 装饰器
    "wrap_in_transaction",
    "transactional",
    "run_in_transaction",
    "transaction_with_retry",
]
