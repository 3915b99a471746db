"""事务异常类

定义事务管理相关的异常层次结构，每个异常带有稳定的错误代码 code
"""

from typing import Any, Dict, Optional


class TransactionError(Exception):
    """事务错误基类

    所有事务相关的异常都继承自此类

    Attributes:
        code: 错误代码，便于调用方按类型分支处理
        details: 附加信息（如数据库名、传播行为）
    """

    code: str = "TRANSACTION_ERROR"

    def __init__(self, message: str = "事务错误", details: Optional[Dict[str, Any]] = None):
        self.details = details or {}
        super().__init__(message)


class NotInitializedError(TransactionError):
    """事务上下文未初始化

    在调用 initialize_transactional_context() 之前使用事务装饰器时抛出
    """

    code = "NOT_INITIALIZED"

    def __init__(self, message: str = None):
        super().__init__(
            message or "事务上下文未初始化，请在应用启动时调用 initialize_transactional_context()"
        )


class DatabaseNotFoundError(TransactionError):
    """数据库未注册"""

    code = "DATABASE_NOT_FOUND"

    def __init__(self, database_name: str):
        self.database_name = database_name
        super().__init__(
            f"未注册名称为 '{database_name}' 的数据库，请先调用 add_transactional_database()",
            details={"database_name": database_name},
        )


class DatabaseAlreadyRegisteredError(TransactionError):
    """数据库重复注册"""

    code = "DATABASE_ALREADY_REGISTERED"

    def __init__(self, database_name: str):
        self.database_name = database_name
        super().__init__(
            f"名称为 '{database_name}' 的数据库已注册",
            details={"database_name": database_name},
        )


class TransactionNotFoundError(TransactionError):
    """上下文中的事务 ID 找不到对应的事务

    表示事务管理器内部状态不一致，而不是使用错误
    """

    code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(
            f"找不到 ID 为 '{transaction_id}' 的活动事务",
            details={"transaction_id": transaction_id},
        )


class PropagationError(TransactionError):
    """事务传播错误

    当事务传播行为不满足条件时抛出
    """

    code = "PROPAGATION_ERROR"

    def __init__(self, propagation: str, message: str):
        self.propagation = propagation
        super().__init__(f"[{propagation}] {message}", details={"propagation": propagation})


class NoTransactionForMandatoryError(PropagationError):
    """MANDATORY 传播行为要求已有事务"""

    code = "PROPAGATION_MANDATORY"

    def __init__(self):
        super().__init__("MANDATORY", "没有找到现有事务，MANDATORY 必须在事务中执行")


class TransactionPresentForNeverError(PropagationError):
    """NEVER 传播行为要求不在事务中"""

    code = "PROPAGATION_NEVER"

    def __init__(self):
        super().__init__("NEVER", "发现现有事务，NEVER 不能在事务中执行")


class UnknownPropagationError(PropagationError):
    """未知的传播行为"""

    code = "PROPAGATION_UNKNOWN"

    def __init__(self, propagation: Any):
        super().__init__(str(propagation), f"未知的事务传播行为: {propagation!r}")


class ContextError(TransactionError):
    """事务上下文错误基类"""

    code = "CONTEXT_ERROR"


class NoActiveContextError(ContextError):
    """当前不在任何事务上下文中"""

    code = "CONTEXT_NO_CONTEXT"

    def __init__(self, message: str = None):
        super().__init__(message or "没有找到事务上下文，是否使用了 @transactional()？")


class NoHookScopeError(ContextError):
    """当前上下文中没有钩子作用域"""

    code = "CONTEXT_NO_HOOK"

    def __init__(self, message: str = None):
        super().__init__(message or "上下文中没有钩子作用域，是否使用了 @transactional()？")


class ContextValidationError(ContextError):
    """上下文数据与模型不匹配"""

    code = "CONTEXT_INVALID"

    def __init__(self, model_name: str, original_error: Exception):
        self.original_error = original_error
        super().__init__(
            f"上下文不符合模型 {model_name}: {original_error}",
            details={"model": model_name},
        )


class HookExecutionError(TransactionError):
    """钩子执行错误

    当事务钩子执行失败时生成，包含钩子名称和原始异常。
    由钩子作用域收集并记录日志，不会改变事务结果。
    """

    code = "HOOK_EXECUTION"

    def __init__(self, hook_name: str, original_error: BaseException):
        self.hook_name = hook_name
        self.original_error = original_error
        super().__init__(
            f"钩子 '{hook_name}' 执行失败: {original_error}",
            details={"hook_name": hook_name},
        )

    def __repr__(self) -> str:
        return f"HookExecutionError(hook_name={self.hook_name!r}, original_error={self.original_error!r})"
