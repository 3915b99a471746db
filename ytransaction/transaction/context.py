"""事务上下文存储

基于 ContextVar 的环境上下文：在异步调用链中隐式传递事务标识，
无需在每层调用间显式传参。

每个作用域持有一份独立的字典。进入子作用域时复制父作用域再覆盖，
退出子作用域后父作用域看到的内容不变。asyncio 为每个 Task 复制 Context，
因此并发执行的调用链互相看不到对方的绑定。

使用示例:
    from ytransaction.transaction import context_scope, get_context_value

    with context_scope({"tenant": "acme"}):
        assert get_context_value("tenant") == "acme"
    assert get_context_value("tenant") is None
"""

from __future__ import annotations

import inspect
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Dict, Generator, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .exceptions import NoActiveContextError, ContextValidationError

T = TypeVar('T')
M = TypeVar('M', bound=BaseModel)

# 保留键
IN_TRANSACTION_KEY = "ytransaction/in-transaction"
TRANSACTION_ID_KEY = "ytransaction/transaction-id"
HOOKS_KEY = "ytransaction/hooks"

# 当前作用域的绑定（协程安全）；None 表示不在任何作用域中
_context_store: ContextVar[Optional[Dict[str, Any]]] = ContextVar(
    '_ytransaction_context_store', default=None
)


def has_active_context() -> bool:
    """检查当前是否处于某个上下文作用域中"""
    return _context_store.get() is not None


def get_context() -> Dict[str, Any]:
    """获取当前上下文的快照

    Returns:
        当前绑定的副本，不在作用域中时返回空字典
    """
    store = _context_store.get()
    return dict(store) if store is not None else {}


def get_validated_context(model: Type[M]) -> M:
    """按 Pydantic 模型校验当前上下文

    Args:
        model: Pydantic 模型类，字段对应上下文中的键（可用 alias 对应保留键）

    Returns:
        模型实例

    Raises:
        ContextValidationError: 上下文不符合模型

    使用示例:
        class RequestContext(BaseModel):
            tenant: str

        with context_scope({"tenant": "acme"}):
            ctx = get_validated_context(RequestContext)
    """
    try:
        return model.model_validate(get_context())
    except ValidationError as e:
        raise ContextValidationError(model.__name__, e) from e


def get_context_value(key: str, default: Any = None) -> Any:
    """读取当前作用域中的绑定，不存在时返回 default"""
    store = _context_store.get()
    if store is None:
        return default
    return store.get(key, default)


def set_context_value(key: str, value: Any) -> None:
    """修改当前最内层作用域中的绑定，不创建新的作用域

    Raises:
        NoActiveContextError: 当前不在任何作用域中
    """
    store = _context_store.get()
    if store is None:
        raise NoActiveContextError()
    store[key] = value


@contextmanager
def context_scope(bindings: Optional[Mapping[str, Any]] = None) -> Generator[Dict[str, Any], None, None]:
    """进入一个子作用域

    子作用域复制父作用域的绑定并用 bindings 覆盖；没有父作用域时从空开始。
    无论正常退出还是异常退出，都会恢复父作用域。

    Args:
        bindings: 要覆盖的绑定

    Yields:
        子作用域的绑定字典
    """
    parent = _context_store.get()
    store = dict(parent) if parent is not None else {}
    if bindings:
        store.update(bindings)

    token = _context_store.set(store)
    try:
        yield store
    finally:
        _context_store.reset(token)


async def run_with_context(bindings: Optional[Mapping[str, Any]], fn: Callable[[], Any]) -> Any:
    """在子作用域中执行 fn，fn 返回可等待对象时等待其结果

    Args:
        bindings: 要覆盖的绑定
        fn: 无参可调用对象

    Returns:
        fn 的结果
    """
    with context_scope(bindings):
        result = fn()
        if inspect.isawaitable(result):
            result = await result
        return result
