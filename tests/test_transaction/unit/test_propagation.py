"""事务传播行为测试

测试各传播行为在有无外层事务时的处理：
1. 传播行为决策表
2. 加入、新建、挂起事务的具体场景
3. 钩子与事务结果的关系
4. 并发调用链之间的隔离
"""

import asyncio
import inspect
import logging

import pytest

from ytransaction.transaction import (
    TransactionPropagation,
    IsolationLevel,
    TransactionalDatabase,
    transactional,
    wrap_in_transaction,
    run_in_transaction,
    initialize_transactional_context,
    add_transactional_database,
    resolve_propagation,
    is_in_transaction,
    get_current_transaction_id,
    run_on_transaction_commit,
    run_on_transaction_rollback,
    run_on_transaction_complete,
    NoTransactionForMandatoryError,
    TransactionPresentForNeverError,
    UnknownPropagationError,
    NotInitializedError,
    PropagationError,
)

from tests.helpers import FakeDatabase, FakeTransaction

P = TransactionPropagation

# (传播行为, 外层是否有事务) -> 期望结果
#   join: 加入外层事务
#   new:  开启新事务
#   none: 不在事务中执行
#   error: 拒绝执行
DECISION_TABLE = [
    (P.REQUIRED, False, "new"),
    (P.REQUIRED, True, "join"),
    (P.REQUIRES_NEW, False, "new"),
    (P.REQUIRES_NEW, True, "new"),
    (P.NESTED, False, "new"),
    (P.NESTED, True, "new"),
    (P.MANDATORY, False, "error"),
    (P.MANDATORY, True, "join"),
    (P.NEVER, False, "none"),
    (P.NEVER, True, "error"),
    (P.NOT_SUPPORTED, False, "none"),
    (P.NOT_SUPPORTED, True, "none"),
    (P.SUPPORTS, False, "none"),
    (P.SUPPORTS, True, "join"),
]


class TestDecisionTable:
    """传播行为决策表测试"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("propagation,outer_tx,expected", DECISION_TABLE)
    async def test_decision(self, fake_db, driver, propagation, outer_tx, expected):
        """每种传播行为在有无外层事务时的处理"""
        seen = {}

        @transactional(propagation=propagation)
        async def inner():
            seen["in_tx"] = is_in_transaction()
            seen["tx_id"] = get_current_transaction_id()
            return "done"

        @transactional()
        async def outer():
            seen["outer_id"] = get_current_transaction_id()
            return await inner()

        call = outer if outer_tx else inner

        if expected == "error":
            with pytest.raises(PropagationError):
                await call()
            assert "in_tx" not in seen
            assert driver.count("begin") == (1 if outer_tx else 0)
            return

        assert await call() == "done"
        begins = driver.count("begin")
        outer_begins = 1 if outer_tx else 0

        if expected == "join":
            assert seen["in_tx"] is True
            assert seen["tx_id"] == seen["outer_id"]
            assert begins == outer_begins
        elif expected == "new":
            assert seen["in_tx"] is True
            assert seen["tx_id"] is not None
            assert seen["tx_id"] != seen.get("outer_id")
            assert begins == outer_begins + 1
        else:
            assert seen["in_tx"] is False
            assert seen["tx_id"] is None
            assert begins == outer_begins

        assert driver.count("commit") == driver.count("begin")


class TestRequired:
    """REQUIRED 传播测试"""

    @pytest.mark.asyncio
    async def test_nested_calls_share_one_transaction(self, fake_db, driver):
        """嵌套调用只开启一个事务"""
        db = TransactionalDatabase()

        @transactional()
        async def add_item(name):
            db.insert(name)

        @transactional()
        async def add_many():
            await add_item("a")
            await add_item("b")
            assert fake_db.rows == []

        await add_many()

        assert driver.calls == [("begin", "default"), ("commit", "default")]
        assert fake_db.rows == ["a", "b"]

    @pytest.mark.asyncio
    async def test_inner_failure_rolls_back_everything(self, fake_db, driver):
        """加入的调用失败时整个事务回滚"""
        db = TransactionalDatabase()

        @transactional()
        async def fail():
            db.insert("b")
            raise ValueError("inner")

        @transactional()
        async def outer():
            db.insert("a")
            await fail()

        with pytest.raises(ValueError):
            await outer()

        assert driver.calls == [("begin", "default"), ("rollback", "default")]
        assert fake_db.rows == []

    @pytest.mark.asyncio
    async def test_sync_function_wrapped(self, fake_db):
        """普通函数也可包装，包装结果为协程函数"""
        def compute(x, y=1):
            """同步函数"""
            return (x + y, is_in_transaction())

        wrapped = wrap_in_transaction(compute)

        assert inspect.iscoroutinefunction(wrapped)
        assert wrapped.__name__ == "compute"
        assert wrapped.__doc__ == "同步函数"
        assert await wrapped(2, y=3) == (5, True)

    @pytest.mark.asyncio
    async def test_method_decorator(self, fake_db):
        """装饰实例方法"""
        class UserService:
            def __init__(self):
                self.created = []

            @transactional()
            async def create(self, name):
                self.created.append((name, is_in_transaction()))

        service = UserService()
        await service.create("tom")
        assert service.created == [("tom", True)]

    @pytest.mark.asyncio
    async def test_isolation_level(self, fake_db):
        """新事务使用声明的隔离级别"""
        db = TransactionalDatabase()

        @transactional(isolation_level=IsolationLevel.REPEATABLE_READ)
        async def read_level():
            return db.get().isolation_level

        assert await read_level() == "REPEATABLE READ"


class TestRequiresNew:
    """REQUIRES_NEW 传播测试"""

    @pytest.mark.asyncio
    async def test_inner_commit_survives_outer_rollback(self, fake_db, driver):
        """外层回滚不影响内层已提交的事务"""
        db = TransactionalDatabase()

        @transactional(propagation=P.REQUIRES_NEW)
        async def audit(action):
            db.insert(("audit", action))

        @transactional()
        async def create_order():
            db.insert(("order", 1))
            await audit("order created")
            raise RuntimeError("payment failed")

        with pytest.raises(RuntimeError):
            await create_order()

        assert fake_db.rows == [("audit", "order created")]
        assert driver.calls == [
            ("begin", "default"),
            ("begin", "default"),
            ("commit", "default"),
            ("rollback", "default"),
        ]

    @pytest.mark.asyncio
    async def test_inner_failure_does_not_affect_outer(self, fake_db):
        """内层失败被捕获时外层照常提交"""
        db = TransactionalDatabase()

        @transactional(propagation="requires_new")
        async def risky():
            db.insert("risky")
            raise ValueError("inner")

        @transactional()
        async def outer():
            db.insert("safe")
            outer_id = get_current_transaction_id()
            with pytest.raises(ValueError):
                await risky()
            # 内层结束后恢复外层事务
            assert get_current_transaction_id() == outer_id
            assert isinstance(db.get(), FakeTransaction)

        await outer()
        assert fake_db.rows == ["safe"]

    @pytest.mark.asyncio
    async def test_requires_new_inside_requires_new(self, fake_db, driver):
        """内层 REQUIRES_NEW 失败回滚，外层 REQUIRES_NEW 照常提交"""
        db = TransactionalDatabase()

        @transactional(propagation=P.REQUIRES_NEW)
        async def inner():
            db.insert("inner")
            raise ValueError("inner failed")

        @transactional(propagation=P.REQUIRES_NEW)
        async def outer():
            db.insert("outer")
            try:
                await inner()
            except ValueError:
                pass

        await outer()

        assert len(fake_db.transactions) == 2
        outer_tx, inner_tx = fake_db.transactions
        assert outer_tx.committed is True
        assert inner_tx.rolled_back is True
        assert fake_db.rows == ["outer"]

    @pytest.mark.asyncio
    async def test_logs_suspension(self, fake_db, caplog):
        """在事务中调用时记录挂起日志"""
        @transactional(propagation=P.REQUIRES_NEW)
        async def inner():
            pass

        @transactional()
        async def outer():
            await inner()

        with caplog.at_level(logging.INFO, logger="ytransaction.transaction"):
            await outer()

        assert any(
            record.levelno == logging.INFO and "REQUIRES_NEW" in record.getMessage()
            for record in caplog.records
        )

    @pytest.mark.asyncio
    async def test_nested_behaves_as_requires_new(self, fake_db):
        """NESTED 按 REQUIRES_NEW 处理"""
        db = TransactionalDatabase()

        @transactional(propagation=P.NESTED)
        async def inner():
            db.insert("inner")

        @transactional()
        async def outer():
            await inner()
            raise RuntimeError("outer failed")

        with pytest.raises(RuntimeError):
            await outer()
        assert fake_db.rows == ["inner"]


class TestMandatoryAndNever:
    """MANDATORY / NEVER 传播测试"""

    @pytest.mark.asyncio
    async def test_mandatory_without_transaction(self, fake_db, driver):
        """MANDATORY 没有事务时拒绝执行，不产生任何副作用"""
        called = []

        @transactional(propagation=P.MANDATORY)
        async def must_join():
            called.append(True)

        with pytest.raises(NoTransactionForMandatoryError) as exc_info:
            await must_join()

        assert exc_info.value.code == "PROPAGATION_MANDATORY"
        assert called == []
        assert driver.calls == []

    @pytest.mark.asyncio
    async def test_never_in_transaction(self, fake_db, driver):
        """NEVER 在事务中拒绝执行，外层事务回滚"""
        @transactional(propagation=P.NEVER)
        async def never():
            pass

        @transactional()
        async def outer():
            await never()

        with pytest.raises(TransactionPresentForNeverError) as exc_info:
            await outer()

        assert exc_info.value.code == "PROPAGATION_NEVER"
        assert driver.calls == [("begin", "default"), ("rollback", "default")]


class TestNotSupportedAndSupports:
    """NOT_SUPPORTED / SUPPORTS 传播测试"""

    @pytest.mark.asyncio
    async def test_not_supported_suspends_transaction(self, fake_db):
        """NOT_SUPPORTED 挂起外层事务，数据库句柄解析为基础句柄"""
        db = TransactionalDatabase()
        seen = {}

        @transactional(propagation=P.NOT_SUPPORTED)
        async def report():
            seen["handle"] = db.get()
            seen["in_tx"] = is_in_transaction()

        @transactional()
        async def outer():
            outer_id = get_current_transaction_id()
            await report()
            seen["restored"] = get_current_transaction_id() == outer_id
            seen["outer_handle"] = db.get()

        await outer()

        assert seen["handle"] is fake_db
        assert seen["in_tx"] is False
        assert seen["restored"] is True
        assert isinstance(seen["outer_handle"], FakeTransaction)

    @pytest.mark.asyncio
    async def test_not_supported_hooks_fire_on_return(self, fake_db):
        """挂起期间注册的钩子在函数结束时触发，早于外层提交"""
        calls = []

        @transactional(propagation=P.NOT_SUPPORTED)
        async def report():
            run_on_transaction_commit(lambda: calls.append("inner commit"))

        @transactional()
        async def outer():
            run_on_transaction_commit(lambda: calls.append("outer commit"))
            await report()
            calls.append("outer body done")

        await outer()
        assert calls == ["inner commit", "outer body done", "outer commit"]

    @pytest.mark.asyncio
    async def test_supports_without_transaction(self, fake_db, driver):
        """SUPPORTS 没有事务时以非事务方式执行，钩子照常触发"""
        db = TransactionalDatabase()
        calls = []

        @transactional(propagation=P.SUPPORTS)
        async def read():
            run_on_transaction_commit(lambda: calls.append("commit"))
            return db.get()

        assert await read() is fake_db
        assert calls == ["commit"]
        assert driver.calls == []

    @pytest.mark.asyncio
    async def test_supports_hooks_join_outer_scope(self, fake_db):
        """SUPPORTS 加入事务时钩子注册到外层作用域"""
        calls = []

        @transactional(propagation=P.SUPPORTS)
        async def inner():
            run_on_transaction_commit(lambda: calls.append("inner"))

        @transactional()
        async def outer():
            await inner()
            calls.append("body")

        await outer()
        assert calls == ["body", "inner"]


class TestHooksAndOutcome:
    """钩子与事务结果测试"""

    @pytest.mark.asyncio
    async def test_commit_hooks_run_after_commit(self, fake_db, driver):
        """提交钩子在提交之后执行"""
        snapshot = []

        @transactional()
        async def create():
            TransactionalDatabase().insert("row")
            run_on_transaction_commit(lambda: snapshot.append((list(fake_db.rows), list(driver.calls))))

        await create()

        rows, calls = snapshot[0]
        assert rows == ["row"]
        assert calls[-1] == ("commit", "default")

    @pytest.mark.asyncio
    async def test_each_listener_fires_once_with_nested_calls(self, fake_db):
        """嵌套 REQUIRED 调用注册的监听器各执行一次"""
        calls = []

        @transactional()
        async def inner(n):
            run_on_transaction_commit(lambda: calls.append(n))

        @transactional()
        async def outer():
            for n in range(3):
                await inner(n)
            run_on_transaction_commit(lambda: calls.append("outer"))

        await outer()
        assert calls == [0, 1, 2, "outer"]

    @pytest.mark.asyncio
    async def test_rollback_hooks_receive_error(self, fake_db):
        """回滚钩子收到导致回滚的异常，结束钩子总会执行"""
        calls = []
        error = ValueError("boom")

        @transactional()
        async def fail():
            run_on_transaction_commit(lambda: calls.append("commit"))
            run_on_transaction_rollback(lambda err: calls.append(("rollback", err)))
            run_on_transaction_complete(lambda err: calls.append(("end", err)))
            raise error

        with pytest.raises(ValueError):
            await fail()

        assert calls == [("rollback", error), ("end", error)]

    @pytest.mark.asyncio
    async def test_joined_hooks_fire_with_outer(self, fake_db):
        """加入的调用注册的钩子随外层事务触发"""
        calls = []

        @transactional()
        async def inner():
            run_on_transaction_rollback(lambda err: calls.append("inner rollback"))

        @transactional()
        async def outer():
            await inner()
            assert calls == []
            raise RuntimeError("outer")

        with pytest.raises(RuntimeError):
            await outer()
        assert calls == ["inner rollback"]

    @pytest.mark.asyncio
    async def test_listener_error_does_not_change_result(self, fake_db):
        """监听器异常不影响返回值"""
        @transactional()
        async def create():
            def broken():
                raise RuntimeError("listener")

            run_on_transaction_commit(broken)
            return "created"

        assert await create() == "created"
        assert fake_db.transactions[0].committed is True

    @pytest.mark.asyncio
    async def test_no_hooks_when_begin_fails(self, fake_db, driver):
        """开启失败时业务代码和钩子都不会执行"""
        driver.fail_on_begin = ConnectionError("down")
        called = []

        @transactional()
        async def create():
            called.append(True)

        with pytest.raises(ConnectionError):
            await create()
        assert called == []

    @pytest.mark.asyncio
    async def test_commit_failure_fires_rollback_hooks(self, fake_db, driver):
        """提交失败时触发回滚钩子，收到提交异常"""
        driver.fail_on_commit = RuntimeError("commit failed")
        calls = []

        @transactional()
        async def create():
            run_on_transaction_commit(lambda: calls.append("commit"))
            run_on_transaction_rollback(lambda err: calls.append(str(err)))

        with pytest.raises(RuntimeError):
            await create()
        assert calls == ["commit failed"]


class TestConfiguration:
    """初始化与默认值测试"""

    @pytest.mark.asyncio
    async def test_not_initialized(self):
        """未初始化时拒绝执行"""
        @transactional()
        async def create():
            pass

        with pytest.raises(NotInitializedError) as exc_info:
            await create()
        assert exc_info.value.code == "NOT_INITIALIZED"

    @pytest.mark.asyncio
    async def test_unknown_propagation(self, fake_db, driver):
        """未知传播行为在任何副作用之前被拒绝"""
        @transactional(propagation="sometimes")
        async def create():
            pass

        with pytest.raises(UnknownPropagationError) as exc_info:
            await create()
        assert exc_info.value.code == "PROPAGATION_UNKNOWN"
        assert driver.calls == []

    def test_resolve_propagation_values(self):
        """枚举和字符串都可识别，字符串不区分大小写"""
        assert resolve_propagation(P.SUPPORTS) is P.SUPPORTS
        assert resolve_propagation("requires_new") is P.REQUIRES_NEW
        assert resolve_propagation("REQUIRES_NEW") is P.REQUIRES_NEW
        with pytest.raises(UnknownPropagationError):
            resolve_propagation(42)

    @pytest.mark.asyncio
    async def test_default_propagation_from_settings(self, fake_db):
        """未声明传播行为时使用配置默认值"""
        initialize_transactional_context(default_propagation="mandatory")

        @transactional()
        async def create():
            pass

        with pytest.raises(NoTransactionForMandatoryError):
            await create()

    @pytest.mark.asyncio
    async def test_database_name(self, fake_db, other_db, driver):
        """按数据库名称开启事务"""
        @transactional(database_name="other")
        async def create():
            TransactionalDatabase("other").insert("x")
            # default 库不在当前事务中
            assert TransactionalDatabase("default").is_transacting is False

        await create()

        assert driver.calls == [("begin", "other"), ("commit", "other")]
        assert other_db.rows == ["x"]
        assert fake_db.rows == []

    @pytest.mark.asyncio
    async def test_default_database_name_from_settings(self, initialized, driver):
        """未声明数据库名称时使用配置默认值"""
        initialize_transactional_context(default_database_name="main")
        database = FakeDatabase("main")
        add_transactional_database(database, "main", driver)

        @transactional()
        async def create():
            TransactionalDatabase("main").insert("m")

        await create()
        assert database.rows == ["m"]

    @pytest.mark.asyncio
    async def test_run_in_transaction(self, fake_db, driver):
        """直接执行一次"""
        result = await run_in_transaction(lambda: is_in_transaction())
        assert result is True
        assert driver.count("commit") == 1

        result = await run_in_transaction(lambda: is_in_transaction(), propagation=P.NEVER)
        assert result is False


class TestConcurrency:
    """并发调用链隔离测试"""

    @pytest.mark.asyncio
    async def test_concurrent_top_level_calls_are_isolated(self, fake_db, driver):
        """并发的顶层调用各自拥有独立的事务"""
        db = TransactionalDatabase()

        @transactional()
        async def worker(n):
            tx_id = get_current_transaction_id()
            handle = db.get()
            await asyncio.sleep(0.01 * (5 - n))
            db.insert(n)
            assert get_current_transaction_id() == tx_id
            assert db.get() is handle
            return tx_id

        ids = await asyncio.gather(*(worker(n) for n in range(5)))

        assert len(set(ids)) == 5
        assert sorted(fake_db.rows) == [0, 1, 2, 3, 4]
        assert driver.count("begin") == 5
        assert driver.count("commit") == 5

    @pytest.mark.asyncio
    async def test_failure_in_one_chain_does_not_affect_others(self, fake_db):
        """一个调用链失败只回滚自己的事务"""
        db = TransactionalDatabase()

        @transactional()
        async def worker(n):
            db.insert(n)
            await asyncio.sleep(0)
            if n == 2:
                raise ValueError("bad item")

        results = await asyncio.gather(*(worker(n) for n in range(4)), return_exceptions=True)

        assert isinstance(results[2], ValueError)
        assert sorted(fake_db.rows) == [0, 1, 3]

    @pytest.mark.asyncio
    async def test_gathered_children_join_parent_transaction(self, fake_db, driver):
        """事务中并发启动的子任务加入同一事务"""
        @transactional(propagation=P.MANDATORY)
        async def child():
            return get_current_transaction_id()

        @transactional()
        async def parent():
            tx_id = get_current_transaction_id()
            ids = await asyncio.gather(child(), child())
            return tx_id, ids

        tx_id, ids = await parent()
        assert ids == [tx_id, tx_id]
        assert driver.count("begin") == 1
