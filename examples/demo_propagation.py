"""事务传播行为示例

演示声明式事务的各种使用场景：
1. REQUIRED：嵌套调用共享一个事务
2. REQUIRES_NEW：审计日志独立提交，不随订单回滚
3. NOT_SUPPORTED：报表查询挂起当前事务
4. 提交钩子：事务提交后发送通知
"""

import asyncio
import sys
from pathlib import Path

# 添加项目根目录到 path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import Column, Integer, MetaData, String, Table, select

from ytransaction import init_transactional
from ytransaction.config import AppSettings, DatabaseSettings, LoggingSettings
from ytransaction.transaction import (
    TransactionPropagation,
    TransactionalDatabase,
    transactional,
    run_on_transaction_commit,
    is_in_transaction,
)


metadata = MetaData()

orders = Table(
    "demo_orders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_no", String(50), nullable=False),
)

audit_logs = Table(
    "demo_audit_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("action", String(100), nullable=False),
)

db = TransactionalDatabase()


# ==================== 业务方法 ====================

@transactional(propagation=TransactionPropagation.REQUIRES_NEW)
async def write_audit_log(action: str):
    """审计日志：独立事务"""
    await db.execute(audit_logs.insert().values(action=action))


@transactional()
async def add_order(order_no: str):
    """加入调用方的事务"""
    await db.execute(orders.insert().values(order_no=order_no))


@transactional()
async def create_orders(order_nos, fail: bool = False):
    """批量创建订单"""
    await write_audit_log(f"create {len(order_nos)} orders")

    for order_no in order_nos:
        await add_order(order_no)

    run_on_transaction_commit(lambda: print(f"  [Hook] 订单已提交，发送通知: {order_nos}"))

    if fail:
        raise RuntimeError("支付失败")


@transactional(propagation=TransactionPropagation.NOT_SUPPORTED)
async def count_orders():
    """报表查询：不在事务中执行"""
    print(f"  count_orders 在事务中: {is_in_transaction()}")
    async with db.connection() as conn:
        result = await conn.execute(select(orders.c.order_no))
        return [row[0] for row in result]


async def list_audit_logs():
    async with db.connection() as conn:
        result = await conn.execute(select(audit_logs.c.action))
        return [row[0] for row in result]


def print_section(title: str):
    print()
    print("-" * 60)
    print(title)
    print("-" * 60)


async def main():
    """主函数"""
    print("=" * 60)
    print("Transaction Propagation Demo")
    print("=" * 60)

    settings = AppSettings(
        logging=LoggingSettings(level="INFO", transaction_log_level="DEBUG"),
        databases={"default": DatabaseSettings(url="sqlite+aiosqlite:///./demo_propagation.db")},
    )
    engines = init_transactional(settings)
    engine = engines["default"]

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    try:
        print_section("1. 正常提交")
        await create_orders(["A001", "A002"])
        print(f"  订单: {await count_orders()}")
        print(f"  审计: {await list_audit_logs()}")

        print_section("2. 订单回滚，审计日志保留")
        try:
            await create_orders(["B001"], fail=True)
        except RuntimeError as e:
            print(f"  捕获异常: {e}")
        print(f"  订单: {await count_orders()}")
        print(f"  审计: {await list_audit_logs()}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
