"""
Pytest 公共配置和 Fixtures

提供测试所需的公共资源：
- 全局事务状态的隔离
- 内存驱动和内存数据库
- 基于 aiosqlite 的临时 SQLite 文件数据库
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from ytransaction.transaction import add_transactional_database, initialize_transactional_context

from tests.helpers import FakeDatabase, RecordingDriver, metadata, reset_transactional_state


# ==================== 全局状态 ====================

@pytest.fixture(autouse=True)
def clean_transactional_state():
    """每个测试前后重置注册表和运行时配置"""
    reset_transactional_state()
    yield
    reset_transactional_state()


@pytest.fixture
def initialized():
    """初始化事务上下文（默认配置）"""
    return initialize_transactional_context()


# ==================== 内存驱动 ====================

@pytest.fixture
def driver():
    """记录调用的内存驱动"""
    return RecordingDriver()


@pytest.fixture
def fake_db(initialized, driver):
    """注册为 default 的内存数据库"""
    database = FakeDatabase("default")
    add_transactional_database(database, "default", driver)
    return database


@pytest.fixture
def other_db(initialized, driver):
    """注册为 other 的内存数据库"""
    database = FakeDatabase("other")
    add_transactional_database(database, "other", driver)
    return database


# ==================== SQLite 数据库 ====================

@pytest_asyncio.fixture
async def sqlite_engine(tmp_path):
    """临时 SQLite 文件数据库引擎（已建表）"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def sqlite_db(initialized, sqlite_engine):
    """注册为 default 的 SQLite 引擎"""
    add_transactional_database(sqlite_engine)
    return sqlite_engine
