"""测试辅助工具模块

提供测试专用的辅助函数，避免在核心代码中添加测试专用方法。
"""

from .transaction_helpers import (
    reset_transactional_state,
    FakeDatabase,
    FakeTransaction,
    RecordingDriver,
    metadata,
    items_table,
)

__all__ = [
    # 全局状态重置
    'reset_transactional_state',
    # 内存驱动
    'FakeDatabase',
    'FakeTransaction',
    'RecordingDriver',
    # SQLite 测试表
    'metadata',
    'items_table',
]
