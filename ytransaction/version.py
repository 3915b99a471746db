"""版本信息"""

__version__ = "0.1.0"
__author__ = "YWeb Team"
__description__ = "基于 asyncio 与 SQLAlchemy 的声明式事务传播库"
