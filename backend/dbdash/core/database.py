"""
数据库连接模块 (Database Connection Module)

基于 SQLAlchemy 2.0 异步模式创建仪表盘存储的引擎和会话工厂。
引擎不在模块级创建，由应用启动时显式构造并传递给各组件。

Creates the engine and session factory for dashboard storage based on SQLAlchemy 2.0
async mode. The engine is not created at module level; it is built explicitly at
startup and handed to the components that need it.
"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    ORM 模型基类 (ORM Model Base Class)

    所有仪表盘持久化模型都继承此类。
    """
    pass


def create_session_factory(url: str, **engine_kwargs) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    创建异步引擎和会话工厂 (Create async engine and session factory)

    会话不在提交后过期，保持对象状态以便后续访问。
    """
    engine = create_async_engine(url, echo=False, **engine_kwargs)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # 提交后不过期对象 (Don't expire objects after commit)
    )
    return engine, session_factory
