"""
目录库（stored_files）的异步引擎与会话工厂
"""
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.config import settings
from infrastructure.models import Base

_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def _build_async_url(database_url: str) -> str:
    """补全异步驱动：postgresql:// -> postgresql+asyncpg://"""
    url = make_url(database_url)
    if "+" in url.drivername:
        return database_url
    if url.drivername not in _ASYNC_DRIVERS:
        raise ValueError(f"不支持的数据库驱动: {url.drivername}. 请使用 async 驱动或更新 DATABASE__URL")
    return str(url.set(drivername=_ASYNC_DRIVERS[url.drivername]))


def build_engine(database_url: str) -> AsyncEngine:
    async_url = _build_async_url(database_url)
    options: dict[str, Any] = {"echo": settings.DEBUG}
    if make_url(async_url).get_backend_name() == "sqlite":
        # 内存库需在所有会话间共享同一连接
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    else:
        # Celery 任务每次运行后 dispose，连接可能被数据库端回收
        options["pool_pre_ping"] = True
    return create_async_engine(async_url, **options)


engine = build_engine(settings.database.url)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def create_tables() -> None:
    """按模型建表（仅开发环境；生产使用 alembic upgrade head）"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
