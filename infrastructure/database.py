"""
数据库引擎与会话工厂

生产使用 PostgreSQL（asyncpg），测试与本地开发可用 SQLite（aiosqlite）。
事务边界由 ``SQLAlchemyUnitOfWork`` 控制，这里只提供引擎与会话工厂。
"""
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.engine import make_url

from core.config import settings
from infrastructure.models import Base


_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def _build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    if "+" in url.drivername:
        return database_url
    if url.drivername not in _ASYNC_DRIVERS:
        raise ValueError(f"不支持的数据库驱动: {url.drivername}. 请使用 async 驱动或更新 DATABASE__URL")
    return url.set(drivername=_ASYNC_DRIVERS[url.drivername]).render_as_string(hide_password=False)


def _engine_options(async_url: str) -> dict:
    if async_url.startswith("sqlite"):
        return {}
    # 回调与轮询并发较高，连接在池中保活检测
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}


_async_url = _build_async_url(settings.database.url)

engine = create_async_engine(
    _async_url,
    echo=settings.database.echo,
    **_engine_options(_async_url),
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def create_tables():
    """开发环境建表；生产使用 Alembic 迁移"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
