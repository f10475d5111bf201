"""数据库连接和会话管理"""
import json
import os
from pathlib import Path
from typing import AsyncGenerator, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from .models import Base

# 默认使用项目 data/ 目录下的 SQLite，生产环境可通过 DATABASE_URL 切换到 MySQL
DB_PATH = Path(__file__).resolve().parents[2] / "data" / "toolbox.db"


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite+aiosqlite:///{DB_PATH}"


def create_engine_for(url: str) -> AsyncEngine:
    """创建异步引擎；SQLite 不做连接池，避免跨事件循环复用连接"""
    kwargs = {
        "echo": False,
        "future": True,
        # JSON 列保留中文原文，便于 LIKE 搜索标签
        "json_serializer": lambda obj: json.dumps(obj, ensure_ascii=False),
    }
    if url.startswith("sqlite"):
        kwargs["poolclass"] = NullPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


DATABASE_URL = _database_url()
engine = create_engine_for(DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_tables(bind: Optional[AsyncEngine] = None):
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(bind: Optional[AsyncEngine] = None):
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def seed_defaults(session: AsyncSession, seed_tools: bool = True):
    """写入默认系统设置、默认管理员，并在工具表为空时导入初始工具"""
    from ..services.settings_service import SettingsService
    from ..services.user_service import UserService
    from ..services.seed_service import load_initial_tools

    created_settings = await SettingsService.ensure_defaults(session)
    if created_settings:
        logger.info(f"[数据库] 已写入 {created_settings} 项默认系统设置")

    if await UserService.ensure_default_admin(session):
        logger.warning("[数据库] 已创建默认管理员 admin / admin123，请尽快修改密码")

    if seed_tools:
        imported = await load_initial_tools(session)
        if imported:
            logger.info(f"[数据库] 已导入 {imported} 个初始工具")


async def init_db(seed_tools: bool = True):
    """初始化数据库表并写入默认数据"""
    await create_tables()
    async with AsyncSessionLocal() as session:
        await seed_defaults(session, seed_tools=seed_tools)
