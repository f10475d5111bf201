"""用户收藏服务"""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import String, cast, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import Favorite, Tool
from ..domain.errors import NotFoundError, ValidationError


class FavoriteService:

    @staticmethod
    async def list_favorites(db: AsyncSession, user_id: str, page: int = 1, limit: int = 20,
                             q: Optional[str] = None,
                             category: Optional[str] = None) -> Tuple[List[Tool], int]:
        """
        当前用户收藏的工具，按收藏时间倒序

        总数为收藏总数；关键词与分类只在本页收藏内筛选。
        """
        total = await db.scalar(
            select(func.count()).select_from(Favorite).where(Favorite.user_id == user_id)
        ) or 0
        if total == 0:
            return [], 0

        rows = (await db.execute(
            select(Favorite.tool_id)
            .where(Favorite.user_id == user_id)
            .order_by(Favorite.created_at.desc(), Favorite.id.desc())
            .offset((page - 1) * limit).limit(limit)
        )).scalars().all()

        conditions = [Tool.id.in_(rows)]
        if q and q.strip():
            pattern = f"%{q.strip()}%"
            conditions.append(or_(
                Tool.name.like(pattern),
                Tool.description.like(pattern),
                cast(Tool.tags, String).like(pattern),
            ))
        if category and category.strip():
            conditions.append(cast(Tool.category, String).like(f'%"{category.strip()}"%'))

        tools = {t.id: t for t in (await db.scalars(select(Tool).where(*conditions))).all()}
        return [tools[tool_id] for tool_id in rows if tool_id in tools], total

    @staticmethod
    async def exists(db: AsyncSession, user_id: str, tool_id: str) -> bool:
        found = await db.scalar(select(Favorite.id).where(
            Favorite.user_id == user_id, Favorite.tool_id == tool_id
        ))
        return found is not None

    @staticmethod
    async def add(db: AsyncSession, user_id: str, tool_id: Optional[str]) -> None:
        """重复收藏直接忽略"""
        if not tool_id:
            raise ValidationError("缺少工具ID")
        if await db.get(Tool, tool_id) is None:
            raise NotFoundError("工具不存在")
        if await FavoriteService.exists(db, user_id, tool_id):
            return
        db.add(Favorite(user_id=user_id, tool_id=tool_id))
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()

    @staticmethod
    async def remove(db: AsyncSession, user_id: str, tool_id: str) -> None:
        result = await db.execute(delete(Favorite).where(
            Favorite.user_id == user_id, Favorite.tool_id == tool_id
        ))
        await db.commit()
        if not result.rowcount:
            raise NotFoundError("未找到收藏记录")

    @staticmethod
    def pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
        return {
            "currentPage": page,
            "itemsPerPage": limit,
            "totalItems": total,
            "totalPages": (total + limit - 1) // limit if limit else 0,
        }
