"""收藏路由（需要登录）"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ...db.database import get_db
from ...db.models import User
from ...domain.errors import ServiceError
from ...services.favorite_service import FavoriteService
from .deps import ok, require_auth

router = APIRouter()


class AddFavoriteRequest(BaseModel):
    tool_id: Optional[str] = None


@router.get("")
async def list_favorites(
    page: int = Query(1, ge=1, description="页码"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    q: Optional[str] = Query(None, description="关键词"),
    category: Optional[str] = Query(None, description="分类"),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_auth),
):
    try:
        tools, total = await FavoriteService.list_favorites(db, user.id, page, limit, q, category)
        return ok({
            "items": [t.to_dict() for t in tools],
            "pagination": FavoriteService.pagination(page, limit, total),
        })
    except Exception as e:
        logger.error(f"获取收藏列表失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取收藏列表失败")


@router.post("", status_code=201)
async def add_favorite(
    payload: AddFavoriteRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_auth),
):
    try:
        await FavoriteService.add(db, user.id, payload.tool_id)
        return ok(message="已收藏")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"收藏失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="收藏失败")


@router.get("/{tool_id}/exists")
async def favorite_exists(tool_id: str, db: AsyncSession = Depends(get_db), user: User = Depends(require_auth)):
    try:
        return ok({"favorited": await FavoriteService.exists(db, user.id, tool_id)})
    except Exception as e:
        logger.error(f"检查收藏状态失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="检查收藏状态失败")


@router.delete("/{tool_id}")
async def remove_favorite(tool_id: str, db: AsyncSession = Depends(get_db), user: User = Depends(require_auth)):
    try:
        await FavoriteService.remove(db, user.id, tool_id)
        return ok(message="已取消收藏")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"取消收藏失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="取消收藏失败")
