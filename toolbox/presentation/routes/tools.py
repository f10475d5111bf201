"""工具路由：列表、搜索、详情、评分与管理"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ...db.database import get_db
from ...db.models import User
from ...domain.catalog import ALL_CATEGORY, highlight_match
from ...domain.errors import ServiceError
from ...services.icon_extractor import icon_extractor
from ...services.tool_service import ToolService, build_pagination
from .deps import ok, optional_auth, require_admin

router = APIRouter()


class ToolPayload(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    icon_url: Optional[str] = None
    icon_theme: Optional[str] = None
    category: Optional[Any] = None
    tags: Optional[Any] = None
    url: Optional[str] = None
    featured: Optional[Any] = None
    status: Optional[str] = None
    sort_order: Optional[int] = None
    content: Optional[str] = None
    needs_vpn: Optional[Any] = None


class RateRequest(BaseModel):
    rating: Any = None


def _invalidate_catalog(request: Request) -> None:
    catalog = getattr(request.app.state, "catalog", None)
    if catalog is not None:
        catalog.invalidate()


@router.get("")
async def list_tools(
    q: Optional[str] = Query(None, description="搜索关键词"),
    category: Optional[str] = Query(None, description="工具分类"),
    featured: Optional[bool] = Query(None, description="是否精选"),
    status: Optional[str] = Query(None, description="状态，all 表示全部（仅管理员）"),
    sort: str = Query("default", description="排序：default, name, rating, latest"),
    page: int = Query(1, ge=1, description="页码"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(optional_auth),
):
    """获取工具列表（支持搜索、筛选和分页）"""
    try:
        # 非管理员只能看到上架的工具
        if user is None or user.role != "admin":
            status = "active"
        tools, total = await ToolService.search_tools(
            db, query=q, category=category, featured=featured,
            status=status or "active", sort=sort, page=page, limit=limit,
        )
        return ok({
            "tools": [t.to_dict() for t in tools],
            "pagination": build_pagination(page, limit, total),
        })
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"获取工具列表失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取工具列表失败")


@router.get("/featured")
async def featured_tools(
    limit: int = Query(10, ge=1, le=50, description="数量"),
    db: AsyncSession = Depends(get_db),
):
    try:
        tools = await ToolService.get_featured(db, limit=limit)
        return ok({"tools": [t.to_dict() for t in tools]})
    except Exception as e:
        logger.error(f"获取精选工具失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取精选工具失败")


@router.get("/stats")
async def tool_stats(db: AsyncSession = Depends(get_db)):
    try:
        return ok(await ToolService.get_stats(db))
    except Exception as e:
        logger.error(f"获取工具统计失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取统计信息失败")


@router.get("/quick-search")
async def quick_search(
    request: Request,
    category: str = Query(ALL_CATEGORY, description="分类，“全部”表示不限"),
    q: Optional[str] = Query(None, description="关键词，多个关键词用空格分隔"),
):
    """
    基于内存目录的即时搜索

    返回的 name_highlight / description_highlight 用 <mark> 标出匹配的关键词。
    """
    try:
        catalog = request.app.state.catalog
        tools = await catalog.get_filtered(category, q)
        items: List[Dict[str, Any]] = []
        for tool in tools:
            item = dict(tool)
            item["name_highlight"] = highlight_match(tool.get("name") or "", q)
            item["description_highlight"] = highlight_match(tool.get("description") or "", q)
            items.append(item)
        return ok({"tools": items, "total": len(items), "categories": catalog.categories})
    except Exception as e:
        logger.error(f"快速搜索失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="搜索失败")


@router.get("/icons/extract")
async def extract_icons(
    url: str = Query(..., description="网站地址"),
    admin: User = Depends(require_admin),
):
    """抓取网站的可用图标，供后台编辑工具时选择"""
    try:
        icons = await icon_extractor.extract(url)
        return ok({"icons": [i.to_dict() for i in icons]})
    except Exception as e:
        logger.error(f"提取网站图标失败 {url}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="提取图标失败")


@router.get("/{tool_id}")
async def get_tool(tool_id: str, db: AsyncSession = Depends(get_db)):
    """工具详情，每次访问浏览量加 1"""
    try:
        tool = await ToolService.get_tool(db, tool_id, record_view=True)
        return ok({"tool": tool.to_dict()})
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"获取工具详情失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取工具详情失败")


@router.post("/{tool_id}/click")
async def click_tool(tool_id: str, db: AsyncSession = Depends(get_db)):
    try:
        clicks = await ToolService.record_click(db, tool_id)
        return ok({"click_count": clicks})
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"记录点击失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="记录点击失败")


@router.post("/{tool_id}/rate")
async def rate_tool(tool_id: str, request: RateRequest, db: AsyncSession = Depends(get_db)):
    try:
        result = await ToolService.rate_tool(db, tool_id, request.rating)
        return ok(result, "评分成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"评分失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="评分失败")


@router.post("", status_code=201)
async def create_tool(
    payload: ToolPayload,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        tool = await ToolService.create_tool(db, payload.model_dump(exclude_none=True))
        _invalidate_catalog(request)
        return ok({"tool": tool.to_dict()}, "工具创建成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"创建工具失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="创建工具失败")


@router.put("/{tool_id}")
async def update_tool(
    tool_id: str,
    payload: ToolPayload,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        tool = await ToolService.update_tool(db, tool_id, payload.model_dump(exclude_unset=True))
        _invalidate_catalog(request)
        return ok({"tool": tool.to_dict()}, "工具更新成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"更新工具失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="更新工具失败")


@router.delete("/{tool_id}")
async def delete_tool(
    tool_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        await ToolService.delete_tool(db, tool_id)
        _invalidate_catalog(request)
        return ok(message="工具删除成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"删除工具失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="删除工具失败")
