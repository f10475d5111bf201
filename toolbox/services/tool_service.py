"""工具管理服务"""
import re
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy import String, asc, cast, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import ICON_THEMES, TOOL_CATEGORIES, TOOL_STATUSES, Tool
from ..domain.errors import NotFoundError, ValidationError
from ..domain.validators import clean_tags_data, clean_tool_data, validate_tool_data

TOOL_ID_RE = re.compile(r"^[a-zA-Z0-9_-]+$")

SORT_ORDERS = {
    "name": [asc(Tool.name)],
    "rating": [desc(Tool.rating_sum), desc(Tool.rating_count)],
    "latest": [desc(Tool.created_at)],
    "default": [desc(Tool.sort_order), desc(Tool.created_at)],
}

EDITABLE_FIELDS = [
    "name", "description", "icon", "icon_url", "icon_file", "icon_theme", "category",
    "tags", "url", "featured", "status", "sort_order", "content", "needs_vpn",
]


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def normalize_categories(value: Any) -> List[str]:
    """分类统一为列表，兼容旧数据中的单个字符串"""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        value = [c.strip() for c in value.split(",")]
    return [c for c in value if c]


def build_pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = (total + limit - 1) // limit if limit else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalItems": total,
        "itemsPerPage": limit,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def _check_field_rules(data: Dict[str, Any]) -> List[str]:
    """模型层面的字段约束"""
    errors = []
    name = data.get("name")
    if name is not None and not (1 <= len(name) <= 100):
        errors.append("工具名称长度必须在1-100个字符之间")
    description = data.get("description")
    if description is not None and not (10 <= len(description) <= 1000):
        errors.append("工具描述长度必须在10-1000个字符之间")
    categories = data.get("category") or []
    if any(c not in TOOL_CATEGORIES for c in categories):
        errors.append(f"分类必须是以下值之一: {', '.join(TOOL_CATEGORIES)}")
    if data.get("icon_theme") is not None and data["icon_theme"] not in ICON_THEMES:
        errors.append(f"图标主题必须是以下值之一: {', '.join(ICON_THEMES)}")
    if data.get("status") is not None and data["status"] not in TOOL_STATUSES:
        errors.append(f"状态必须是以下值之一: {', '.join(TOOL_STATUSES)}")
    return errors


class ToolService:
    """工具的查询、统计与增删改"""

    @staticmethod
    def _search_conditions(
        query: Optional[str] = None,
        category: Optional[str] = None,
        featured: Optional[bool] = None,
        status: Optional[str] = "active",
    ) -> list:
        conditions = []
        if status:
            conditions.append(Tool.status == status)
        if category:
            # JSON 数组以文本形式匹配带引号的分类名
            conditions.append(cast(Tool.category, String).like(f'%"{category}"%'))
        if featured is not None:
            conditions.append(Tool.featured == featured)
        if query and query.strip():
            pattern = f"%{query.strip().lower()}%"
            conditions.append(or_(
                func.lower(Tool.name).like(pattern),
                func.lower(Tool.description).like(pattern),
                func.lower(cast(Tool.tags, String)).like(pattern),
            ))
        return conditions

    @staticmethod
    async def search_tools(
        db: AsyncSession,
        query: Optional[str] = None,
        category: Optional[str] = None,
        featured: Optional[bool] = None,
        status: Optional[str] = "active",
        sort: str = "default",
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Tool], int]:
        """
        搜索工具

        Args:
            query: 关键词，匹配名称、描述和标签（忽略大小写）
            category: 分类
            featured: 是否精选
            status: 状态，"all" 或 None 表示不限
            sort: default / name / rating / latest
            page: 页码
            limit: 每页数量

        Returns:
            (工具列表, 总数)
        """
        if status == "all":
            status = None
        conditions = ToolService._search_conditions(query, category, featured, status)

        total = await db.scalar(select(func.count()).select_from(Tool).where(*conditions))
        stmt = (
            select(Tool)
            .where(*conditions)
            .order_by(*SORT_ORDERS.get(sort, SORT_ORDERS["default"]))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        tools = list((await db.scalars(stmt)).all())
        return tools, total or 0

    @staticmethod
    async def list_active(db: AsyncSession) -> List[Dict[str, Any]]:
        stmt = select(Tool).where(Tool.status == "active").order_by(*SORT_ORDERS["default"])
        return [t.to_dict() for t in (await db.scalars(stmt)).all()]

    @staticmethod
    async def get_tool(db: AsyncSession, tool_id: str, record_view: bool = False) -> Tool:
        tool = await db.get(Tool, tool_id)
        if tool is None:
            raise NotFoundError("工具不存在")
        if record_view:
            tool.view_count = (tool.view_count or 0) + 1
            await db.commit()
        return tool

    @staticmethod
    async def record_click(db: AsyncSession, tool_id: str) -> int:
        tool = await ToolService.get_tool(db, tool_id)
        tool.click_count = (tool.click_count or 0) + 1
        await db.commit()
        return tool.click_count

    @staticmethod
    async def get_featured(db: AsyncSession, limit: int = 10) -> List[Tool]:
        stmt = (
            select(Tool)
            .where(Tool.status == "active", Tool.featured.is_(True))
            .order_by(*SORT_ORDERS["default"])
            .limit(limit)
        )
        return list((await db.scalars(stmt)).all())

    @staticmethod
    async def get_stats(db: AsyncSession) -> Dict[str, Any]:
        """上架工具的总数、精选数和分类统计"""
        tools = (await db.scalars(select(Tool).where(Tool.status == "active"))).all()

        categories: Dict[str, Dict[str, Any]] = {}
        for tool in tools:
            for category in tool.categories:
                entry = categories.setdefault(category, {
                    "category": category,
                    "count": 0,
                    "totalViews": 0,
                    "totalClicks": 0,
                    "_ratings": [],
                })
                entry["count"] += 1
                entry["totalViews"] += tool.view_count or 0
                entry["totalClicks"] += tool.click_count or 0
                entry["_ratings"].append(tool.average_rating)

        category_stats = []
        for entry in categories.values():
            ratings = entry.pop("_ratings")
            entry["avgRating"] = round(sum(ratings) / len(ratings), 1) if ratings else 0
            category_stats.append(entry)
        category_stats.sort(key=lambda e: e["count"], reverse=True)

        return {
            "totalTools": len(tools),
            "featuredTools": sum(1 for t in tools if t.featured),
            "categoryStats": category_stats,
        }

    @staticmethod
    def prepare_tool_data(raw: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """清理并校验工具数据，失败时抛出 ValidationError"""
        data = {k: v for k, v in raw.items() if v is not None or not partial}
        if "category" in data:
            data["category"] = normalize_categories(data["category"])
        cleaned = clean_tool_data(data)
        if "tags" in cleaned:
            cleaned["tags"] = clean_tags_data(cleaned["tags"] or [])
        for flag in ("featured", "needs_vpn"):
            if flag in cleaned:
                cleaned[flag] = to_bool(cleaned[flag])

        errors = validate_tool_data(cleaned, partial=partial)
        errors += _check_field_rules(cleaned)
        if errors:
            raise ValidationError("数据验证失败", errors=list(dict.fromkeys(errors)))
        return cleaned

    @staticmethod
    async def create_tool(db: AsyncSession, raw: Dict[str, Any]) -> Tool:
        tool_id = (raw.get("id") or "").strip()
        if not tool_id or not TOOL_ID_RE.match(tool_id):
            raise ValidationError("工具ID只能包含字母、数字、连字符和下划线")
        if await db.get(Tool, tool_id) is not None:
            raise ValidationError("工具ID已存在")

        data = ToolService.prepare_tool_data(raw)
        tool = Tool(
            id=tool_id,
            name=data["name"],
            description=data["description"],
            icon=data.get("icon") or "Tool",
            icon_url=data.get("icon_url"),
            icon_theme=data.get("icon_theme") or "auto",
            category=data["category"],
            tags=data.get("tags") or [],
            url=data["url"],
            featured=data.get("featured", False),
            status=data.get("status") or "active",
            sort_order=int(data.get("sort_order") or 0),
            content=data.get("content"),
            needs_vpn=data.get("needs_vpn", False),
        )
        db.add(tool)
        await db.commit()
        await db.refresh(tool)
        logger.info(f"创建工具: {tool.id} ({tool.name})")
        return tool

    @staticmethod
    async def update_tool(db: AsyncSession, tool_id: str, raw: Dict[str, Any]) -> Tool:
        tool = await ToolService.get_tool(db, tool_id)
        updates = {k: v for k, v in raw.items() if k in EDITABLE_FIELDS}
        data = ToolService.prepare_tool_data(updates, partial=True)
        for key, value in data.items():
            setattr(tool, key, value)
        await db.commit()
        await db.refresh(tool)
        logger.info(f"更新工具: {tool.id}")
        return tool

    @staticmethod
    async def delete_tool(db: AsyncSession, tool_id: str) -> None:
        tool = await ToolService.get_tool(db, tool_id)
        await db.delete(tool)
        await db.commit()
        logger.info(f"删除工具: {tool_id}")

    @staticmethod
    async def rate_tool(db: AsyncSession, tool_id: str, rating: Any) -> Dict[str, Any]:
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise ValidationError("评分必须在1-5之间")
        tool = await db.get(Tool, tool_id)
        if tool is None or tool.status != "active":
            raise NotFoundError("工具不存在")
        tool.add_rating(rating)
        await db.commit()
        return {"averageRating": tool.average_rating, "ratingCount": tool.rating_count}
