"""初始工具数据：读取种子 JSON、生成 SQL、导入空数据库"""
import json
import random
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config_loader import initial_tools_path
from ..db.models import TOOL_CATEGORIES, Tool
from ..domain.validators import clean_tags_data, normalize_url

SQL_COLUMNS = [
    "id", "name", "description", "icon", "icon_url", "icon_file", "icon_theme",
    "category", "tags", "url", "featured", "status", "view_count", "click_count",
    "rating_count", "rating_sum", "sort_order", "created_at", "updated_at",
]


def load_seed_file(path: Optional[Path] = None) -> List[Dict[str, Any]]:
    path = path or initial_tools_path()
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError("种子数据文件必须是 JSON 数组")
    return data


def _seed_categories(raw: Any) -> List[str]:
    if isinstance(raw, list):
        values = raw
    elif raw:
        values = [raw]
    else:
        values = []
    valid = [c for c in values if c in TOOL_CATEGORIES]
    return valid or ["其他"]


def normalize_seed_tool(tool: Dict[str, Any]) -> Dict[str, Any]:
    """把种子数据里的别名字段（desc / logoUrl / logoTheme）统一为工具字段"""
    featured = bool(tool.get("featured"))
    return {
        "id": tool["id"],
        "name": tool["name"],
        "description": tool.get("desc") or tool.get("description") or "",
        "icon": tool.get("icon") or "Tool",
        "icon_url": tool.get("logoUrl") or tool.get("icon_url"),
        "icon_theme": tool.get("logoTheme") or tool.get("icon_theme") or "auto",
        "category": _seed_categories(tool.get("category")),
        "tags": clean_tags_data(tool.get("tags") or []),
        "url": normalize_url(tool.get("url", "")),
        "featured": featured,
        "status": "active",
        "sort_order": 100 if featured else 0,
    }


def escape_sql(value: Any) -> str:
    if value is None:
        return "NULL"
    text = str(value).replace("\\", "\\\\").replace("'", "''")
    return f"'{text}'"


def category_stats(tools: List[Dict[str, Any]]) -> Dict[str, int]:
    """按主分类统计数量"""
    stats: Dict[str, int] = {}
    for tool in tools:
        primary = tool["category"][0]
        stats[primary] = stats.get(primary, 0) + 1
    return stats


def generate_seed_sql(
    raw_tools: List[Dict[str, Any]],
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    生成 INSERT IGNORE 形式的初始数据 SQL

    精选工具的排序权重为 100，浏览量和点击量随机生成（10-109 / 5-54）。
    """
    rng = rng or random.Random()
    now = now or datetime.now()
    tools = [normalize_seed_tool(t) for t in raw_tools]

    rows = []
    for tool in tools:
        values = [
            escape_sql(tool["id"]),
            escape_sql(tool["name"]),
            escape_sql(tool["description"]),
            escape_sql(tool["icon"]),
            escape_sql(tool["icon_url"]),
            "NULL",
            escape_sql(tool["icon_theme"]),
            escape_sql(json.dumps(tool["category"], ensure_ascii=False)),
            escape_sql(json.dumps(tool["tags"], ensure_ascii=False)),
            escape_sql(tool["url"]),
            "1" if tool["featured"] else "0",
            escape_sql(tool["status"]),
            str(rng.randint(10, 109)),
            str(rng.randint(5, 54)),
            "0",
            "0",
            str(tool["sort_order"]),
            "NOW()",
            "NOW()",
        ]
        rows.append(f"({', '.join(values)})")

    header = [
        "-- AiQiji工具箱初始数据",
        f"-- 自动生成于: {now.isoformat()}",
        f"-- 数据总数: {len(tools)}",
        f"-- 精选工具: {sum(1 for t in tools if t['featured'])}",
        "-- 分类统计: " + ", ".join(f"{k}={v}" for k, v in category_stats(tools).items()),
        "-- 使用 INSERT IGNORE 避免重复插入（基于主键ID判断）",
        "",
    ]
    if not rows:
        return "\n".join(header + ["-- 无数据"]) + "\n"

    columns = ",\n  ".join(SQL_COLUMNS)
    body = f"INSERT IGNORE INTO tools (\n  {columns}\n) VALUES\n" + ",\n".join(rows) + ";\n"
    return "\n".join(header) + "\n" + body


async def load_initial_tools(session: AsyncSession, path: Optional[Path] = None) -> int:
    """工具表为空时导入种子数据，返回导入数量"""
    count = await session.scalar(select(func.count()).select_from(Tool))
    if count:
        return 0

    path = path or initial_tools_path()
    if not path.exists():
        logger.warning(f"种子数据文件不存在: {path}")
        return 0

    tools = [normalize_seed_tool(t) for t in load_seed_file(path)]
    for data in tools:
        session.add(Tool(**data))
    await session.commit()
    return len(tools)
