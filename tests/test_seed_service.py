"""初始工具数据测试"""
import json
import random
from datetime import datetime

import pytest

from toolbox.services.seed_service import (
    escape_sql,
    generate_seed_sql,
    load_initial_tools,
    load_seed_file,
    normalize_seed_tool,
)

RAW_TOOL = {
    "id": "demo",
    "name": "O'Reilly",
    "desc": "示例工具描述",
    "category": "未知分类",
    "featured": True,
    "url": "demo.com",
    "tags": "x, y",
    "logoUrl": "https://cdn.example.com/demo.png",
    "logoTheme": "dark",
}


class TestNormalizeSeedTool:

    def test_aliases_and_defaults(self):
        tool = normalize_seed_tool(RAW_TOOL)
        assert tool["description"] == "示例工具描述"
        assert tool["category"] == ["其他"]
        assert tool["url"] == "https://demo.com"
        assert tool["tags"] == ["x", "y"]
        assert tool["icon_url"] == "https://cdn.example.com/demo.png"
        assert tool["icon_theme"] == "dark"
        assert tool["sort_order"] == 100
        assert tool["status"] == "active"

    def test_valid_categories_kept(self):
        tool = normalize_seed_tool({"id": "a", "name": "A", "category": ["AI", "无效"], "url": "https://a.com"})
        assert tool["category"] == ["AI"]
        assert tool["sort_order"] == 0


class TestSeedSql:

    def test_escape(self):
        assert escape_sql(None) == "NULL"
        assert escape_sql("O'Reilly") == "'O''Reilly'"
        assert escape_sql("a\\b") == "'a\\\\b'"

    def test_generate(self):
        sql = generate_seed_sql([RAW_TOOL], rng=random.Random(1), now=datetime(2024, 1, 1))
        assert "-- 自动生成于: 2024-01-01T00:00:00" in sql
        assert "-- 数据总数: 1" in sql
        assert "-- 精选工具: 1" in sql
        assert "-- 分类统计: 其他=1" in sql
        assert "INSERT IGNORE INTO tools (" in sql
        assert "'O''Reilly'" in sql
        assert sql.rstrip().endswith(";")

    def test_generate_empty(self):
        assert "-- 无数据" in generate_seed_sql([])

    def test_bundled_seed_file(self):
        tools = load_seed_file()
        assert isinstance(tools, list)
        assert tools
        assert all("id" in t and "name" in t for t in tools)


class TestLoadInitialTools:

    @pytest.mark.asyncio
    async def test_only_imports_into_empty_table(self, session, tmp_path):
        path = tmp_path / "tools.json"
        path.write_text(json.dumps([RAW_TOOL], ensure_ascii=False), encoding="utf-8")

        assert await load_initial_tools(session, path) == 1
        assert await load_initial_tools(session, path) == 0

    @pytest.mark.asyncio
    async def test_missing_file(self, session, tmp_path):
        assert await load_initial_tools(session, tmp_path / "missing.json") == 0
