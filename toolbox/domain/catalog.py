"""
工具目录的前台筛选逻辑：分类过滤、多词搜索、关键词高亮

与数据库查询不同，这里针对的是已加载到内存中的完整工具列表，
结果与首页「分类标签 + 搜索框」的行为一致。
"""
import asyncio
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger
from markupsafe import escape

ALL_CATEGORY = "全部"
CATEGORIES = [ALL_CATEGORY, "开发", "设计", "效率", "AI", "其它"]

CACHE_KEY = "tools"
DEFAULT_DEBOUNCE_SECONDS = 0.18


def _tool_categories(tool: Dict[str, Any]) -> List[str]:
    category = tool.get("category")
    if isinstance(category, list):
        return category
    return [category] if category else []


def _search_text(tool: Dict[str, Any]) -> str:
    parts = [
        tool.get("name") or "",
        tool.get("desc") or tool.get("description") or "",
        *(tool.get("tags") or []),
    ]
    return " ".join(str(p) for p in parts).lower()


def filter_tools(
    tools: List[Dict[str, Any]],
    category: Optional[str] = ALL_CATEGORY,
    query: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    按分类和关键词过滤工具

    Args:
        tools: 工具列表
        category: 分类，「全部」或空表示不过滤
        query: 搜索词，按空白拆分为多个词，每个词都必须命中

    Returns:
        过滤后的工具列表（保持原顺序）
    """
    if not tools:
        return []

    filtered = tools
    if category and category != ALL_CATEGORY:
        filtered = [t for t in filtered if category in _tool_categories(t)]

    q = (query or "").strip().lower()
    if q:
        terms = q.split()
        filtered = [
            t for t in filtered
            if all(term in _search_text(t) for term in terms)
        ]

    return filtered


def highlight_match(text: str, query: Optional[str]) -> str:
    """先做 HTML 转义，再用 <mark> 包裹匹配到的关键词（忽略大小写）"""
    if not text:
        return text
    escaped = str(escape(text))
    if not query or not query.strip():
        return escaped
    pattern = re.compile(f"({re.escape(str(escape(query.strip())))})", re.IGNORECASE)
    return pattern.sub(r"<mark>\1</mark>", escaped)


class ToolsCache:
    """只保存一份工具列表的缓存"""

    def __init__(self):
        self._store: Dict[str, List[Dict[str, Any]]] = {}

    def get(self) -> Optional[List[Dict[str, Any]]]:
        return self._store.get(CACHE_KEY)

    def set(self, tools: List[Dict[str, Any]]) -> None:
        self._store[CACHE_KEY] = list(tools)

    def clear(self) -> None:
        self._store.pop(CACHE_KEY, None)

    def __contains__(self, key: str) -> bool:
        return key in self._store


class Debouncer:
    """
    异步防抖：等待窗口内只执行最后一次调用，之前尚未执行的调用会被取消
    """

    def __init__(self, func: Callable[..., Awaitable[Any]], wait: float = DEFAULT_DEBOUNCE_SECONDS):
        self.func = func
        self.wait = wait
        self._task: Optional[asyncio.Task] = None

    async def _run(self, args, kwargs):
        await asyncio.sleep(self.wait)
        return await self.func(*args, **kwargs)

    def _log_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"防抖任务 {getattr(self.func, '__name__', self.func)} 执行失败: {exc!r}")

    def __call__(self, *args, **kwargs) -> asyncio.Task:
        self.cancel()
        self._task = asyncio.create_task(self._run(args, kwargs))
        self._task.add_done_callback(self._log_failure)
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()


class ToolCatalog:
    """内存中的工具目录，首次访问时加载并缓存"""

    def __init__(self, loader: Callable[[], Awaitable[List[Dict[str, Any]]]],
                 debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS):
        self._loader = loader
        self._cache = ToolsCache()
        self._lock = asyncio.Lock()
        self.refresh_later = Debouncer(self.refresh, wait=debounce_seconds)

    @property
    def categories(self) -> List[str]:
        return list(CATEGORIES)

    async def get_tools(self) -> List[Dict[str, Any]]:
        cached = self._cache.get()
        if cached is not None:
            return cached
        async with self._lock:
            cached = self._cache.get()
            if cached is not None:
                return cached
            tools = await self._loader()
            if not isinstance(tools, list):
                raise ValueError("工具数据格式错误")
            self._cache.set(tools)
            logger.info(f"工具目录已加载 {len(tools)} 个工具")
            return self._cache.get()

    async def get_filtered(self, category: Optional[str] = ALL_CATEGORY,
                           query: Optional[str] = None) -> List[Dict[str, Any]]:
        return filter_tools(await self.get_tools(), category, query)

    async def refresh(self) -> List[Dict[str, Any]]:
        """丢弃缓存并重新加载"""
        self._cache.clear()
        return await self.get_tools()

    def invalidate(self) -> None:
        self._cache.clear()
