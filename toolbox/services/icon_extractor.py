"""网站图标提取：favicon、link 标签、og:image 与 manifest 图标"""
import re
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from loguru import logger

CACHE_SECONDS = 24 * 60 * 60
USER_AGENT = "Mozilla/5.0 (compatible; IconBot/1.0)"

ICON_RELS = {"icon", "shortcut icon", "apple-touch-icon", "apple-touch-icon-precomposed"}
TYPE_PRIORITY = {
    "apple-touch-icon": 1,
    "manifest-icon": 2,
    "favicon": 3,
    "og-image": 4,
}
FORMAT_MAP = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
}

_SIZE_RE = re.compile(r"(\d+)x(\d+)")


@dataclass
class IconInfo:
    url: str
    type: str  # favicon / apple-touch-icon / og-image / manifest-icon
    size: Optional[str] = None
    format: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def format_from_url(url: str) -> Optional[str]:
    path = urlparse(url).path
    extension = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return FORMAT_MAP.get(extension)


def parse_size(size: Optional[str]) -> int:
    """"32x32" 转为像素面积，多个尺寸取第一个"""
    if not size:
        return 0
    match = _SIZE_RE.search(size)
    return int(match.group(1)) * int(match.group(2)) if match else 0


def sort_icons(icons: List[IconInfo]) -> List[IconInfo]:
    """按类型优先级排序，同类型尺寸大的在前"""
    return sorted(icons, key=lambda i: (TYPE_PRIORITY.get(i.type, 999), -parse_size(i.size)))


def parse_html_icons(html: str, page_url: str) -> List[IconInfo]:
    soup = BeautifulSoup(html, "html.parser")
    icons: List[IconInfo] = []

    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        rel_text = " ".join(rel).lower() if isinstance(rel, list) else str(rel).lower()
        if rel_text not in ICON_RELS:
            continue
        url = urljoin(page_url, link["href"].strip())
        icons.append(IconInfo(
            url=url,
            type="apple-touch-icon" if "apple" in rel_text else "favicon",
            size=link.get("sizes"),
            format=format_from_url(url) or link.get("type"),
        ))

    og_image = soup.find("meta", attrs={"property": "og:image"})
    if og_image and og_image.get("content"):
        url = urljoin(page_url, og_image["content"].strip())
        icons.append(IconInfo(url=url, type="og-image", format=format_from_url(url)))

    return icons


def parse_manifest_icons(manifest: dict, origin: str) -> List[IconInfo]:
    icons = []
    for item in manifest.get("icons") or []:
        if not isinstance(item, dict) or not item.get("src"):
            continue
        icons.append(IconInfo(
            url=urljoin(origin + "/", item["src"]),
            type="manifest-icon",
            size=item.get("sizes"),
            format=item.get("type"),
        ))
    return icons


class IconExtractor:
    """
    提取网站的可用图标

    结果按主机名缓存 24 小时。
    """

    def __init__(self, timeout: float = 10.0, clock: Callable[[], float] = time.time):
        self.timeout = timeout
        self._clock = clock
        self._cache: Dict[str, Tuple[float, List[IconInfo]]] = {}

    @staticmethod
    def cache_key(website_url: str) -> str:
        return f"icons_{urlparse(website_url).hostname}"

    def get_cached(self, website_url: str) -> Optional[List[IconInfo]]:
        key = self.cache_key(website_url)
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, icons = entry
        if self._clock() - stored_at >= CACHE_SECONDS:
            del self._cache[key]
            return None
        return icons

    def clear_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (stored_at, _) in self._cache.items() if now - stored_at >= CACHE_SECONDS]
        for key in expired:
            del self._cache[key]
        return len(expired)

    async def _image_exists(self, client: httpx.AsyncClient, url: str) -> bool:
        try:
            resp = await client.head(url)
        except httpx.HTTPError:
            return False
        return resp.is_success and resp.headers.get("content-type", "").startswith("image/")

    async def extract(self, website_url: str, client: Optional[httpx.AsyncClient] = None) -> List[IconInfo]:
        """
        抓取网站图标，失败的来源会被跳过

        Args:
            website_url: 网站地址
            client: 复用的 httpx 客户端，不传则临时创建

        Returns:
            排序后的图标列表
        """
        parsed = urlparse(website_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return []
        cached = self.get_cached(website_url)
        if cached is not None:
            return cached

        if client is None:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True,
                                         headers={"User-Agent": USER_AGENT}) as temp_client:
                icons = await self._collect(temp_client, website_url)
        else:
            icons = await self._collect(client, website_url)

        icons = sort_icons(icons)
        self._cache[self.cache_key(website_url)] = (self._clock(), icons)
        logger.info(f"从 {website_url} 提取到 {len(icons)} 个图标")
        return icons

    async def _collect(self, client: httpx.AsyncClient, website_url: str) -> List[IconInfo]:
        parsed = urlparse(website_url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        icons: List[IconInfo] = []

        favicon_url = f"{origin}/favicon.ico"
        if await self._image_exists(client, favicon_url):
            icons.append(IconInfo(url=favicon_url, type="favicon", format="ico"))

        try:
            resp = await client.get(website_url)
            resp.raise_for_status()
            icons.extend(parse_html_icons(resp.text, str(resp.url)))
        except httpx.HTTPError as e:
            logger.warning(f"解析页面图标失败 {website_url}: {e}")

        try:
            resp = await client.get(f"{origin}/manifest.json")
            resp.raise_for_status()
            icons.extend(parse_manifest_icons(resp.json(), origin))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"解析 manifest 图标失败 {origin}: {e}")

        # 同一地址只保留第一次出现
        seen, unique = set(), []
        for icon in icons:
            if icon.url not in seen:
                seen.add(icon.url)
                unique.append(icon)
        return unique


icon_extractor = IconExtractor()
