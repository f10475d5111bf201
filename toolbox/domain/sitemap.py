"""sitemap.xml 与 robots.txt 生成"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

from jinja2 import Environment

DEFAULT_BASE_URL = "https://tools.aiqji.com"
IMAGE_LICENSE = "https://creativecommons.org/licenses/by/4.0/"

_env = Environment(autoescape=False, trim_blocks=True, lstrip_blocks=True)

SITEMAP_TEMPLATE = _env.from_string("""\
<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"
        xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
        xmlns:image="http://www.google.com/schemas/sitemap-image/1.1"
        xsi:schemaLocation="http://www.sitemaps.org/schemas/sitemap/0.9
        http://www.sitemaps.org/schemas/sitemap/0.9/sitemap.xsd
        http://www.google.com/schemas/sitemap-image/1.1
        http://www.google.com/schemas/sitemap-image/1.1/sitemap-image.xsd">
{% for url in urls %}
  <url>
    <loc>{{ base_url }}{{ url.loc | e }}</loc>
{% if url.lastmod %}
    <lastmod>{{ url.lastmod }}</lastmod>
{% endif %}
{% if url.changefreq %}
    <changefreq>{{ url.changefreq }}</changefreq>
{% endif %}
{% if url.priority is not none %}
    <priority>{{ url.priority }}</priority>
{% endif %}
{% for image in url.images %}
    <image:image>
      <image:loc>{{ image.absolute_loc(base_url) | e }}</image:loc>
{% if image.caption %}
      <image:caption><![CDATA[{{ image.caption }}]]></image:caption>
{% endif %}
{% if image.title %}
      <image:title><![CDATA[{{ image.title }}]]></image:title>
{% endif %}
{% if image.license %}
      <image:license>{{ image.license }}</image:license>
{% endif %}
    </image:image>
{% endfor %}
  </url>
{% endfor %}
</urlset>
""")

ROBOTS_TEMPLATE = _env.from_string("""\
# AiQiji工具箱 - 机器人访问规则
# 网站: {{ base_url }}
# 更新时间: {{ today }}

User-agent: *
Allow: /

# 网站地图位置
Sitemap: {{ base_url }}/sitemap.xml

# 禁止爬取的目录和文件
{% for path in disallow %}
Disallow: {{ path }}
{% endfor %}

# 允许爬取的重要页面和参数
{% for path in allow %}
Allow: {{ path }}
{% endfor %}

# 针对不同搜索引擎的特殊规则
{% for agent, delay in crawl_delays %}
User-agent: {{ agent }}
Crawl-delay: {{ delay }}

{% endfor %}
# 阻止恶意爬虫
{% for agent in blocked %}
User-agent: {{ agent }}
Disallow: /
{% if not loop.last %}

{% endif %}
{% endfor %}
""")

ROBOTS_DISALLOW = [
    "/admin/",
    "/api/",
    "/private/",
    "/node_modules/",
    "/src/",
    "/dist/assets/",
    "/uploads/",
    "/*.json$",
    "/*?utm_*",
    "/*?ref=*",
    "/external-link*",
]
ROBOTS_ALLOW = [
    "/",
    "/friends",
    "/friend-link-apply",
    "/privacy",
    "/terms",
    "/tool/",
    "/?search=*",
    "/?category=*",
    "/favicon.ico",
    "/robots.txt",
    "/sitemap.xml",
    "/manifest.json",
    "/logo.png",
]
CRAWL_DELAYS = [
    ("Googlebot", 1),
    ("Bingbot", 1),
    ("Baiduspider", 2),
    ("360Spider", 2),
    ("Sogou web spider", 2),
]
BLOCKED_BOTS = ["SemrushBot", "AhrefsBot", "MJ12bot"]


@dataclass
class SitemapImage:
    loc: str
    caption: Optional[str] = None
    title: Optional[str] = None
    license: Optional[str] = None

    def absolute_loc(self, base_url: str) -> str:
        return self.loc if self.loc.startswith("http") else f"{base_url}{self.loc}"


@dataclass
class SitemapUrl:
    loc: str
    lastmod: Optional[str] = None
    changefreq: Optional[str] = None
    priority: Optional[float] = None
    images: List[SitemapImage] = field(default_factory=list)


def _date_str(value: Any, fallback: str) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and value:
        return value[:10]
    return fallback


class SitemapGenerator:
    """收集站点 URL 并输出 sitemap.xml / robots.txt"""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, today: Optional[date] = None):
        self.base_url = base_url.rstrip("/")
        self.today = (today or date.today()).isoformat()
        self.urls: List[SitemapUrl] = []
        self._add_static_pages()

    def _add_static_pages(self):
        self.urls = [
            SitemapUrl("/", self.today, "daily", 1.0,
                       [SitemapImage("/logo.png", caption="AiQiji工具箱", title="专业工具导航平台")]),
            SitemapUrl("/friends", self.today, "weekly", 0.8),
            SitemapUrl("/friend-link-apply", self.today, "monthly", 0.6),
            SitemapUrl("/privacy", self.today, "monthly", 0.3),
            SitemapUrl("/terms", self.today, "monthly", 0.3),
        ]

    def add_tool_pages(self, tools: Iterable[Dict[str, Any]]) -> None:
        """添加工具详情页，只包含上架状态的工具"""
        for tool in tools:
            if tool.get("status") != "active":
                continue
            images = []
            if tool.get("icon_url"):
                images.append(SitemapImage(
                    tool["icon_url"],
                    caption=f"{tool.get('name')} logo",
                    title=f"{tool.get('name')} - {tool.get('description') or '专业工具'}",
                    license=IMAGE_LICENSE,
                ))
            self.urls.append(SitemapUrl(
                f"/tool/{tool['id']}",
                _date_str(tool.get("updated_at"), self.today),
                "weekly",
                0.7,
                images,
            ))

    def add_category_pages(self, categories: Iterable[str]) -> None:
        for category in categories:
            self.urls.append(SitemapUrl(
                f"/?category={quote(category, safe='')}", self.today, "daily", 0.8
            ))

    def generate_xml(self) -> str:
        return SITEMAP_TEMPLATE.render(base_url=self.base_url, urls=self.urls).rstrip("\n")

    def generate_robots_txt(self) -> str:
        return ROBOTS_TEMPLATE.render(
            base_url=self.base_url,
            today=self.today,
            disallow=ROBOTS_DISALLOW,
            allow=ROBOTS_ALLOW,
            crawl_delays=CRAWL_DELAYS,
            blocked=BLOCKED_BOTS,
        ).rstrip("\n")

    def clear(self) -> None:
        self._add_static_pages()
