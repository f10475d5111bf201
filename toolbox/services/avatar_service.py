"""用户头像解析：自定义头像、QQ 头像、Cravatar、文字头像"""
import base64
import hashlib
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from loguru import logger
from markupsafe import escape

QQ_EMAIL_DOMAINS = ["qq.com", "vip.qq.com", "foxmail.com"]
LETTER_COLORS = [
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4", "#FFEAA7",
    "#DDA0DD", "#98D8C8", "#F7DC6F", "#BB8FCE", "#85C1E9",
]
RANDOM_AVATAR_API = "https://v2.xxapi.cn/api/head?return=json"
RANDOM_AVATAR_FALLBACKS = [
    "https://api.dicebear.com/7.x/avataaars/svg",
    "https://api.dicebear.com/7.x/miniavs/svg",
    "https://api.dicebear.com/7.x/micah/svg",
]


def get_full_avatar_url(avatar_url: Optional[str], api_base_url: str = "") -> str:
    """补全头像地址：完整 URL 和 data URL 原样返回，站内相对路径拼接 API 域名"""
    if not avatar_url:
        return ""
    if avatar_url.startswith(("http://", "https://", "data:")):
        return avatar_url
    if avatar_url.startswith("/"):
        base = (api_base_url or "http://localhost:3001").replace("/api/v1", "").rstrip("/")
        return f"{base}{avatar_url}"
    return avatar_url


def email_md5(email: Optional[str]) -> str:
    if not email:
        return ""
    return hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()


def get_cravatar_url(email: str, size: int = 200) -> str:
    return f"https://cravatar.cn/avatar/{email_md5(email)}?s={size}&d=404"


def is_qq_email(email: Optional[str]) -> bool:
    if not email or "@" not in email:
        return False
    return email.lower().split("@", 1)[1] in QQ_EMAIL_DOMAINS


def get_qq_avatar_url(email: str, size: int = 200) -> str:
    if not is_qq_email(email):
        raise ValueError("非QQ邮箱")
    qq_number = email.split("@", 1)[0]
    spec = 40 if size <= 40 else 100 if size <= 100 else 140
    return f"https://q.qlogo.cn/headimg_dl?dst_uin={qq_number}&spec={spec}"


def generate_letter_avatar(text: Optional[str], size: int = 200) -> str:
    """生成首字母 SVG 头像，返回 base64 data URL"""
    text = text or "U"
    letter = escape(text[0].upper())
    bg_color = LETTER_COLORS[ord(text[0]) % len(LETTER_COLORS)]
    font_size = size * 0.4
    if font_size == int(font_size):
        font_size = int(font_size)
    svg = (
        f'<svg width="{size}" height="{size}" xmlns="http://www.w3.org/2000/svg">'
        f'<rect width="100%" height="100%" fill="{bg_color}"/>'
        f'<text x="50%" y="50%" text-anchor="middle" dy="0.35em" font-family="Arial, sans-serif" '
        f'font-size="{font_size}" fill="white" font-weight="bold">{letter}</text>'
        f"</svg>"
    )
    encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


async def check_image_available(url: str, timeout: float = 5.0) -> bool:
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            resp = await client.head(url)
            return resp.status_code == 200
    except httpx.HTTPError:
        return False


async def get_random_avatar_url(timeout: float = 5.0) -> str:
    """从随机头像接口获取一个头像，失败时退回 DiceBear"""
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.get(RANDOM_AVATAR_API)
            resp.raise_for_status()
            data = resp.json()
            if data.get("code") == 200 and data.get("data"):
                return data["data"]
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"获取随机头像失败: {e}")
    return random.choice(RANDOM_AVATAR_FALLBACKS)


class AvatarService:
    """带缓存的头像解析"""

    def __init__(
        self,
        api_base_url: str = "",
        checker: Callable[[str], Awaitable[bool]] = check_image_available,
    ):
        self.api_base_url = api_base_url
        self._checker = checker
        self._cache: Dict[str, str] = {}

    def candidate_urls(self, user: Dict[str, Any], size: int = 200) -> List[str]:
        """按优先级列出外部头像候选：自定义 -> QQ -> Cravatar"""
        candidates = []
        if user.get("avatar_url"):
            candidates.append(get_full_avatar_url(user["avatar_url"], self.api_base_url))
        email = user.get("email")
        if email:
            if is_qq_email(email):
                candidates.append(get_qq_avatar_url(email, size))
            candidates.append(get_cravatar_url(email, size))
        return candidates

    async def resolve(self, user: Dict[str, Any], size: int = 200, use_external: bool = False) -> str:
        """
        解析用户头像

        默认只使用自定义头像，没有时生成文字头像；use_external=True 时
        依次尝试 QQ 头像和 Cravatar，都不可用再退回文字头像。
        """
        cache_key = f"{user.get('email') or user.get('username')}-{size}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        url = None
        if user.get("avatar_url"):
            url = get_full_avatar_url(user["avatar_url"], self.api_base_url)
        elif use_external:
            for candidate in self.candidate_urls(user, size):
                if await self._checker(candidate):
                    url = candidate
                    break

        if not url:
            url = generate_letter_avatar(
                user.get("display_name") or user.get("username") or "U", size
            )

        self._cache[cache_key] = url
        return url

    def clear_cache(self) -> None:
        self._cache.clear()
