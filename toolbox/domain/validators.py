"""工具数据清理与校验、邮箱格式校验"""
import json
import re
from typing import Any, Dict, List
from urllib.parse import urlparse

MAX_TAG_LENGTH = 20

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_BASIC_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_STRICT_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9._-]*[a-zA-Z0-9])?"
    r"@[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?"
    r"(\.[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?)+$"
)

# 常见的邮箱域名拼写错误
COMMON_TYPOS = {
    "@gmial.com": "@gmail.com",
    "@gmai.com": "@gmail.com",
    "@163.con": "@163.com",
    "@qq.con": "@qq.com",
    "@126.con": "@126.com",
    "@outlok.com": "@outlook.com",
    "@hotmial.com": "@hotmail.com",
}

COMMON_EMAIL_PROVIDERS = [
    "gmail.com",
    "qq.com",
    "163.com",
    "126.com",
    "outlook.com",
    "hotmail.com",
    "yahoo.com",
    "sina.com",
    "sohu.com",
    "foxmail.com",
    "139.com",
    "yeah.net",
]


def clean_tags_data(tags: Any) -> List[str]:
    """
    规范化标签：支持列表、JSON 字符串和逗号分隔字符串

    去掉首尾空白、空标签和 "[]"、'""' 这类脏数据，按首次出现顺序去重。
    """
    if isinstance(tags, list):
        raw = tags
    elif isinstance(tags, str):
        try:
            parsed = json.loads(tags)
            raw = parsed if isinstance(parsed, list) else tags.split(",")
        except ValueError:
            raw = tags.split(",")
    else:
        raw = []

    cleaned: List[str] = []
    for tag in raw:
        tag = tag.strip() if isinstance(tag, str) else str(tag)
        if not tag or tag in ("[]", '""'):
            continue
        if tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def normalize_url(url: str) -> str:
    url = (url or "").strip()
    if url and not _SCHEME_RE.match(url):
        url = "https://" + url
    return url


def clean_tool_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """清理工具数据，返回新的字典"""
    cleaned = dict(data)

    if cleaned.get("name"):
        cleaned["name"] = re.sub(r"\s+", " ", cleaned["name"].strip())

    if cleaned.get("description"):
        desc = cleaned["description"].strip()
        desc = desc.replace("\r\n", "\n").replace("\r", "\n")
        cleaned["description"] = re.sub(r"\n{3,}", "\n\n", desc)

    if cleaned.get("tags"):
        cleaned["tags"] = clean_tags_data(cleaned["tags"])

    if cleaned.get("url"):
        cleaned["url"] = normalize_url(cleaned["url"])

    return cleaned


def is_valid_url(url: str) -> bool:
    if not url:
        return False
    parsed = urlparse(url if url.startswith("http") else f"https://{url}")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and " " not in parsed.netloc


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


REQUIRED_TOOL_FIELDS = [
    ("name", "工具名称不能为空"),
    ("description", "工具描述不能为空"),
    ("url", "工具链接不能为空"),
    ("category", "工具分类不能为空"),
]


def validate_tool_data(data: Dict[str, Any], partial: bool = False) -> List[str]:
    """
    校验工具数据

    Args:
        data: 已清理的工具数据
        partial: 部分更新时只校验出现了的字段

    Returns:
        错误信息列表，为空表示校验通过
    """
    errors: List[str] = []

    for key, message in REQUIRED_TOOL_FIELDS:
        if partial and key not in data:
            continue
        if _is_blank(data.get(key)):
            errors.append(message)

    if data.get("url") and not is_valid_url(data["url"]):
        errors.append("工具链接格式不正确")

    tags = data.get("tags")
    if isinstance(tags, list):
        invalid = [
            t for t in tags
            if not isinstance(t, str) or not t.strip() or len(t) > MAX_TAG_LENGTH
        ]
        if invalid:
            errors.append("标签格式不正确或长度超出限制")

    return errors


def validate_email_format(email: Any) -> Dict[str, Any]:
    """
    校验邮箱格式

    Returns:
        {"valid": bool, "message": str}，拼写疑似有误时 message 中带有建议地址
    """
    if not email or not isinstance(email, str):
        return {"valid": False, "message": "邮箱地址不能为空"}

    if not _BASIC_EMAIL_RE.match(email):
        return {"valid": False, "message": "邮箱格式不正确"}

    if not _STRICT_EMAIL_RE.match(email):
        return {"valid": False, "message": "邮箱格式不符合规范"}

    local_part, domain = email.split("@", 1)
    if len(local_part) > 64:
        return {"valid": False, "message": "邮箱用户名部分过长"}
    if len(domain) > 255:
        return {"valid": False, "message": "邮箱域名部分过长"}
    if len(email) > 320:
        return {"valid": False, "message": "邮箱地址过长"}

    lowered = email.lower()
    for wrong, correct in COMMON_TYPOS.items():
        if lowered.endswith(wrong):
            suggestion = email[: -len(wrong)] + correct
            return {"valid": False, "message": f"邮箱地址可能有误，您是否想输入 {suggestion}？"}

    return {"valid": True, "message": ""}


def suggest_email_domain(partial_email: str) -> List[str]:
    """根据已输入的部分邮箱给出常见域名补全"""
    if not partial_email or "@" not in partial_email:
        return []
    prefix, partial_domain = partial_email.split("@", 1)
    if not partial_domain:
        return [f"{partial_email}{provider}" for provider in COMMON_EMAIL_PROVIDERS]
    return [
        f"{prefix}@{provider}"
        for provider in COMMON_EMAIL_PROVIDERS
        if provider.startswith(partial_domain.lower())
    ]
