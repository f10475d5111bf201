"""系统设置服务：键值设置的类型转换、分组读取和批量更新"""
import json
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import SETTING_TYPES, SystemSetting
from ..domain.errors import NotFoundError, ValidationError
from ..infrastructure.mailer import SmtpConfig

WEBSITE_KEYS = [
    "site_name", "site_url", "site_icon", "site_description",
    "icp_number", "show_icp", "friend_links",
]
EMAIL_KEYS = [
    "smtp_host", "smtp_port", "smtp_secure", "smtp_user", "smtp_pass",
    "from_name", "from_email", "email_enabled",
]

DEFAULT_SITE_NAME = "AiQiji工具箱"
DEFAULT_SITE_DESCRIPTION = "为开发者、设计师和效率工具爱好者精心收集的工具导航站点"

# (key, value, type, description)
DEFAULT_SETTINGS = [
    ("icp_number", "", "string", "ICP备案号"),
    ("show_icp", "false", "boolean", "是否显示备案号"),
    ("site_name", DEFAULT_SITE_NAME, "string", "网站名称"),
    ("site_url", "https://aiqiji.com", "string", "网站地址"),
    ("site_icon", "/favicon.ico", "string", "网站图标"),
    ("site_description", DEFAULT_SITE_DESCRIPTION, "string", "网站描述"),
    ("friend_links", "[]", "json", "友情链接列表（数组：{name,url,icon}）"),
    ("smtp_host", "", "string", "SMTP服务器地址"),
    ("smtp_port", "587", "number", "SMTP端口"),
    ("smtp_secure", "false", "boolean", "是否启用SSL/TLS"),
    ("smtp_user", "", "string", "SMTP用户名"),
    ("smtp_pass", "", "string", "SMTP密码"),
    ("from_name", DEFAULT_SITE_NAME, "string", "发件人名称"),
    ("from_email", "", "string", "发件人邮箱"),
    ("email_enabled", "false", "boolean", "是否启用邮件服务"),
]


def category_for(key: str) -> str:
    if key in WEBSITE_KEYS:
        return "website"
    if key in EMAIL_KEYS:
        return "email"
    return "general"


def convert_value(raw: Optional[str], setting_type: str) -> Any:
    """把数据库中的字符串值转换为对应类型"""
    if raw is None or raw == "":
        return None
    if setting_type == "number":
        try:
            number = float(raw)
        except ValueError:
            return None
        return int(number) if number.is_integer() else number
    if setting_type == "boolean":
        return raw == "true"
    if setting_type == "json":
        try:
            return json.loads(raw)
        except ValueError:
            return None
    return raw


def serialize_value(value: Any, setting_type: str) -> str:
    """把任意值转换为存储用的字符串"""
    if setting_type == "boolean":
        if isinstance(value, str):
            return "true" if value.strip().lower() == "true" else "false"
        return "true" if value else "false"
    if setting_type == "number":
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"数值类型的设置值无效: {value!r}")
        return str(int(number)) if number.is_integer() else str(number)
    if setting_type == "json":
        return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    return "" if value is None else str(value)


class SettingsService:
    """系统设置的读写"""

    @staticmethod
    async def ensure_defaults(db: AsyncSession) -> int:
        """写入缺失的默认设置，返回新增数量"""
        existing = set((await db.scalars(select(SystemSetting.setting_key))).all())
        created = 0
        for key, value, setting_type, description in DEFAULT_SETTINGS:
            if key in existing:
                continue
            category = category_for(key)
            db.add(SystemSetting(
                setting_key=key,
                setting_value=value,
                setting_type=setting_type,
                description=description,
                category=category,
                is_public=category == "website",
            ))
            created += 1
        if created:
            await db.commit()
        return created

    @staticmethod
    async def get_value(db: AsyncSession, key: str, default: Any = None) -> Any:
        setting = await db.scalar(select(SystemSetting).where(SystemSetting.setting_key == key))
        if setting is None:
            return default
        value = convert_value(setting.setting_value, setting.setting_type)
        return default if value is None else value

    @staticmethod
    async def get_values(db: AsyncSession, keys: List[str]) -> Dict[str, Any]:
        rows = (await db.scalars(
            select(SystemSetting).where(SystemSetting.setting_key.in_(keys))
        )).all()
        return {r.setting_key: convert_value(r.setting_value, r.setting_type) for r in rows}

    @staticmethod
    async def get_all(db: AsyncSession, category: Optional[str] = None) -> Dict[str, Any]:
        """按分类分组返回所有设置"""
        stmt = select(SystemSetting).order_by(SystemSetting.category, SystemSetting.setting_key)
        if category:
            stmt = stmt.where(SystemSetting.category == category)
        grouped: Dict[str, Dict[str, Any]] = {} if category else {"website": {}, "general": {}, "email": {}}
        for row in (await db.scalars(stmt)).all():
            grouped.setdefault(row.category or "general", {})[row.setting_key] = {
                "value": convert_value(row.setting_value, row.setting_type),
                "description": row.description,
                "type": row.setting_type,
                "is_public": bool(row.is_public),
            }
        return grouped.get(category, {}) if category else grouped

    @staticmethod
    async def get_public(db: AsyncSession) -> Dict[str, Any]:
        rows = (await db.scalars(
            select(SystemSetting).where(SystemSetting.is_public.is_(True))
        )).all()
        return {
            r.setting_key: convert_value(r.setting_value, r.setting_type)
            for r in rows
            if r.category != "email"
        }

    @staticmethod
    async def get_website_info(db: AsyncSession) -> Dict[str, Any]:
        values = await SettingsService.get_values(db, WEBSITE_KEYS)
        friend_links = values.get("friend_links")
        return {
            "site_name": values.get("site_name") or DEFAULT_SITE_NAME,
            "site_description": values.get("site_description") or DEFAULT_SITE_DESCRIPTION,
            "site_url": values.get("site_url") or "",
            "site_icon": values.get("site_icon") or "/favicon.ico",
            "icp_number": values.get("icp_number") or "",
            "show_icp": bool(values.get("show_icp")),
            "friend_links": friend_links if isinstance(friend_links, list) else [],
        }

    @staticmethod
    async def _upsert(db: AsyncSession, key: str, value: Any, setting_type: str,
                      description: Optional[str] = None) -> SystemSetting:
        if not key:
            raise ValidationError("设置键不能为空")
        if setting_type not in SETTING_TYPES:
            raise ValidationError(f"设置类型必须是以下值之一: {', '.join(SETTING_TYPES)}")

        stored = serialize_value(value, setting_type)
        category = category_for(key)
        setting = await db.scalar(select(SystemSetting).where(SystemSetting.setting_key == key))
        if setting is None:
            setting = SystemSetting(
                setting_key=key,
                category=category,
                is_public=category == "website",
            )
            db.add(setting)
        setting.setting_value = stored
        setting.setting_type = setting_type
        setting.category = category
        if category == "website":
            setting.is_public = True
        elif category == "email":
            setting.is_public = False
        if description is not None:
            setting.description = description
        return setting

    @staticmethod
    def _result(setting: SystemSetting) -> Dict[str, Any]:
        return {
            "setting_key": setting.setting_key,
            "setting_value": convert_value(setting.setting_value, setting.setting_type),
            "setting_type": setting.setting_type,
        }

    @staticmethod
    async def set_value(db: AsyncSession, key: str, value: Any, setting_type: str = "string",
                        description: Optional[str] = None) -> Dict[str, Any]:
        setting = await SettingsService._upsert(db, key, value, setting_type, description)
        await db.commit()
        logger.info(f"更新系统设置: {key}")
        return SettingsService._result(setting)

    @staticmethod
    async def set_many(db: AsyncSession, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """在一个事务中批量更新，任一项失败则全部回滚"""
        results = []
        try:
            for item in items:
                key = item.get("setting_key")
                if not key:
                    continue
                setting = await SettingsService._upsert(
                    db, key, item.get("setting_value"), item.get("setting_type") or "string",
                    item.get("description"),
                )
                results.append(SettingsService._result(setting))
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(f"批量更新系统设置 {len(results)} 项")
        return results

    @staticmethod
    async def delete(db: AsyncSession, key: str) -> None:
        result = await db.execute(delete(SystemSetting).where(SystemSetting.setting_key == key))
        if not result.rowcount:
            raise NotFoundError("设置不存在")
        await db.commit()
        logger.info(f"删除系统设置: {key}")

    @staticmethod
    async def get_smtp_config(db: AsyncSession) -> SmtpConfig:
        values = await SettingsService.get_values(db, EMAIL_KEYS)
        return SmtpConfig(
            host=values.get("smtp_host") or None,
            port=int(values.get("smtp_port") or 587),
            secure=bool(values.get("smtp_secure")),
            user=values.get("smtp_user") or None,
            password=values.get("smtp_pass") or None,
            from_name=values.get("from_name") or DEFAULT_SITE_NAME,
            from_email=values.get("from_email") or None,
            enabled=bool(values.get("email_enabled")),
        )
