"""友链申请服务"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import APPLICATION_STATUSES, FriendLinkApplication
from ..domain.errors import NotFoundError, ValidationError
from ..domain.validators import is_valid_url, validate_email_format
from .settings_service import SettingsService

SORTABLE_FIELDS = {
    "created_at": FriendLinkApplication.created_at,
    "updated_at": FriendLinkApplication.updated_at,
    "site_name": FriendLinkApplication.site_name,
    "status": FriendLinkApplication.status,
    "processed_at": FriendLinkApplication.processed_at,
}


def notification_payload(application: FriendLinkApplication) -> Dict[str, Any]:
    """邮件通知需要的字段"""
    return {
        "site_name": application.site_name,
        "site_url": application.site_url,
        "site_description": application.site_description,
        "site_icon": application.site_icon,
        "admin_email": application.admin_email,
        "admin_qq": application.admin_qq,
    }


def _require_http_url(url: str) -> bool:
    return url.startswith(("http://", "https://")) and is_valid_url(url)


class FriendLinkService:
    """友链申请的提交、审核与过期处理"""

    @staticmethod
    async def submit(db: AsyncSession, data: Dict[str, Any], ip_address: Optional[str] = None,
                     user_agent: Optional[str] = None) -> FriendLinkApplication:
        site_name = (data.get("site_name") or "").strip()
        site_url = (data.get("site_url") or "").strip()
        site_description = (data.get("site_description") or "").strip()
        site_icon = (data.get("site_icon") or "").strip() or None
        admin_email = (data.get("admin_email") or "").strip()
        admin_qq = (data.get("admin_qq") or "").strip() or None

        if not site_name or not site_url or not site_description or not admin_email:
            raise ValidationError("请填写所有必填字段")
        if len(site_name) > 100:
            raise ValidationError("网站名称不能超过100个字符")
        if not _require_http_url(site_url):
            raise ValidationError("网站地址格式不正确")
        if site_icon and not _require_http_url(site_icon):
            raise ValidationError("图标地址格式不正确")
        email_check = validate_email_format(admin_email)
        if not email_check["valid"]:
            raise ValidationError(email_check["message"])
        if admin_qq and not admin_qq.isdigit():
            raise ValidationError("QQ号格式不正确")

        active = FriendLinkApplication.status.in_(["pending", "approved"])
        if await db.scalar(select(FriendLinkApplication.id).where(
            FriendLinkApplication.site_url == site_url, active,
        ).limit(1)) is not None:
            raise ValidationError("该网站已提交过申请")
        if await db.scalar(select(FriendLinkApplication.id).where(
            FriendLinkApplication.admin_email == admin_email, active,
        ).limit(1)) is not None:
            raise ValidationError("该邮箱已提交过申请")

        application = FriendLinkApplication(
            site_name=site_name,
            site_url=site_url,
            site_description=site_description,
            site_icon=site_icon,
            admin_email=admin_email,
            admin_qq=admin_qq,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(application)
        await db.commit()
        await db.refresh(application)
        logger.info(f"收到友链申请: {site_name} ({site_url})")
        return application

    @staticmethod
    async def list_applications(
        db: AsyncSession,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "DESC",
    ) -> Dict[str, Any]:
        conditions = []
        if status and status != "all":
            conditions.append(FriendLinkApplication.status == status)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            conditions.append(or_(
                FriendLinkApplication.site_name.like(pattern),
                FriendLinkApplication.site_url.like(pattern),
                FriendLinkApplication.admin_email.like(pattern),
            ))

        column = SORTABLE_FIELDS.get(sort_by, FriendLinkApplication.created_at)
        order = column.asc() if str(sort_order).upper() == "ASC" else column.desc()

        total = await db.scalar(
            select(func.count()).select_from(FriendLinkApplication).where(*conditions)
        ) or 0
        rows = (await db.scalars(
            select(FriendLinkApplication).where(*conditions).order_by(order)
            .offset((page - 1) * limit).limit(limit)
        )).all()

        total_pages = (total + limit - 1) // limit
        return {
            "applications": [r.to_dict() for r in rows],
            "pagination": {
                "current_page": page,
                "per_page": limit,
                "total": total,
                "total_pages": total_pages,
                "has_next": page < total_pages,
                "has_prev": page > 1,
            },
        }

    @staticmethod
    async def get_stats(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or datetime.now()
        counts = dict((await db.execute(
            select(FriendLinkApplication.status, func.count()).group_by(FriendLinkApplication.status)
        )).all())

        async def _since(days: int) -> int:
            return await db.scalar(
                select(func.count()).select_from(FriendLinkApplication)
                .where(FriendLinkApplication.created_at >= now - timedelta(days=days))
            ) or 0

        stats = {status: counts.get(status, 0) for status in APPLICATION_STATUSES}
        stats["total"] = sum(counts.values())
        stats["recent_week"] = await _since(7)
        stats["recent_month"] = await _since(30)
        return stats

    @staticmethod
    async def get(db: AsyncSession, application_id: str) -> FriendLinkApplication:
        application = await db.get(FriendLinkApplication, application_id)
        if application is None:
            raise NotFoundError("申请不存在")
        return application

    @staticmethod
    def _process(application: FriendLinkApplication, status: str, admin_id: Optional[str],
                 note: Optional[str]) -> None:
        if application.status != "pending":
            raise ValidationError("只能处理待审核的申请")
        application.status = status
        application.processed_by = admin_id
        application.processed_at = datetime.now()
        application.admin_note = note or None

    @staticmethod
    async def add_to_friend_links(db: AsyncSession, application: FriendLinkApplication) -> bool:
        """把通过的申请加入 friend_links 设置，名称或地址已存在时跳过"""
        links = await SettingsService.get_value(db, "friend_links", [])
        if not isinstance(links, list):
            links = []
        if any(link.get("url") == application.site_url or link.get("name") == application.site_name
               for link in links if isinstance(link, dict)):
            return False
        links.append({
            "name": application.site_name,
            "url": application.site_url,
            "icon": application.site_icon,
            "description": application.site_description,
        })
        await SettingsService.set_value(db, "friend_links", links, "json")
        return True

    @staticmethod
    async def approve(db: AsyncSession, application_id: str, admin_id: Optional[str] = None,
                      note: Optional[str] = None, add_to_friend_links: bool = True) -> FriendLinkApplication:
        application = await FriendLinkService.get(db, application_id)
        FriendLinkService._process(application, "approved", admin_id, note)
        await db.commit()

        if add_to_friend_links:
            try:
                await FriendLinkService.add_to_friend_links(db, application)
            except Exception as e:
                # 友链列表写入失败不影响审核结果
                logger.error(f"添加到友链列表失败: {e}", exc_info=True)
        logger.info(f"友链申请已通过: {application.site_name}")
        return application

    @staticmethod
    async def reject(db: AsyncSession, application_id: str, admin_id: Optional[str] = None,
                     note: Optional[str] = None) -> FriendLinkApplication:
        application = await FriendLinkService.get(db, application_id)
        FriendLinkService._process(application, "rejected", admin_id, note)
        await db.commit()
        logger.info(f"友链申请已拒绝: {application.site_name}")
        return application

    @staticmethod
    async def batch_process(db: AsyncSession, ids: List[str], action: str,
                            admin_id: Optional[str] = None, note: Optional[str] = None) -> Dict[str, Any]:
        """
        批量通过或拒绝，只处理待审核的申请

        Returns:
            {"results": [...], "processed": [...申请对象], "summary": {...}}
        """
        if not ids:
            raise ValidationError("请选择要处理的申请")
        if action not in ("approve", "reject"):
            raise ValidationError("操作类型不正确")

        applications = (await db.scalars(select(FriendLinkApplication).where(
            FriendLinkApplication.id.in_(ids), FriendLinkApplication.status == "pending"
        ))).all()
        if not applications:
            raise ValidationError("没有找到可处理的申请")

        status = "approved" if action == "approve" else "rejected"
        results, processed = [], []
        for application in applications:
            FriendLinkService._process(application, status, admin_id, note)
            processed.append(application)
            results.append({
                "id": application.id,
                "site_name": application.site_name,
                "success": True,
                "status": application.status,
            })
        await db.commit()

        if action == "approve":
            for application in processed:
                try:
                    await FriendLinkService.add_to_friend_links(db, application)
                except Exception as e:
                    logger.error(f"添加到友链列表失败: {e}", exc_info=True)

        return {
            "results": results,
            "processed": processed,
            "summary": {
                "total": len(ids),
                "processed": len(processed),
                "skipped": len(ids) - len(processed),
            },
        }

    @staticmethod
    async def delete(db: AsyncSession, application_id: str) -> None:
        application = await FriendLinkService.get(db, application_id)
        await db.delete(application)
        await db.commit()

    @staticmethod
    async def cleanup_expired(db: AsyncSession, now: Optional[datetime] = None) -> int:
        """把已过期的待审核申请标记为 expired，返回处理数量"""
        now = now or datetime.now()
        result = await db.execute(
            update(FriendLinkApplication)
            .where(FriendLinkApplication.status == "pending", FriendLinkApplication.expires_at < now)
            .values(status="expired", updated_at=now)
        )
        await db.commit()
        return result.rowcount or 0
