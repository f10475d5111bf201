"""友链申请路由"""
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ...db.database import get_db
from ...db.models import User
from ...domain.errors import ServiceError
from ...services.email_service import send_email_task
from ...services.friend_link_service import FriendLinkService, notification_payload
from .deps import client_ip, ok, require_admin

router = APIRouter()


class ApplyRequest(BaseModel):
    site_name: Optional[str] = None
    site_url: Optional[str] = None
    site_description: Optional[str] = None
    site_icon: Optional[str] = None
    admin_email: Optional[str] = None
    admin_qq: Optional[str] = None


class ProcessRequest(BaseModel):
    admin_note: Optional[str] = None
    add_to_friend_links: bool = True


class BatchRequest(BaseModel):
    ids: List[str] = []
    action: Optional[str] = None
    admin_note: Optional[str] = None


@router.post("/apply", status_code=201)
async def apply(
    payload: ApplyRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """提交友链申请，邮件通知在响应后发送"""
    try:
        application = await FriendLinkService.submit(
            db, payload.model_dump(),
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        background_tasks.add_task(
            send_email_task, "send_friend_link_application_emails", notification_payload(application)
        )
        return ok(
            {
                "id": application.id,
                "status": application.status,
                "expires_at": application.expires_at.isoformat() if application.expires_at else None,
            },
            "友链申请提交成功，我们会在30天内处理您的申请",
        )
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"提交友链申请失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="提交申请失败，请稍后重试")


@router.get("/applications")
async def list_applications(
    page: int = Query(1, ge=1, description="页码"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    status: Optional[str] = Query(None, description="状态，all 表示全部"),
    search: Optional[str] = Query(None, description="搜索网站名称、地址或邮箱"),
    sort_by: str = Query("created_at", description="排序字段"),
    sort_order: str = Query("DESC", description="ASC 或 DESC"),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        data = await FriendLinkService.list_applications(
            db, page=page, limit=limit, status=status, search=search,
            sort_by=sort_by, sort_order=sort_order,
        )
        return ok(data)
    except Exception as e:
        logger.error(f"获取友链申请列表失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取申请列表失败")


@router.get("/applications/stats")
async def application_stats(db: AsyncSession = Depends(get_db), admin: User = Depends(require_admin)):
    try:
        return ok(await FriendLinkService.get_stats(db))
    except Exception as e:
        logger.error(f"获取友链申请统计失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取统计信息失败")


@router.post("/applications/batch")
async def batch_process(
    payload: BatchRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        result = await FriendLinkService.batch_process(
            db, payload.ids, payload.action, admin_id=admin.id, note=payload.admin_note
        )
        for application in result.pop("processed"):
            background_tasks.add_task(
                send_email_task, "send_friend_link_decision_emails",
                notification_payload(application), application.status, payload.admin_note,
            )
        action_label = "通过" if payload.action == "approve" else "拒绝"
        return ok(result, f"批量{action_label}完成，共处理 {result['summary']['processed']} 个申请")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"批量处理友链申请失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="批量处理失败")


@router.get("/applications/{application_id}")
async def get_application(
    application_id: str,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        application = await FriendLinkService.get(db, application_id)
        return ok(application.to_dict())
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"获取友链申请详情失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取申请详情失败")


@router.post("/applications/{application_id}/approve")
async def approve_application(
    application_id: str,
    payload: ProcessRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        application = await FriendLinkService.approve(
            db, application_id, admin_id=admin.id, note=payload.admin_note,
            add_to_friend_links=payload.add_to_friend_links,
        )
        background_tasks.add_task(
            send_email_task, "send_friend_link_decision_emails",
            notification_payload(application), "approved", payload.admin_note,
        )
        return ok(application.to_dict(), "申请已通过")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"通过友链申请失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="处理申请失败")


@router.post("/applications/{application_id}/reject")
async def reject_application(
    application_id: str,
    payload: ProcessRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        application = await FriendLinkService.reject(
            db, application_id, admin_id=admin.id, note=payload.admin_note
        )
        background_tasks.add_task(
            send_email_task, "send_friend_link_decision_emails",
            notification_payload(application), "rejected", payload.admin_note,
        )
        return ok(application.to_dict(), "申请已拒绝")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"拒绝友链申请失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="处理申请失败")


@router.delete("/applications/{application_id}")
async def delete_application(
    application_id: str,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        await FriendLinkService.delete(db, application_id)
        return ok(message="申请已删除")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"删除友链申请失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="删除申请失败")


@router.post("/cleanup-expired")
async def cleanup_expired(db: AsyncSession = Depends(get_db), admin: User = Depends(require_admin)):
    try:
        count = await FriendLinkService.cleanup_expired(db)
        return ok({"expired_count": count}, f"已处理 {count} 个过期申请")
    except Exception as e:
        logger.error(f"清理过期友链申请失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="清理过期申请失败")
