"""意见反馈路由"""
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ...db.database import get_db
from ...domain.errors import ServiceError
from ...services.email_service import send_email_task
from ...services.feedback_service import FeedbackService
from .deps import client_ip, ok

router = APIRouter()


class FeedbackRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    subject: Optional[str] = None
    content: Optional[str] = None
    verification_code: Optional[str] = None


@router.post("/submit", status_code=201)
async def submit_feedback(
    payload: FeedbackRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """提交反馈：管理员通知和用户确认邮件在响应后发送"""
    try:
        feedback = await FeedbackService.submit(
            db, payload.model_dump(),
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        background_tasks.add_task(send_email_task, "send_feedback_emails", feedback)
        return ok(
            {"id": feedback["id"], "submitted_at": feedback["submitted_at"]},
            "意见反馈提交成功，我们会认真对待您的反馈",
        )
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"提交意见反馈失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="提交反馈失败，请稍后重试")
