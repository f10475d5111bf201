"""邮件路由：验证码、测试邮件、群发与模板管理"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ...db.database import get_db
from ...db.models import CODE_TYPES, User
from ...domain.errors import ServiceError, TooManyRequestsError, ValidationError
from ...domain.validators import validate_email_format
from ...services.email_service import EmailService
from ...services.settings_service import SettingsService
from ...services.verification_service import EXPIRY_MINUTES, VerificationCodeService
from .deps import client_ip, ok, require_admin

router = APIRouter()

CODE_RE = re.compile(r"^[0-9A-Z]{6}$")


class SendCodeRequest(BaseModel):
    email: Optional[str] = None
    type: Optional[str] = None


class VerifyCodeRequest(BaseModel):
    email: Optional[str] = None
    code: Optional[str] = None
    type: Optional[str] = None


class TestEmailRequest(BaseModel):
    to: Optional[str] = None
    subject: Optional[str] = None
    text: Optional[str] = None


class BulkEmailRequest(BaseModel):
    recipients: List[str] = []
    subject: Optional[str] = None
    html: Optional[str] = None
    text: Optional[str] = None


class TemplateRequest(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    html: Optional[str] = None
    text: Optional[str] = None
    is_active: bool = True


class TemplateSendRequest(BaseModel):
    to: Optional[str] = None
    context: Dict[str, Any] = {}


def _check_email_and_type(email: Optional[str], code_type: Optional[str]) -> str:
    email = (email or "").strip().lower()
    if not validate_email_format(email)["valid"]:
        raise ValidationError("请输入有效的邮箱地址")
    if code_type not in CODE_TYPES:
        raise ValidationError("验证码类型无效")
    return email


@router.post("/send-verification")
async def send_verification(
    payload: SendCodeRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """发送邮箱验证码，同一邮箱同一类型 60 秒内只能发送一次"""
    try:
        email = _check_email_and_type(payload.email, payload.type)
        if not await SettingsService.get_value(db, "email_enabled", False):
            raise ValidationError("邮件功能未启用，请联系管理员")

        limit = await VerificationCodeService.check_send_limit(db, email, payload.type)
        if not limit["allowed"]:
            raise TooManyRequestsError(f"请等待 {limit['remaining_time']} 秒后再次发送")

        code = await VerificationCodeService.generate_code(
            db, email, payload.type, ip_address=client_ip(request)
        )
        if not await EmailService(db).send_verification_code(email, code, payload.type):
            raise HTTPException(status_code=500, detail="验证码发送失败")
        return ok({"email": email, "expires_in": EXPIRY_MINUTES * 60}, "验证码发送成功")
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"发送验证码失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="发送验证码失败")


@router.post("/verify-code")
async def verify_code(payload: VerifyCodeRequest, db: AsyncSession = Depends(get_db)):
    try:
        email = _check_email_and_type(payload.email, payload.type)
        code = (payload.code or "").strip().upper()
        if not CODE_RE.match(code):
            raise ValidationError("验证码必须是6位数字或大写字母")
        if not await VerificationCodeService.consume(db, email, code, payload.type):
            raise ValidationError("验证码无效或已过期")
        return ok(
            {"email": email, "type": payload.type, "verified_at": datetime.now().isoformat()},
            "验证码验证成功",
        )
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"验证码验证失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="验证码验证失败")


@router.get("/status")
async def email_status(db: AsyncSession = Depends(get_db)):
    try:
        return ok(await EmailService(db).status())
    except Exception as e:
        logger.error(f"获取邮箱状态失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取邮箱状态失败")


@router.post("/test")
async def send_test_email(
    payload: TestEmailRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """发送测试邮件，未指定收件人时发给发件人邮箱"""
    try:
        service = EmailService(db)
        config = await service.get_config()
        if not config.enabled:
            raise ValidationError("邮件功能未启用，请先在系统设置中启用并配置邮件服务")
        to = (payload.to or "").strip() or config.from_email or config.user
        if not to:
            raise ValidationError("请指定收件人邮箱")
        if payload.subject and len(payload.subject) > 100:
            raise ValidationError("邮件主题不能超过100个字符")
        await service.send_test_email(to, payload.subject, payload.text)
        return ok({"to": to}, "测试邮件发送成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"发送测试邮件失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"发送测试邮件失败: {e}")


@router.post("/bulk")
async def send_bulk(
    payload: BulkEmailRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        log = await EmailService(db).send_bulk(
            payload.recipients, payload.subject, payload.html, payload.text, sent_by=admin.id
        )
        return ok(log.to_dict(), f"发送完成：成功 {log.success_count} 封，失败 {log.fail_count} 封")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"群发邮件失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="群发邮件失败")


@router.get("/logs")
async def email_logs(
    limit: int = Query(50, ge=1, le=200, description="数量"),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        logs = await EmailService(db).list_logs(limit)
        return ok({"logs": [log.to_dict() for log in logs]})
    except Exception as e:
        logger.error(f"获取邮件日志失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取邮件日志失败")


@router.get("/templates")
async def list_templates(db: AsyncSession = Depends(get_db), admin: User = Depends(require_admin)):
    try:
        templates = await EmailService(db).list_templates()
        return ok({"templates": [t.to_dict() for t in templates]})
    except Exception as e:
        logger.error(f"获取邮件模板失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取邮件模板失败")


@router.put("/templates")
async def save_template(
    payload: TemplateRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        template = await EmailService(db).save_template(payload.model_dump())
        return ok(template.to_dict(), "模板保存成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"保存邮件模板失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="保存邮件模板失败")


@router.delete("/templates/{name}")
async def delete_template(name: str, db: AsyncSession = Depends(get_db), admin: User = Depends(require_admin)):
    try:
        await EmailService(db).delete_template(name)
        return ok(message="模板删除成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"删除邮件模板失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="删除邮件模板失败")


@router.post("/templates/{name}/send")
async def send_with_template(
    name: str,
    payload: TemplateSendRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        if not payload.to or not validate_email_format(payload.to)["valid"]:
            raise ValidationError("收件人邮箱地址无效")
        sent = await EmailService(db).send_with_template(name, payload.to, payload.context)
        if not sent:
            raise HTTPException(status_code=500, detail="邮件发送失败，请检查邮件配置")
        return ok({"to": payload.to}, "邮件发送成功")
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"使用模板发送邮件失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="邮件发送失败")
