"""邮件服务：根据系统设置发送各类通知邮件"""
import asyncio
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import EmailLog, EmailTemplate
from ..domain.errors import NotFoundError, ValidationError
from ..domain.validators import validate_email_format
from ..infrastructure.mailer import SmtpConfig, SmtpMailer
from . import email_templates
from .settings_service import DEFAULT_SITE_NAME, SettingsService
from .verification_service import CODE_TYPE_NAMES, EXPIRY_MINUTES


class EmailService:
    """
    邮件发送入口

    SMTP 配置在每次发送前从 system_settings 读取，后台修改后立即生效。
    实际的 SMTP 交互在线程中执行，避免阻塞事件循环。
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_config(self) -> SmtpConfig:
        return await SettingsService.get_smtp_config(self.db)

    async def _site_context(self) -> Dict[str, str]:
        values = await SettingsService.get_values(self.db, ["site_name", "site_url"])
        return {
            "site_name": values.get("site_name") or DEFAULT_SITE_NAME,
            "site_url": values.get("site_url") or "",
        }

    async def is_configured(self) -> bool:
        """邮件已启用且 SMTP 配置完整"""
        config = await self.get_config()
        return config.enabled and config.is_complete

    async def status(self) -> Dict[str, Any]:
        config = await self.get_config()
        return {
            "enabled": config.enabled,
            "configured": config.is_complete,
            "host": config.host,
            "port": config.port,
            "secure": config.use_ssl or config.use_starttls,
            "from": config.sender_address,
        }

    async def admin_recipient(self) -> Optional[str]:
        config = await self.get_config()
        return os.getenv("ADMIN_EMAIL") or config.from_email or config.user

    async def _deliver(self, to: List[str], subject: str, html: str,
                       text: Optional[str] = None, config: Optional[SmtpConfig] = None) -> None:
        config = config or await self.get_config()
        mailer = SmtpMailer(config)
        await asyncio.to_thread(mailer.send, to, subject, html, text)

    async def send_mail(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        """
        发送单封邮件，邮件功能未启用或发送失败时返回 False
        """
        config = await self.get_config()
        if not config.enabled:
            logger.info(f"邮件未启用（email_enabled = false），跳过发送: {subject}")
            return False
        if not config.is_complete:
            logger.warning(f"SMTP 配置不完整，无法发送邮件: {subject}")
            return False
        try:
            await self._deliver([to], subject, html, text, config=config)
            return True
        except Exception as e:
            logger.error(f"发送邮件失败 {subject} -> {to}: {e}", exc_info=True)
            return False

    async def send_verification_code(self, to: str, code: str, code_type: str) -> bool:
        site = await self._site_context()
        type_name = CODE_TYPE_NAMES.get(code_type, "")
        subject, html = email_templates.render(
            "verification_code.html",
            {"type_name": type_name, "site_name": site["site_name"]},
            code=code,
            type_name=type_name,
            expiry_minutes=EXPIRY_MINUTES,
            **site,
        )
        return await self.send_mail(to, subject, html)

    async def send_test_email(self, to: str, subject: Optional[str] = None,
                              message: Optional[str] = None) -> None:
        """
        发送测试邮件，不检查 email_enabled，失败时直接抛出异常便于排查配置
        """
        config = await self.get_config()
        if not config.is_complete:
            raise ValidationError("SMTP 配置不完整，请先填写服务器、用户名和密码")
        site = await self._site_context()
        default_subject, html = email_templates.render(
            "test_email.html",
            {"site_name": site["site_name"]},
            message=message or "如果您收到这封邮件，说明邮件服务配置正确。",
            sent_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            **site,
        )
        await self._deliver([to], subject or default_subject, html, config=config)
        logger.info(f"测试邮件已发送: {to}")

    async def send_friend_link_application_emails(self, application: Dict[str, Any]) -> Dict[str, bool]:
        """友链申请：管理员通知 + 申请人回执"""
        site = await self._site_context()
        site_label = application.get("site_name", "")
        result = {"admin": False, "applicant": False}

        admin_to = await self.admin_recipient()
        if admin_to:
            subject, html = email_templates.render(
                "friend_link_admin.html", {"site_label": site_label}, app=application, **site
            )
            result["admin"] = await self.send_mail(admin_to, subject, html)
        else:
            logger.warning("未找到管理员接收邮箱，跳过友链申请管理员通知")

        if application.get("admin_email"):
            subject, html = email_templates.render(
                "friend_link_receipt.html", {"site_name": site["site_name"]}, app=application, **site
            )
            result["applicant"] = await self.send_mail(application["admin_email"], subject, html)
        return result

    async def send_friend_link_decision_emails(self, application: Dict[str, Any], decision: str,
                                               note: Optional[str] = None) -> Dict[str, bool]:
        """友链审核结果：管理员记录 + 申请人通知"""
        site = await self._site_context()
        approved = decision == "approved"
        subject_vars = {
            "site_name": site["site_name"],
            "site_label": application.get("site_name", ""),
            "decision_label": "通过" if approved else "拒绝",
            "decision_label_applicant": "通过" if approved else "被拒绝",
        }
        result = {"admin": False, "applicant": False}

        admin_to = await self.admin_recipient()
        if admin_to:
            subject, html = email_templates.render(
                "friend_link_decision_admin.html", subject_vars,
                app=application, approved=approved, note=note or "", **site,
            )
            result["admin"] = await self.send_mail(admin_to, subject, html)

        if application.get("admin_email"):
            subject, html = email_templates.render(
                "friend_link_decision_applicant.html", subject_vars,
                app=application, approved=approved, note=note or "", **site,
            )
            result["applicant"] = await self.send_mail(application["admin_email"], subject, html)
        return result

    async def send_feedback_emails(self, feedback: Dict[str, Any]) -> Dict[str, bool]:
        """意见反馈：管理员通知 + 用户确认"""
        site = await self._site_context()
        result = {"admin": False, "user": False}

        admin_to = await self.admin_recipient()
        if admin_to:
            subject, html = email_templates.render(
                "feedback_admin.html", {"feedback_subject": feedback["subject"]},
                feedback=feedback, **site,
            )
            result["admin"] = await self.send_mail(admin_to, subject, html)

        subject, html = email_templates.render(
            "feedback_success.html", {"site_name": site["site_name"]}, feedback=feedback, **site
        )
        result["user"] = await self.send_mail(feedback["email"], subject, html)
        return result

    async def send_bulk(self, recipients: List[str], subject: str, html: str,
                        text: Optional[str] = None, sent_by: Optional[str] = None) -> EmailLog:
        """
        群发邮件并记录发送日志

        每个收件人单独发送，全部成功记为 success，部分失败记为 partial。
        """
        recipients = list(dict.fromkeys(r.strip().lower() for r in recipients if r and r.strip()))
        if not recipients:
            raise ValidationError("收件人不能为空")
        invalid = [r for r in recipients if not validate_email_format(r)["valid"]]
        if invalid:
            raise ValidationError(f"以下邮箱格式不正确: {', '.join(invalid)}")
        if not subject or not html:
            raise ValidationError("邮件主题和内容不能为空")

        config = await self.get_config()
        success, errors = 0, []
        if not config.is_complete:
            errors.append("SMTP 配置不完整")
        else:
            for to in recipients:
                try:
                    await self._deliver([to], subject, html, text, config=config)
                    success += 1
                except Exception as e:
                    logger.error(f"群发邮件失败 -> {to}: {e}")
                    errors.append(f"{to}: {e}")

        failed = len(recipients) - success
        status = "success" if failed == 0 else "failed" if success == 0 else "partial"
        log = EmailLog(
            recipients=recipients,
            subject=subject,
            html=html,
            text=text,
            status=status,
            success_count=success,
            fail_count=failed,
            error="\n".join(errors) or None,
            sent_by=sent_by,
        )
        self.db.add(log)
        await self.db.commit()
        await self.db.refresh(log)
        logger.info(f"群发邮件完成: {subject}，成功 {success}，失败 {failed}")
        return log

    async def list_logs(self, limit: int = 50) -> List[EmailLog]:
        return list((await self.db.scalars(
            select(EmailLog).order_by(EmailLog.created_at.desc(), EmailLog.id.desc()).limit(limit)
        )).all())

    async def list_templates(self) -> List[EmailTemplate]:
        return list((await self.db.scalars(select(EmailTemplate).order_by(EmailTemplate.name))).all())

    async def save_template(self, data: Dict[str, Any]) -> EmailTemplate:
        name = (data.get("name") or "").strip()
        if not name or not data.get("subject") or not data.get("html"):
            raise ValidationError("模板名称、主题和内容不能为空")
        template = await self.db.scalar(select(EmailTemplate).where(EmailTemplate.name == name))
        if template is None:
            template = EmailTemplate(name=name)
            self.db.add(template)
        template.subject = data["subject"]
        template.html = data["html"]
        template.text = data.get("text")
        template.is_active = data.get("is_active", True)
        await self.db.commit()
        await self.db.refresh(template)
        return template

    async def delete_template(self, name: str) -> None:
        template = await self.db.scalar(select(EmailTemplate).where(EmailTemplate.name == name))
        if template is None:
            raise NotFoundError("邮件模板不存在")
        await self.db.delete(template)
        await self.db.commit()

    async def send_with_template(self, name: str, to: str, context: Dict[str, Any]) -> bool:
        template = await self.db.scalar(select(EmailTemplate).where(
            EmailTemplate.name == name, EmailTemplate.is_active.is_(True)
        ))
        if template is None:
            raise NotFoundError("邮件模板不存在或未启用")
        site = await self._site_context()
        subject, html = email_templates.render_custom(template.subject, template.html, {**site, **context})
        return await self.send_mail(to, subject, html)


async def send_email_task(method: str, *args: Any, **kwargs: Any) -> None:
    """
    后台邮件任务，使用独立的数据库会话

    请求结束后请求内的会话已关闭，所以这里重新打开一个。
    """
    from ..db.database import AsyncSessionLocal

    async with AsyncSessionLocal() as session:
        try:
            await getattr(EmailService(session), method)(*args, **kwargs)
        except Exception as e:
            logger.error(f"后台邮件任务失败 {method}: {e}", exc_info=True)
