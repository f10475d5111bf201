"""意见反馈服务

反馈不入库，校验通过后只生成编号并交给邮件服务通知管理员和用户。
"""
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import ValidationError
from ..domain.validators import validate_email_format
from .verification_service import VerificationCodeService

REQUIRED_FIELDS = ["name", "email", "subject", "content", "verification_code"]
MIN_SUBJECT_LENGTH = 3
MIN_CONTENT_LENGTH = 10


class FeedbackService:

    @staticmethod
    async def submit(db: AsyncSession, data: Dict[str, Any], ip_address: Optional[str] = None,
                     user_agent: Optional[str] = None) -> Dict[str, Any]:
        """
        校验并受理一条反馈

        验证码校验通过即标记为已使用，之后的长度校验失败也需要重新获取验证码。

        Returns:
            反馈数据，包含 id 与 submitted_at
        """
        values = {key: str(data.get(key) or "").strip() for key in REQUIRED_FIELDS}
        if not all(values.values()):
            raise ValidationError("请填写所有必填字段，包括验证码")

        email_check = validate_email_format(values["email"])
        if not email_check["valid"]:
            raise ValidationError(email_check["message"])

        record_id = await VerificationCodeService.verify(
            db, values["email"], values["verification_code"], "feedback"
        )
        if record_id is None:
            raise ValidationError("验证码无效或已过期，请重新获取")
        await VerificationCodeService.mark_used(db, record_id)

        if len(values["subject"]) < MIN_SUBJECT_LENGTH:
            raise ValidationError("反馈主题至少需要3个字符")
        if len(values["content"]) < MIN_CONTENT_LENGTH:
            raise ValidationError("反馈内容至少需要10个字符")

        feedback = {
            "id": str(uuid.uuid4()),
            "name": values["name"],
            "email": values["email"],
            "subject": values["subject"],
            "content": values["content"],
            "ip_address": ip_address,
            "user_agent": user_agent,
            "submitted_at": datetime.now().isoformat(),
        }
        logger.info(f"收到意见反馈: {feedback['subject']} ({feedback['email']})")
        return feedback
