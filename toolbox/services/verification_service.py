"""邮箱验证码服务"""
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import CODE_TYPES, VerificationCode
from ..domain.errors import ValidationError
from ..infrastructure.security import hash_password, verify_password

CODE_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
CODE_LENGTH = 6
EXPIRY_MINUTES = 5
SEND_INTERVAL_SECONDS = 60
RETENTION_HOURS = 24

CODE_TYPE_NAMES = {
    "register": "注册",
    "login": "登录",
    "reset_password": "重置密码",
    "email_change": "更换邮箱",
    "feedback": "意见反馈",
}


def generate_random_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _check_type(code_type: str) -> None:
    if code_type not in CODE_TYPES:
        raise ValidationError("无效的验证码类型")


class VerificationCodeService:
    """验证码的生成、校验、频率限制与清理"""

    @staticmethod
    async def clean_expired(db: AsyncSession, now: Optional[datetime] = None) -> int:
        """删除已过期或超过 24 小时的验证码"""
        now = now or datetime.now()
        result = await db.execute(delete(VerificationCode).where(or_(
            VerificationCode.expires_at < now,
            VerificationCode.created_at < now - timedelta(hours=RETENTION_HOURS),
        )))
        await db.commit()
        return result.rowcount or 0

    @staticmethod
    async def check_send_limit(db: AsyncSession, email: str, code_type: str,
                               now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        检查是否允许再次发送

        Returns:
            {"allowed": bool, "remaining_time": 剩余等待秒数}
        """
        now = now or datetime.now()
        last_sent = await db.scalar(
            select(VerificationCode.created_at)
            .where(VerificationCode.email == email.lower(), VerificationCode.type == code_type)
            .order_by(VerificationCode.created_at.desc())
            .limit(1)
        )
        if last_sent is None:
            return {"allowed": True, "remaining_time": 0}
        elapsed = (now - last_sent).total_seconds()
        if elapsed >= SEND_INTERVAL_SECONDS:
            return {"allowed": True, "remaining_time": 0}
        return {"allowed": False, "remaining_time": int(SEND_INTERVAL_SECONDS - elapsed) + 1}

    @staticmethod
    async def generate_code(db: AsyncSession, email: str, code_type: str,
                            ip_address: Optional[str] = None,
                            now: Optional[datetime] = None) -> str:
        """生成新验证码并作废此前未使用的验证码，返回明文验证码"""
        _check_type(code_type)
        now = now or datetime.now()
        email = email.lower()

        await VerificationCodeService.clean_expired(db, now=now)
        await db.execute(
            update(VerificationCode)
            .where(
                VerificationCode.email == email,
                VerificationCode.type == code_type,
                VerificationCode.is_used.is_(False),
            )
            .values(is_used=True)
        )

        code = generate_random_code()
        db.add(VerificationCode(
            email=email,
            code_hash=hash_password(code),
            type=code_type,
            expires_at=now + timedelta(minutes=EXPIRY_MINUTES),
            is_used=False,
            ip_address=ip_address,
            created_at=now,
        ))
        await db.commit()
        logger.info(f"验证码生成成功: {email} - {code_type}")
        return code

    @staticmethod
    async def verify(db: AsyncSession, email: str, code: str, code_type: str,
                     now: Optional[datetime] = None) -> Optional[int]:
        """
        校验验证码，最新的记录优先

        Returns:
            匹配记录的 ID，未匹配返回 None
        """
        if not email or not code:
            return None
        now = now or datetime.now()
        records = (await db.scalars(
            select(VerificationCode)
            .where(
                VerificationCode.email == email.lower(),
                VerificationCode.type == code_type,
                VerificationCode.is_used.is_(False),
                VerificationCode.expires_at > now,
            )
            .order_by(VerificationCode.created_at.desc(), VerificationCode.id.desc())
        )).all()

        normalized = code.strip().upper()
        for record in records:
            if verify_password(record.code_hash, normalized):
                return record.id

        logger.info(f"验证码验证失败: {email} - {code_type}")
        return None

    @staticmethod
    async def mark_used(db: AsyncSession, record_id: int, now: Optional[datetime] = None) -> None:
        await db.execute(
            update(VerificationCode)
            .where(VerificationCode.id == record_id, VerificationCode.is_used.is_(False))
            .values(is_used=True, used_at=now or datetime.now())
        )
        await db.commit()

    @staticmethod
    async def consume(db: AsyncSession, email: str, code: str, code_type: str) -> bool:
        """校验通过后立即标记为已使用"""
        record_id = await VerificationCodeService.verify(db, email, code, code_type)
        if record_id is None:
            return False
        await VerificationCodeService.mark_used(db, record_id)
        return True
