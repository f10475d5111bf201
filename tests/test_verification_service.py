"""邮箱验证码服务测试"""
from datetime import datetime, timedelta

import pytest

from toolbox.domain.errors import ValidationError
from toolbox.services.verification_service import (
    CODE_ALPHABET,
    SEND_INTERVAL_SECONDS,
    VerificationCodeService,
    generate_random_code,
)

EMAIL = "user@example.com"


class TestGenerateCode:

    def test_random_code(self):
        code = generate_random_code()
        assert len(code) == 6
        assert all(c in CODE_ALPHABET for c in code)

    @pytest.mark.asyncio
    async def test_invalid_type(self, session):
        with pytest.raises(ValidationError, match="无效的验证码类型"):
            await VerificationCodeService.generate_code(session, EMAIL, "unknown")


class TestVerify:
    """校验、一次性使用与过期"""

    @pytest.mark.asyncio
    async def test_verify_is_case_insensitive(self, session):
        code = await VerificationCodeService.generate_code(session, EMAIL, "feedback")
        record_id = await VerificationCodeService.verify(session, "USER@example.com", code.lower(), "feedback")
        assert record_id is not None

    @pytest.mark.asyncio
    async def test_wrong_type_or_code(self, session):
        code = await VerificationCodeService.generate_code(session, EMAIL, "feedback")
        assert await VerificationCodeService.verify(session, EMAIL, code, "register") is None
        assert await VerificationCodeService.verify(session, EMAIL, "", "feedback") is None

    @pytest.mark.asyncio
    async def test_consume_only_once(self, session):
        code = await VerificationCodeService.generate_code(session, EMAIL, "register")
        assert await VerificationCodeService.consume(session, EMAIL, code, "register") is True
        assert await VerificationCodeService.consume(session, EMAIL, code, "register") is False

    @pytest.mark.asyncio
    async def test_new_code_invalidates_previous(self, session):
        now = datetime.now()
        first = await VerificationCodeService.generate_code(session, EMAIL, "login", now=now)
        second = await VerificationCodeService.generate_code(
            session, EMAIL, "login", now=now + timedelta(seconds=1)
        )
        if first != second:
            assert await VerificationCodeService.verify(session, EMAIL, first, "login") is None
        assert await VerificationCodeService.verify(session, EMAIL, second, "login") is not None

    @pytest.mark.asyncio
    async def test_expired_code(self, session):
        now = datetime.now()
        code = await VerificationCodeService.generate_code(session, EMAIL, "login", now=now)
        later = now + timedelta(minutes=6)
        assert await VerificationCodeService.verify(session, EMAIL, code, "login", now=later) is None


class TestSendLimitAndCleanup:

    @pytest.mark.asyncio
    async def test_send_interval(self, session):
        now = datetime.now()
        assert (await VerificationCodeService.check_send_limit(session, EMAIL, "login", now=now))["allowed"]

        await VerificationCodeService.generate_code(session, EMAIL, "login", now=now)
        limit = await VerificationCodeService.check_send_limit(
            session, EMAIL, "login", now=now + timedelta(seconds=10)
        )
        assert limit == {"allowed": False, "remaining_time": SEND_INTERVAL_SECONDS - 10 + 1}

        limit = await VerificationCodeService.check_send_limit(
            session, EMAIL, "login", now=now + timedelta(seconds=SEND_INTERVAL_SECONDS)
        )
        assert limit["allowed"]

        # 不同类型互不影响
        other = await VerificationCodeService.check_send_limit(session, EMAIL, "register", now=now)
        assert other["allowed"]

    @pytest.mark.asyncio
    async def test_clean_expired(self, session):
        now = datetime.now()
        await VerificationCodeService.generate_code(session, EMAIL, "login", now=now)
        await VerificationCodeService.generate_code(session, "other@example.com", "login", now=now)
        assert await VerificationCodeService.clean_expired(session, now=now) == 0
        assert await VerificationCodeService.clean_expired(session, now=now + timedelta(minutes=10)) == 2
