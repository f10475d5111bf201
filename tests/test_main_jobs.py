"""定时清理任务测试"""
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from toolbox import main
from toolbox.db.models import FriendLinkApplication, VerificationCode


class TestCleanupJobs:

    @pytest.mark.asyncio
    async def test_expired_applications(self, session):
        session.add(FriendLinkApplication(
            site_name="过期站点",
            site_url="https://old.example.com",
            site_description="已经过期的申请",
            admin_email="old@example.com",
            expires_at=datetime.now() - timedelta(days=1),
        ))
        session.add(FriendLinkApplication(
            site_name="有效站点",
            site_url="https://new.example.com",
            site_description="仍在有效期内的申请",
            admin_email="new@example.com",
        ))
        await session.commit()

        assert await main.cleanup_expired_applications() == 1
        assert await main.cleanup_expired_applications() == 0

    @pytest.mark.asyncio
    async def test_verification_codes(self, session):
        now = datetime.now()
        session.add(VerificationCode(
            email="a@example.com", code_hash="x", type="login",
            expires_at=now - timedelta(minutes=1), created_at=now - timedelta(minutes=6),
        ))
        await session.commit()
        assert await main.cleanup_verification_codes() == 1

    @pytest.mark.asyncio
    async def test_failures_return_zero(self, session):
        with patch.object(main.FriendLinkService, "cleanup_expired", new=AsyncMock(side_effect=RuntimeError("db down"))):
            assert await main.cleanup_expired_applications() == 0
        with patch.object(main.VerificationCodeService, "clean_expired", new=AsyncMock(side_effect=RuntimeError("db down"))):
            assert await main.cleanup_verification_codes() == 0
