"""友链申请服务测试"""
from datetime import datetime, timedelta

import pytest

from toolbox.domain.errors import NotFoundError, ValidationError
from toolbox.services.friend_link_service import FriendLinkService, notification_payload
from toolbox.services.settings_service import SettingsService


def _application(**overrides):
    data = {
        "site_name": "示例博客",
        "site_url": "https://blog.example.com",
        "site_description": "记录前端开发的个人博客",
        "admin_email": "owner@example.com",
        "admin_qq": "123456",
    }
    data.update(overrides)
    return data


class TestSubmit:

    @pytest.mark.asyncio
    async def test_submit_pending(self, session):
        application = await FriendLinkService.submit(session, _application(), ip_address="127.0.0.1")
        assert application.status == "pending"
        assert application.expires_at > datetime.now() + timedelta(days=29)
        assert notification_payload(application)["admin_qq"] == "123456"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides, message", [
        ({"site_description": ""}, "请填写所有必填字段"),
        ({"site_url": "ftp://blog.example.com"}, "网站地址格式不正确"),
        ({"admin_qq": "qq123"}, "QQ号格式不正确"),
        ({"admin_email": "not-an-email"}, "邮箱"),
    ])
    async def test_invalid_fields(self, session, overrides, message):
        with pytest.raises(ValidationError, match=message):
            await FriendLinkService.submit(session, _application(**overrides))

    @pytest.mark.asyncio
    async def test_duplicates(self, session):
        await FriendLinkService.submit(session, _application())
        with pytest.raises(ValidationError, match="该网站已提交过申请"):
            await FriendLinkService.submit(session, _application(admin_email="other@example.com"))
        with pytest.raises(ValidationError, match="该邮箱已提交过申请"):
            await FriendLinkService.submit(session, _application(site_url="https://other.example.com"))

    @pytest.mark.asyncio
    async def test_url_duplicate_reported_before_email(self, session):
        await FriendLinkService.submit(session, _application(
            site_url="https://second.example.com", admin_email="second@example.com",
        ))
        await FriendLinkService.submit(session, _application(admin_email="first@example.com"))
        with pytest.raises(ValidationError, match="该网站已提交过申请"):
            await FriendLinkService.submit(session, _application(admin_email="second@example.com"))

    @pytest.mark.asyncio
    async def test_resubmit_after_reject(self, session):
        application = await FriendLinkService.submit(session, _application())
        await FriendLinkService.reject(session, application.id, note="内容不符")
        again = await FriendLinkService.submit(session, _application())
        assert again.id != application.id


class TestReview:
    """审核通过、拒绝与批量处理"""

    @pytest.mark.asyncio
    async def test_approve_adds_friend_link(self, session):
        application = await FriendLinkService.submit(session, _application())
        approved = await FriendLinkService.approve(session, application.id, admin_id="admin-1", note="欢迎")
        assert approved.status == "approved"
        assert approved.processed_by == "admin-1"
        assert approved.processed_at is not None

        links = await SettingsService.get_value(session, "friend_links")
        assert links[0]["name"] == "示例博客"
        assert links[0]["url"] == "https://blog.example.com"

        with pytest.raises(ValidationError, match="只能处理待审核的申请"):
            await FriendLinkService.reject(session, application.id)

    @pytest.mark.asyncio
    async def test_friend_link_not_duplicated(self, session):
        application = await FriendLinkService.submit(session, _application())
        assert await FriendLinkService.add_to_friend_links(session, application) is True
        assert await FriendLinkService.add_to_friend_links(session, application) is False

    @pytest.mark.asyncio
    async def test_approve_missing(self, session):
        with pytest.raises(NotFoundError):
            await FriendLinkService.approve(session, "missing")

    @pytest.mark.asyncio
    async def test_batch_process(self, session):
        first = await FriendLinkService.submit(session, _application())
        second = await FriendLinkService.submit(session, _application(
            site_url="https://second.example.com", admin_email="second@example.com", site_name="第二个站点",
        ))
        await FriendLinkService.reject(session, second.id)

        result = await FriendLinkService.batch_process(session, [first.id, second.id, "missing"], "approve")
        assert result["summary"] == {"total": 3, "processed": 1, "skipped": 2}
        assert result["results"][0]["status"] == "approved"

        with pytest.raises(ValidationError, match="请选择要处理的申请"):
            await FriendLinkService.batch_process(session, [], "approve")
        with pytest.raises(ValidationError, match="操作类型不正确"):
            await FriendLinkService.batch_process(session, [first.id], "delete")
        with pytest.raises(ValidationError, match="没有找到可处理的申请"):
            await FriendLinkService.batch_process(session, [first.id], "reject")


class TestListingAndExpiry:

    @pytest.mark.asyncio
    async def test_list_and_stats(self, session):
        await FriendLinkService.submit(session, _application())
        other = await FriendLinkService.submit(session, _application(
            site_url="https://tools.example.org", admin_email="tools@example.org", site_name="工具站",
        ))
        await FriendLinkService.reject(session, other.id)

        result = await FriendLinkService.list_applications(session, status="pending")
        assert [a["site_name"] for a in result["applications"]] == ["示例博客"]
        assert result["pagination"]["total"] == 1
        assert result["pagination"]["has_next"] is False

        result = await FriendLinkService.list_applications(session, search="tools", limit=1)
        assert result["pagination"]["total_pages"] == 1

        stats = await FriendLinkService.get_stats(session)
        assert stats["pending"] == 1
        assert stats["rejected"] == 1
        assert stats["total"] == 2
        assert stats["recent_week"] == 2

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, session):
        application = await FriendLinkService.submit(session, _application())
        assert await FriendLinkService.cleanup_expired(session) == 0
        later = datetime.now() + timedelta(days=31)
        assert await FriendLinkService.cleanup_expired(session, now=later) == 1
        await session.refresh(application)
        assert application.status == "expired"
        assert application.is_expired(later)
