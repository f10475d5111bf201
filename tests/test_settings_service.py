"""系统设置服务测试"""
import pytest

from toolbox.domain.errors import NotFoundError, ValidationError
from toolbox.services.email_service import EmailService
from toolbox.services.settings_service import (
    DEFAULT_SETTINGS,
    DEFAULT_SITE_NAME,
    SettingsService,
    category_for,
    convert_value,
    serialize_value,
)


class TestValueConversion:

    def test_convert(self):
        assert convert_value("42", "number") == 42
        assert convert_value("1.5", "number") == 1.5
        assert convert_value("abc", "number") is None
        assert convert_value("true", "boolean") is True
        assert convert_value("false", "boolean") is False
        assert convert_value('{"a": 1}', "json") == {"a": 1}
        assert convert_value("{bad", "json") is None
        assert convert_value("", "string") is None
        assert convert_value("hello", "string") == "hello"

    def test_serialize(self):
        assert serialize_value(True, "boolean") == "true"
        assert serialize_value(" TRUE ", "boolean") == "true"
        assert serialize_value("no", "boolean") == "false"
        assert serialize_value("465", "number") == "465"
        assert serialize_value(2.5, "number") == "2.5"
        assert serialize_value([{"name": "链接"}], "json") == '[{"name": "链接"}]'
        assert serialize_value(None, "string") == ""
        with pytest.raises(ValidationError):
            serialize_value("abc", "number")

    def test_category_for(self):
        assert category_for("site_name") == "website"
        assert category_for("smtp_host") == "email"
        assert category_for("custom_flag") == "general"


class TestSettingsService:
    """设置读写、公开范围与批量更新"""

    @pytest.mark.asyncio
    async def test_ensure_defaults_once(self, session):
        assert await SettingsService.ensure_defaults(session) == len(DEFAULT_SETTINGS)
        assert await SettingsService.ensure_defaults(session) == 0
        assert await SettingsService.get_value(session, "smtp_port") == 587
        assert await SettingsService.get_value(session, "email_enabled") is False

    @pytest.mark.asyncio
    async def test_public_settings_exclude_email(self, seeded_session):
        public = await SettingsService.get_public(seeded_session)
        assert public["site_name"] == DEFAULT_SITE_NAME
        assert "smtp_pass" not in public
        assert "email_enabled" not in public

    @pytest.mark.asyncio
    async def test_grouped_settings(self, seeded_session):
        grouped = await SettingsService.get_all(seeded_session)
        assert set(grouped) >= {"website", "email", "general"}
        assert grouped["email"]["smtp_port"]["value"] == 587
        email_only = await SettingsService.get_all(seeded_session, "email")
        assert "smtp_host" in email_only and "site_name" not in email_only

    @pytest.mark.asyncio
    async def test_set_and_get(self, session):
        result = await SettingsService.set_value(session, "show_icp", "true", "boolean")
        assert result == {"setting_key": "show_icp", "setting_value": True, "setting_type": "boolean"}
        assert await SettingsService.get_value(session, "show_icp") is True
        assert await SettingsService.get_value(session, "missing", "fallback") == "fallback"
        with pytest.raises(ValidationError):
            await SettingsService.set_value(session, "x", "1", "float")

    @pytest.mark.asyncio
    async def test_website_info_defaults(self, session):
        info = await SettingsService.get_website_info(session)
        assert info["site_name"] == DEFAULT_SITE_NAME
        assert info["friend_links"] == []
        assert info["show_icp"] is False

    @pytest.mark.asyncio
    async def test_set_many_is_atomic(self, session):
        with pytest.raises(ValidationError):
            await SettingsService.set_many(session, [
                {"setting_key": "a_number", "setting_value": "1", "setting_type": "number"},
                {"setting_key": "b_number", "setting_value": "not a number", "setting_type": "number"},
            ])
        assert await SettingsService.get_value(session, "a_number") is None

        results = await SettingsService.set_many(session, [
            {"setting_key": "site_name", "setting_value": "新站点"},
            {"setting_value": "缺少键的项被忽略"},
            {"setting_key": "smtp_port", "setting_value": 465, "setting_type": "number"},
        ])
        assert [r["setting_key"] for r in results] == ["site_name", "smtp_port"]
        assert await SettingsService.get_value(session, "site_name") == "新站点"

    @pytest.mark.asyncio
    async def test_delete(self, session):
        await SettingsService.set_value(session, "temp", "x")
        await SettingsService.delete(session, "temp")
        with pytest.raises(NotFoundError):
            await SettingsService.delete(session, "temp")

    @pytest.mark.asyncio
    async def test_smtp_config(self, session):
        await SettingsService.set_many(session, [
            {"setting_key": "smtp_host", "setting_value": "smtp.example.com"},
            {"setting_key": "smtp_port", "setting_value": 465, "setting_type": "number"},
            {"setting_key": "smtp_user", "setting_value": "bot@example.com"},
            {"setting_key": "smtp_pass", "setting_value": "secret"},
            {"setting_key": "email_enabled", "setting_value": True, "setting_type": "boolean"},
        ])
        config = await SettingsService.get_smtp_config(session)
        assert config.is_complete
        assert config.enabled
        assert config.use_ssl
        assert config.from_name == DEFAULT_SITE_NAME

    @pytest.mark.asyncio
    async def test_email_service_is_configured(self, session):
        service = EmailService(session)
        assert await service.is_configured() is False

        await SettingsService.set_many(session, [
            {"setting_key": "smtp_host", "setting_value": "smtp.example.com"},
            {"setting_key": "smtp_user", "setting_value": "bot@example.com"},
            {"setting_key": "smtp_pass", "setting_value": "secret"},
        ])
        assert await service.is_configured() is False

        await SettingsService.set_value(session, "email_enabled", True, "boolean")
        assert await service.is_configured() is True
