"""基础设施测试：配置、令牌、HTTP 重试、调度器、邮件构建"""
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from toolbox.config_loader import CleanupSchedule, load_app_settings, load_cleanup_schedule
from toolbox.infrastructure.http_retry import fetch_with_retry, retry_delay
from toolbox.infrastructure.logging import scheduler_filter, setup_logging
from toolbox.infrastructure.mailer import SmtpConfig, SmtpMailer, html_to_text
from toolbox.infrastructure.scheduler import CleanupJob, SchedulerManager
from toolbox.infrastructure.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


class TestAppSettings:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        monkeypatch.setenv("FRONTEND_URL", "https://tools.example.com/")
        monkeypatch.setenv("FRONTEND_URLS", "https://a.example.com, https://b.example.com")
        monkeypatch.setenv("TOKEN_MAX_AGE", "60")
        monkeypatch.setenv("SITE_BASE_URL", "https://site.example.com/")
        settings = load_app_settings()
        assert settings.cors_origins == [
            "https://tools.example.com", "https://a.example.com", "https://b.example.com",
        ]
        assert settings.token_max_age == 60
        assert settings.site_base_url == "https://site.example.com"

    def test_development_adds_local_origins(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "development")
        monkeypatch.delenv("FRONTEND_URL", raising=False)
        monkeypatch.delenv("FRONTEND_URLS", raising=False)
        assert "http://localhost:5173" in load_app_settings().cors_origins

    def test_invalid_int_falls_back(self, monkeypatch):
        monkeypatch.setenv("TOKEN_MAX_AGE", "abc")
        assert load_app_settings().token_max_age == 8 * 60 * 60


class TestCleanupSchedule:
    """清理任务配置读取"""

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_cleanup_schedule(tmp_path / "missing.json") == CleanupSchedule()

    def test_invalid_cron_falls_back(self, tmp_path):
        path = tmp_path / "schedule.json"
        path.write_text(json.dumps({
            "friend_link_cleanup_cron": "0 4 * * *",
            "verification_cleanup_cron": "every hour",
        }), encoding="utf-8")
        schedule = load_cleanup_schedule(path)
        assert schedule.friend_link_cleanup_cron == "0 4 * * *"
        assert schedule.verification_cleanup_cron == CleanupSchedule().verification_cleanup_cron

    def test_broken_json(self, tmp_path):
        path = tmp_path / "schedule.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_cleanup_schedule(path) == CleanupSchedule()

    def test_bundled_config(self):
        schedule = load_cleanup_schedule()
        assert len(schedule.friend_link_cleanup_cron.split()) == 5


class TestSecurity:

    def test_token_round_trip(self):
        token = create_access_token(secret_key="s1", user_id="u-1", role="admin")
        payload = decode_access_token(secret_key="s1", token=token)
        assert payload == {"user_id": "u-1", "role": "admin"}

    def test_wrong_secret_or_expired(self):
        token = create_access_token(secret_key="s1", user_id="u-1", role="user")
        assert decode_access_token(secret_key="s2", token=token) is None
        assert decode_access_token(secret_key="s1", token=token, max_age_seconds=-1) is None
        assert decode_access_token(secret_key="s1", token="garbage") is None

    def test_password_hash(self):
        hashed = hash_password("admin123")
        assert hashed != "admin123"
        assert verify_password(hashed, "admin123")
        assert not verify_password(hashed, "wrong")
        assert not verify_password(None, "admin123")


class TestHttpRetry:
    """指数退避重试"""

    def test_retry_delay(self):
        assert [retry_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 5.0]

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(500)
            return httpx.Response(200, json={"ok": True})

        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            resp = await fetch_with_retry("GET", "https://example.com/api", client=client, sleep=fake_sleep)
        assert resp.json() == {"ok": True}
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_raises_last_error(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(503)

        async def fake_sleep(seconds):
            pass

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await fetch_with_retry("GET", "https://example.com", retries=1,
                                       client=client, sleep=fake_sleep)
        assert len(attempts) == 2


class TestSchedulerManager:
    """清理任务的注册与关闭"""

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self):
        async def job():
            return 0

        manager = SchedulerManager()
        manager.start([
            CleanupJob("friend_link_cleanup", "友链过期清理", job, "0 3 * * *"),
            CleanupJob("verification_cleanup", "验证码清理", job, "0 * * * *"),
        ])
        try:
            assert manager.running
            assert sorted(manager.job_ids()) == ["friend_link_cleanup", "verification_cleanup"]
        finally:
            manager.shutdown(wait=False)
        assert not manager.running
        assert manager.job_ids() == []

    @pytest.mark.asyncio
    async def test_restart_replaces_previous_scheduler(self):
        async def job():
            return 0

        manager = SchedulerManager()
        manager.start([CleanupJob("a", "任务A", job, "0 3 * * *")])
        manager.start([CleanupJob("b", "任务B", job, "0 4 * * *")])
        try:
            assert manager.job_ids() == ["b"]
        finally:
            manager.shutdown(wait=False)

    def test_invalid_cron(self):
        manager = SchedulerManager()
        with pytest.raises(ValueError):
            manager.start([CleanupJob("bad", "错误任务", lambda: None, "not a cron")])
        assert not manager.running

    def test_scheduler_log_filter(self):
        assert scheduler_filter({"message": "[友链清理] 已处理 1 个"})
        assert not scheduler_filter({"message": "普通日志"})


class TestLogging:

    def test_file_sinks(self, tmp_path):
        from loguru import logger

        sink_ids = setup_logging(tmp_path)
        try:
            logger.info("[验证码清理] 已删除 2 条过期验证码")
            logger.error("数据库连接失败")
        finally:
            for sink_id in sink_ids:
                logger.remove(sink_id)

        names = sorted(p.name.split("_")[0] for p in tmp_path.glob("*.log"))
        assert names == ["app", "error", "scheduler"]
        scheduler_log = next(tmp_path.glob("scheduler_*.log")).read_text(encoding="utf-8")
        assert "[验证码清理]" in scheduler_log
        assert "数据库连接失败" not in scheduler_log


class TestMailer:

    def test_smtp_config_flags(self):
        config = SmtpConfig(host="smtp.example.com", port=465, user="u", password="p")
        assert config.is_complete
        assert config.use_ssl
        assert not config.use_starttls
        assert config.sender_address == "u"
        assert SmtpConfig(port=587).use_starttls
        assert not SmtpConfig().is_complete

    def test_html_to_text(self):
        assert html_to_text("<p>第一行</p>\n<p> 第二行 </p>") == "第一行\n第二行"

    def test_build_message(self):
        mailer = SmtpMailer(SmtpConfig(host="h", user="u@example.com", password="p", from_name="工具箱"))
        msg = mailer.build_message(["a@example.com", "b@example.com"], "主题", "<b>你好</b>")
        assert msg["To"] == "a@example.com, b@example.com"
        parts = msg.get_payload()
        assert parts[0].get_content_type() == "text/plain"
        assert parts[1].get_content_type() == "text/html"

    def test_send_requires_complete_config(self):
        with pytest.raises(RuntimeError):
            SmtpMailer(SmtpConfig()).send(["a@example.com"], "s", "<p>x</p>")

    def test_send_uses_starttls_and_login(self):
        server = MagicMock()
        with patch("toolbox.infrastructure.mailer.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value = server
            SmtpMailer(SmtpConfig(host="h", port=587, user="u", password="p")).send(
                ["a@example.com"], "s", "<p>x</p>"
            )
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("u", "p")
        server.send_message.assert_called_once()
