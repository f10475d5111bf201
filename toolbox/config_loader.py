import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from loguru import logger


def _project_root() -> Path:
    # toolbox/config_loader.py -> project_root
    return Path(__file__).resolve().parents[1]


DEV_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]


@dataclass
class AppSettings:
    """
    应用运行配置，全部来自环境变量（.env 由 main 在启动时加载）。

    站点名称、SMTP 等可在后台修改的配置不在这里，而是保存在 system_settings 表中。
    """

    app_env: str = "development"
    api_prefix: str = "/api/v1"
    database_url: Optional[str] = None
    jwt_secret: str = "aiqiji-dev-secret"
    token_max_age: int = 8 * 60 * 60
    frontend_urls: List[str] = field(default_factory=list)
    site_base_url: str = "https://tools.aiqji.com"
    api_base_url: str = ""
    admin_email: Optional[str] = None

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def cors_origins(self) -> List[str]:
        origins = list(self.frontend_urls)
        if self.is_development:
            origins.extend(o for o in DEV_ORIGINS if o not in origins)
        return origins


def _get_int_env(name: str, fallback: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return fallback
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}={raw!r}, fallback to {fallback}.")
        return fallback


def _split_urls(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip().rstrip("/") for item in raw.split(",") if item.strip()]


def load_app_settings() -> AppSettings:
    """从环境变量读取应用配置"""
    default = AppSettings()

    frontend_urls = _split_urls(os.getenv("FRONTEND_URLS"))
    single = os.getenv("FRONTEND_URL")
    if single and single.rstrip("/") not in frontend_urls:
        frontend_urls.insert(0, single.rstrip("/"))

    secret = os.getenv("JWT_SECRET")
    if not secret:
        logger.warning("JWT_SECRET 未设置，使用开发默认密钥（生产环境请务必配置）")
        secret = default.jwt_secret

    return AppSettings(
        app_env=os.getenv("APP_ENV", default.app_env),
        api_prefix=os.getenv("API_PREFIX", default.api_prefix),
        database_url=os.getenv("DATABASE_URL") or None,
        jwt_secret=secret,
        token_max_age=_get_int_env("TOKEN_MAX_AGE", default.token_max_age),
        frontend_urls=frontend_urls,
        site_base_url=os.getenv("SITE_BASE_URL", default.site_base_url).rstrip("/"),
        api_base_url=os.getenv("API_BASE_URL", default.api_base_url).rstrip("/"),
        admin_email=os.getenv("ADMIN_EMAIL") or None,
    )


@dataclass
class CleanupSchedule:
    """
    后台清理任务的执行时间。

    config/schedule.json 示例：
    {
      "friend_link_cleanup_cron": "0 3 * * *",
      "verification_cleanup_cron": "0 * * * *"
    }
    """

    friend_link_cleanup_cron: str = "0 3 * * *"
    verification_cleanup_cron: str = "0 * * * *"


def _schedule_path() -> Path:
    return _project_root() / "config" / "schedule.json"


def load_cleanup_schedule(path: Optional[Path] = None) -> CleanupSchedule:
    """读取清理任务配置，文件缺失或格式错误时使用默认值"""
    path = path or _schedule_path()
    default = CleanupSchedule()

    if not path.exists():
        logger.warning(f"Schedule config not found at {path}, using defaults: {default}.")
        return default

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except Exception as exc:  # noqa: BLE001
        logger.error(f"Failed to load schedule config: {exc}, using defaults: {default}.")
        return default

    def _get_cron(name: str, fallback: str) -> str:
        raw = data.get(name)
        if not isinstance(raw, str) or len(raw.split()) != 5:
            if raw is not None:
                logger.warning(f"Invalid cron for {name}={raw!r}, fallback to {fallback!r}.")
            return fallback
        return raw.strip()

    return CleanupSchedule(
        friend_link_cleanup_cron=_get_cron(
            "friend_link_cleanup_cron", default.friend_link_cleanup_cron
        ),
        verification_cleanup_cron=_get_cron(
            "verification_cleanup_cron", default.verification_cleanup_cron
        ),
    )


def initial_tools_path() -> Path:
    return _project_root() / "data" / "initial-tools.json"
