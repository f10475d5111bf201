"""应用主入口"""

import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# 在所有模块导入前，从 .env 文件加载环境变量
try:
    load_dotenv()
except Exception as e:  # noqa: BLE001
    # logger 还未配置，使用 print 输出警告
    print(f"Warning: Failed to load .env file: {e}. Continuing with environment variables...")

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config_loader import AppSettings, load_app_settings, load_cleanup_schedule
from .db.database import AsyncSessionLocal, init_db
from .domain.catalog import ToolCatalog
from .domain.errors import ServiceError
from .infrastructure import CleanupJob, SchedulerManager, setup_logging
from .services.avatar_service import AvatarService
from .services.friend_link_service import FriendLinkService
from .services.tool_service import ToolService
from .services.verification_service import VerificationCodeService

# 全局调度器管理器
scheduler_manager: Optional[SchedulerManager] = None

ENDPOINT_GROUPS = {
    "auth": "/auth",
    "tools": "/tools",
    "users": "/users",
    "settings": "/settings",
    "friend_links": "/friend-links",
    "feedback": "/feedback",
    "email": "/email",
    "tool_submissions": "/tool-submissions",
    "favorites": "/favorites",
    "import": "/import",
}


async def cleanup_expired_applications() -> int:
    """把过期的待审核友链申请标记为 expired"""
    try:
        async with AsyncSessionLocal() as session:
            count = await FriendLinkService.cleanup_expired(session)
        if count:
            logger.info(f"[友链清理] 已将 {count} 个过期申请标记为 expired")
        else:
            logger.info("[友链清理] 没有需要处理的过期申请")
        return count
    except Exception as e:
        logger.error(f"[友链清理] 清理失败: {e}", exc_info=True)
        return 0


async def cleanup_verification_codes() -> int:
    """删除过期或超过保留时间的验证码"""
    try:
        async with AsyncSessionLocal() as session:
            count = await VerificationCodeService.clean_expired(session)
        logger.info(f"[验证码清理] 已删除 {count} 条过期验证码")
        return count
    except Exception as e:
        logger.error(f"[验证码清理] 清理失败: {e}", exc_info=True)
        return 0


async def load_catalog_tools() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        return await ToolService.list_active(session)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：启动时初始化数据库和调度器，关闭时关闭调度器"""
    global scheduler_manager

    setup_logging()
    logger.info("=" * 80)
    logger.info("应用启动，初始化日志系统和调度器...")

    try:
        await init_db()
        logger.info("[数据库] 数据库初始化完成")
    except Exception as e:
        logger.error(f"[数据库] 数据库初始化失败: {e}", exc_info=True)

    schedule = load_cleanup_schedule()
    scheduler_manager = SchedulerManager(timezone="Asia/Shanghai")
    scheduler_manager.start([
        CleanupJob("friend_link_cleanup", "友链过期清理", cleanup_expired_applications,
                   schedule.friend_link_cleanup_cron),
        CleanupJob("verification_cleanup", "验证码清理", cleanup_verification_codes,
                   schedule.verification_cleanup_cron),
    ])

    yield  # 应用运行期间

    app.state.catalog.refresh_later.cancel()
    if scheduler_manager is not None:
        scheduler_manager.shutdown(wait=True)
        scheduler_manager = None


def _error_body(message: str, errors: Optional[list] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.errors))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return JSONResponse(
                status_code=404,
                content=_error_body(f"路径 {request.url.path} 不存在"),
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            f"{'.'.join(str(p) for p in err.get('loc', [])[1:])}: {err.get('msg')}"
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content=_error_body("输入验证失败", errors))


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """创建FastAPI应用实例"""
    settings = settings or load_app_settings()
    app = FastAPI(
        title="AiQiji Toolbox API",
        description="AiQiji 工具箱 - 工具导航站后端服务",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.started_at = time.time()
    app.state.catalog = ToolCatalog(load_catalog_tools)
    app.state.avatar_service = AvatarService(api_base_url=settings.api_base_url)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        """健康检查接口"""
        return {
            "success": True,
            "message": "服务运行正常",
            "timestamp": datetime.now().isoformat(),
            "uptime": round(time.time() - app.state.started_at, 3),
        }

    prefix = settings.api_prefix

    @app.get(f"{prefix}/info")
    async def api_info():
        return {
            "success": True,
            "data": {
                "name": "AiQiji Toolbox API",
                "version": __version__,
                "endpoints": {name: f"{prefix}{path}" for name, path in ENDPOINT_GROUPS.items()},
            },
            "message": "",
        }

    # 注册路由
    from .presentation.routes import (
        auth,
        email,
        favorites,
        feedback,
        friend_links,
        importer,
        seo,
        settings as settings_routes,
        submissions,
        tools,
        users,
    )
    app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["auth"])
    app.include_router(tools.router, prefix=f"{prefix}/tools", tags=["tools"])
    app.include_router(users.router, prefix=f"{prefix}/users", tags=["users"])
    app.include_router(settings_routes.router, prefix=f"{prefix}/settings", tags=["settings"])
    app.include_router(friend_links.router, prefix=f"{prefix}/friend-links", tags=["friend-links"])
    app.include_router(feedback.router, prefix=f"{prefix}/feedback", tags=["feedback"])
    app.include_router(email.router, prefix=f"{prefix}/email", tags=["email"])
    app.include_router(submissions.router, prefix=f"{prefix}/tool-submissions", tags=["tool-submissions"])
    app.include_router(favorites.router, prefix=f"{prefix}/favorites", tags=["favorites"])
    app.include_router(importer.router, prefix=f"{prefix}/import", tags=["import"])
    app.include_router(seo.router, tags=["seo"])

    return app


app = create_app()
