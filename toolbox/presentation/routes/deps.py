"""路由公共依赖：统一响应、客户端信息与登录校验"""
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ...config_loader import AppSettings, load_app_settings
from ...db.database import get_db
from ...db.models import User
from ...domain.errors import AuthError, ForbiddenError
from ...infrastructure.security import decode_access_token
from ...services.user_service import UserService

bearer_scheme = HTTPBearer(auto_error=False)


def ok(data: Any = None, message: str = "", **extra: Any) -> Dict[str, Any]:
    """成功响应：{"success": true, "data": ..., "message": ...}"""
    body: Dict[str, Any] = {"success": True, "data": data, "message": message}
    body.update(extra)
    return body


def get_settings(request: Request) -> AppSettings:
    settings = getattr(request.app.state, "settings", None)
    return settings or load_app_settings()


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def _current_user(
    credentials: Optional[HTTPAuthorizationCredentials],
    db: AsyncSession,
    settings: AppSettings,
) -> Optional[User]:
    if credentials is None or not credentials.credentials:
        raise AuthError("访问令牌缺失")
    payload = decode_access_token(
        secret_key=settings.jwt_secret,
        token=credentials.credentials,
        max_age_seconds=settings.token_max_age,
    )
    if payload is None:
        raise AuthError("访问令牌无效或已过期")
    user = await UserService.get_active_user(db, payload["user_id"])
    if user is None:
        raise AuthError("用户不存在或已被禁用")
    return user


async def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    settings: AppSettings = Depends(get_settings),
) -> User:
    return await _current_user(credentials, db, settings)


async def require_admin(user: User = Depends(require_auth)) -> User:
    if user.role != "admin":
        raise ForbiddenError("需要管理员权限")
    return user


async def optional_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    settings: AppSettings = Depends(get_settings),
) -> Optional[User]:
    """有合法令牌时返回用户，否则返回 None"""
    if credentials is None:
        return None
    try:
        return await _current_user(credentials, db, settings)
    except AuthError:
        return None
