"""认证路由：登录、令牌校验、注册"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ...config_loader import AppSettings
from ...db.database import get_db
from ...db.models import User
from ...domain.errors import ServiceError
from ...services.user_service import UserService
from .deps import get_settings, ok, require_admin, require_auth

router = APIRouter()


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: Optional[str] = "user"


@router.post("/login")
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    settings: AppSettings = Depends(get_settings),
):
    """用户名密码登录，返回访问令牌"""
    try:
        user, token = await UserService.authenticate(
            db, request.username, request.password, settings.jwt_secret
        )
        return ok(
            {"token": token, "expires_in": settings.token_max_age, "user": user.to_dict()},
            "登录成功",
        )
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"登录失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="登录失败，请稍后重试")


@router.post("/logout")
async def logout():
    # 令牌无状态，登出由前端删除令牌完成
    return ok(message="登出成功")


@router.get("/validate")
async def validate_token(user: User = Depends(require_auth)):
    return ok({"user": user.to_dict()}, "令牌有效")


@router.get("/me")
async def me(user: User = Depends(require_auth)):
    return ok({"user": user.to_dict()})


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """管理员创建账户"""
    try:
        user = await UserService.create_user(db, request.model_dump())
        logger.info(f"管理员 {admin.username} 注册了新用户 {user.username}")
        return ok({"user": user.to_dict()}, "用户注册成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"注册用户失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="注册失败")
