"""用户管理路由（管理员）"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ...db.database import get_db
from ...db.models import User
from ...domain.errors import ServiceError
from ...services.avatar_service import AvatarService, generate_letter_avatar, get_random_avatar_url
from ...services.tool_service import build_pagination
from ...services.user_service import UserService
from .deps import ok, require_admin, require_auth

router = APIRouter()


class UserCreateRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: Optional[str] = "user"
    status: Optional[str] = "active"


class UserUpdateRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    new_password: Optional[str] = None


class StatusRequest(BaseModel):
    status: Optional[str] = None


def _avatar_service(request: Request) -> AvatarService:
    service = getattr(request.app.state, "avatar_service", None)
    if service is None:
        service = AvatarService()
        request.app.state.avatar_service = service
    return service


@router.get("")
async def list_users(
    q: Optional[str] = Query(None, description="搜索用户名、邮箱或昵称"),
    role: Optional[str] = Query(None, description="角色"),
    status: Optional[str] = Query(None, description="状态"),
    sort: str = Query("latest", description="排序：latest, name"),
    page: int = Query(1, ge=1, description="页码"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        users, total = await UserService.list_users(db, q, role, status, sort, page, limit)
        return ok({
            "users": [u.to_dict() for u in users],
            "pagination": build_pagination(page, limit, total),
        })
    except Exception as e:
        logger.error(f"获取用户列表失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取用户列表失败")


@router.post("", status_code=201)
async def create_user(
    request: UserCreateRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        user = await UserService.create_user(db, request.model_dump())
        return ok({"user": user.to_dict()}, "用户创建成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"创建用户失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="创建用户失败")


@router.get("/avatar/random")
async def random_avatar(user: User = Depends(require_auth)):
    return ok({"url": await get_random_avatar_url()})


@router.get("/{user_id}/avatar")
async def user_avatar(
    user_id: str,
    request: Request,
    size: int = Query(200, ge=16, le=640, description="头像尺寸"),
    external: bool = Query(False, description="是否尝试 QQ 头像与 Cravatar"),
    db: AsyncSession = Depends(get_db),
    current: User = Depends(require_auth),
):
    """解析用户头像，返回可直接使用的地址和备选列表"""
    try:
        target = await UserService.get_by_id(db, user_id)
        service = _avatar_service(request)
        data = target.to_dict()
        return ok({
            "url": await service.resolve(data, size=size, use_external=external),
            "candidates": service.candidate_urls(data, size),
            "letter": generate_letter_avatar(target.display_name or target.username, size),
        })
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"获取用户头像失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取头像失败")


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    request: UserUpdateRequest,
    http_request: Request,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        user = await UserService.update_user(db, user_id, request.model_dump(exclude_unset=True))
        _avatar_service(http_request).clear_cache()
        return ok({"user": user.to_dict()}, "用户更新成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"更新用户失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="更新用户失败")


@router.post("/{user_id}/reset-password")
async def reset_password(
    user_id: str,
    request: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        await UserService.reset_password(db, user_id, request.new_password)
        return ok(message="密码重置成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"重置密码失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="重置密码失败")


@router.patch("/{user_id}/status")
async def update_status(
    user_id: str,
    request: StatusRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        user = await UserService.update_status(db, user_id, request.status)
        return ok({"user": user.to_dict()}, "状态更新成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"更新用户状态失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="更新状态失败")


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        await UserService.delete_user(db, user_id, current_user_id=admin.id)
        return ok(message="用户删除成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"删除用户失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="删除用户失败")
