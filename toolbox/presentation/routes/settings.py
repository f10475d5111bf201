"""系统设置路由"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ...db.database import get_db
from ...db.models import User
from ...domain.errors import ServiceError
from ...services.settings_service import SettingsService
from .deps import ok, require_admin

router = APIRouter()


class SettingRequest(BaseModel):
    setting_key: Optional[str] = None
    setting_value: Any = None
    setting_type: str = "string"
    description: Optional[str] = None


class BatchSettingsRequest(BaseModel):
    settings: List[Dict[str, Any]] = []


@router.get("/public")
async def public_settings(db: AsyncSession = Depends(get_db)):
    """前台可见的设置（不含邮件配置）"""
    try:
        return ok(await SettingsService.get_public(db))
    except Exception as e:
        logger.error(f"获取公开设置失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取设置失败")


@router.get("/website")
async def website_info(db: AsyncSession = Depends(get_db)):
    try:
        return ok(await SettingsService.get_website_info(db))
    except Exception as e:
        logger.error(f"获取网站信息失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取网站信息失败")


@router.get("")
async def all_settings(
    category: Optional[str] = Query(None, description="分类：website, email, general"),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        return ok(await SettingsService.get_all(db, category))
    except Exception as e:
        logger.error(f"获取系统设置失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取设置失败")


@router.put("")
async def update_setting(
    request: SettingRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        result = await SettingsService.set_value(
            db, request.setting_key, request.setting_value, request.setting_type, request.description
        )
        return ok(result, "设置更新成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"更新系统设置失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="更新设置失败")


@router.put("/batch")
async def update_settings(
    request: BatchSettingsRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """批量更新，任一项失败时全部回滚"""
    try:
        if not request.settings:
            raise HTTPException(status_code=400, detail="设置数据格式错误")
        results = await SettingsService.set_many(db, request.settings)
        return ok(results, f"成功更新 {len(results)} 项设置")
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"批量更新系统设置失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="批量更新设置失败")


@router.delete("/{setting_key}")
async def delete_setting(
    setting_key: str,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        await SettingsService.delete(db, setting_key)
        return ok(message="设置删除成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"删除系统设置失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="删除设置失败")
