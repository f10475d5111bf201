"""Excel 导入导出路由"""
from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import Response
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from ...db.database import get_db
from ...db.models import User
from ...domain.errors import ServiceError, ValidationError
from ...services import import_service
from .deps import ok, require_admin

router = APIRouter()

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_SUFFIXES = (".xlsx", ".xlsm")


def _xlsx_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=import_service.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/template")
async def download_template():
    try:
        return _xlsx_response(import_service.build_template(), "tools-import-template.xlsx")
    except Exception as e:
        logger.error(f"下载Excel模板失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="下载Excel模板失败")


@router.post("/excel")
async def import_excel(
    request: Request,
    file: UploadFile = File(..., description="Excel 文件"),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """按 ID 新增或更新工具，逐行返回校验错误"""
    try:
        if not (file.filename or "").lower().endswith(ALLOWED_SUFFIXES):
            raise ValidationError("只支持 .xlsx 格式的Excel文件")
        content = await file.read()
        if len(content) > MAX_UPLOAD_BYTES:
            raise ValidationError("文件大小不能超过10MB")

        results = await import_service.import_tools(db, content)
        if results["success"]:
            # 导入期间的多次刷新合并为一次
            request.app.state.catalog.refresh_later()
        return ok(results, f"导入完成：成功 {results['success']} 条，失败 {results['failed']} 条")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"Excel导入失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Excel导入失败")


@router.get("/export")
async def export_excel(db: AsyncSession = Depends(get_db), admin: User = Depends(require_admin)):
    try:
        content = await import_service.export_tools(db)
        return _xlsx_response(content, import_service.export_filename())
    except Exception as e:
        logger.error(f"导出Excel失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="导出Excel失败")
