"""工具提交路由：用户投稿与后台审核"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ...db.database import get_db
from ...db.models import User
from ...domain.errors import ServiceError
from ...services.submission_service import SubmissionService
from ...services.tool_service import build_pagination
from .deps import ok, require_admin

router = APIRouter()


class SubmitRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    category: Optional[Any] = None
    tags: Optional[Any] = None
    icon_url: Optional[str] = None
    submitter_name: Optional[str] = None
    submitter_email: Optional[str] = None
    submitter_contact: Optional[str] = None
    additional_info: Optional[Any] = None


class SubmissionUpdateRequest(BaseModel):
    tool_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    category: Optional[Any] = None
    tags: Optional[Any] = None
    icon: Optional[str] = None
    icon_url: Optional[str] = None
    icon_theme: Optional[str] = None
    submitter_name: Optional[str] = None
    submitter_email: Optional[str] = None
    submitter_contact: Optional[str] = None
    priority: Optional[int] = None
    additional_info: Optional[Any] = None


class ReviewRequest(BaseModel):
    action: Optional[str] = None
    comment: Optional[str] = None


class BatchReviewRequest(BaseModel):
    ids: List[int] = []
    action: Optional[str] = None
    comment: Optional[str] = None


REVIEW_MESSAGES = {
    "approved": "工具已通过审核并添加到系统中",
    "rejected": "工具提交已被拒绝",
    "processing": "工具提交状态已更新为处理中",
}


@router.post("/submit", status_code=201)
async def submit_tool(payload: SubmitRequest, db: AsyncSession = Depends(get_db)):
    try:
        submission = await SubmissionService.submit(db, payload.model_dump())
        return ok({"submission": submission.to_dict()}, "工具提交成功，我们会尽快审核")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"提交工具失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="提交工具失败")


@router.get("/check-duplicates")
async def check_duplicates(
    name: Optional[str] = Query(None, description="工具名称"),
    url: Optional[str] = Query(None, description="工具链接"),
    exclude_id: Optional[int] = Query(None, alias="excludeId", description="排除的提交ID"),
    db: AsyncSession = Depends(get_db),
):
    try:
        return ok(await SubmissionService.check_duplicates(db, name, url, exclude_id))
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"检查重复工具失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="检查重复工具失败")


@router.get("/admin/submissions")
async def list_submissions(
    status: Optional[str] = Query("pending", description="状态，all 表示全部"),
    sort: str = Query("default", description="排序：default, name, latest, oldest"),
    page: int = Query(1, ge=1, description="页码"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        submissions, total = await SubmissionService.list_submissions(db, status, sort, page, limit)
        return ok({
            "submissions": [s.to_dict() for s in submissions],
            "pagination": build_pagination(page, limit, total),
        })
    except Exception as e:
        logger.error(f"获取提交列表失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取提交列表失败")


@router.get("/admin/submissions/stats")
async def submission_stats(db: AsyncSession = Depends(get_db), admin: User = Depends(require_admin)):
    try:
        return ok(await SubmissionService.get_stats(db))
    except Exception as e:
        logger.error(f"获取提交统计信息失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取提交统计信息失败")


@router.post("/admin/submissions/batch-review")
async def batch_review(
    payload: BatchReviewRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        results = await SubmissionService.batch_review(
            db, payload.ids, payload.action, reviewer_id=admin.id, comment=payload.comment
        )
        if payload.action == "approve" and results["success"]:
            request.app.state.catalog.invalidate()
        return ok(results, f"批量处理完成：成功 {results['success']} 个，失败 {results['failed']} 个")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"批量审核失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="批量审核失败")


@router.get("/admin/submissions/{submission_id}")
async def get_submission(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        submission = await SubmissionService.get(db, submission_id)
        return ok({"submission": submission.to_dict()})
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"获取提交详情失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="获取提交详情失败")


@router.put("/admin/submissions/{submission_id}")
async def update_submission(
    submission_id: int,
    payload: SubmissionUpdateRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        submission = await SubmissionService.update(
            db, submission_id, payload.model_dump(exclude_unset=True)
        )
        return ok({"submission": submission.to_dict()}, "提交更新成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"更新提交失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="更新提交失败")


@router.post("/admin/submissions/{submission_id}/review")
async def review_submission(
    submission_id: int,
    payload: ReviewRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        submission = await SubmissionService.review(
            db, submission_id, payload.action, reviewer_id=admin.id, comment=payload.comment
        )
        if submission.status == "approved":
            request.app.state.catalog.invalidate()
        return ok({"submission": submission.to_dict()}, REVIEW_MESSAGES[submission.status])
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"审核提交失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="审核提交失败")


@router.delete("/admin/submissions/{submission_id}")
async def delete_submission(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        await SubmissionService.delete(db, submission_id)
        return ok(message="提交删除成功")
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"删除提交失败: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="删除提交失败")
