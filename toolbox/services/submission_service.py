"""工具提交（用户投稿）服务"""
import re
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import SUBMISSION_STATUSES, Tool, ToolSubmission
from ..domain.errors import NotFoundError, ValidationError
from .tool_service import ToolService

REVIEW_ACTIONS = {
    "approve": "approved",
    "reject": "rejected",
    "processing": "processing",
}
REVIEWABLE_STATUSES = ["pending", "processing"]

SUBMISSION_SORTS = {
    "name": [ToolSubmission.name.asc()],
    "latest": [ToolSubmission.created_at.desc()],
    "oldest": [ToolSubmission.created_at.asc()],
    "default": [ToolSubmission.priority.desc(), ToolSubmission.created_at.asc()],
}

EDITABLE_FIELDS = [
    "tool_id", "name", "description", "url", "category", "tags", "icon", "icon_url",
    "icon_theme", "submitter_name", "submitter_email", "submitter_contact",
    "priority", "additional_info",
]


def generate_tool_id(name: str, timestamp_ms: Optional[int] = None) -> str:
    """由名称生成工具ID，附加毫秒时间戳保证唯一"""
    base = re.sub(r"[^a-z0-9\s-]", "", (name or "").lower())
    base = re.sub(r"-+", "-", re.sub(r"\s+", "-", base.strip())).strip("-")
    timestamp_ms = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{base or 'tool'}-{timestamp_ms}"


def _strip_or_none(value: Any) -> Optional[str]:
    value = (value or "").strip() if isinstance(value, str) else value
    return value or None


class SubmissionService:
    """投稿的提交、查重与审核"""

    @staticmethod
    async def submit(db: AsyncSession, raw: Dict[str, Any]) -> ToolSubmission:
        tool_id = generate_tool_id(raw.get("name") or "")
        data = ToolService.prepare_tool_data({
            "name": raw.get("name"),
            "description": raw.get("description"),
            "url": raw.get("url"),
            "category": raw.get("category"),
            "tags": raw.get("tags") or [],
            "icon_url": _strip_or_none(raw.get("icon_url")),
            "icon_theme": "auto-dark",
        })

        submission = ToolSubmission(
            tool_id=tool_id,
            name=data["name"],
            description=data["description"],
            url=data["url"],
            category=data["category"],
            tags=data.get("tags") or [],
            icon="Tool",
            icon_url=data.get("icon_url"),
            icon_theme="auto-dark",
            submitter_name=_strip_or_none(raw.get("submitter_name")),
            submitter_email=_strip_or_none(raw.get("submitter_email")),
            submitter_contact=_strip_or_none(raw.get("submitter_contact")),
            additional_info=raw.get("additional_info") or None,
            status="pending",
            source="user_submit",
        )
        db.add(submission)
        await db.commit()
        await db.refresh(submission)
        logger.info(f"收到工具提交: {submission.name} ({submission.url})")
        return submission

    @staticmethod
    async def check_duplicates(db: AsyncSession, name: Optional[str] = None, url: Optional[str] = None,
                               exclude_id: Optional[int] = None) -> Dict[str, Any]:
        """按名称模糊匹配或链接精确匹配，查找已有工具和待处理的投稿"""
        name = (name or "").strip()
        url = (url or "").strip()
        if not name and not url:
            raise ValidationError("请提供工具名称或链接")

        tool_conditions, submission_conditions = [], []
        if name:
            tool_conditions.append(Tool.name.like(f"%{name}%"))
            submission_conditions.append(ToolSubmission.name.like(f"%{name}%"))
        if url:
            tool_conditions.append(Tool.url == url)
            submission_conditions.append(ToolSubmission.url == url)

        tools = (await db.scalars(select(Tool).where(or_(*tool_conditions)).limit(10))).all()

        stmt = select(ToolSubmission).where(
            or_(*submission_conditions), ToolSubmission.status.in_(REVIEWABLE_STATUSES)
        )
        if exclude_id is not None:
            stmt = stmt.where(ToolSubmission.id != exclude_id)
        submissions = (await db.scalars(stmt.limit(10))).all()

        return {
            "existingTools": [
                {"id": t.id, "name": t.name, "url": t.url, "description": t.description} for t in tools
            ],
            "pendingSubmissions": [
                {"id": s.id, "tool_id": s.tool_id, "name": s.name, "url": s.url,
                 "description": s.description, "status": s.status}
                for s in submissions
            ],
            "hasDuplicates": bool(tools or submissions),
        }

    @staticmethod
    async def list_submissions(db: AsyncSession, status: Optional[str] = "pending", sort: str = "default",
                               page: int = 1, limit: int = 20) -> Tuple[List[ToolSubmission], int]:
        """status 为 "all" 时不过滤，默认只看待审核"""
        conditions = []
        if status and status != "all":
            conditions.append(ToolSubmission.status == status)
        total = await db.scalar(select(func.count()).select_from(ToolSubmission).where(*conditions))
        rows = (await db.scalars(
            select(ToolSubmission).where(*conditions)
            .order_by(*SUBMISSION_SORTS.get(sort, SUBMISSION_SORTS["default"]))
            .offset((page - 1) * limit).limit(limit)
        )).all()
        return list(rows), total or 0

    @staticmethod
    async def get(db: AsyncSession, submission_id: int) -> ToolSubmission:
        submission = await db.get(ToolSubmission, submission_id)
        if submission is None:
            raise NotFoundError("提交不存在")
        return submission

    @staticmethod
    async def update(db: AsyncSession, submission_id: int, raw: Dict[str, Any]) -> ToolSubmission:
        submission = await SubmissionService.get(db, submission_id)
        updates = {k: v for k, v in raw.items() if k in EDITABLE_FIELDS and v is not None}

        tool_fields = {k: updates[k] for k in ("name", "description", "url", "category", "tags",
                                               "icon", "icon_url", "icon_theme") if k in updates}
        if tool_fields:
            updates.update(ToolService.prepare_tool_data(tool_fields, partial=True))

        for key, value in updates.items():
            setattr(submission, key, value)
        await db.commit()
        await db.refresh(submission)
        return submission

    @staticmethod
    def _apply_review(submission: ToolSubmission, status: str, reviewer_id: Optional[str],
                      comment: Optional[str]) -> None:
        submission.status = status
        submission.reviewer_id = reviewer_id
        submission.review_comment = comment or None
        submission.reviewed_at = datetime.now()

    @staticmethod
    async def _create_tool(db: AsyncSession, submission: ToolSubmission) -> Tool:
        tool = Tool(**submission.to_tool_data())
        db.add(tool)
        return tool

    @staticmethod
    async def review(db: AsyncSession, submission_id: int, action: str,
                     reviewer_id: Optional[str] = None, comment: Optional[str] = None) -> ToolSubmission:
        """
        审核单个投稿

        approve 会以投稿数据创建上架工具；只有 pending 与 processing 状态可以审核。
        """
        if action not in REVIEW_ACTIONS:
            raise ValidationError("无效的操作类型")
        submission = await SubmissionService.get(db, submission_id)
        if submission.status not in REVIEWABLE_STATUSES:
            raise ValidationError("该提交已经被处理过了")

        if action == "approve":
            if await db.get(Tool, submission.tool_id) is not None:
                raise ValidationError("该工具已存在，无法重复创建")
            await SubmissionService._create_tool(db, submission)

        SubmissionService._apply_review(submission, REVIEW_ACTIONS[action], reviewer_id, comment)
        await db.commit()
        await db.refresh(submission)
        logger.info(f"工具提交 {submission.id} 审核结果: {submission.status}")
        return submission

    @staticmethod
    async def batch_review(db: AsyncSession, ids: List[int], action: str,
                           reviewer_id: Optional[str] = None, comment: Optional[str] = None) -> Dict[str, Any]:
        if not ids:
            raise ValidationError("请选择要处理的提交")
        if action not in REVIEW_ACTIONS:
            raise ValidationError("无效的操作类型")

        submissions = (await db.scalars(select(ToolSubmission).where(
            ToolSubmission.id.in_(ids), ToolSubmission.status.in_(REVIEWABLE_STATUSES)
        ))).all()
        if not submissions:
            raise ValidationError("没有找到可处理的提交")

        results = {"success": 0, "failed": 0, "errors": []}
        for submission in submissions:
            if action == "approve":
                if await db.get(Tool, submission.tool_id) is not None:
                    results["failed"] += 1
                    results["errors"].append({
                        "id": submission.id, "tool_id": submission.tool_id, "error": "工具ID已存在",
                    })
                    continue
                await SubmissionService._create_tool(db, submission)
            SubmissionService._apply_review(submission, REVIEW_ACTIONS[action], reviewer_id, comment)
            results["success"] += 1

        await db.commit()
        logger.info(f"批量审核完成: 成功 {results['success']}，失败 {results['failed']}")
        return results

    @staticmethod
    async def delete(db: AsyncSession, submission_id: int) -> None:
        submission = await SubmissionService.get(db, submission_id)
        await db.delete(submission)
        await db.commit()

    @staticmethod
    async def get_stats(db: AsyncSession) -> Dict[str, int]:
        counts = dict((await db.execute(
            select(ToolSubmission.status, func.count()).group_by(ToolSubmission.status)
        )).all())
        stats = {"total": sum(counts.values())}
        stats.update({status: counts.get(status, 0) for status in SUBMISSION_STATUSES})
        return stats
