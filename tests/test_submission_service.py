"""工具投稿服务测试"""
import pytest

from toolbox.db.models import Tool
from toolbox.domain.errors import NotFoundError, ValidationError
from toolbox.services.submission_service import SubmissionService, generate_tool_id
from toolbox.services.tool_service import ToolService


def _submission(**overrides):
    data = {
        "name": "Notion",
        "description": "集笔记、知识库和任务管理于一体的协作工具",
        "url": "notion.so",
        "category": ["效率"],
        "tags": "笔记,协作",
        "submitter_name": " 小王 ",
        "submitter_email": "wang@example.com",
    }
    data.update(overrides)
    return data


class TestGenerateToolId:

    def test_slug_with_timestamp(self):
        assert generate_tool_id("My Cool Tool!", 123) == "my-cool-tool-123"
        assert generate_tool_id("  A  --  B ", 1) == "a-b-1"

    def test_non_ascii_name(self):
        assert generate_tool_id("思维导图", 42) == "tool-42"


class TestSubmit:

    @pytest.mark.asyncio
    async def test_submit_defaults(self, session):
        submission = await SubmissionService.submit(session, _submission())
        assert submission.status == "pending"
        assert submission.source == "user_submit"
        assert submission.icon_theme == "auto-dark"
        assert submission.url == "https://notion.so"
        assert submission.tags == ["笔记", "协作"]
        assert submission.submitter_name == "小王"
        assert submission.tool_id.startswith("notion-")

    @pytest.mark.asyncio
    async def test_submit_validation(self, session):
        with pytest.raises(ValidationError) as exc_info:
            await SubmissionService.submit(session, _submission(description="太短", category=[]))
        assert "工具描述长度必须在10-1000个字符之间" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_check_duplicates(self, session, tool_data):
        await ToolService.create_tool(session, tool_data())
        await SubmissionService.submit(session, _submission())

        result = await SubmissionService.check_duplicates(session, name="Chat")
        assert [t["id"] for t in result["existingTools"]] == ["chatgpt"]
        assert result["hasDuplicates"] is True

        result = await SubmissionService.check_duplicates(session, url="https://notion.so")
        assert result["existingTools"] == []
        assert len(result["pendingSubmissions"]) == 1

        result = await SubmissionService.check_duplicates(session, name="不存在的工具")
        assert result["hasDuplicates"] is False

        with pytest.raises(ValidationError, match="请提供工具名称或链接"):
            await SubmissionService.check_duplicates(session, name=" ", url="")


class TestReview:
    """审核通过时创建工具"""

    @pytest.mark.asyncio
    async def test_approve_creates_tool(self, session):
        submission = await SubmissionService.submit(session, _submission())
        reviewed = await SubmissionService.review(session, submission.id, "approve", reviewer_id="admin-1",
                                                  comment="收录")
        assert reviewed.status == "approved"
        assert reviewed.reviewer_id == "admin-1"
        assert reviewed.reviewed_at is not None

        tool = await session.get(Tool, submission.tool_id)
        assert tool.name == "Notion"
        assert tool.status == "active"

        with pytest.raises(ValidationError, match="该提交已经被处理过了"):
            await SubmissionService.review(session, submission.id, "reject")

    @pytest.mark.asyncio
    async def test_review_errors(self, session, tool_data):
        submission = await SubmissionService.submit(session, _submission())
        with pytest.raises(ValidationError, match="无效的操作类型"):
            await SubmissionService.review(session, submission.id, "publish")
        with pytest.raises(NotFoundError):
            await SubmissionService.review(session, 9999, "approve")

        await ToolService.create_tool(session, tool_data(id=submission.tool_id))
        with pytest.raises(ValidationError, match="该工具已存在，无法重复创建"):
            await SubmissionService.review(session, submission.id, "approve")

    @pytest.mark.asyncio
    async def test_processing_can_still_be_reviewed(self, session):
        submission = await SubmissionService.submit(session, _submission())
        await SubmissionService.review(session, submission.id, "processing")
        reviewed = await SubmissionService.review(session, submission.id, "reject", comment="重复")
        assert reviewed.status == "rejected"
        assert reviewed.review_comment == "重复"

    @pytest.mark.asyncio
    async def test_batch_review(self, session, tool_data):
        first = await SubmissionService.submit(session, _submission())
        second = await SubmissionService.submit(session, _submission(name="Obsidian", url="obsidian.md"))
        await ToolService.create_tool(session, tool_data(id=second.tool_id))

        result = await SubmissionService.batch_review(session, [first.id, second.id], "approve")
        assert result["success"] == 1
        assert result["failed"] == 1
        assert result["errors"] == [{"id": second.id, "tool_id": second.tool_id, "error": "工具ID已存在"}]

        stats = await SubmissionService.get_stats(session)
        assert stats["approved"] == 1
        assert stats["pending"] == 1
        assert stats["total"] == 2

    @pytest.mark.asyncio
    async def test_list_update_delete(self, session):
        submission = await SubmissionService.submit(session, _submission())
        rows, total = await SubmissionService.list_submissions(session)
        assert total == 1 and rows[0].id == submission.id
        _, total = await SubmissionService.list_submissions(session, status="approved")
        assert total == 0

        updated = await SubmissionService.update(session, submission.id, {"name": "Notion AI", "priority": 5})
        assert updated.name == "Notion AI"
        assert updated.priority == 5

        await SubmissionService.delete(session, submission.id)
        with pytest.raises(NotFoundError):
            await SubmissionService.get(session, submission.id)
