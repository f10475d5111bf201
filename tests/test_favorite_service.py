"""用户收藏服务测试"""
import pytest

from toolbox.domain.errors import NotFoundError, ValidationError
from toolbox.services.favorite_service import FavoriteService
from toolbox.services.tool_service import ToolService
from toolbox.services.user_service import UserService


@pytest.fixture
def favorites_setup(session, tool_data):
    async def _setup():
        user = await UserService.create_user(session, {"username": "alice", "password": "alice123"})
        await ToolService.create_tool(session, tool_data())
        await ToolService.create_tool(session, tool_data(
            id="figma", name="Figma", description="在线协作的界面设计工具，支持原型制作",
            url="https://figma.com", category=["设计"], tags=["UI"],
        ))
        return user
    return _setup


class TestFavorites:

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, session, favorites_setup):
        user = await favorites_setup()
        await FavoriteService.add(session, user.id, "chatgpt")
        await FavoriteService.add(session, user.id, "chatgpt")
        tools, total = await FavoriteService.list_favorites(session, user.id)
        assert total == 1
        assert [t.id for t in tools] == ["chatgpt"]

    @pytest.mark.asyncio
    async def test_add_errors(self, session, favorites_setup):
        user = await favorites_setup()
        with pytest.raises(ValidationError, match="缺少工具ID"):
            await FavoriteService.add(session, user.id, "")
        with pytest.raises(NotFoundError, match="工具不存在"):
            await FavoriteService.add(session, user.id, "missing")

    @pytest.mark.asyncio
    async def test_list_newest_first_and_filters(self, session, favorites_setup):
        user = await favorites_setup()
        await FavoriteService.add(session, user.id, "chatgpt")
        await FavoriteService.add(session, user.id, "figma")

        tools, total = await FavoriteService.list_favorites(session, user.id)
        assert [t.id for t in tools] == ["figma", "chatgpt"]

        tools, total = await FavoriteService.list_favorites(session, user.id, category="设计")
        assert [t.id for t in tools] == ["figma"]
        assert total == 2

        tools, _ = await FavoriteService.list_favorites(session, user.id, q="对话")
        assert [t.id for t in tools] == ["chatgpt"]

    @pytest.mark.asyncio
    async def test_remove(self, session, favorites_setup):
        user = await favorites_setup()
        await FavoriteService.add(session, user.id, "chatgpt")
        assert await FavoriteService.exists(session, user.id, "chatgpt")
        await FavoriteService.remove(session, user.id, "chatgpt")
        assert not await FavoriteService.exists(session, user.id, "chatgpt")
        with pytest.raises(NotFoundError, match="未找到收藏记录"):
            await FavoriteService.remove(session, user.id, "chatgpt")

    @pytest.mark.asyncio
    async def test_empty_list(self, session, favorites_setup):
        user = await favorites_setup()
        assert await FavoriteService.list_favorites(session, user.id) == ([], 0)

    def test_pagination(self):
        assert FavoriteService.pagination(2, 10, 21) == {
            "currentPage": 2, "itemsPerPage": 10, "totalItems": 21, "totalPages": 3,
        }
