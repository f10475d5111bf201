"""头像解析测试"""
import base64
import hashlib

import pytest

from toolbox.services.avatar_service import (
    AvatarService,
    generate_letter_avatar,
    get_cravatar_url,
    get_full_avatar_url,
    get_qq_avatar_url,
    is_qq_email,
)


class TestAvatarUrls:

    def test_full_avatar_url(self):
        assert get_full_avatar_url(None) == ""
        assert get_full_avatar_url("https://cdn.example.com/a.png") == "https://cdn.example.com/a.png"
        assert get_full_avatar_url("data:image/png;base64,xx") == "data:image/png;base64,xx"
        assert get_full_avatar_url("/uploads/a.png", "https://api.example.com/api/v1") == \
            "https://api.example.com/uploads/a.png"
        assert get_full_avatar_url("/uploads/a.png") == "http://localhost:3001/uploads/a.png"

    def test_cravatar_uses_md5_of_lowercase_email(self):
        digest = hashlib.md5(b"user@example.com").hexdigest()
        assert get_cravatar_url(" User@Example.com ", 80) == f"https://cravatar.cn/avatar/{digest}?s=80&d=404"

    def test_qq_avatar(self):
        assert is_qq_email("12345@QQ.com")
        assert is_qq_email("abc@foxmail.com")
        assert not is_qq_email("abc@gmail.com")
        assert get_qq_avatar_url("12345@qq.com", 40).endswith("dst_uin=12345&spec=40")
        assert get_qq_avatar_url("12345@qq.com", 100).endswith("spec=100")
        assert get_qq_avatar_url("12345@qq.com", 200).endswith("spec=140")
        with pytest.raises(ValueError):
            get_qq_avatar_url("abc@gmail.com")

    def test_letter_avatar(self):
        url = generate_letter_avatar("alice", 100)
        assert url.startswith("data:image/svg+xml;base64,")
        svg = base64.b64decode(url.split(",", 1)[1]).decode("utf-8")
        assert ">A</text>" in svg
        assert 'font-size="40"' in svg
        assert 'width="100"' in svg

    def test_letter_avatar_escapes_markup(self):
        for name, expected in [("&bob", ">&amp;</text>"), ("<x>", ">&lt;</text>")]:
            svg = base64.b64decode(generate_letter_avatar(name).split(",", 1)[1]).decode("utf-8")
            assert expected in svg


class TestAvatarService:
    """头像候选顺序与缓存"""

    def test_candidates_order(self):
        service = AvatarService()
        candidates = service.candidate_urls({"avatar_url": "https://x/a.png", "email": "1@qq.com"})
        assert candidates[0] == "https://x/a.png"
        assert candidates[1].startswith("https://q.qlogo.cn/")
        assert candidates[2].startswith("https://cravatar.cn/")

    @pytest.mark.asyncio
    async def test_custom_avatar_first(self):
        service = AvatarService()
        url = await service.resolve({"username": "bob", "avatar_url": "https://x/a.png"})
        assert url == "https://x/a.png"

    @pytest.mark.asyncio
    async def test_letter_avatar_without_external(self):
        async def checker(url):
            raise AssertionError("不应访问外部头像")

        service = AvatarService(checker=checker)
        url = await service.resolve({"username": "bob", "email": "bob@example.com"})
        assert url.startswith("data:image/svg+xml;base64,")

    @pytest.mark.asyncio
    async def test_external_falls_through_to_available_candidate(self):
        checked = []

        async def checker(url):
            checked.append(url)
            return url.startswith("https://cravatar.cn/")

        service = AvatarService(checker=checker)
        url = await service.resolve({"username": "bob", "email": "1@qq.com"}, use_external=True)
        assert url.startswith("https://cravatar.cn/")
        assert len(checked) == 2

    @pytest.mark.asyncio
    async def test_cache_and_clear(self):
        calls = []

        async def checker(url):
            calls.append(url)
            return True

        service = AvatarService(checker=checker)
        user = {"username": "bob", "email": "bob@example.com"}
        await service.resolve(user, use_external=True)
        await service.resolve(user, use_external=True)
        assert len(calls) == 1

        service.clear_cache()
        await service.resolve(user, use_external=True)
        assert len(calls) == 2
